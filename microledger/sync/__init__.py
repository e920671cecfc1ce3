"""
Sync Package

Everything between the local ledger and the remote store: identifier
generation, the pending-mutation queue, replay, reconciliation and the
connectivity signal.
"""

from microledger.sync.ids import IdentifierGenerator
from microledger.sync.queue import SyncQueue
from microledger.sync.worker import ReplayWorker
from microledger.sync.reconcile import Reconciler
from microledger.sync.connectivity import (
    ConnectivityMonitor,
    ManualConnectivity,
    RemoteProbeConnectivity,
)

__all__ = [
    "ConnectivityMonitor",
    "IdentifierGenerator",
    "ManualConnectivity",
    "Reconciler",
    "RemoteProbeConnectivity",
    "ReplayWorker",
    "SyncQueue",
]
