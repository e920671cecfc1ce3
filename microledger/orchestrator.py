"""
Main Orchestrator for Microledger

Wires the local store, sync queue, ledger state, mutation API, replay
worker, reconciler and connectivity monitor into one application, and
defines the runtime flows:

1. Mutation:   service -> local store + queue -> debounced replay
2. Reconnect:  drain the queue -> wait until idle -> reconcile
3. Periodic:   drain every replay interval

DESIGN DECISION: The reconnect handler always finishes replay before
fetching the remote snapshot. A fetch that ran first could overwrite
local edits that were still waiting in the queue.
"""

from typing import Optional

from pydantic import BaseModel, Field
from tenacity.wait import wait_base

from microledger.audit import AuditLogger, configure_logging
from microledger.config import Settings, get_settings
from microledger.ledger.service import LedgerService
from microledger.ledger.state import LedgerState
from microledger.models.sync import DrainReport, ReconcileReport
from microledger.services.local import JsonFileLocalStore, LocalStoreInterface
from microledger.services.remote import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryRemoteStore,
    PostgrestRemoteStore,
    RemoteStoreInterface,
)
from microledger.sync.connectivity import (
    ConnectivityMonitor,
    ManualConnectivity,
    RemoteProbeConnectivity,
)
from microledger.sync.ids import IdentifierGenerator
from microledger.sync.queue import SyncQueue
from microledger.sync.reconcile import Reconciler
from microledger.sync.worker import ReplayWorker


class SyncStatus(BaseModel):
    """The ambient offline/syncing indicator."""

    connected: bool
    draining: bool
    pending: int = Field(..., ge=0)
    last_drain: Optional[DrainReport] = None
    last_reconcile: Optional[ReconcileReport] = None

    @property
    def is_synced(self) -> bool:
        return self.connected and not self.draining and self.pending == 0


class LedgerApp:
    """
    The running application.

    Presentation code uses ``service`` for mutations, ``state`` for
    reads and ``sync_status()`` for the sync indicator. Nothing outside
    this package touches the queue or the local store directly.
    """

    def __init__(
        self,
        local_store: LocalStoreInterface,
        remote: RemoteStoreInterface,
        connectivity: Optional[ConnectivityMonitor] = None,
        settings: Optional[Settings] = None,
        audit_logger: Optional[AuditLogger] = None,
        retry_wait: Optional[wait_base] = None,
    ):
        settings = settings or get_settings()
        sync_settings = settings.sync

        self.audit = audit_logger or AuditLogger()
        self.remote = remote
        self.connectivity = connectivity or ManualConnectivity(connected=True, audit_logger=self.audit)
        self.ids = IdentifierGenerator(local_store)
        self.queue = SyncQueue(local_store, self.ids, self.audit)
        self.state = LedgerState(local_store, self.audit)
        self.worker = ReplayWorker(
            self.queue,
            remote,
            self.audit,
            debounce_seconds=sync_settings.debounce_seconds,
            interval_seconds=sync_settings.replay_interval_seconds,
        )
        self.reconciler = Reconciler(
            self.state,
            self.queue,
            remote,
            self.audit,
            page_size=sync_settings.page_size,
            fetch_retry_attempts=sync_settings.fetch_retry_attempts,
            retry_wait=retry_wait,
            replay_lock=self.worker.replay_lock,
        )
        self.service = LedgerService(
            self.state,
            self.queue,
            self.ids,
            self.audit,
            settings.app,
            request_replay=self._request_replay,
        )
        self.connectivity.subscribe(on_connected=self.on_connected)
        self._started = False

    def _request_replay(self) -> None:
        if self.connectivity.is_connected:
            self.worker.request_drain()

    async def on_connected(self) -> ReconcileReport:
        """Replay everything pending, then merge the remote snapshot."""
        await self.worker.drain()
        await self.worker.wait_idle()
        report = await self.reconciler.reconcile(connected=True)
        # Drains skipped while the merge held the lock, and recovered orphans
        if len(self.queue):
            self._request_replay()
        return report

    async def start(self) -> None:
        """
        Load the local snapshot, sync if connected, and start the
        periodic replay.
        """
        if self._started:
            return
        self.state.load()
        await self.connectivity.start()
        if self.connectivity.is_connected:
            if self.reconciler.last_report is None:
                await self.on_connected()
        else:
            await self.reconciler.reconcile(connected=False)
        self.worker.start_periodic()
        self._started = True

    async def stop(self) -> None:
        await self.worker.stop()
        await self.connectivity.stop()
        if isinstance(self.remote, PostgrestRemoteStore):
            await self.remote.aclose()
        self._started = False

    def sync_status(self) -> SyncStatus:
        return SyncStatus(
            connected=self.connectivity.is_connected,
            draining=self.worker.is_draining,
            pending=len(self.queue),
            last_drain=self.worker.last_report,
            last_reconcile=self.reconciler.last_report,
        )


def create_remote_store(settings: Settings) -> RemoteStoreInterface:
    """Build the remote backend named by ``LEDGER_REMOTE_BACKEND``."""
    backend = settings.remote.backend
    if backend == "postgrest":
        return PostgrestRemoteStore(settings.postgrest)
    if backend == "sheets":
        return GoogleSheetsRemoteStore(GoogleSheetsClient(settings.google_sheets))
    return InMemoryRemoteStore()


def create_app(
    settings: Optional[Settings] = None,
    connectivity: Optional[ConnectivityMonitor] = None,
) -> LedgerApp:
    """
    Build a LedgerApp from configuration.

    Uses the JSON-file local store and probes the remote for
    connectivity unless a monitor is given.
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)

    audit = AuditLogger()
    remote = create_remote_store(settings)
    return LedgerApp(
        local_store=JsonFileLocalStore(settings.local.data_dir),
        remote=remote,
        connectivity=connectivity or RemoteProbeConnectivity(
            remote,
            interval_seconds=settings.sync.replay_interval_seconds,
            audit_logger=audit,
        ),
        settings=settings,
        audit_logger=audit,
    )
