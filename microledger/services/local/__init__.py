"""
Local Store Package

The durable local cache the ledger mutates first and syncs from.
"""

from microledger.services.local.interface import (
    CorruptedValueError,
    LocalStoreError,
    LocalStoreInterface,
)
from microledger.services.local.file_store import JsonFileLocalStore
from microledger.services.local.memory import InMemoryLocalStore

__all__ = [
    # Interface
    "LocalStoreInterface",
    # Exceptions
    "CorruptedValueError",
    "LocalStoreError",
    # Implementations
    "InMemoryLocalStore",
    "JsonFileLocalStore",
]
