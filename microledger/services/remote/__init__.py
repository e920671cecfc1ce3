"""
Remote Store Package

Provides the abstract remote store interface and its implementations:
an in-memory store, a Google Sheets store and a PostgREST store.
"""

from microledger.services.remote.interface import (
    RemoteConnectionError,
    RemoteRequestError,
    RemoteStoreError,
    RemoteStoreInterface,
    Row,
)
from microledger.services.remote.memory import InMemoryRemoteStore
from microledger.services.remote.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
)
from microledger.services.remote.postgrest import PostgrestRemoteStore

__all__ = [
    # Interface
    "RemoteStoreInterface",
    "Row",
    # Exceptions
    "RemoteConnectionError",
    "RemoteRequestError",
    "RemoteStoreError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryRemoteStore",
    "PostgrestRemoteStore",
]
