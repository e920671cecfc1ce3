"""Services package."""

from microledger.services.local import (
    CorruptedValueError,
    InMemoryLocalStore,
    JsonFileLocalStore,
    LocalStoreError,
    LocalStoreInterface,
)
from microledger.services.remote import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryRemoteStore,
    PostgrestRemoteStore,
    RemoteConnectionError,
    RemoteRequestError,
    RemoteStoreError,
    RemoteStoreInterface,
)

__all__ = [
    # Local store
    "CorruptedValueError",
    "InMemoryLocalStore",
    "JsonFileLocalStore",
    "LocalStoreError",
    "LocalStoreInterface",
    # Remote store
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryRemoteStore",
    "PostgrestRemoteStore",
    "RemoteConnectionError",
    "RemoteRequestError",
    "RemoteStoreError",
    "RemoteStoreInterface",
]
