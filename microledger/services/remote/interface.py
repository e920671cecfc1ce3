"""
Abstract Remote Store Interface

DESIGN DECISION: The remote store is a generic relational store reached
over request/response calls. This allows us to:
1. Run against a PostgREST endpoint (Supabase), a Google Sheet, or memory
2. Test replay and reconciliation without a network
3. Keep sync logic decoupled from any one vendor

Rows cross this interface in wire shape (snake_case dicts, see
``microledger.models.wire``).

CRITICAL: Writes return the rows they affected. Remote access policies
may refuse a write without raising, in which case the returned list is
empty. Callers must check row counts, not just the absence of errors.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from microledger.models.sync import RemoteCollection


Row = dict[str, Any]


class RemoteStoreInterface(ABC):
    """
    Abstract interface for remote store operations.

    Every method may raise RemoteConnectionError (unreachable, timeout)
    or RemoteRequestError (the remote answered with an error).
    """

    @abstractmethod
    async def select_all(self, collection: RemoteCollection) -> list[Row]:
        """
        Select every row the remote is willing to return in one call.

        Some backends cap this at a fixed page size; use
        ``select_range`` to read large collections completely.
        """
        pass

    @abstractmethod
    async def select_range(
        self,
        collection: RemoteCollection,
        start: int,
        end: int,
    ) -> list[Row]:
        """
        Select rows by position, ``start`` and ``end`` inclusive.

        A page shorter than requested means the end of the data.
        """
        pass

    @abstractmethod
    async def insert(self, collection: RemoteCollection, rows: list[Row]) -> list[Row]:
        """
        Insert new rows.

        Returns:
            The rows actually written (empty if a policy refused them)

        Raises:
            RemoteRequestError: If a row with the same id already exists
        """
        pass

    @abstractmethod
    async def upsert(self, collection: RemoteCollection, rows: list[Row]) -> list[Row]:
        """
        Insert rows, replacing any existing row with the same id.

        Returns:
            The rows actually written (empty if a policy refused them)
        """
        pass

    @abstractmethod
    async def update(
        self,
        collection: RemoteCollection,
        record_id: str,
        fields: Row,
    ) -> list[Row]:
        """
        Update fields of the row with the given id.

        Returns:
            The updated rows (empty if the row is missing or a policy refused it)
        """
        pass

    @abstractmethod
    async def delete(self, collection: RemoteCollection, record_id: str) -> list[Row]:
        """
        Delete the row with the given id.

        An empty result is normal: success is the absence of an error.
        """
        pass

    @abstractmethod
    async def delete_where(
        self,
        collection: RemoteCollection,
        column: str,
        value: Any,
    ) -> list[Row]:
        """Delete every row whose column equals the value."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """
        Cheap reachability probe.

        Returns:
            True if the remote answered, False otherwise (never raises)
        """
        pass


class RemoteStoreError(Exception):
    """Base exception for remote store operations."""
    pass


class RemoteConnectionError(RemoteStoreError):
    """Could not reach the remote store."""
    pass


class RemoteRequestError(RemoteStoreError):
    """The remote store answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
