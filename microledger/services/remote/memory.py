"""
In-Memory Remote Store

A stand-in for the remote relational store used in tests, demos and
fully offline setups. It reproduces the behaviours the sync layer has
to cope with:
- outages (``online = False`` raises RemoteConnectionError)
- a hard cap on rows returned by ``select_all``
- row-level write policies that refuse writes silently
- per-record request failures
"""

import copy
from typing import Any, Callable, Optional

from microledger.models.sync import RemoteCollection, SyncAction
from microledger.services.remote.interface import (
    RemoteConnectionError,
    RemoteRequestError,
    RemoteStoreInterface,
    Row,
)


# (collection, action, row) -> allowed?
WritePolicy = Callable[[RemoteCollection, SyncAction, Row], bool]


class InMemoryRemoteStore(RemoteStoreInterface):
    """Dictionary-backed remote store with failure injection."""

    def __init__(
        self,
        max_rows: int = 1000,
        write_policy: Optional[WritePolicy] = None,
    ):
        self._tables: dict[RemoteCollection, dict[str, Row]] = {
            collection: {} for collection in RemoteCollection
        }
        self.max_rows = max_rows
        self.write_policy = write_policy
        self.online = True
        self.failing_record_ids: set[str] = set()
        self.calls: list[tuple[str, str, Optional[str]]] = []

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def rows(self, collection: RemoteCollection) -> list[Row]:
        """Current contents of a collection (copies)."""
        return [copy.deepcopy(r) for r in self._tables[RemoteCollection(collection)].values()]

    def get_row(self, collection: RemoteCollection, record_id: str) -> Optional[Row]:
        row = self._tables[RemoteCollection(collection)].get(record_id)
        return copy.deepcopy(row) if row is not None else None

    def seed(self, collection: RemoteCollection, rows: list[Row]) -> None:
        """Put rows in place without going through policies or the call log."""
        table = self._tables[RemoteCollection(collection)]
        for row in rows:
            table[row["id"]] = copy.deepcopy(row)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check(self, op: str, collection: RemoteCollection, record_id: Optional[str] = None) -> dict[str, Row]:
        self.calls.append((op, RemoteCollection(collection).value, record_id))
        if not self.online:
            raise RemoteConnectionError("Remote store unreachable")
        if record_id is not None and record_id in self.failing_record_ids:
            raise RemoteRequestError(f"Request for {record_id} failed", status_code=500)
        return self._tables[RemoteCollection(collection)]

    def _allowed(self, collection: RemoteCollection, action: SyncAction, row: Row) -> bool:
        if self.write_policy is None:
            return True
        return self.write_policy(RemoteCollection(collection), action, row)

    # ------------------------------------------------------------------
    # RemoteStoreInterface
    # ------------------------------------------------------------------

    async def select_all(self, collection: RemoteCollection) -> list[Row]:
        table = self._check("select_all", collection)
        return [copy.deepcopy(r) for r in list(table.values())[: self.max_rows]]

    async def select_range(
        self,
        collection: RemoteCollection,
        start: int,
        end: int,
    ) -> list[Row]:
        table = self._check("select_range", collection)
        end = min(end, start + self.max_rows - 1)
        return [copy.deepcopy(r) for r in list(table.values())[start:end + 1]]

    async def insert(self, collection: RemoteCollection, rows: list[Row]) -> list[Row]:
        written = []
        for row in rows:
            table = self._check("insert", collection, row["id"])
            if row["id"] in table:
                raise RemoteRequestError(
                    f"duplicate key value violates unique constraint: {row['id']}",
                    status_code=409,
                )
            if not self._allowed(collection, SyncAction.INSERT, row):
                continue
            table[row["id"]] = copy.deepcopy(row)
            written.append(copy.deepcopy(row))
        return written

    async def upsert(self, collection: RemoteCollection, rows: list[Row]) -> list[Row]:
        written = []
        for row in rows:
            table = self._check("upsert", collection, row["id"])
            if not self._allowed(collection, SyncAction.INSERT, row):
                continue
            merged = {**table.get(row["id"], {}), **copy.deepcopy(row)}
            table[row["id"]] = merged
            written.append(copy.deepcopy(merged))
        return written

    async def update(
        self,
        collection: RemoteCollection,
        record_id: str,
        fields: Row,
    ) -> list[Row]:
        table = self._check("update", collection, record_id)
        current = table.get(record_id)
        if current is None:
            return []
        merged = {**current, **copy.deepcopy(fields), "id": record_id}
        if not self._allowed(collection, SyncAction.UPDATE, merged):
            return []
        table[record_id] = merged
        return [copy.deepcopy(merged)]

    async def delete(self, collection: RemoteCollection, record_id: str) -> list[Row]:
        table = self._check("delete", collection, record_id)
        current = table.get(record_id)
        if current is None or not self._allowed(collection, SyncAction.DELETE, current):
            return []
        del table[record_id]
        # Deletes report no rows, like a minimal-return REST delete
        return []

    async def delete_where(
        self,
        collection: RemoteCollection,
        column: str,
        value: Any,
    ) -> list[Row]:
        table = self._check("delete_where", collection)
        doomed = [
            rid for rid, row in table.items()
            if row.get(column) == value and self._allowed(collection, SyncAction.DELETE, row)
        ]
        for rid in doomed:
            del table[rid]
        return []

    async def ping(self) -> bool:
        return self.online
