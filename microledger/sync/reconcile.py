"""
Reconciliation Engine

Merges the remote snapshot with everything still pending locally:

1. Fetch every remote customer and transaction, page by page until a
   short page. Fetches retry with backoff; if the remote stays
   unreachable the local snapshot is kept unchanged.
2. Take the remote snapshot as the base.
3. Reapply every pending queue entry in order (INSERT/UPDATE upsert by
   id, DELETE removes), so unconfirmed local edits survive a fetch that
   raced ahead of replay. A pending customer DELETE also removes that
   customer's transactions, matching the cascade replay performs.
4. Local records missing from both the remote and the queue are
   orphans: a mutation for them was lost. They are kept and queued
   again as fresh INSERTs, except transactions whose customer is gone.
5. Persist the merge as the new local snapshot.

The fetch and the merge run under the replay lock, so no drain can
confirm and remove queue entries while the remote snapshot is in
flight. The local snapshot and the queue are read after the fetch
completes. Nothing awaits between that read and the final write, so a
mutation made while the fetch was in flight is part of the merge.
"""

import asyncio
from typing import Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from microledger.audit import AuditLogger
from microledger.ledger.state import LedgerState
from microledger.models.audit import AuditEventBuilder
from microledger.models.ledger import Customer
from microledger.models.sync import RemoteCollection, ReconcileReport, SyncAction
from microledger.models.wire import (
    LedgerRecord,
    collection_of,
    from_wire_format,
    to_wire_format,
)
from microledger.services.remote import (
    RemoteConnectionError,
    RemoteStoreError,
    RemoteStoreInterface,
    Row,
)
from microledger.sync.queue import SyncQueue


class Reconciler:
    """Builds a superset-safe local view from remote and pending state."""

    def __init__(
        self,
        state: LedgerState,
        queue: SyncQueue,
        remote: RemoteStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        page_size: int = 1000,
        fetch_retry_attempts: int = 3,
        retry_wait: Optional[wait_base] = None,
        replay_lock: Optional[asyncio.Lock] = None,
    ):
        self._state = state
        self._queue = queue
        self._remote = remote
        self._audit = audit_logger or AuditLogger()
        self._page_size = page_size
        self._attempts = fetch_retry_attempts
        self._wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=5)
        # Shared with the replay worker when wired into an app
        self._replay_lock = replay_lock or asyncio.Lock()
        self.last_report: Optional[ReconcileReport] = None

    async def _fetch_page(self, collection: RemoteCollection, start: int) -> list[Row]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._attempts),
            wait=self._wait,
            retry=retry_if_exception_type(RemoteConnectionError),
            reraise=True,
        ):
            with attempt:
                return await self._remote.select_range(
                    collection, start, start + self._page_size - 1
                )

    async def fetch_all(self, collection: RemoteCollection) -> list[Row]:
        """Every row of a collection, however many pages that takes."""
        rows: list[Row] = []
        start = 0
        while True:
            page = await self._fetch_page(collection, start)
            rows.extend(page)
            if len(page) < self._page_size:
                return rows
            start += self._page_size

    def _fall_back(self, reason: str) -> ReconcileReport:
        self._audit.log(AuditEventBuilder.reconcile_fell_back(reason))
        report = ReconcileReport(
            used_remote=False,
            customers=len(self._state.customers),
            transactions=len(self._state.transactions),
            error=reason,
        )
        self.last_report = report
        return report

    async def reconcile(self, connected: bool = True) -> ReconcileReport:
        if not connected:
            return self._fall_back("offline")

        async with self._replay_lock:
            return await self._merge_remote()

    async def _merge_remote(self) -> ReconcileReport:
        try:
            customer_rows = await self.fetch_all(RemoteCollection.CUSTOMERS)
            transaction_rows = await self.fetch_all(RemoteCollection.TRANSACTIONS)
        except RemoteStoreError as e:
            return self._fall_back(str(e))

        local_customers, local_transactions = self._state.read_snapshot()
        pending = self._queue.peek()

        merged: dict[RemoteCollection, dict] = {
            RemoteCollection.CUSTOMERS: {
                row["id"]: from_wire_format(RemoteCollection.CUSTOMERS, row)
                for row in customer_rows
            },
            RemoteCollection.TRANSACTIONS: {
                row["id"]: from_wire_format(RemoteCollection.TRANSACTIONS, row)
                for row in transaction_rows
            },
        }
        remote_ids = {
            collection: set(records) for collection, records in merged.items()
        }

        transactions = merged[RemoteCollection.TRANSACTIONS]
        for entry in pending:
            records = merged[entry.collection]
            if entry.action == SyncAction.DELETE:
                records.pop(entry.record_id, None)
                if entry.collection == RemoteCollection.CUSTOMERS:
                    for tx_id in [
                        t.id for t in transactions.values()
                        if t.customer_id == entry.record_id
                    ]:
                        del transactions[tx_id]
            else:
                records[entry.record_id] = from_wire_format(entry.collection, entry.payload)

        pending_ids = {entry.record_id for entry in pending}
        orphans: list[LedgerRecord] = [
            record
            for record in [*local_customers, *local_transactions]
            if record.id not in remote_ids[collection_of(record)]
            and record.id not in pending_ids
        ]
        for record in orphans:
            if isinstance(record, Customer):
                merged[RemoteCollection.CUSTOMERS][record.id] = record
        # A transaction whose customer is gone everywhere would dangle
        orphans = [
            record for record in orphans
            if isinstance(record, Customer)
            or record.customer_id in merged[RemoteCollection.CUSTOMERS]
        ]
        for record in orphans:
            merged[collection_of(record)][record.id] = record

        self._state.replace_all(
            merged[RemoteCollection.CUSTOMERS].values(),
            merged[RemoteCollection.TRANSACTIONS].values(),
        )
        for record in orphans:
            collection = collection_of(record)
            self._queue.enqueue(record.id, SyncAction.INSERT, collection, to_wire_format(record))
            self._audit.log(AuditEventBuilder.orphan_recovered(collection.value, record.id))

        report = ReconcileReport(
            used_remote=True,
            customers=len(merged[RemoteCollection.CUSTOMERS]),
            transactions=len(merged[RemoteCollection.TRANSACTIONS]),
            pending_applied=len(pending),
            orphans_recovered=[record.id for record in orphans],
        )
        self._audit.log(AuditEventBuilder.reconcile_completed(
            customers=report.customers,
            transactions=report.transactions,
            pending_applied=report.pending_applied,
            orphans=len(orphans),
        ))
        self.last_report = report
        return report
