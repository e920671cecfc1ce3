"""
Remote Replay Worker

Drains the sync queue against the remote store.

    idle -> draining -> idle

Only one drain runs at a time. A drain requested while another is in
flight returns immediately with a skipped report.

Per entry, in queue order:
- INSERT: upsert by id. Confirmed only if the remote returns a row.
- UPDATE: field update by id. Confirmed only if the remote returns a
  row. Zero rows without an error means an access policy refused the
  write; the entry stays queued and the rejection is logged distinctly.
- DELETE: confirmed by the absence of an error. Deleting a customer
  first removes its remote transactions.

A failing entry never aborts the pass and is never retried within it.
Confirmed entries are removed at the end; everything else waits for
the next pass.
"""

import asyncio
from datetime import datetime
from typing import Optional

from microledger.audit import AuditLogger
from microledger.models.audit import AuditEventBuilder
from microledger.models.sync import (
    DrainReport,
    EntryOutcome,
    RemoteCollection,
    SyncAction,
    SyncQueueEntry,
)
from microledger.services.remote import RemoteStoreError, RemoteStoreInterface
from microledger.sync.queue import SyncQueue


class ReplayWorker:
    """Single-flight replay of queued mutations."""

    def __init__(
        self,
        queue: SyncQueue,
        remote: RemoteStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        debounce_seconds: float = 0.1,
        interval_seconds: float = 30.0,
    ):
        self._queue = queue
        self._remote = remote
        self._audit = audit_logger or AuditLogger()
        self._debounce = debounce_seconds
        self._interval = interval_seconds
        self._lock = asyncio.Lock()
        self._debounced: Optional[asyncio.TimerHandle] = None
        self._periodic: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()
        self.last_report: Optional[DrainReport] = None

    @property
    def is_draining(self) -> bool:
        return self._lock.locked()

    @property
    def replay_lock(self) -> asyncio.Lock:
        """Held for the whole of a drain. Reconciliation shares it."""
        return self._lock

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    async def _apply(self, entry: SyncQueueEntry) -> EntryOutcome:
        """Send one entry to the remote and classify the result."""
        if entry.action == SyncAction.INSERT:
            rows = await self._remote.upsert(entry.collection, [entry.payload])
            return EntryOutcome.CONFIRMED if rows else EntryOutcome.REJECTED

        if entry.action == SyncAction.UPDATE:
            fields = {k: v for k, v in entry.payload.items() if k != "id"}
            rows = await self._remote.update(entry.collection, entry.record_id, fields)
            return EntryOutcome.CONFIRMED if rows else EntryOutcome.REJECTED

        if entry.collection == RemoteCollection.CUSTOMERS:
            await self._remote.delete_where(
                RemoteCollection.TRANSACTIONS, "customer_id", entry.record_id
            )
        await self._remote.delete(entry.collection, entry.record_id)
        return EntryOutcome.CONFIRMED

    async def drain(self) -> DrainReport:
        """
        Replay every pending entry once.

        Returns:
            DrainReport (``skipped`` when a drain was already running)
        """
        if self._lock.locked():
            return DrainReport(skipped=True, remaining=len(self._queue))

        async with self._lock:
            report = DrainReport()
            entries = self._queue.peek()
            if not entries:
                report.finished_at = datetime.utcnow()
                self.last_report = report
                return report

            self._audit.log(AuditEventBuilder.drain_started(len(entries)))

            for entry in entries:
                try:
                    outcome = await self._apply(entry)
                except RemoteStoreError as e:
                    outcome = EntryOutcome.FAILED
                    self._audit.log(AuditEventBuilder.entry_failed(
                        entry.queue_id, entry.record_id, entry.action.value,
                        entry.collection.value, str(e),
                    ))
                except Exception as e:
                    # Unexpected, e.g. a malformed response body; kept for retry
                    outcome = EntryOutcome.FAILED
                    self._audit.log(AuditEventBuilder.entry_failed(
                        entry.queue_id, entry.record_id, entry.action.value,
                        entry.collection.value, str(e),
                    ))
                    self._audit.log_error(
                        error_type=type(e).__name__,
                        error_message=str(e),
                        details={"source": "replay", "queue_id": entry.queue_id},
                    )
                else:
                    if outcome == EntryOutcome.CONFIRMED:
                        self._audit.log(AuditEventBuilder.entry_confirmed(
                            entry.queue_id, entry.record_id, entry.action.value,
                            entry.collection.value,
                        ))
                    else:
                        self._audit.log(AuditEventBuilder.entry_policy_rejected(
                            entry.queue_id, entry.record_id, entry.action.value,
                            entry.collection.value,
                        ))
                report.outcomes[entry.queue_id] = outcome

            confirmed = [
                qid for qid, outcome in report.outcomes.items()
                if outcome == EntryOutcome.CONFIRMED
            ]
            report.remaining = self._queue.remove(confirmed)
            report.finished_at = datetime.utcnow()

            self._audit.log(AuditEventBuilder.drain_completed(
                attempted=report.attempted,
                confirmed=report.confirmed,
                failed=report.failed,
                rejected=report.rejected,
                remaining=report.remaining,
            ))
            self.last_report = report
            return report

    async def wait_idle(self) -> None:
        """Return once no drain is in flight."""
        async with self._lock:
            pass

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _spawn_drain(self) -> None:
        self._debounced = None
        task = asyncio.get_running_loop().create_task(self.drain())
        self._background.add(task)
        task.add_done_callback(self._drain_finished)

    def _drain_finished(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._audit.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
                details={"source": "debounced_drain"},
            )

    def request_drain(self) -> None:
        """
        Schedule a drain after the debounce delay.

        Repeated requests inside the delay collapse into one drain.
        Without a running event loop this does nothing; the next
        periodic tick or reconnect picks the queue up.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._debounced is not None:
            self._debounced.cancel()
        self._debounced = loop.call_later(self._debounce, self._spawn_drain)

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.drain()
            except Exception as e:
                self._audit.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"source": "periodic_drain"},
                )

    def start_periodic(self) -> None:
        """Start draining every ``interval_seconds``."""
        if self._periodic is None or self._periodic.done():
            self._periodic = asyncio.get_running_loop().create_task(self._tick())

    async def stop(self) -> None:
        """Cancel the periodic task and any pending debounced drain."""
        if self._debounced is not None:
            self._debounced.cancel()
            self._debounced = None
        tasks = [
            t for t in (self._periodic, *self._background)
            if t is not None and not t.done()
        ]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._periodic = None
