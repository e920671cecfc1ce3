"""
Sync Queue

An ordered, deduplicated log of pending remote mutations, persisted in
the local store under a single key.

Ordering rules:
- Entries replay in insertion order.
- At most one entry exists per (record id, action). A newer mutation of
  the same kind replaces the older entry *in place*, keeping its
  position so it never jumps ahead of older unrelated mutations.
- An INSERT followed by an UPDATE of the same record are two entries.

A replaced entry gets a fresh queue id. A drain that already sent the
old payload will then only remove the old id, and the newer payload
stays queued for the next pass.

Every method reads the queue from durable storage rather than trusting
an in-memory copy, because mutations can append while a drain awaits
the network.
"""

from typing import Any, Iterable, Optional

from pydantic import ValidationError

from microledger.audit import AuditLogger
from microledger.models.audit import AuditEventBuilder
from microledger.models.sync import RemoteCollection, SyncAction, SyncQueueEntry
from microledger.services.local import CorruptedValueError, LocalStoreInterface
from microledger.sync.ids import IdentifierGenerator


QUEUE_KEY = "sync_queue"
QUEUE_ID_PREFIX = "Q"


class SyncQueue:
    """Durable, ordered, deduplicated queue of pending remote mutations."""

    def __init__(
        self,
        local_store: LocalStoreInterface,
        id_generator: IdentifierGenerator,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = local_store
        self._ids = id_generator
        self._audit = audit_logger or AuditLogger()

    def _load(self) -> list[SyncQueueEntry]:
        try:
            raw = self._store.read_json(QUEUE_KEY)
            if raw is None:
                return []
            if not isinstance(raw, list):
                raise ValueError("queue is not a list")
            return [SyncQueueEntry.model_validate(item) for item in raw]
        except (CorruptedValueError, ValidationError, ValueError) as e:
            self._audit.log(AuditEventBuilder.storage_key_corrupted(QUEUE_KEY, str(e)))
            self._store.remove(QUEUE_KEY)
            return []

    def _save(self, entries: list[SyncQueueEntry]) -> None:
        self._store.write_json(
            QUEUE_KEY,
            [e.model_dump(mode="json", by_alias=True) for e in entries],
        )

    def enqueue(
        self,
        record_id: str,
        action: SyncAction,
        collection: RemoteCollection,
        payload: Optional[dict[str, Any]] = None,
    ) -> SyncQueueEntry:
        """
        Add a mutation, or replace the pending one with the same key.

        The queue is persisted before this returns.
        """
        action = SyncAction(action)
        entries = self._load()
        entry = SyncQueueEntry(
            queue_id=self._ids.generate(QUEUE_ID_PREFIX),
            record_id=record_id,
            action=action,
            collection=RemoteCollection(collection),
            payload=payload,
        )

        coalesced = False
        for idx, existing in enumerate(entries):
            if existing.key == entry.key:
                entries[idx] = entry
                coalesced = True
                break
        else:
            entries.append(entry)

        self._save(entries)
        self._audit.log(
            AuditEventBuilder.entry_enqueued(
                queue_id=entry.queue_id,
                record_id=record_id,
                action=action.value,
                collection=entry.collection.value,
                coalesced=coalesced,
            )
        )
        return entry

    def peek(self) -> list[SyncQueueEntry]:
        """Pending entries in replay order. Never mutates the queue."""
        return self._load()

    def remove(self, queue_ids: Iterable[str]) -> int:
        """
        Drop confirmed entries by queue id.

        Re-reads the queue from storage first so entries appended since
        the caller's snapshot survive.

        Returns:
            Number of entries still pending
        """
        confirmed = set(queue_ids)
        entries = self._load()
        if not confirmed:
            return len(entries)
        remaining = [e for e in entries if e.queue_id not in confirmed]
        if len(remaining) != len(entries):
            self._save(remaining)
        return len(remaining)

    def pending_record_ids(self) -> set[str]:
        """Ids of every record with at least one pending mutation."""
        return {e.record_id for e in self._load()}

    def __len__(self) -> int:
        return len(self._load())
