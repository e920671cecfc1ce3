"""
Sync Models

Everything the sync layer persists or reports:
- SyncQueueEntry: one pending remote mutation
- DrainReport: outcome of one replay pass
- ReconcileReport: outcome of one reconciliation
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class SyncAction(str, Enum):
    """Remote mutation kinds."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class RemoteCollection(str, Enum):
    """Remote collections the ledger writes to."""
    CUSTOMERS = "customers"
    TRANSACTIONS = "transactions"


class SyncQueueEntry(BaseModel):
    """
    A pending remote mutation.

    ``queue_id`` identifies this replay attempt, ``record_id`` the
    customer/transaction it targets. Payloads are full snapshots in
    remote (snake_case) shape; deletes carry no payload.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    queue_id: str = Field(..., min_length=1)
    record_id: str = Field(..., min_length=1)
    action: SyncAction
    collection: RemoteCollection
    payload: Optional[dict[str, Any]] = None
    enqueued_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_payload(self) -> 'SyncQueueEntry':
        if self.action == SyncAction.DELETE:
            if self.payload is not None:
                raise ValueError("DELETE entries carry no payload")
        elif self.payload is None:
            raise ValueError(f"{self.action.value} entries need a payload")
        return self

    @property
    def key(self) -> tuple[str, SyncAction]:
        """Dedup key: at most one pending entry per (record, action)."""
        return (self.record_id, self.action)


class EntryOutcome(str, Enum):
    """What happened to one queue entry during a drain."""
    CONFIRMED = "confirmed"
    FAILED = "failed"          # transport or remote error
    REJECTED = "rejected"      # accepted by the transport, zero rows affected


class DrainReport(BaseModel):
    """Result of one replay pass over the queue."""

    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    skipped: bool = Field(
        default=False,
        description="True when another drain was already in flight"
    )
    outcomes: dict[str, EntryOutcome] = Field(
        default_factory=dict,
        description="queue_id -> outcome, in replay order"
    )
    remaining: int = Field(
        default=0,
        ge=0,
        description="Queue length after confirmed entries were removed"
    )

    def _count(self, outcome: EntryOutcome) -> int:
        return sum(1 for o in self.outcomes.values() if o == outcome)

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def confirmed(self) -> int:
        return self._count(EntryOutcome.CONFIRMED)

    @property
    def failed(self) -> int:
        return self._count(EntryOutcome.FAILED)

    @property
    def rejected(self) -> int:
        return self._count(EntryOutcome.REJECTED)


class ReconcileReport(BaseModel):
    """Result of merging the remote snapshot with local pending state."""

    reconciled_at: datetime = Field(default_factory=datetime.utcnow)
    used_remote: bool = Field(
        ...,
        description="False when the remote was unreachable and the local snapshot was kept"
    )
    customers: int = Field(default=0, ge=0)
    transactions: int = Field(default=0, ge=0)
    pending_applied: int = Field(default=0, ge=0)
    orphans_recovered: list[str] = Field(default_factory=list)
    error: Optional[str] = None
