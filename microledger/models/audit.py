"""
Audit Models for Microledger

Every significant ledger and sync action is logged for audit purposes.
This provides:
1. Traceability of every local mutation and its remote replay
2. Debugging information when sync stalls
3. A distinct signal for writes the remote silently refused
4. Ability to reconstruct what the queue did and when

DESIGN DECISION: Audit events are append-only. We never modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Ledger mutations, queue activity, replay and reconciliation each
    get their own event types.
    """
    # Ledger mutations
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    CUSTOMER_ARCHIVED = "customer_archived"
    CUSTOMER_UNARCHIVED = "customer_unarchived"
    STATUS_RECALCULATED = "status_recalculated"
    VALIDATION_FAILED = "validation_failed"

    # Sync queue
    ENTRY_ENQUEUED = "entry_enqueued"
    ENTRY_COALESCED = "entry_coalesced"

    # Replay
    DRAIN_STARTED = "drain_started"
    DRAIN_COMPLETED = "drain_completed"
    ENTRY_CONFIRMED = "entry_confirmed"
    ENTRY_FAILED = "entry_failed"
    ENTRY_POLICY_REJECTED = "entry_policy_rejected"

    # Reconciliation
    RECONCILE_COMPLETED = "reconcile_completed"
    RECONCILE_FELL_BACK = "reconcile_fell_back"
    ORPHAN_RECOVERED = "orphan_recovered"

    # Local storage
    STORAGE_KEY_CORRUPTED = "storage_key_corrupted"

    # Environment
    CONNECTIVITY_CHANGED = "connectivity_changed"

    # Backups and settings
    BACKUP_EXPORTED = "backup_exported"
    BACKUP_IMPORTED = "backup_imported"
    HOLIDAY_OVERRIDE_CHANGED = "holiday_override_changed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'customer', 'transaction', 'queue_entry')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one mutation and its recalculation)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_created("customer", customer_id, correlation_id)
        event = AuditEventBuilder.entry_policy_rejected(queue_id, record_id, "UPDATE", "customers")
    """

    @staticmethod
    def record_created(
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} created locally",
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def record_updated(
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} updated locally",
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def record_deleted(
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} deleted locally",
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def customer_archive_toggled(
        customer_id: str,
        archived: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.CUSTOMER_ARCHIVED
                if archived
                else AuditEventType.CUSTOMER_UNARCHIVED
            ),
            entity_type="customer",
            entity_id=customer_id,
            correlation_id=correlation_id,
            description="Customer archived" if archived else "Customer restored from archive",
            is_user_action=True,
        )

    @staticmethod
    def status_recalculated(
        customer_id: str,
        old_status: str,
        new_status: str,
        repaid: str,
        total_due: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATUS_RECALCULATED,
            entity_type="customer",
            entity_id=customer_id,
            correlation_id=correlation_id,
            description=f"Payoff status changed: {old_status} -> {new_status}",
            details={
                "old_status": old_status,
                "new_status": new_status,
                "repaid": repaid,
                "total_due": total_due,
            },
        )

    @staticmethod
    def validation_failed(
        subject: str,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            description=f"{subject} rejected with {len(issues)} issues",
            details={
                "subject": subject,
                "issues": issues,
            },
            is_user_action=True,
        )

    @staticmethod
    def entry_enqueued(
        queue_id: str,
        record_id: str,
        action: str,
        collection: str,
        coalesced: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.ENTRY_COALESCED
                if coalesced
                else AuditEventType.ENTRY_ENQUEUED
            ),
            severity=AuditSeverity.DEBUG,
            entity_type="queue_entry",
            entity_id=queue_id,
            description=(
                f"{action} {collection}/{record_id} replaced pending entry in place"
                if coalesced
                else f"{action} {collection}/{record_id} queued"
            ),
            details={
                "record_id": record_id,
                "action": action,
                "collection": collection,
            },
        )

    @staticmethod
    def drain_started(pending: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAIN_STARTED,
            severity=AuditSeverity.DEBUG,
            description=f"Replaying {pending} queued entries",
            details={"pending": pending},
        )

    @staticmethod
    def drain_completed(
        attempted: int,
        confirmed: int,
        failed: int,
        rejected: int,
        remaining: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAIN_COMPLETED,
            severity=AuditSeverity.WARNING if (failed or rejected) else AuditSeverity.INFO,
            description=f"Replay confirmed {confirmed} of {attempted} entries",
            details={
                "attempted": attempted,
                "confirmed": confirmed,
                "failed": failed,
                "rejected": rejected,
                "remaining": remaining,
            },
        )

    @staticmethod
    def entry_confirmed(
        queue_id: str,
        record_id: str,
        action: str,
        collection: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_CONFIRMED,
            severity=AuditSeverity.DEBUG,
            entity_type="queue_entry",
            entity_id=queue_id,
            description=f"{action} {collection}/{record_id} confirmed by remote",
            details={
                "record_id": record_id,
                "action": action,
                "collection": collection,
            },
        )

    @staticmethod
    def entry_failed(
        queue_id: str,
        record_id: str,
        action: str,
        collection: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="queue_entry",
            entity_id=queue_id,
            description=f"{action} {collection}/{record_id} failed, kept for retry",
            error_message=error_message,
            details={
                "record_id": record_id,
                "action": action,
                "collection": collection,
            },
        )

    @staticmethod
    def entry_policy_rejected(
        queue_id: str,
        record_id: str,
        action: str,
        collection: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_POLICY_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="queue_entry",
            entity_id=queue_id,
            description=(
                f"{action} {collection}/{record_id} affected zero rows; "
                "check remote access policies"
            ),
            details={
                "record_id": record_id,
                "action": action,
                "collection": collection,
            },
        )

    @staticmethod
    def reconcile_completed(
        customers: int,
        transactions: int,
        pending_applied: int,
        orphans: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILE_COMPLETED,
            description=(
                f"Reconciled {customers} customers and {transactions} transactions"
            ),
            details={
                "customers": customers,
                "transactions": transactions,
                "pending_applied": pending_applied,
                "orphans_recovered": orphans,
            },
        )

    @staticmethod
    def reconcile_fell_back(reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILE_FELL_BACK,
            severity=AuditSeverity.WARNING,
            description="Remote snapshot unavailable, keeping local snapshot",
            error_message=reason,
        )

    @staticmethod
    def orphan_recovered(
        collection: str,
        record_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ORPHAN_RECOVERED,
            severity=AuditSeverity.WARNING,
            entity_type=collection,
            entity_id=record_id,
            description=f"Local-only {collection} record re-queued for insert",
        )

    @staticmethod
    def storage_key_corrupted(
        key: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_KEY_CORRUPTED,
            severity=AuditSeverity.ERROR,
            entity_type="storage_key",
            entity_id=key,
            description=f"Discarded corrupted local key: {key}",
            error_message=error_message,
        )

    @staticmethod
    def connectivity_changed(connected: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONNECTIVITY_CHANGED,
            description="Connection regained" if connected else "Connection lost",
            details={"connected": connected},
        )

    @staticmethod
    def backup_exported(
        customers: int,
        transactions: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_EXPORTED,
            description=f"Backup exported: {customers} customers, {transactions} transactions",
            details={
                "customers": customers,
                "transactions": transactions,
            },
            is_user_action=True,
        )

    @staticmethod
    def backup_imported(
        customers: int,
        transactions: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_IMPORTED,
            correlation_id=correlation_id,
            description=f"Backup imported: {customers} customers, {transactions} transactions",
            details={
                "customers": customers,
                "transactions": transactions,
            },
            is_user_action=True,
        )

    @staticmethod
    def holiday_override_changed(
        day: str,
        added: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HOLIDAY_OVERRIDE_CHANGED,
            entity_type="holiday",
            entity_id=day,
            description=f"Holiday {'added' if added else 'removed'}: {day}",
            details={"added": added},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
