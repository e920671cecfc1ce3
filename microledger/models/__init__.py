"""
Data Models Package

This package contains all Pydantic models used in Microledger.
All data flowing through the system must conform to these schemas.
"""

from microledger.models.ledger import (
    Customer,
    CustomerRole,
    CustomerStatus,
    PaymentMethod,
    Transaction,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from microledger.models.sync import (
    DrainReport,
    EntryOutcome,
    ReconcileReport,
    RemoteCollection,
    SyncAction,
    SyncQueueEntry,
)
from microledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Customer",
    "CustomerRole",
    "CustomerStatus",
    "PaymentMethod",
    "Transaction",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    # Sync models
    "DrainReport",
    "EntryOutcome",
    "ReconcileReport",
    "RemoteCollection",
    "SyncAction",
    "SyncQueueEntry",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
