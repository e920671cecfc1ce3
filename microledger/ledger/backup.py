"""
Backup Export / Import

A backup is one JSON document:

    {"version": 1, "exportedAt": "...", "customers": [...], "transactions": [...]}

Records are in local (camelCase) shape. Importing validates the whole
document before touching anything, then upserts every record locally
and queues an INSERT (upsert by id on the remote) for each.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from microledger.audit import AuditLogger, create_correlation_id
from microledger.ledger.service import LedgerService
from microledger.ledger.state import LedgerState
from microledger.models.audit import AuditEventBuilder
from microledger.models.ledger import Customer, Transaction


BACKUP_VERSION = 1


class BackupFormatError(ValueError):
    """The document is not a usable backup. Nothing was imported."""
    pass


def export_backup(state: LedgerState, audit_logger: Optional[AuditLogger] = None) -> dict[str, Any]:
    customers = state.customers
    transactions = state.transactions
    if audit_logger:
        audit_logger.log(AuditEventBuilder.backup_exported(len(customers), len(transactions)))
    return {
        "version": BACKUP_VERSION,
        "exportedAt": datetime.utcnow().isoformat(),
        "customers": [c.model_dump(mode="json", by_alias=True) for c in customers],
        "transactions": [t.model_dump(mode="json", by_alias=True) for t in transactions],
    }


def parse_backup(data: Any) -> tuple[list[Customer], list[Transaction]]:
    """
    Validate a backup document.

    Raises:
        BackupFormatError: On a missing section or any invalid record
    """
    if not isinstance(data, dict):
        raise BackupFormatError("Backup must be a JSON object")
    for key in ("version", "customers", "transactions"):
        if key not in data:
            raise BackupFormatError(f"Backup is missing '{key}'")
    if not isinstance(data["customers"], list) or not isinstance(data["transactions"], list):
        raise BackupFormatError("Backup customers and transactions must be lists")

    try:
        customers = [Customer.model_validate(c) for c in data["customers"]]
        transactions = [Transaction.model_validate(t) for t in data["transactions"]]
    except ValidationError as e:
        raise BackupFormatError(f"Backup contains an invalid record: {e}") from e
    return customers, transactions


def import_backup(service: LedgerService, data: Any) -> tuple[int, int]:
    """
    Restore a backup through the mutation API.

    Returns:
        (customers imported, transactions imported)
    """
    customers, transactions = parse_backup(data)
    service.import_records(customers, transactions, correlation_id=create_correlation_id())
    return len(customers), len(transactions)
