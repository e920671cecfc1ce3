"""Ledger package: local state, derived status, mutations and read-side queries."""

from microledger.ledger.state import LedgerState
from microledger.ledger.status import recompute_status, total_repaid
from microledger.ledger.validator import MutationValidationError, MutationValidator
from microledger.ledger.service import LedgerService, RecordNotFoundError
from microledger.ledger.backup import BackupFormatError, export_backup, import_backup

__all__ = [
    "BackupFormatError",
    "LedgerService",
    "LedgerState",
    "MutationValidationError",
    "MutationValidator",
    "RecordNotFoundError",
    "export_backup",
    "import_backup",
    "recompute_status",
    "total_repaid",
]
