"""
Ledger State

The one object that owns the in-memory customer and transaction
collections and the holiday override list, and mirrors them into the
local store.

DESIGN DECISION: Callers never mutate collections directly. Every
change goes through a narrow method that writes the full replacement
snapshot of the affected collection to durable storage first and only
then swaps the in-memory copy. A failed write leaves memory untouched.
"""

from datetime import date
from typing import Iterable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from microledger.audit import AuditLogger
from microledger.models.audit import AuditEventBuilder
from microledger.models.ledger import Customer, Transaction
from microledger.services.local import CorruptedValueError, LocalStoreInterface


CUSTOMERS_KEY = "customers"
TRANSACTIONS_KEY = "transactions"
HOLIDAYS_KEY = "holiday_overrides"

M = TypeVar("M", bound=BaseModel)


class LedgerState:
    """In-memory ledger collections backed by the local store."""

    def __init__(
        self,
        local_store: LocalStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = local_store
        self._audit = audit_logger or AuditLogger()
        self._customers: dict[str, Customer] = {}
        self._transactions: dict[str, Transaction] = {}
        self._holidays: list[str] = []

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _discard(self, key: str, error: Exception) -> None:
        self._audit.log(AuditEventBuilder.storage_key_corrupted(key, str(error)))
        self._store.remove(key)

    def _read_records(self, key: str, model: type[M]) -> list[M]:
        """Read one collection; a corrupted key is discarded and reads as empty."""
        try:
            raw = self._store.read_json(key)
            if raw is None:
                return []
            if not isinstance(raw, list):
                raise ValueError(f"{key} is not a list")
            return [model.model_validate(item) for item in raw]
        except (CorruptedValueError, ValidationError, ValueError) as e:
            self._discard(key, e)
            return []

    def _read_holidays(self) -> list[str]:
        try:
            raw = self._store.read_json(HOLIDAYS_KEY)
            if raw is None:
                return []
            return sorted({date.fromisoformat(d).isoformat() for d in raw})
        except (CorruptedValueError, ValueError, TypeError) as e:
            self._discard(HOLIDAYS_KEY, e)
            return []

    def read_snapshot(self) -> tuple[list[Customer], list[Transaction]]:
        """Customers and transactions as last persisted (not the in-memory copy)."""
        return (
            self._read_records(CUSTOMERS_KEY, Customer),
            self._read_records(TRANSACTIONS_KEY, Transaction),
        )

    def load(self) -> None:
        """Replace in-memory state with what the local store holds."""
        customers, transactions = self.read_snapshot()
        self._customers = {c.id: c for c in customers}
        self._transactions = {t.id: t for t in transactions}
        self._holidays = self._read_holidays()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def customers(self) -> list[Customer]:
        return list(self._customers.values())

    @property
    def transactions(self) -> list[Transaction]:
        return list(self._transactions.values())

    @property
    def holidays(self) -> list[str]:
        """Holiday overrides as ISO dates, sorted."""
        return list(self._holidays)

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self._customers.get(customer_id)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    def transactions_for(self, customer_id: str) -> list[Transaction]:
        return [t for t in self._transactions.values() if t.customer_id == customer_id]

    # ------------------------------------------------------------------
    # Writes (persist first, then swap)
    # ------------------------------------------------------------------

    def _write_customers(self, customers: dict[str, Customer]) -> None:
        self._store.write_json(
            CUSTOMERS_KEY,
            [c.model_dump(mode="json", by_alias=True) for c in customers.values()],
        )
        self._customers = customers

    def _write_transactions(self, transactions: dict[str, Transaction]) -> None:
        self._store.write_json(
            TRANSACTIONS_KEY,
            [t.model_dump(mode="json", by_alias=True) for t in transactions.values()],
        )
        self._transactions = transactions

    def put_customer(self, customer: Customer) -> None:
        """Insert or replace a customer."""
        updated = dict(self._customers)
        updated[customer.id] = customer
        self._write_customers(updated)

    def put_customers(self, customers: Iterable[Customer]) -> None:
        updated = dict(self._customers)
        for customer in customers:
            updated[customer.id] = customer
        self._write_customers(updated)

    def remove_customer(self, customer_id: str) -> list[Transaction]:
        """
        Remove a customer and every transaction that belongs to it.

        Returns:
            The transactions removed with the customer
        """
        orphaned = self.transactions_for(customer_id)
        if orphaned:
            self._write_transactions(
                {tid: t for tid, t in self._transactions.items() if t.customer_id != customer_id}
            )
        self._write_customers(
            {cid: c for cid, c in self._customers.items() if cid != customer_id}
        )
        return orphaned

    def put_transaction(self, transaction: Transaction) -> None:
        """Insert or replace a transaction."""
        updated = dict(self._transactions)
        updated[transaction.id] = transaction
        self._write_transactions(updated)

    def put_transactions(self, transactions: Iterable[Transaction]) -> None:
        updated = dict(self._transactions)
        for transaction in transactions:
            updated[transaction.id] = transaction
        self._write_transactions(updated)

    def remove_transaction(self, transaction_id: str) -> Optional[Transaction]:
        removed = self._transactions.get(transaction_id)
        if removed is not None:
            self._write_transactions(
                {tid: t for tid, t in self._transactions.items() if tid != transaction_id}
            )
        return removed

    def replace_all(
        self,
        customers: Iterable[Customer],
        transactions: Iterable[Transaction],
    ) -> None:
        """Swap both collections wholesale (used after reconciliation)."""
        self._write_customers({c.id: c for c in customers})
        self._write_transactions({t.id: t for t in transactions})

    def add_holiday(self, day: date) -> bool:
        """Returns False if the day was already a holiday override."""
        iso = day.isoformat()
        if iso in self._holidays:
            return False
        updated = sorted([*self._holidays, iso])
        self._store.write_json(HOLIDAYS_KEY, updated)
        self._holidays = updated
        return True

    def remove_holiday(self, day: date) -> bool:
        """Returns False if the day was not a holiday override."""
        iso = day.isoformat()
        if iso not in self._holidays:
            return False
        updated = [d for d in self._holidays if d != iso]
        self._store.write_json(HOLIDAYS_KEY, updated)
        self._holidays = updated
        return True
