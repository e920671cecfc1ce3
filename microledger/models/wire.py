"""
Remote Wire Format

The single serialization boundary between in-memory records and the
remote store's rows. The remote uses snake_case column names and a few
legacy names (``loan_amount`` for principal, ``date`` for the
transaction timestamp, ``is_edited`` for the edited flag).

Both directions are total: every record converts to a row, and every
row the remote can hold converts back or raises a pydantic
ValidationError naming the bad column.
"""

from decimal import Decimal
from typing import Any, Union

from microledger.models.ledger import (
    Customer,
    CustomerRole,
    Transaction,
)
from microledger.models.sync import RemoteCollection


LedgerRecord = Union[Customer, Transaction]

# Column mappings for the remote collections
CUSTOMER_COLUMNS = [
    "id",
    "name",
    "phone",
    "location",
    "loan_date",
    "loan_amount",
    "interest_rate",
    "installments",
    "status",
    "role",
]

TRANSACTION_COLUMNS = [
    "id",
    "customer_id",
    "type",
    "amount",
    "date",
    "description",
    "payment_method",
    "is_edited",
]

COLUMNS = {
    RemoteCollection.CUSTOMERS: CUSTOMER_COLUMNS,
    RemoteCollection.TRANSACTIONS: TRANSACTION_COLUMNS,
}


def _number(value: Decimal) -> Union[int, float]:
    """JSON-friendly number; whole amounts stay integers."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def customer_to_wire(customer: Customer) -> dict[str, Any]:
    """Convert a Customer to a remote row."""
    return {
        "id": customer.id,
        "name": customer.name,
        "phone": customer.phone or "",
        "location": customer.location,
        "loan_date": customer.loan_date.isoformat() if customer.loan_date else None,
        "loan_amount": _number(customer.principal),
        "interest_rate": _number(customer.interest_rate),
        "installments": customer.installments,
        "status": customer.status.value,
        "role": customer.role.value,
    }


def customer_from_wire(row: dict[str, Any]) -> Customer:
    """
    Convert a remote row to a Customer.

    Rows written before the role column existed are savers when they
    carry no loan, borrowers otherwise.
    """
    loan_amount = row.get("loan_amount") or 0
    role = row.get("role") or (
        CustomerRole.SAVER if Decimal(str(loan_amount)) == 0 else CustomerRole.BORROWER
    )
    return Customer(
        id=row["id"],
        name=row["name"],
        phone=row.get("phone") or None,
        location=row.get("location") or "",
        loan_date=row.get("loan_date") or None,
        principal=Decimal(str(loan_amount)),
        interest_rate=Decimal(str(row.get("interest_rate") or 0)),
        installments=row.get("installments") or 0,
        status=row.get("status") or "active",
        role=role,
    )


def transaction_to_wire(transaction: Transaction) -> dict[str, Any]:
    """Convert a Transaction to a remote row."""
    return {
        "id": transaction.id,
        "customer_id": transaction.customer_id,
        "type": transaction.type.value,
        "amount": _number(transaction.amount),
        "date": transaction.timestamp.isoformat(),
        "description": transaction.description,
        "payment_method": transaction.payment_method.value,
        "is_edited": transaction.edited,
    }


def transaction_from_wire(row: dict[str, Any]) -> Transaction:
    """Convert a remote row to a Transaction."""
    return Transaction(
        id=row["id"],
        customer_id=row["customer_id"],
        type=row["type"],
        amount=Decimal(str(row["amount"])),
        timestamp=row["date"],
        description=row.get("description") or "",
        payment_method=row.get("payment_method") or "cash",
        edited=bool(row.get("is_edited")),
    )


def collection_of(record: LedgerRecord) -> RemoteCollection:
    """Remote collection a record belongs to."""
    if isinstance(record, Customer):
        return RemoteCollection.CUSTOMERS
    return RemoteCollection.TRANSACTIONS


def to_wire_format(record: LedgerRecord) -> dict[str, Any]:
    """Convert any ledger record to its remote row."""
    if isinstance(record, Customer):
        return customer_to_wire(record)
    return transaction_to_wire(record)


def from_wire_format(collection: RemoteCollection, row: dict[str, Any]) -> LedgerRecord:
    """Convert a remote row of the given collection to a ledger record."""
    if RemoteCollection(collection) == RemoteCollection.CUSTOMERS:
        return customer_from_wire(row)
    return transaction_from_wire(row)
