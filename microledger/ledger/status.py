"""
Derived Payoff Status

A customer's payoff status is never entered by hand. It is derived
from the repayment ledger:

    paid-off  if sum(repayments) >= principal * (1 + rate / 100)
    active    otherwise

Archived customers and customers without a loan are left alone.
"""

from decimal import Decimal
from typing import Iterable

from microledger.models.ledger import (
    Customer,
    CustomerStatus,
    Transaction,
)


def total_repaid(customer_id: str, ledger: Iterable[Transaction]) -> Decimal:
    """Sum of repayment amounts recorded for a customer."""
    return sum(
        (t.amount for t in ledger if t.customer_id == customer_id and t.is_repayment),
        Decimal(0),
    )


def recompute_status(customer: Customer, ledger: Iterable[Transaction]) -> CustomerStatus:
    """
    Status the customer should have given the ledger.

    ``ledger`` may be the full transaction list or just this customer's.
    Returns the stored status unchanged when recomputation is skipped.
    """
    if customer.is_archived or customer.principal == 0:
        return customer.status

    if total_repaid(customer.id, ledger) >= customer.total_due:
        return CustomerStatus.PAID_OFF
    return CustomerStatus.ACTIVE
