"""
Read-side Ledger Queries

Pure functions over customers and transactions. Nothing here writes.

Holidays: a built-in list of national holidays plus the locally
maintained override list. Both only affect the missed-payment display.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from microledger.ledger.status import total_repaid
from microledger.ledger.validator import savings_balance_of
from microledger.models.ledger import (
    Customer,
    CustomerRole,
    CustomerStatus,
    PaymentMethod,
    Transaction,
    TransactionType,
)


# Indonesian national holidays, 2024
NATIONAL_HOLIDAYS = frozenset([
    "2024-01-01",  # New Year's Day
    "2024-02-08",  # Isra Mi'raj
    "2024-02-10",  # Chinese New Year
    "2024-03-11",  # Nyepi
    "2024-03-29",  # Good Friday
    "2024-03-31",  # Easter Sunday
    "2024-04-10",  # Eid al-Fitr
    "2024-04-11",  # Eid al-Fitr
    "2024-05-01",  # Labour Day
    "2024-05-09",  # Ascension Day
    "2024-05-23",  # Waisak
    "2024-06-01",  # Pancasila Day
    "2024-06-17",  # Eid al-Adha
    "2024-07-07",  # Islamic New Year
    "2024-08-17",  # Independence Day
    "2024-09-16",  # Prophet Muhammad's Birthday
    "2024-12-25",  # Christmas Day
])

SUNDAY = 6


def is_holiday(day: date, overrides: Iterable[str] = ()) -> bool:
    iso = day.isoformat()
    return iso in NATIONAL_HOLIDAYS or iso in set(overrides)


def filter_by_date_range(
    transactions: Iterable[Transaction],
    start: date,
    end: date,
) -> list[Transaction]:
    """Transactions whose calendar day falls in [start, end]."""
    return [t for t in transactions if start <= t.timestamp.date() <= end]


# =============================================================================
# LOANS
# =============================================================================

class LoanSummary(BaseModel):
    """Repayment progress of one borrower."""

    customer_id: str
    total_due: Decimal
    total_repaid: Decimal
    remaining: Decimal = Field(..., ge=0)
    installment_amount: Decimal
    installments_paid: int = Field(..., ge=0)
    progress_percent: Decimal
    due_date: Optional[date] = None
    missed_payment_dates: list[date] = Field(
        default_factory=list,
        description="Expected payment days without a repayment, most recent first"
    )

    @property
    def missed_count(self) -> int:
        return len(self.missed_payment_dates)


def missed_payment_dates(
    customer: Customer,
    transactions: Iterable[Transaction],
    holidays: Iterable[str] = (),
    today: Optional[date] = None,
) -> list[date]:
    """
    Expected payment days with no repayment, most recent first.

    Payments are expected every day from the day after the loan date up
    to the earlier of today and the due date, except Sundays and
    holidays. Only active loans can have missed payments.
    """
    if customer.status != CustomerStatus.ACTIVE or customer.loan_date is None:
        return []

    today = today or date.today()
    overrides = set(holidays)
    paid_days = {
        t.timestamp.date()
        for t in transactions
        if t.customer_id == customer.id and t.is_repayment
    }
    due_date = customer.loan_date + timedelta(days=customer.installments)
    end = min(today, due_date)

    missed = []
    day = customer.loan_date + timedelta(days=1)
    while day <= end:
        if day.weekday() != SUNDAY and not is_holiday(day, overrides) and day not in paid_days:
            missed.append(day)
        day += timedelta(days=1)
    missed.reverse()
    return missed


def loan_summary(
    customer: Customer,
    transactions: Iterable[Transaction],
    holidays: Iterable[str] = (),
    today: Optional[date] = None,
) -> LoanSummary:
    transactions = list(transactions)
    total_due = customer.total_due
    repaid = total_repaid(customer.id, transactions)
    installment = total_due / customer.installments if customer.installments > 0 else Decimal(0)
    paid = int(repaid // installment) if installment > 0 else 0
    progress = (
        Decimal(paid) / customer.installments * 100 if customer.installments > 0 else Decimal(0)
    )

    return LoanSummary(
        customer_id=customer.id,
        total_due=total_due,
        total_repaid=repaid,
        remaining=max(Decimal(0), total_due - repaid),
        installment_amount=installment,
        installments_paid=paid,
        progress_percent=progress,
        due_date=(
            customer.loan_date + timedelta(days=customer.installments)
            if customer.loan_date else None
        ),
        missed_payment_dates=missed_payment_dates(customer, transactions, holidays, today),
    )


# =============================================================================
# SAVINGS
# =============================================================================

def savings_balance(customer_id: str, transactions: Iterable[Transaction]) -> Decimal:
    """Deposits minus withdrawals."""
    return savings_balance_of(customer_id, transactions)


class SaverBalance(BaseModel):
    customer: Customer
    balance: Decimal


class SaversOverview(BaseModel):
    savers: list[SaverBalance] = Field(default_factory=list)
    total: Decimal = Decimal(0)


def savers_overview(
    customers: Iterable[Customer],
    transactions: Iterable[Transaction],
) -> SaversOverview:
    """Savers with a non-negative balance, sorted by name, and their total."""
    transactions = list(transactions)
    entries = []
    for customer in customers:
        if customer.role != CustomerRole.SAVER:
            continue
        balance = savings_balance_of(customer.id, transactions)
        if balance >= 0:
            entries.append(SaverBalance(customer=customer, balance=balance))
    entries.sort(key=lambda e: e.customer.name.lower())
    return SaversOverview(savers=entries, total=sum((e.balance for e in entries), Decimal(0)))


# =============================================================================
# DAILY SUMMARY
# =============================================================================

class MethodSplit(BaseModel):
    cash: Decimal = Decimal(0)
    transfer: Decimal = Decimal(0)

    @property
    def total(self) -> Decimal:
        return self.cash + self.transfer

    def add(self, method: PaymentMethod, amount: Decimal) -> None:
        if method == PaymentMethod.CASH:
            self.cash += amount
        else:
            self.transfer += amount


class DailySummary(BaseModel):
    """Money that moved on one calendar day."""

    day: date
    repayments: MethodSplit = Field(default_factory=MethodSplit)
    savings_in: MethodSplit = Field(default_factory=MethodSplit)
    loans_out: MethodSplit = Field(default_factory=MethodSplit)
    withdrawals_out: MethodSplit = Field(default_factory=MethodSplit)

    @property
    def outflow(self) -> MethodSplit:
        return MethodSplit(
            cash=self.loans_out.cash + self.withdrawals_out.cash,
            transfer=self.loans_out.transfer + self.withdrawals_out.transfer,
        )

    @property
    def cash_in_hand(self) -> Decimal:
        """Cash collected minus cash paid out."""
        return (
            self.repayments.cash + self.savings_in.cash
            - self.loans_out.cash - self.withdrawals_out.cash
        )


def daily_summary(transactions: Iterable[Transaction], day: date) -> DailySummary:
    summary = DailySummary(day=day)
    buckets = {
        TransactionType.REPAYMENT: summary.repayments,
        TransactionType.SAVINGS_DEPOSIT: summary.savings_in,
        TransactionType.LOAN_DISBURSEMENT: summary.loans_out,
        TransactionType.WITHDRAWAL: summary.withdrawals_out,
    }
    for t in filter_by_date_range(transactions, day, day):
        buckets[t.type].add(t.payment_method, t.amount)
    return summary
