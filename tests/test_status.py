"""Tests for the derived payoff status."""

from datetime import date, datetime
from decimal import Decimal

from microledger.ledger.status import recompute_status, total_repaid
from microledger.models.ledger import (
    Customer,
    CustomerRole,
    CustomerStatus,
    Transaction,
    TransactionType,
)


def _borrower(status=CustomerStatus.ACTIVE, principal="100000", rate="10"):
    return Customer(
        id="CUST-1",
        name="Ani",
        loan_date=date(2024, 1, 1),
        principal=Decimal(principal),
        interest_rate=Decimal(rate),
        installments=10,
        status=status,
    )


def _tx(amount, type=TransactionType.REPAYMENT, customer_id="CUST-1", n=1):
    return Transaction(
        id=f"TRX-{customer_id}-{n}-{amount}",
        customer_id=customer_id,
        type=type,
        amount=Decimal(amount),
        timestamp=datetime(2024, 1, 2),
    )


class TestPayoffThreshold:
    """Tests for the repayment threshold."""

    def test_just_below_threshold_is_active(self):
        """Test 109999 repaid against 110000 due."""
        assert recompute_status(_borrower(), [_tx("109999")]) == CustomerStatus.ACTIVE

    def test_at_threshold_is_paid_off(self):
        """Test 110000 repaid against 110000 due."""
        assert recompute_status(_borrower(), [_tx("110000")]) == CustomerStatus.PAID_OFF

    def test_threshold_sums_many_repayments(self):
        """Test that repayments are summed."""
        ledger = [_tx("55000", n=1), _tx("55000", n=2)]
        assert recompute_status(_borrower(), ledger) == CustomerStatus.PAID_OFF

    def test_paid_off_reverts_when_repayments_drop(self):
        """Test that a paid-off customer becomes active again."""
        customer = _borrower(status=CustomerStatus.PAID_OFF)
        assert recompute_status(customer, [_tx("50000")]) == CustomerStatus.ACTIVE

    def test_only_repayments_count(self):
        """Test that other transaction types are ignored."""
        ledger = [
            _tx("100000", type=TransactionType.LOAN_DISBURSEMENT),
            _tx("200000", type=TransactionType.SAVINGS_DEPOSIT),
        ]
        assert recompute_status(_borrower(), ledger) == CustomerStatus.ACTIVE

    def test_other_customers_are_ignored(self):
        """Test that the full ledger can be passed."""
        ledger = [_tx("110000", customer_id="CUST-2")]
        assert recompute_status(_borrower(), ledger) == CustomerStatus.ACTIVE
        assert total_repaid("CUST-2", ledger) == Decimal("110000")


class TestSkippedRecalculation:
    """Tests for customers whose status is never recomputed."""

    def test_archived_never_flips(self):
        """Test that archived stays archived with a qualifying sum."""
        customer = _borrower(status=CustomerStatus.ARCHIVED)
        assert recompute_status(customer, [_tx("200000")]) == CustomerStatus.ARCHIVED

    def test_zero_principal_is_skipped(self):
        """Test that savers keep their stored status."""
        saver = Customer(id="CUST-1", name="Budi", role=CustomerRole.SAVER)
        assert recompute_status(saver, [_tx("1000")]) == CustomerStatus.ACTIVE
