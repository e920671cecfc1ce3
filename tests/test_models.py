"""
Tests for Microledger models

Test strategy:
1. Unit tests for individual components (models, wire format, queue)
2. Integration tests for flows (in-memory remote, no network)
3. No real API calls in tests
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

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


class TestLedgerModels:
    """Tests for customer and transaction models."""

    def test_customer_creation(self):
        """Test Customer model creation."""
        customer = Customer(
            id="CUST-1",
            name="Ani",
            location="Pasar",
            loan_date=date(2024, 1, 1),
            principal=Decimal("500000"),
            interest_rate=Decimal("10"),
            installments=10,
        )
        assert customer.status == CustomerStatus.ACTIVE
        assert customer.role == CustomerRole.BORROWER
        assert customer.total_due == Decimal("550000")

    def test_customer_strips_whitespace(self):
        """Test that whitespace is stripped from names."""
        customer = Customer(id="CUST-1", name="  Ani  ")
        assert customer.name == "Ani"

    def test_empty_phone_becomes_none(self):
        """Test that an empty phone is stored as None."""
        customer = Customer(id="CUST-1", name="Ani", phone="")
        assert customer.phone is None

    def test_saver_rejects_principal(self):
        """Test that a saver cannot carry a loan."""
        with pytest.raises(ValueError, match="saver's loan principal must be zero"):
            Customer(id="CUST-1", name="Budi", role=CustomerRole.SAVER, principal=Decimal("1000"))

    def test_customer_local_shape_is_camel_case(self):
        """Test that records persist with camelCase keys."""
        customer = Customer(id="CUST-1", name="Ani", loan_date=date(2024, 1, 1))
        dumped = customer.model_dump(mode="json", by_alias=True)
        assert "loanDate" in dumped
        assert "interestRate" in dumped
        assert Customer.model_validate(dumped) == customer

    def test_transaction_rejects_non_positive_amount(self):
        """Test that amounts must be positive."""
        with pytest.raises(ValueError):
            Transaction(
                id="TRX-1",
                customer_id="CUST-1",
                type=TransactionType.REPAYMENT,
                amount=Decimal("0"),
                timestamp=datetime(2024, 1, 2, 9, 0),
            )

    def test_transaction_defaults(self):
        """Test that creation never sets the edited flag."""
        transaction = Transaction(
            id="TRX-1",
            customer_id="CUST-1",
            type="repayment",
            amount=55000,
            timestamp="2024-01-02T09:00:00",
        )
        assert transaction.edited is False
        assert transaction.payment_method == PaymentMethod.CASH
        assert transaction.is_repayment


class TestSyncModels:
    """Tests for sync queue models."""

    def test_delete_entry_has_no_payload(self):
        """Test that DELETE entries reject a payload."""
        with pytest.raises(ValueError, match="DELETE entries carry no payload"):
            SyncQueueEntry(
                queue_id="Q-1",
                record_id="CUST-1",
                action=SyncAction.DELETE,
                collection=RemoteCollection.CUSTOMERS,
                payload={"id": "CUST-1"},
            )

    def test_insert_entry_needs_payload(self):
        """Test that INSERT entries require a payload."""
        with pytest.raises(ValueError, match="INSERT entries need a payload"):
            SyncQueueEntry(
                queue_id="Q-1",
                record_id="CUST-1",
                action=SyncAction.INSERT,
                collection=RemoteCollection.CUSTOMERS,
            )

    def test_entry_key(self):
        """Test the dedup key is (record id, action)."""
        entry = SyncQueueEntry(
            queue_id="Q-1",
            record_id="CUST-1",
            action="UPDATE",
            collection="customers",
            payload={"id": "CUST-1"},
        )
        assert entry.key == ("CUST-1", SyncAction.UPDATE)

    def test_drain_report_counts(self):
        """Test DrainReport outcome counters."""
        report = DrainReport(outcomes={
            "Q-1": EntryOutcome.CONFIRMED,
            "Q-2": EntryOutcome.FAILED,
            "Q-3": EntryOutcome.REJECTED,
            "Q-4": EntryOutcome.CONFIRMED,
        })
        assert report.attempted == 4
        assert report.confirmed == 2
        assert report.failed == 1
        assert report.rejected == 1


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            description="Customer created",
        )
        assert event.event_type == AuditEventType.RECORD_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.DRAIN_COMPLETED,
            description="Drain completed",
            details={"confirmed": 3},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "drain_completed"
        assert log_dict["details"]["confirmed"] == 3

    def test_policy_rejection_is_a_warning(self):
        """Test that silent policy rejections are logged distinctly."""
        event = AuditEventBuilder.entry_policy_rejected(
            queue_id="Q-1",
            record_id="CUST-1",
            action="UPDATE",
            collection="customers",
        )
        assert event.event_type == AuditEventType.ENTRY_POLICY_REJECTED
        assert event.severity == AuditSeverity.WARNING

    def test_storage_corruption_is_an_error(self):
        """Test that local corruption is logged at error level."""
        event = AuditEventBuilder.storage_key_corrupted("sync_queue", "Expecting value")
        assert event.severity == AuditSeverity.ERROR
        assert event.entity_id == "sync_queue"


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            subject="add_customer",
            issues=[
                ValidationIssue(
                    field="name",
                    issue_type="missing",
                    message="Name is required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1
        assert result.is_valid is False

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            subject="add_transaction",
            issues=[
                ValidationIssue(
                    field="timestamp",
                    issue_type="future_date",
                    message="Date in future",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0
        assert result.warnings == ["Date in future"]


class TestEnums:
    """Tests for ledger enums."""

    def test_status_values(self):
        """Test status string values."""
        assert CustomerStatus.PAID_OFF.value == "paid-off"
        assert CustomerStatus("archived") == CustomerStatus.ARCHIVED

    def test_transaction_type_values(self):
        """Test transaction type string values."""
        expected = ["loan-disbursement", "savings-deposit", "repayment", "withdrawal"]
        for value in expected:
            assert TransactionType(value) is not None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
