"""Tests for ledger state and the mutation API."""

import pytest
from datetime import date, datetime
from decimal import Decimal

from microledger.ledger.service import LedgerService, RecordNotFoundError
from microledger.ledger.state import CUSTOMERS_KEY, LedgerState
from microledger.ledger.validator import MutationValidationError, MutationValidator
from microledger.models.audit import AuditEventType
from microledger.models.ledger import (
    Customer,
    CustomerRole,
    CustomerStatus,
    PaymentMethod,
    TransactionType,
)
from microledger.models.sync import RemoteCollection, SyncAction


def _open_loan(service, principal="100000", rate="10"):
    return service.add_customer(
        name="Ani",
        location="Pasar",
        loan_date=date(2024, 1, 1),
        principal=Decimal(principal),
        interest_rate=Decimal(rate),
        installments=10,
    )


def _actions(queue):
    return [(e.collection, e.action) for e in queue.peek()]


class TestLedgerState:
    """Tests for the explicit state object."""

    def test_state_survives_reload(self, service, local_store, audit):
        """Test that every mutation is persisted before returning."""
        customer = _open_loan(service)
        reloaded = LedgerState(local_store, audit)
        reloaded.load()
        assert reloaded.get_customer(customer.id) == customer
        assert len(reloaded.transactions) == 1

    def test_corrupted_key_only_discards_that_key(self, service, local_store, audit):
        """Test per-key corruption recovery."""
        _open_loan(service)
        local_store.set(CUSTOMERS_KEY, "not json")
        reloaded = LedgerState(local_store, audit)
        reloaded.load()
        assert reloaded.customers == []
        assert len(reloaded.transactions) == 1
        assert local_store.get(CUSTOMERS_KEY) is None

    def test_invalid_record_discards_key(self, local_store, audit):
        """Test that schema-invalid JSON is treated as corruption."""
        local_store.write_json(CUSTOMERS_KEY, [{"id": "CUST-1"}])
        state = LedgerState(local_store, audit)
        state.load()
        assert state.customers == []
        assert any(
            e.event_type == AuditEventType.STORAGE_KEY_CORRUPTED for e in audit.recent_events
        )


class TestAddCustomer:
    """Tests for opening loans and savings accounts."""

    def test_add_customer_creates_disbursement(self, service, queue):
        """Test that a loan comes with its disbursement transaction."""
        customer = _open_loan(service, principal="500000")

        assert customer.status == CustomerStatus.ACTIVE
        assert customer.id.startswith("CUST-")
        [disbursement] = service.state.transactions_for(customer.id)
        assert disbursement.type == TransactionType.LOAN_DISBURSEMENT
        assert disbursement.amount == Decimal("500000")
        assert disbursement.timestamp == datetime(2024, 1, 1)
        assert disbursement.edited is False
        assert _actions(queue) == [
            (RemoteCollection.CUSTOMERS, SyncAction.INSERT),
            (RemoteCollection.TRANSACTIONS, SyncAction.INSERT),
        ]

    def test_queue_payload_is_wire_shape(self, service, queue):
        """Test that queued payloads use remote column names."""
        _open_loan(service)
        payload = queue.peek()[0].payload
        assert payload["loan_amount"] == 100000
        assert "loanDate" not in payload

    def test_missing_name_is_rejected_before_any_write(self, service, queue, local_store):
        """Test that validation failures leave no trace."""
        with pytest.raises(MutationValidationError) as exc_info:
            service.add_customer(
                name="",
                location="Pasar",
                loan_date=date(2024, 1, 1),
                principal=Decimal("100000"),
                interest_rate=Decimal("10"),
                installments=10,
            )
        assert "name" in {i.field for i in exc_info.value.issues}
        assert service.state.customers == []
        assert len(queue) == 0
        assert local_store.get(CUSTOMERS_KEY) is None

    def test_zero_principal_is_rejected(self, service):
        """Test that a borrower needs a loan."""
        with pytest.raises(MutationValidationError):
            _open_loan(service, principal="0")

    def test_validation_failure_is_audited(self, service, audit):
        """Test that rejected mutations are logged."""
        with pytest.raises(MutationValidationError):
            _open_loan(service, principal="-5")
        assert audit.recent_events[-1].event_type == AuditEventType.VALIDATION_FAILED

    def test_add_saver(self, service, queue):
        """Test opening a savings account."""
        saver = service.add_saver("Budi", Decimal("20000"), date(2024, 2, 1))

        assert saver.role == CustomerRole.SAVER
        assert saver.principal == 0
        assert saver.location == "outside"
        [deposit] = service.state.transactions_for(saver.id)
        assert deposit.type == TransactionType.SAVINGS_DEPOSIT
        assert deposit.timestamp == datetime(2024, 2, 1)
        assert len(queue) == 2

    def test_replay_requested_after_mutation(self, state, queue, ids, audit, app_settings):
        """Test that mutations ask for a replay."""
        calls = []
        service = LedgerService(state, queue, ids, audit, app_settings, request_replay=lambda: calls.append(1))
        _open_loan(service)
        assert calls == [1]


class TestTransactions:
    """Tests for recording, editing and deleting money movement."""

    def test_repayment_triggers_recalculation(self, service, queue):
        """Test that the payoff repayment queues a customer UPDATE."""
        customer = _open_loan(service)
        service.add_transaction(customer.id, TransactionType.REPAYMENT, Decimal("60000"))
        assert service.state.get_customer(customer.id).status == CustomerStatus.ACTIVE

        service.add_transaction(customer.id, TransactionType.REPAYMENT, Decimal("50000"))
        assert service.state.get_customer(customer.id).status == CustomerStatus.PAID_OFF
        assert _actions(queue)[-1] == (RemoteCollection.CUSTOMERS, SyncAction.UPDATE)
        assert queue.peek()[-1].payload["status"] == "paid-off"

    def test_non_repayment_skips_recalculation(self, service, queue):
        """Test that deposits never queue a status update."""
        saver = service.add_saver("Budi", Decimal("20000"), date(2024, 2, 1))
        service.add_transaction(saver.id, TransactionType.SAVINGS_DEPOSIT, Decimal("5000"))
        assert SyncAction.UPDATE not in {e.action for e in queue.peek()}

    def test_default_description_and_timestamp(self, service):
        """Test quick-entry defaults."""
        customer = _open_loan(service)
        before = datetime.now()
        transaction = service.add_transaction(
            customer.id, TransactionType.REPAYMENT, Decimal("11000"), PaymentMethod.TRANSFER
        )
        assert transaction.timestamp >= before
        assert transaction.description == "Repayment from Ani"
        assert transaction.payment_method == PaymentMethod.TRANSFER

    def test_unknown_customer_is_rejected(self, service):
        """Test that transactions need an owner."""
        with pytest.raises(MutationValidationError):
            service.add_transaction("CUST-missing", TransactionType.REPAYMENT, Decimal("1000"))

    def test_edit_sets_flag_and_recalculates(self, service, queue):
        """Test that editing an amount can flip the status back."""
        customer = _open_loan(service)
        repayment = service.add_transaction(customer.id, TransactionType.REPAYMENT, Decimal("110000"))
        assert service.state.get_customer(customer.id).status == CustomerStatus.PAID_OFF

        edited = service.edit_transaction(repayment.id, amount=Decimal("100000"))
        assert edited.edited is True
        assert service.state.get_transaction(repayment.id).amount == Decimal("100000")
        assert service.state.get_customer(customer.id).status == CustomerStatus.ACTIVE
        assert (RemoteCollection.TRANSACTIONS, SyncAction.UPDATE) in _actions(queue)

    def test_edit_cannot_change_type(self, service):
        """Test that the transaction type is immutable."""
        customer = _open_loan(service)
        repayment = service.add_transaction(customer.id, TransactionType.REPAYMENT, Decimal("1000"))
        with pytest.raises(MutationValidationError) as exc_info:
            service.edit_transaction(repayment.id, type=TransactionType.WITHDRAWAL)
        assert exc_info.value.issues[0].issue_type == "immutable"
        assert service.state.get_transaction(repayment.id).edited is False

    def test_edit_unknown_field_is_rejected(self, service):
        """Test that typos in field names are not silently ignored."""
        customer = _open_loan(service)
        repayment = service.add_transaction(customer.id, TransactionType.REPAYMENT, Decimal("1000"))
        with pytest.raises(MutationValidationError):
            service.edit_transaction(repayment.id, amout=Decimal("5"))

    def test_delete_repayment_recalculates(self, service, queue):
        """Test that deleting the payoff repayment reactivates the loan."""
        customer = _open_loan(service)
        repayment = service.add_transaction(customer.id, TransactionType.REPAYMENT, Decimal("110000"))
        service.delete_transaction(repayment.id)

        assert service.state.get_transaction(repayment.id) is None
        assert service.state.get_customer(customer.id).status == CustomerStatus.ACTIVE
        delete = [e for e in queue.peek() if e.action == SyncAction.DELETE]
        assert [(e.record_id, e.payload) for e in delete] == [(repayment.id, None)]

    def test_delete_unknown_transaction(self, service):
        """Test that unknown ids raise RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError):
            service.delete_transaction("TRX-missing")


class TestCustomerLifecycle:
    """Tests for updating, archiving and deleting customers."""

    def test_update_customer_recalculates(self, service):
        """Test that lowering the principal can pay off the loan."""
        customer = _open_loan(service)
        service.add_transaction(customer.id, TransactionType.REPAYMENT, Decimal("55000"))
        updated = service.update_customer(customer.id, principal=Decimal("50000"))
        assert updated.status == CustomerStatus.PAID_OFF

    def test_principal_change_updates_disbursement(self, service, state, queue):
        """Test that the loan disbursement follows an edited principal."""
        customer = _open_loan(service)
        disbursement = state.transactions_for(customer.id)[0]

        service.update_customer(customer.id, principal=Decimal("150000"))

        edited = state.get_transaction(disbursement.id)
        assert edited.amount == Decimal("150000")
        assert edited.edited is True
        entries = [e for e in queue.peek() if e.record_id == disbursement.id]
        assert [e.action for e in entries] == [SyncAction.INSERT, SyncAction.UPDATE]
        assert entries[1].payload["is_edited"] is True

    def test_other_customer_edits_leave_disbursement_alone(self, service, state, queue):
        """Test that a rename queues no transaction update."""
        customer = _open_loan(service)

        service.update_customer(customer.id, name="Ani Wulandari")

        assert state.transactions_for(customer.id)[0].edited is False
        assert (RemoteCollection.TRANSACTIONS, SyncAction.UPDATE) not in _actions(queue)

    def test_update_customer_cannot_switch_role(self, service):
        """Test that the role is fixed."""
        customer = _open_loan(service)
        with pytest.raises(MutationValidationError):
            service.update_customer(customer.id, role=CustomerRole.SAVER, principal=Decimal(0))

    def test_archive_toggle(self, service):
        """Test archiving and restoring."""
        customer = _open_loan(service)
        service.add_transaction(customer.id, TransactionType.REPAYMENT, Decimal("110000"))

        archived = service.toggle_archive(customer.id)
        assert archived.status == CustomerStatus.ARCHIVED

        # Deleting the repayment must not touch an archived customer
        [repayment] = [t for t in service.state.transactions_for(customer.id) if t.is_repayment]
        service.delete_transaction(repayment.id)
        assert service.state.get_customer(customer.id).status == CustomerStatus.ARCHIVED

        restored = service.toggle_archive(customer.id)
        assert restored.status == CustomerStatus.ACTIVE

    def test_restore_recalculates(self, service):
        """Test that a restored customer gets its derived status."""
        customer = _open_loan(service)
        service.add_transaction(customer.id, TransactionType.REPAYMENT, Decimal("110000"))
        service.toggle_archive(customer.id)
        assert service.toggle_archive(customer.id).status == CustomerStatus.PAID_OFF

    def test_delete_customer_cascades_locally(self, service, queue):
        """Test that a customer takes its transactions with it."""
        customer = _open_loan(service)
        service.add_transaction(customer.id, TransactionType.REPAYMENT, Decimal("1000"))
        removed = service.delete_customer(customer.id)

        assert len(removed) == 2
        assert service.state.get_customer(customer.id) is None
        assert service.state.transactions_for(customer.id) == []
        assert _actions(queue)[-1] == (RemoteCollection.CUSTOMERS, SyncAction.DELETE)

    def test_delete_unknown_customer(self, service):
        """Test that unknown ids raise RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError):
            service.delete_customer("CUST-missing")


class TestHolidays:
    """Tests for local holiday overrides."""

    def test_add_and_remove(self, service, queue):
        """Test that overrides persist and are never queued."""
        assert service.add_holiday(date(2024, 3, 4)) is True
        assert service.add_holiday(date(2024, 3, 4)) is False
        assert service.state.holidays == ["2024-03-04"]
        assert service.remove_holiday(date(2024, 3, 4)) is True
        assert service.remove_holiday(date(2024, 3, 4)) is False
        assert len(queue) == 0


class TestMutationValidator:
    """Tests for warnings that do not block a mutation."""

    def test_withdrawal_above_balance_warns(self, app_settings):
        """Test the savings balance warning."""
        saver = Customer(id="CUST-1", name="Budi", role=CustomerRole.SAVER)
        result = MutationValidator(app_settings).validate_new_transaction(
            saver, TransactionType.WITHDRAWAL, Decimal("5000"), datetime(2024, 1, 1)
        )
        assert result.is_valid
        assert result.warnings

    def test_amount_ceiling(self, app_settings):
        """Test the sanity ceiling on amounts."""
        result = MutationValidator(app_settings).validate_new_saver(
            "Budi", Decimal("2000000000"), date(2024, 1, 1)
        )
        assert result.has_errors

    def test_summary(self, app_settings):
        """Test the user-facing summary."""
        validator = MutationValidator(app_settings)
        result = validator.validate_new_saver("", Decimal("0"), None)
        summary = validator.get_user_friendly_summary(result)
        assert summary.startswith("Please fix the following:")
        assert "Name is required" in summary
