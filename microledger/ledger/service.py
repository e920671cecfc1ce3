"""
Domain Mutation API

Every operation that changes the ledger follows the same shape:

    validate -> build record(s) -> persist locally -> enqueue remote
    mutation(s) -> request a replay -> recalculate payoff status

Nothing here waits for the remote store. A mutation that returns has
been durably written locally and queued; remote confirmation happens
later in the replay worker. Sync errors never reach these callers.
Only validation errors (MutationValidationError) and unknown ids
(RecordNotFoundError) do, and both are raised before any write.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ValidationError

from microledger.audit import AuditLogger, create_correlation_id
from microledger.config import AppSettings, get_settings
from microledger.ledger.state import LedgerState
from microledger.ledger.status import recompute_status, total_repaid
from microledger.ledger.validator import (
    MutationValidationError,
    MutationValidator,
    issues_from_pydantic,
)
from microledger.models.audit import AuditEventBuilder
from microledger.models.ledger import (
    Customer,
    CustomerRole,
    CustomerStatus,
    PaymentMethod,
    Transaction,
    TransactionType,
    ValidationResult,
)
from microledger.models.sync import RemoteCollection, SyncAction
from microledger.models.wire import collection_of, to_wire_format
from microledger.sync.ids import IdentifierGenerator
from microledger.sync.queue import SyncQueue


CUSTOMER_ID_PREFIX = "CUST"
TRANSACTION_ID_PREFIX = "TRX"

M = TypeVar("M", bound=BaseModel)


class RecordNotFoundError(LookupError):
    """A mutation named a customer or transaction that does not exist."""

    def __init__(self, entity_type: str, record_id: str):
        self.entity_type = entity_type
        self.record_id = record_id
        super().__init__(f"{entity_type} {record_id} not found")


def _default_description(type: TransactionType, customer: Customer) -> str:
    if type == TransactionType.REPAYMENT:
        return f"Repayment from {customer.name}"
    if type == TransactionType.SAVINGS_DEPOSIT:
        return f"Savings deposit from {customer.name}"
    if type == TransactionType.WITHDRAWAL:
        return f"Withdrawal by {customer.name}"
    return f"Loan disbursement to {customer.name}"


class LedgerService:
    """
    Optimistic, local-first ledger mutations.

    ``request_replay`` is called after every mutation that enqueued
    something; the application wires it to the replay worker's
    debounced drain.
    """

    def __init__(
        self,
        state: LedgerState,
        queue: SyncQueue,
        id_generator: IdentifierGenerator,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        request_replay: Optional[Callable[[], None]] = None,
    ):
        self.state = state
        self._queue = queue
        self._ids = id_generator
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app
        self._validator = MutationValidator(self._settings)
        self._request_replay = request_replay

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _require_valid(self, result: ValidationResult) -> None:
        if result.has_errors:
            self._audit.log(
                AuditEventBuilder.validation_failed(
                    result.subject,
                    [i.model_dump() for i in result.issues],
                )
            )
            raise MutationValidationError(result)

    def _build(self, model: type[M], data: dict[str, Any], subject: str) -> M:
        """Construct a record, turning schema errors into validation errors."""
        try:
            return model.model_validate(data)
        except ValidationError as e:
            self._require_valid(ValidationResult(subject=subject, issues=issues_from_pydantic(e)))
            raise

    def _enqueue(self, action: SyncAction, record: Any) -> None:
        self._queue.enqueue(
            record_id=record.id,
            action=action,
            collection=collection_of(record),
            payload=to_wire_format(record),
        )

    def _replay(self) -> None:
        if self._request_replay is not None:
            self._request_replay()

    def _customer(self, customer_id: str) -> Customer:
        customer = self.state.get_customer(customer_id)
        if customer is None:
            raise RecordNotFoundError("customer", customer_id)
        return customer

    def _transaction(self, transaction_id: str) -> Transaction:
        transaction = self.state.get_transaction(transaction_id)
        if transaction is None:
            raise RecordNotFoundError("transaction", transaction_id)
        return transaction

    # ------------------------------------------------------------------
    # Derived status
    # ------------------------------------------------------------------

    def recalculate_status(
        self,
        customer_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Customer]:
        """
        Recompute a customer's payoff status from the ledger.

        When the derived status differs from the stored one, the customer
        is updated locally and a customer UPDATE is queued.

        Returns:
            The updated customer, or None if nothing changed
        """
        customer = self.state.get_customer(customer_id)
        if customer is None:
            return None

        ledger = self.state.transactions_for(customer_id)
        new_status = recompute_status(customer, ledger)
        if new_status == customer.status:
            return None

        updated = customer.model_copy(update={"status": new_status})
        self.state.put_customer(updated)
        self._enqueue(SyncAction.UPDATE, updated)
        self._audit.log(
            AuditEventBuilder.status_recalculated(
                customer_id=customer_id,
                old_status=customer.status.value,
                new_status=new_status.value,
                repaid=str(total_repaid(customer_id, ledger)),
                total_due=str(customer.total_due),
                correlation_id=correlation_id,
            )
        )
        return updated

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def add_customer(
        self,
        name: str,
        location: str,
        loan_date: date,
        principal: Decimal,
        interest_rate: Decimal,
        installments: int,
        phone: Optional[str] = None,
        payment_method: PaymentMethod = PaymentMethod.CASH,
    ) -> Customer:
        """
        Open a loan: creates the borrower and its loan-disbursement
        transaction for the full principal on the loan date.
        """
        self._require_valid(
            self._validator.validate_new_borrower(
                name, location, loan_date, principal, interest_rate, installments
            )
        )
        correlation_id = create_correlation_id()

        customer = self._build(Customer, {
            "id": self._ids.generate(CUSTOMER_ID_PREFIX),
            "name": name,
            "phone": phone,
            "location": location,
            "loan_date": loan_date,
            "principal": principal,
            "interest_rate": interest_rate,
            "installments": installments,
            "status": CustomerStatus.ACTIVE,
            "role": CustomerRole.BORROWER,
        }, "add_customer")
        disbursement = self._build(Transaction, {
            "id": self._ids.generate(TRANSACTION_ID_PREFIX),
            "customer_id": customer.id,
            "type": TransactionType.LOAN_DISBURSEMENT,
            "amount": principal,
            "timestamp": datetime.combine(loan_date, time()),
            "description": _default_description(TransactionType.LOAN_DISBURSEMENT, customer),
            "payment_method": payment_method,
        }, "add_customer")

        self.state.put_customer(customer)
        self.state.put_transaction(disbursement)
        self._enqueue(SyncAction.INSERT, customer)
        self._enqueue(SyncAction.INSERT, disbursement)
        self._audit.log(AuditEventBuilder.record_created("customer", customer.id, correlation_id))
        self._audit.log(AuditEventBuilder.record_created(
            "transaction", disbursement.id, correlation_id,
            details={"type": disbursement.type.value, "amount": str(disbursement.amount)},
        ))
        self._replay()
        return customer

    def add_saver(
        self,
        name: str,
        amount: Decimal,
        opened_on: date,
        phone: Optional[str] = None,
        location: Optional[str] = None,
        payment_method: PaymentMethod = PaymentMethod.CASH,
    ) -> Customer:
        """Open a savings account with its initial deposit."""
        self._require_valid(self._validator.validate_new_saver(name, amount, opened_on))
        correlation_id = create_correlation_id()

        saver = self._build(Customer, {
            "id": self._ids.generate(CUSTOMER_ID_PREFIX),
            "name": name,
            "phone": phone,
            "location": location or self._settings.default_saver_location,
            "loan_date": opened_on,
            "principal": Decimal(0),
            "interest_rate": Decimal(0),
            "installments": 0,
            "status": CustomerStatus.ACTIVE,
            "role": CustomerRole.SAVER,
        }, "add_saver")
        deposit = self._build(Transaction, {
            "id": self._ids.generate(TRANSACTION_ID_PREFIX),
            "customer_id": saver.id,
            "type": TransactionType.SAVINGS_DEPOSIT,
            "amount": amount,
            "timestamp": datetime.combine(opened_on, time()),
            "description": "Initial savings",
            "payment_method": payment_method,
        }, "add_saver")

        self.state.put_customer(saver)
        self.state.put_transaction(deposit)
        self._enqueue(SyncAction.INSERT, saver)
        self._enqueue(SyncAction.INSERT, deposit)
        self._audit.log(AuditEventBuilder.record_created("customer", saver.id, correlation_id))
        self._audit.log(AuditEventBuilder.record_created(
            "transaction", deposit.id, correlation_id,
            details={"type": deposit.type.value, "amount": str(deposit.amount)},
        ))
        self._replay()
        return saver

    def update_customer(self, customer_id: str, **changes: Any) -> Customer:
        """
        Edit customer fields (name, phone, location, loan terms).

        Loan term changes can move the payoff threshold, so the status
        is recalculated afterwards. A new principal is carried onto the
        loan disbursement transaction in the same mutation.
        """
        original = self._customer(customer_id)
        unknown = set(changes) - set(Customer.model_fields)
        if unknown:
            self._require_valid(ValidationResult(
                subject="update_customer",
                issues=[
                    {"field": f, "issue_type": "unknown_field", "message": f"Unknown customer field: {f}"}
                    for f in sorted(unknown)
                ],
            ))

        updated = self._build(
            Customer,
            {**original.model_dump(), **changes, "id": original.id},
            "update_customer",
        )
        self._require_valid(self._validator.validate_customer_update(original, updated))
        correlation_id = create_correlation_id()

        self.state.put_customer(updated)
        self._enqueue(SyncAction.UPDATE, updated)
        self._audit.log(AuditEventBuilder.record_updated(
            "customer", customer_id, correlation_id, details={"fields": sorted(changes)},
        ))
        if updated.principal != original.principal:
            for tx in self.state.transactions_for(customer_id):
                if tx.type != TransactionType.LOAN_DISBURSEMENT or tx.amount == updated.principal:
                    continue
                disbursement = tx.model_copy(update={"amount": updated.principal, "edited": True})
                self.state.put_transaction(disbursement)
                self._enqueue(SyncAction.UPDATE, disbursement)
                self._audit.log(AuditEventBuilder.record_updated(
                    "transaction", disbursement.id, correlation_id,
                    details={"fields": ["amount"], "source": "principal_change"},
                ))
        self.recalculate_status(customer_id, correlation_id)
        self._replay()
        return self.state.get_customer(customer_id)

    def delete_customer(self, customer_id: str) -> list[Transaction]:
        """
        Delete a customer and, locally, all of its transactions.

        Only the customer DELETE is queued; replaying it removes the
        customer's remote transactions first.

        Returns:
            The transactions deleted along with the customer
        """
        self._customer(customer_id)
        correlation_id = create_correlation_id()

        removed = self.state.remove_customer(customer_id)
        self._queue.enqueue(customer_id, SyncAction.DELETE, RemoteCollection.CUSTOMERS)
        self._audit.log(AuditEventBuilder.record_deleted(
            "customer", customer_id, correlation_id,
            details={"transactions_removed": len(removed)},
        ))
        self._replay()
        return removed

    def toggle_archive(self, customer_id: str) -> Customer:
        """
        Archive an active or paid-off customer, or restore an archived one.

        A restored customer gets its payoff status recalculated.
        """
        customer = self._customer(customer_id)
        correlation_id = create_correlation_id()
        archiving = not customer.is_archived

        updated = customer.model_copy(update={
            "status": CustomerStatus.ARCHIVED if archiving else CustomerStatus.ACTIVE,
        })
        self.state.put_customer(updated)
        self._enqueue(SyncAction.UPDATE, updated)
        self._audit.log(AuditEventBuilder.customer_archive_toggled(customer_id, archiving, correlation_id))
        if not archiving:
            self.recalculate_status(customer_id, correlation_id)
        self._replay()
        return self.state.get_customer(customer_id)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def add_transaction(
        self,
        customer_id: str,
        type: TransactionType,
        amount: Decimal,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        description: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Transaction:
        """
        Record a repayment, deposit or withdrawal (the quick-entry flow).

        The timestamp defaults to now. Only repayments trigger a status
        recalculation.
        """
        type = TransactionType(type)
        customer = self.state.get_customer(customer_id)
        timestamp = timestamp or datetime.now()
        self._require_valid(
            self._validator.validate_new_transaction(
                customer, type, amount, timestamp, self.state.transactions_for(customer_id)
            )
        )
        correlation_id = create_correlation_id()

        transaction = self._build(Transaction, {
            "id": self._ids.generate(TRANSACTION_ID_PREFIX),
            "customer_id": customer_id,
            "type": type,
            "amount": amount,
            "timestamp": timestamp,
            "description": description if description is not None else _default_description(type, customer),
            "payment_method": payment_method,
        }, "add_transaction")

        self.state.put_transaction(transaction)
        self._enqueue(SyncAction.INSERT, transaction)
        self._audit.log(AuditEventBuilder.record_created(
            "transaction", transaction.id, correlation_id,
            details={"type": type.value, "amount": str(transaction.amount)},
        ))
        if transaction.is_repayment:
            self.recalculate_status(customer_id, correlation_id)
        self._replay()
        return transaction

    def edit_transaction(self, transaction_id: str, **changes: Any) -> Transaction:
        """
        Edit any transaction field except its id and type.

        The edited flag is always set. Status is recalculated for the
        owning customer (and the previous one, if it moved).
        """
        original = self._transaction(transaction_id)
        unknown = set(changes) - set(Transaction.model_fields)
        if unknown:
            self._require_valid(ValidationResult(
                subject="update_transaction",
                issues=[
                    {"field": f, "issue_type": "unknown_field", "message": f"Unknown transaction field: {f}"}
                    for f in sorted(unknown)
                ],
            ))

        updated = self._build(
            Transaction,
            {**original.model_dump(), **changes, "edited": True},
            "update_transaction",
        )
        self._require_valid(
            self._validator.validate_transaction_edit(
                original, updated, self.state.get_customer(updated.customer_id)
            )
        )
        correlation_id = create_correlation_id()

        self.state.put_transaction(updated)
        self._enqueue(SyncAction.UPDATE, updated)
        self._audit.log(AuditEventBuilder.record_updated(
            "transaction", transaction_id, correlation_id, details={"fields": sorted(changes)},
        ))
        for customer_id in {original.customer_id, updated.customer_id}:
            self.recalculate_status(customer_id, correlation_id)
        self._replay()
        return updated

    def delete_transaction(self, transaction_id: str) -> Transaction:
        """Delete a transaction and recalculate its customer's status."""
        self._transaction(transaction_id)
        correlation_id = create_correlation_id()

        removed = self.state.remove_transaction(transaction_id)
        self._queue.enqueue(transaction_id, SyncAction.DELETE, RemoteCollection.TRANSACTIONS)
        self._audit.log(AuditEventBuilder.record_deleted(
            "transaction", transaction_id, correlation_id,
            details={"type": removed.type.value, "amount": str(removed.amount)},
        ))
        self.recalculate_status(removed.customer_id, correlation_id)
        self._replay()
        return removed

    # ------------------------------------------------------------------
    # Bulk import
    # ------------------------------------------------------------------

    def import_records(
        self,
        customers: Iterable[Customer],
        transactions: Iterable[Transaction],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Upsert already-validated records and queue an INSERT for each.

        Customers are queued before transactions. One replay is
        requested at the end.
        """
        customers = list(customers)
        transactions = list(transactions)

        self.state.put_customers(customers)
        self.state.put_transactions(transactions)
        for customer in customers:
            self._enqueue(SyncAction.INSERT, customer)
        for transaction in transactions:
            self._enqueue(SyncAction.INSERT, transaction)
        self._audit.log(
            AuditEventBuilder.backup_imported(len(customers), len(transactions), correlation_id)
        )
        self._replay()

    # ------------------------------------------------------------------
    # Holidays (local only, never synced)
    # ------------------------------------------------------------------

    def add_holiday(self, day: date) -> bool:
        added = self.state.add_holiday(day)
        if added:
            self._audit.log(AuditEventBuilder.holiday_override_changed(day.isoformat(), True))
        return added

    def remove_holiday(self, day: date) -> bool:
        removed = self.state.remove_holiday(day)
        if removed:
            self._audit.log(AuditEventBuilder.holiday_override_changed(day.isoformat(), False))
        return removed
