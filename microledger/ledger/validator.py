"""
Mutation Validation

Every ledger mutation is validated before anything is written locally.
A request with an error-level issue is rejected whole: no local write,
no queue entry, no partial state change.

Two kinds of checks, same as any careful ledger clerk would make:

STRUCTURAL - required fields, positive amounts, immutable fields
SEMANTIC   - suspicious but legal input (future dates, withdrawals
             larger than the balance, repayments on archived loans).
             These are warnings: reported, never silently corrected,
             and they do not block the mutation.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import ValidationError

from microledger.config import AppSettings, get_settings
from microledger.models.ledger import (
    Customer,
    Transaction,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)


FUTURE_DATE_TOLERANCE_DAYS = 7


class MutationValidator:
    """Validates ledger mutation requests."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    # ------------------------------------------------------------------
    # Shared checks
    # ------------------------------------------------------------------

    @staticmethod
    def _require_text(value: Optional[str], field: str, issues: list[ValidationIssue]) -> None:
        if value is None or not str(value).strip():
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{field.replace('_', ' ').capitalize()} is required",
            ))

    def _check_amount(
        self,
        amount: Optional[Decimal],
        field: str,
        issues: list[ValidationIssue],
    ) -> None:
        if amount is None:
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{field.replace('_', ' ').capitalize()} is required",
            ))
            return
        if Decimal(amount) <= 0:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"{field.replace('_', ' ').capitalize()} must be greater than zero",
            ))
        elif Decimal(amount) > self._settings.max_transaction_amount:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"{field.replace('_', ' ').capitalize()} ({amount:,}) exceeds the allowed maximum",
            ))

    @staticmethod
    def _check_not_future(
        when: Optional[date],
        field: str,
        issues: list[ValidationIssue],
    ) -> None:
        if when is None:
            return
        if isinstance(when, datetime):
            when = when.date()
        if when > date.today() + timedelta(days=FUTURE_DATE_TOLERANCE_DAYS):
            issues.append(ValidationIssue(
                field=field,
                issue_type="future_date",
                message=f"{field.replace('_', ' ').capitalize()} ({when}) is in the future",
                severity="warning",
            ))

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def validate_new_borrower(
        self,
        name: Optional[str],
        location: Optional[str],
        loan_date: Optional[date],
        principal: Optional[Decimal],
        interest_rate: Optional[Decimal],
        installments: Optional[int],
    ) -> ValidationResult:
        """Opening a loan: every loan term is required."""
        issues: list[ValidationIssue] = []
        self._require_text(name, "name", issues)
        self._require_text(location, "location", issues)
        if loan_date is None:
            issues.append(ValidationIssue(
                field="loan_date",
                issue_type="missing",
                message="Loan date is required",
            ))
        self._check_amount(principal, "principal", issues)
        if interest_rate is None:
            issues.append(ValidationIssue(
                field="interest_rate",
                issue_type="missing",
                message="Interest rate is required",
            ))
        elif Decimal(interest_rate) < 0:
            issues.append(ValidationIssue(
                field="interest_rate",
                issue_type="invalid_value",
                message="Interest rate cannot be negative",
            ))
        if installments is None or installments <= 0:
            issues.append(ValidationIssue(
                field="installments",
                issue_type="invalid_value" if installments is not None else "missing",
                message="Installment count must be a positive number",
            ))
        self._check_not_future(loan_date, "loan_date", issues)
        return ValidationResult(subject="add_customer", issues=issues)

    def validate_new_saver(
        self,
        name: Optional[str],
        amount: Optional[Decimal],
        opened_on: Optional[date],
    ) -> ValidationResult:
        """Opening a savings account: a name and an initial deposit."""
        issues: list[ValidationIssue] = []
        self._require_text(name, "name", issues)
        self._check_amount(amount, "amount", issues)
        if opened_on is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="Opening date is required",
            ))
        self._check_not_future(opened_on, "date", issues)
        return ValidationResult(subject="add_saver", issues=issues)

    def validate_customer_update(
        self,
        original: Customer,
        updated: Customer,
    ) -> ValidationResult:
        issues: list[ValidationIssue] = []
        if updated.id != original.id:
            issues.append(ValidationIssue(
                field="id",
                issue_type="immutable",
                message="A customer's id cannot change",
            ))
        self._require_text(updated.name, "name", issues)
        if updated.role != original.role:
            issues.append(ValidationIssue(
                field="role",
                issue_type="immutable",
                message="A customer cannot switch between borrower and saver",
            ))
        self._check_not_future(updated.loan_date, "loan_date", issues)
        return ValidationResult(subject="update_customer", issues=issues)

    def validate_new_transaction(
        self,
        customer: Optional[Customer],
        type: TransactionType,
        amount: Optional[Decimal],
        timestamp: Optional[datetime],
        ledger: Iterable[Transaction] = (),
    ) -> ValidationResult:
        """
        Recording money movement for an existing customer.

        ``ledger`` is the customer's current transactions, used for the
        savings balance check.
        """
        issues: list[ValidationIssue] = []
        if customer is None:
            issues.append(ValidationIssue(
                field="customer_id",
                issue_type="not_found",
                message="Transaction must belong to an existing customer",
            ))
        self._check_amount(amount, "amount", issues)
        self._check_not_future(timestamp, "timestamp", issues)

        if customer is not None and amount is not None and Decimal(amount) > 0:
            if customer.is_archived:
                issues.append(ValidationIssue(
                    field="customer_id",
                    issue_type="archived",
                    message=f"{customer.name} is archived",
                    severity="warning",
                ))
            if type == TransactionType.REPAYMENT and customer.principal == 0:
                issues.append(ValidationIssue(
                    field="type",
                    issue_type="suspicious_value",
                    message=f"{customer.name} has no loan to repay",
                    severity="warning",
                ))
            if type == TransactionType.WITHDRAWAL:
                balance = savings_balance_of(customer.id, ledger)
                if Decimal(amount) > balance:
                    issues.append(ValidationIssue(
                        field="amount",
                        issue_type="suspicious_value",
                        message=f"Withdrawal exceeds savings balance ({balance:,})",
                        severity="warning",
                    ))

        return ValidationResult(subject="add_transaction", issues=issues)

    def validate_transaction_edit(
        self,
        original: Transaction,
        updated: Transaction,
        customer: Optional[Customer],
    ) -> ValidationResult:
        """Edits may change anything except the id and the type."""
        issues: list[ValidationIssue] = []
        if updated.id != original.id:
            issues.append(ValidationIssue(
                field="id",
                issue_type="immutable",
                message="A transaction's id cannot change",
            ))
        if updated.type != original.type:
            issues.append(ValidationIssue(
                field="type",
                issue_type="immutable",
                message="A transaction's type cannot change after creation",
            ))
        if customer is None:
            issues.append(ValidationIssue(
                field="customer_id",
                issue_type="not_found",
                message="Transaction must belong to an existing customer",
            ))
        self._check_amount(updated.amount, "amount", issues)
        self._check_not_future(updated.timestamp, "timestamp", issues)
        return ValidationResult(subject="update_transaction", issues=issues)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """One line per issue, errors first."""
        if not result.issues:
            return "All checks passed."

        lines = []
        errors = [i for i in result.issues if i.severity == "error"]
        if errors:
            lines.append("Please fix the following:")
            lines.extend(f"  - {i.message}" for i in errors)
        if result.warnings:
            lines.append("Please verify:")
            lines.extend(f"  - {w}" for w in result.warnings)
        return "\n".join(lines)


def savings_balance_of(customer_id: str, ledger: Iterable[Transaction]) -> Decimal:
    """Deposits minus withdrawals for a customer."""
    balance = Decimal(0)
    for t in ledger:
        if t.customer_id != customer_id:
            continue
        if t.type == TransactionType.SAVINGS_DEPOSIT:
            balance += t.amount
        elif t.type == TransactionType.WITHDRAWAL:
            balance -= t.amount
    return balance


def issues_from_pydantic(error: ValidationError) -> list[ValidationIssue]:
    """Translate a pydantic ValidationError into validation issues."""
    return [
        ValidationIssue(
            field=".".join(str(part) for part in err["loc"]) or "record",
            issue_type="invalid_value",
            message=err["msg"],
        )
        for err in error.errors()
    ]


class MutationValidationError(ValueError):
    """A mutation request failed validation; nothing was written."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(i.message for i in result.issues if i.severity == "error")
        super().__init__(f"{result.subject} rejected: {messages}")

    @property
    def issues(self) -> list[ValidationIssue]:
        return self.result.issues
