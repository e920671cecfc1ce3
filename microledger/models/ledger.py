"""
Core Ledger Models for Microledger

These models define the strict schemas for the two domain records
the lending operation tracks:
1. Customer - a borrower or a saver
2. Transaction - one money movement linked to exactly one customer

In memory and in the local cache records use camelCase keys
(``loanDate``, ``customerId``); the remote store speaks snake_case.
The translation lives in ``microledger.models.wire`` and nowhere else.

DESIGN DECISION: Amounts are Decimal, not float. The ledger works in
whole currency units but interest math must not drift.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class CustomerStatus(str, Enum):
    """
    Customer lifecycle status.

    ACTIVE and PAID_OFF are derived from the repayment ledger.
    ARCHIVED is only ever set by an explicit archive toggle and is
    never overwritten by recalculation.
    """
    ACTIVE = "active"
    PAID_OFF = "paid-off"
    ARCHIVED = "archived"


class CustomerRole(str, Enum):
    """Borrowers carry a loan, savers only hold a savings balance."""
    BORROWER = "borrower"
    SAVER = "saver"


class TransactionType(str, Enum):
    """
    Kinds of money movement.

    The type of a transaction is fixed at creation.
    """
    LOAN_DISBURSEMENT = "loan-disbursement"
    SAVINGS_DEPOSIT = "savings-deposit"
    REPAYMENT = "repayment"
    WITHDRAWAL = "withdrawal"


class PaymentMethod(str, Enum):
    """How the money changed hands."""
    CASH = "cash"
    TRANSFER = "transfer"


_RECORD_CONFIG = ConfigDict(
    str_strip_whitespace=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


# =============================================================================
# CORE LEDGER RECORDS
# =============================================================================

class Customer(BaseModel):
    """
    A borrower or a saver.

    Interest is simple and applied once over the loan's life:
    total due = principal * (1 + interest_rate / 100).
    """
    model_config = _RECORD_CONFIG

    id: str = Field(
        ...,
        min_length=1,
        description="Identifier, stable across devices"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Customer name"
    )
    phone: Optional[str] = Field(
        default=None,
        max_length=50,
    )
    location: str = Field(
        default="",
        max_length=100,
        description="Free-form location tag used to group customers"
    )
    loan_date: Optional[date] = Field(
        default=None,
        description="Date the loan was disbursed (borrowers only)"
    )
    principal: Decimal = Field(
        default=Decimal(0),
        ge=0,
        description="Original loan amount, zero for savers"
    )
    interest_rate: Decimal = Field(
        default=Decimal(0),
        ge=0,
        description="Simple interest in percent over the loan's life"
    )
    installments: int = Field(
        default=0,
        ge=0,
        description="Number of expected payment events"
    )
    status: CustomerStatus = Field(
        default=CustomerStatus.ACTIVE,
    )
    role: CustomerRole = Field(
        default=CustomerRole.BORROWER,
    )

    @field_validator('phone')
    @classmethod
    def empty_phone_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @model_validator(mode='after')
    def validate_saver_has_no_principal(self) -> 'Customer':
        """A saver never carries a loan."""
        if self.role == CustomerRole.SAVER and self.principal != 0:
            raise ValueError("A saver's loan principal must be zero")
        return self

    @property
    def total_due(self) -> Decimal:
        """Principal plus simple interest."""
        return self.principal * (1 + self.interest_rate / Decimal(100))

    @property
    def is_archived(self) -> bool:
        return self.status == CustomerStatus.ARCHIVED


class Transaction(BaseModel):
    """
    A single financial event linked to one customer.

    The ``edited`` flag is set only when a transaction is modified
    after creation. Creation never sets it.
    """
    model_config = _RECORD_CONFIG

    id: str = Field(
        ...,
        min_length=1,
    )
    customer_id: str = Field(
        ...,
        min_length=1,
        description="Owning customer (reference, not ownership)"
    )
    type: TransactionType
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount in whole currency units"
    )
    timestamp: datetime = Field(
        ...,
        description="When the money moved"
    )
    description: str = Field(
        default="",
        max_length=500,
    )
    payment_method: PaymentMethod = Field(
        default=PaymentMethod.CASH,
    )
    edited: bool = Field(
        default=False,
        description="True once the transaction has been modified"
    )

    @property
    def is_repayment(self) -> bool:
        return self.type == TransactionType.REPAYMENT


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found in a mutation request."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'immutable')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of validating one mutation request.

    Errors block the mutation; warnings are reported and let it through.
    """

    subject: str = Field(
        ...,
        description="What was validated (e.g. 'add_customer')"
    )
    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]
