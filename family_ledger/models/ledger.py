"""
Core Data Models for Family Ledger

These models define the schemas for everything the ledger stores or
returns: families, transactions, recurring rules and the request payloads
that create them.

DESIGN DECISION: Wire names are camelCase (familyCode, dayOfMonth), Python
attributes are snake_case. Every model accepts both, and API responses are
produced with model_dump(by_alias=True, mode="json").
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from family_ledger.models.categories import (
    CategoryGroup,
    TransactionKind,
    category_for,
    group_of,
)


FAMILY_CODE_PATTERN = r"^[0-9A-Za-z]{3,20}$"
MAX_AMOUNT = 100_000_000


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class PaymentMethod(str, Enum):
    """How a spending was paid."""
    CARD = "card"
    CASH = "cash"
    TRANSFER = "transfer"

    @property
    def label(self) -> str:
        return _PAYMENT_METHOD_LABELS[self]


_PAYMENT_METHOD_LABELS = {
    PaymentMethod.CARD: "카드",
    PaymentMethod.CASH: "현금",
    PaymentMethod.TRANSFER: "이체",
}


class LedgerModel(BaseModel):
    """Base model: camelCase aliases, whitespace stripped."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    @field_validator('memo', mode='before', check_fields=False)
    @classmethod
    def blank_memo_to_none(cls, v):
        """An empty memo is no memo."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


def _normalize_category(kind: TransactionKind, label: str) -> str:
    return category_for(kind, label).value


# =============================================================================
# FAMILY
# =============================================================================

class Family(LedgerModel):
    """
    The sharing unit (household).

    Identified by a user-chosen code; members are display names in the
    order they joined.
    """

    code: str = Field(
        ...,
        pattern=FAMILY_CODE_PATTERN,
        description="Family code shared by all members"
    )
    users: list[str] = Field(
        default_factory=list,
        description="Member display names in join order"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the family was created"
    )

    @field_validator('users')
    @classmethod
    def drop_empty_members(cls, v: list[str]) -> list[str]:
        """Empty member slots are not members."""
        return [name.strip() for name in v if name and name.strip()]

    def has_member(self, user_name: str) -> bool:
        return user_name.strip() in self.users


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(LedgerModel):
    """
    A single spending or income record.

    Created by a user or by the recurring materializer. Never updated
    in place; corrections are delete + re-create.
    """

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    kind: TransactionKind = Field(
        default=TransactionKind.SPENDING,
        description="Spending or income"
    )

    # Required fields
    amount: int = Field(
        ...,
        gt=0,
        le=MAX_AMOUNT,
        description="Amount in won"
    )
    category: str = Field(
        ...,
        description="Category label from the catalog of this kind"
    )
    user_name: str = Field(
        ...,
        min_length=1,
        max_length=20,
        description="Member who recorded the transaction"
    )
    family_code: str = Field(
        ...,
        pattern=FAMILY_CODE_PATTERN,
        description="Owning family"
    )

    # Dates (serialized as "date")
    entry_date: date = Field(
        default_factory=date.today,
        alias="date",
        description="Calendar date the transaction is attributed to"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the record was written"
    )

    # Optional
    memo: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Free-text note"
    )
    payment_method: Optional[PaymentMethod] = None

    # Recurring traceability
    is_recurring: bool = Field(
        default=False,
        description="Was this posted by the recurring materializer?"
    )
    recurring_id: Optional[UUID] = Field(
        default=None,
        description="Recurring rule this transaction was materialized from"
    )

    @model_validator(mode='after')
    def validate_category(self) -> 'Transaction':
        """Category must come from the catalog matching the kind."""
        self.category = _normalize_category(self.kind, self.category)
        if self.recurring_id is not None and not self.is_recurring:
            raise ValueError("recurring_id is only allowed on recurring transactions")
        return self

    @property
    def category_group(self) -> CategoryGroup:
        return group_of(self.kind, self.category)


class TransactionCreate(LedgerModel):
    """
    Payload for recording a one-time transaction.

    The kind is not part of the payload; it comes from the endpoint
    (spending or income) the payload was posted to.
    """

    amount: int = Field(..., gt=0, le=MAX_AMOUNT)
    category: str = Field(..., min_length=1)
    user_name: str = Field(..., min_length=1, max_length=20)
    family_code: str = Field(..., pattern=FAMILY_CODE_PATTERN)
    memo: Optional[str] = Field(default=None, max_length=200)
    entry_date: Optional[date] = Field(
        default=None,
        alias="date",
        description="Defaults to today when omitted"
    )
    payment_method: Optional[PaymentMethod] = None


# =============================================================================
# RECURRING RULES
# =============================================================================

class RecurringRule(LedgerModel):
    """
    A template for a transaction posted once per calendar month.

    `last_processed` is the date of the most recent materialization and is
    the only field the materializer ever changes. Deleting a rule means
    deactivating it.
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique rule ID"
    )
    kind: TransactionKind = Field(
        default=TransactionKind.SPENDING,
        description="Which store materialized transactions go to"
    )
    amount: int = Field(..., gt=0, le=MAX_AMOUNT)
    category: str = Field(...)
    memo: Optional[str] = Field(default=None, max_length=200)
    user_name: str = Field(..., min_length=1, max_length=20)
    family_code: str = Field(..., pattern=FAMILY_CODE_PATTERN)
    day_of_month: int = Field(
        ...,
        ge=1,
        le=31,
        description="Calendar day each month on which the rule becomes due"
    )
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_processed: Optional[date] = Field(
        default=None,
        description="Date of the most recent successful materialization"
    )
    payment_method: Optional[PaymentMethod] = None

    @model_validator(mode='after')
    def validate_category(self) -> 'RecurringRule':
        self.category = _normalize_category(self.kind, self.category)
        return self

    @property
    def category_group(self) -> CategoryGroup:
        return group_of(self.kind, self.category)


class RecurringRuleCreate(LedgerModel):
    """Payload for creating a recurring rule."""

    amount: int = Field(..., gt=0, le=MAX_AMOUNT)
    category: str = Field(..., min_length=1)
    user_name: str = Field(..., min_length=1, max_length=20)
    family_code: str = Field(..., pattern=FAMILY_CODE_PATTERN)
    day_of_month: int = Field(..., ge=1, le=31)
    memo: Optional[str] = Field(default=None, max_length=200)
    payment_method: Optional[PaymentMethod] = None
    kind: TransactionKind = TransactionKind.SPENDING


class RecurringRuleView(RecurringRule):
    """A rule as returned to clients, with its next posting date."""

    next_due_date: Optional[date] = None


# =============================================================================
# PROCESSING RESULT
# =============================================================================

class ProcessResult(LedgerModel):
    """
    Outcome of one recurring materialization run.

    `processed` counts rules that produced a transaction in this run.
    """

    run_date: date
    processed: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    processed_rule_ids: list[UUID] = Field(default_factory=list)
    failed_rule_ids: list[UUID] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return self.failed > 0


# =============================================================================
# DASHBOARD SUMMARY
# =============================================================================

class LedgerSummary(LedgerModel):
    """
    Aggregated view of one month for one or more families.

    All amounts are in won. Breakdown dicts are keyed by label and
    ordered from largest to smallest.
    """

    family_codes: list[str]
    year: int
    month: int = Field(..., ge=1, le=12)
    date_from: date
    date_to: date

    total_spending: int = 0
    total_income: int = 0
    spending_count: int = 0
    income_count: int = 0
    recurring_spending: int = Field(
        default=0,
        description="Part of total_spending posted by recurring rules"
    )

    spending_by_group: dict[str, int] = Field(default_factory=dict)
    spending_by_category: dict[str, int] = Field(default_factory=dict)
    spending_by_user: dict[str, int] = Field(default_factory=dict)
    spending_by_payment_method: dict[str, int] = Field(default_factory=dict)
    income_by_group: dict[str, int] = Field(default_factory=dict)
    income_by_category: dict[str, int] = Field(default_factory=dict)
    daily_spending: dict[str, int] = Field(
        default_factory=dict,
        description="ISO date -> total spent that day"
    )

    @property
    def balance(self) -> int:
        return self.total_income - self.total_spending

    @property
    def month_label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


# =============================================================================
# VALIDATION RESULTS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'future_date')"
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
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of validating one entry (transaction, rule or member).

    Errors block the write; warnings are reported but allowed.
    """

    entity_type: str
    validated_at: datetime = Field(default_factory=datetime.utcnow)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_details(self) -> list[dict]:
        """Issues as camelCase dicts, for API error bodies and audit events."""
        return [
            issue.model_dump(by_alias=True, exclude_none=True)
            for issue in self.issues
        ]
