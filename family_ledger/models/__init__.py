"""
Data Models Package

This package contains all Pydantic models used in the Family Ledger system.
All data flowing through the system must conform to these schemas.
"""

from family_ledger.models.categories import (
    Category,
    CategoryGroup,
    IncomeCategory,
    SpendingCategory,
    TransactionKind,
    categories_for,
    category_for,
    group_of,
    groups_for,
)
from family_ledger.models.ledger import (
    FAMILY_CODE_PATTERN,
    MAX_AMOUNT,
    Family,
    LedgerSummary,
    PaymentMethod,
    ProcessResult,
    RecurringRule,
    RecurringRuleCreate,
    RecurringRuleView,
    Transaction,
    TransactionCreate,
    ValidationIssue,
    ValidationResult,
)
from family_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Categories
    "Category",
    "CategoryGroup",
    "IncomeCategory",
    "SpendingCategory",
    "TransactionKind",
    "categories_for",
    "category_for",
    "group_of",
    "groups_for",
    # Ledger models
    "FAMILY_CODE_PATTERN",
    "MAX_AMOUNT",
    "Family",
    "LedgerSummary",
    "PaymentMethod",
    "ProcessResult",
    "RecurringRule",
    "RecurringRuleCreate",
    "RecurringRuleView",
    "Transaction",
    "TransactionCreate",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
