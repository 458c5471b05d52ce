"""Recurring transactions: due-date rules, the materializer and its scheduler."""

from family_ledger.recurring.materializer import (
    RecurringMaterializer,
    RecurringProcessingError,
)
from family_ledger.recurring.schedule import (
    ShortMonthPolicy,
    is_due,
    next_due_date,
    scheduled_day,
)
from family_ledger.recurring.scheduler import RecurringScheduler

__all__ = [
    "RecurringMaterializer",
    "RecurringProcessingError",
    "RecurringScheduler",
    "ShortMonthPolicy",
    "is_due",
    "next_due_date",
    "scheduled_day",
]
