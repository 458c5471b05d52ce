"""Shared utilities."""

from family_ledger.utils.dates import (
    last_day_of_month,
    month_bounds,
    next_month,
    parse_month,
    same_month,
    today_in,
)

__all__ = [
    "last_day_of_month",
    "month_bounds",
    "next_month",
    "parse_month",
    "same_month",
    "today_in",
]
