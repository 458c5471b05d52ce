"""Calendar helpers shared by storage, scheduling and reporting."""

import calendar
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo


def today_in(timezone: str) -> date:
    """Current calendar date in the given IANA timezone."""
    return datetime.now(ZoneInfo(timezone)).date()


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last date of a month."""
    return date(year, month, 1), date(year, month, last_day_of_month(year, month))


def same_month(a: Optional[date], b: date) -> bool:
    return a is not None and (a.year, a.month) == (b.year, b.month)


def next_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def parse_month(value: str) -> tuple[int, int]:
    """
    Parse 'YYYY-MM'.

    Raises:
        ValueError: If the value is not a valid month
    """
    try:
        parsed = datetime.strptime(value.strip(), "%Y-%m")
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid month (expected YYYY-MM): {value!r}") from None
    return parsed.year, parsed.month
