"""
When is a recurring rule due?

A rule fires at most once per calendar month, on or after its scheduled
day. Months shorter than the rule's day_of_month follow a policy:

- skip: the rule does not fire that month (day 31 never fires in April)
- last_day: the rule fires on the month's last day instead
"""

from datetime import date
from enum import Enum
from typing import Optional

from family_ledger.models.ledger import RecurringRule
from family_ledger.utils.dates import last_day_of_month, next_month, same_month


class ShortMonthPolicy(str, Enum):
    SKIP = "skip"
    LAST_DAY = "last_day"


def scheduled_day(
    day_of_month: int,
    year: int,
    month: int,
    policy: ShortMonthPolicy = ShortMonthPolicy.SKIP,
) -> Optional[int]:
    """
    Day on which a rule with this day_of_month fires in the given month.

    Returns:
        The day, or None if the rule does not fire that month
    """
    last_day = last_day_of_month(year, month)
    if day_of_month <= last_day:
        return day_of_month
    if ShortMonthPolicy(policy) == ShortMonthPolicy.LAST_DAY:
        return last_day
    return None


def is_due(
    rule: RecurringRule,
    today: date,
    policy: ShortMonthPolicy = ShortMonthPolicy.SKIP,
) -> bool:
    """
    Should the rule post a transaction today?

    Due when the rule is active, this month's scheduled day exists and has
    been reached, and the rule has not already posted this month.
    """
    if not rule.is_active:
        return False

    day = scheduled_day(rule.day_of_month, today.year, today.month, policy)
    if day is None or today.day < day:
        return False

    return not same_month(rule.last_processed, today)


def next_due_date(
    rule: RecurringRule,
    today: date,
    policy: ShortMonthPolicy = ShortMonthPolicy.SKIP,
) -> Optional[date]:
    """
    Next date on which the rule will post.

    A rule that is due right now (scheduled day passed, not yet posted
    this month) returns today. Inactive rules return None.
    """
    if not rule.is_active:
        return None

    if is_due(rule, today, policy):
        return today

    year, month = today.year, today.month
    day = scheduled_day(rule.day_of_month, year, month, policy)
    if day is not None and today.day < day and not same_month(rule.last_processed, today):
        return date(year, month, day)

    # A day-31 rule under "skip" can need a few months; a year always has one
    for _ in range(12):
        year, month = next_month(year, month)
        day = scheduled_day(rule.day_of_month, year, month, policy)
        if day is not None:
            return date(year, month, day)

    return None
