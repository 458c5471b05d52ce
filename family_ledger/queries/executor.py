"""
Dashboard Query Execution

DESIGN DECISION: Aggregation is DETERMINISTIC and happens in Python over
the rows the transaction store returns. Stores only filter (family,
date range); they never aggregate. That keeps the three backends
trivially consistent: the same rows always give the same dashboard.
"""

from collections import defaultdict
from datetime import date
from typing import Iterable, Optional

import structlog

from family_ledger.models.categories import TransactionKind
from family_ledger.models.ledger import LedgerSummary, Transaction
from family_ledger.services.storage import StorageError, TransactionStorageInterface
from family_ledger.utils.dates import month_bounds


logger = structlog.get_logger(__name__)

# Upper bound on rows read for one month of one or more families
MONTH_ROW_LIMIT = 10_000


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


def _ranked(totals: dict[str, int]) -> dict[str, int]:
    """Largest first; ties keep label order."""
    return dict(sorted(totals.items(), key=lambda item: (-item[1], item[0])))


def _sum_by(transactions: Iterable[Transaction], key) -> dict[str, int]:
    totals: dict[str, int] = defaultdict(int)
    for transaction in transactions:
        totals[key(transaction)] += transaction.amount
    return _ranked(totals)


class QueryExecutor:
    """
    Builds dashboard views from the transaction store.

    GUARANTEES:
    - Only returns real data from storage
    - Never invents or estimates
    - An empty month is a summary of zeros, not an error
    """

    def __init__(self, storage: TransactionStorageInterface):
        self._storage = storage

    async def _month_rows(
        self,
        kind: TransactionKind,
        family_codes: list[str],
        date_from: date,
        date_to: date,
    ) -> list[Transaction]:
        return await self._storage.list_transactions(
            kind,
            family_codes=family_codes,
            date_from=date_from,
            date_to=date_to,
            limit=MONTH_ROW_LIMIT,
        )

    async def monthly_summary(
        self,
        family_codes: list[str],
        year: int,
        month: int,
    ) -> LedgerSummary:
        """
        Aggregate one calendar month for the given families.

        Args:
            family_codes: Families to include (at least one)
            year: Calendar year
            month: Calendar month (1-12)

        Returns:
            LedgerSummary with totals and breakdowns

        Raises:
            QueryExecutionError: If no family is given or storage fails
        """
        if not family_codes:
            raise QueryExecutionError("At least one family code is required")

        date_from, date_to = month_bounds(year, month)

        try:
            spending = await self._month_rows(
                TransactionKind.SPENDING, family_codes, date_from, date_to
            )
            income = await self._month_rows(
                TransactionKind.INCOME, family_codes, date_from, date_to
            )
        except StorageError as e:
            logger.error(
                "summary_query_failed",
                family_codes=family_codes,
                month=f"{year:04d}-{month:02d}",
                error=str(e),
            )
            raise QueryExecutionError(f"Failed to load transactions: {e}") from e

        summary = LedgerSummary(
            family_codes=family_codes,
            year=year,
            month=month,
            date_from=date_from,
            date_to=date_to,
            total_spending=sum(t.amount for t in spending),
            total_income=sum(t.amount for t in income),
            spending_count=len(spending),
            income_count=len(income),
            recurring_spending=sum(t.amount for t in spending if t.is_recurring),
            spending_by_group=_sum_by(spending, lambda t: t.category_group.value),
            spending_by_category=_sum_by(spending, lambda t: t.category),
            spending_by_user=_sum_by(spending, lambda t: t.user_name),
            spending_by_payment_method=_sum_by(
                spending,
                lambda t: t.payment_method.value if t.payment_method else "unknown",
            ),
            income_by_group=_sum_by(income, lambda t: t.category_group.value),
            income_by_category=_sum_by(income, lambda t: t.category),
            daily_spending=dict(sorted(
                _sum_by(spending, lambda t: t.entry_date.isoformat()).items()
            )),
        )

        logger.info(
            "summary_built",
            family_codes=family_codes,
            month=summary.month_label,
            spending_count=summary.spending_count,
            income_count=summary.income_count,
        )
        return summary

    async def recent_transactions(
        self,
        family_codes: list[str],
        limit: int = 10,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Transaction]:
        """
        Newest spending and income rows merged into one list.

        Raises:
            QueryExecutionError: If storage fails
        """
        try:
            rows = []
            for kind in TransactionKind:
                rows += await self._storage.list_transactions(
                    kind,
                    family_codes=family_codes,
                    date_from=date_from,
                    date_to=date_to,
                    limit=limit,
                )
        except StorageError as e:
            raise QueryExecutionError(f"Failed to load transactions: {e}") from e

        rows.sort(key=lambda t: (t.entry_date, t.created_at), reverse=True)
        return rows[:limit]
