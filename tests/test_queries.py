"""Tests for the monthly dashboard summary."""

from datetime import date

import pytest
import pytest_asyncio

from family_ledger.models import PaymentMethod, TransactionKind
from family_ledger.queries import QueryExecutionError, QueryExecutor
from family_ledger.services.storage import InMemoryStorage, StorageError
from conftest import make_transaction


@pytest_asyncio.fixture
async def seeded(store):
    rows = [
        make_transaction(amount=30_000, category="식비 - 외식", entry_date=date(2025, 3, 2),
                         payment_method=PaymentMethod.CARD),
        make_transaction(amount=20_000, category="식비 - 식료품", entry_date=date(2025, 3, 2),
                         user_name="지영"),
        make_transaction(amount=500_000, category="주거비 - 월세/관리비", entry_date=date(2025, 3, 5),
                         payment_method=PaymentMethod.TRANSFER, memo="[정기] 월세"),
        make_transaction(kind=TransactionKind.INCOME, amount=3_000_000,
                         category="급여 - 정규급여", entry_date=date(2025, 3, 25)),
        # Other month and other family stay out of the summary
        make_transaction(amount=99_000, entry_date=date(2025, 4, 1)),
        make_transaction(amount=77_000, family_code="park77", entry_date=date(2025, 3, 3)),
    ]
    for row in rows:
        await store.save_transaction(row)
    return store


class FailingStore(InMemoryStorage):
    async def list_transactions(self, kind, **kwargs):
        raise StorageError("sheet unavailable")


class TestMonthlySummary:

    @pytest.mark.asyncio
    async def test_totals(self, seeded):
        summary = await QueryExecutor(seeded).monthly_summary(["kim2024"], 2025, 3)

        assert summary.total_spending == 550_000
        assert summary.total_income == 3_000_000
        assert summary.balance == 2_450_000
        assert summary.spending_count == 3
        assert summary.income_count == 1
        assert summary.date_to == date(2025, 3, 31)

    @pytest.mark.asyncio
    async def test_breakdowns_rank_largest_first(self, seeded):
        summary = await QueryExecutor(seeded).monthly_summary(["kim2024"], 2025, 3)

        assert list(summary.spending_by_group) == ["주거비", "식비"]
        assert summary.spending_by_group["식비"] == 50_000
        assert summary.spending_by_user == {"민수": 530_000, "지영": 20_000}
        assert summary.spending_by_payment_method == {
            "transfer": 500_000,
            "card": 30_000,
            "unknown": 20_000,
        }
        assert summary.income_by_category == {"급여 - 정규급여": 3_000_000}

    @pytest.mark.asyncio
    async def test_daily_spending_in_date_order(self, seeded):
        summary = await QueryExecutor(seeded).monthly_summary(["kim2024"], 2025, 3)
        assert summary.daily_spending == {"2025-03-02": 50_000, "2025-03-05": 500_000}

    @pytest.mark.asyncio
    async def test_several_families(self, seeded):
        summary = await QueryExecutor(seeded).monthly_summary(["kim2024", "park77"], 2025, 3)
        assert summary.total_spending == 627_000

    @pytest.mark.asyncio
    async def test_empty_month_is_zeros(self, store):
        summary = await QueryExecutor(store).monthly_summary(["kim2024"], 2025, 2)
        assert summary.total_spending == 0
        assert summary.spending_by_category == {}

    @pytest.mark.asyncio
    async def test_requires_a_family(self, store):
        with pytest.raises(QueryExecutionError):
            await QueryExecutor(store).monthly_summary([], 2025, 3)

    @pytest.mark.asyncio
    async def test_storage_failure(self):
        with pytest.raises(QueryExecutionError):
            await QueryExecutor(FailingStore()).monthly_summary(["kim2024"], 2025, 3)


class TestRecentTransactions:

    @pytest.mark.asyncio
    async def test_merges_kinds_newest_first(self, seeded):
        recent = await QueryExecutor(seeded).recent_transactions(["kim2024"], limit=3)
        assert [t.entry_date for t in recent] == [
            date(2025, 4, 1), date(2025, 3, 25), date(2025, 3, 5),
        ]
        assert recent[1].kind == TransactionKind.INCOME
