"""
Tests for the recurring materializer.

The key property: however often process_due runs in a month, each active
rule posts exactly one transaction for that month.
"""

from datetime import date

import pytest

from family_ledger.audit import AuditLogger
from family_ledger.models import AuditEventType, PaymentMethod, TransactionKind
from family_ledger.recurring import RecurringMaterializer, RecurringProcessingError
from family_ledger.services.storage import InMemoryStorage, StorageError
from conftest import make_rule


def make_materializer(store, settings):
    return RecurringMaterializer(
        rule_storage=store,
        transaction_storage=store,
        family_storage=store,
        audit_logger=AuditLogger(store),
        settings=settings,
    )


class FlakyTransactionStore(InMemoryStorage):
    """Fails the first N transaction writes for the given family."""

    def __init__(self, failures: int = 1, family_code: str = "kim2024"):
        super().__init__()
        self.failures = failures
        self.family_code = family_code

    async def save_transaction(self, transaction):
        if transaction.family_code == self.family_code and self.failures > 0:
            self.failures -= 1
            raise StorageError("sheet unavailable")
        return await super().save_transaction(transaction)


class ContendedStore(InMemoryStorage):
    """Another worker always wins the claim."""

    async def mark_rule_processed(self, rule_id, processed_on):
        return False


class BrokenRuleStore(InMemoryStorage):
    async def list_rules(self, family_code=None, active_only=True):
        raise StorageError("connection refused")


class TestProcessDue:

    @pytest.mark.asyncio
    async def test_posts_due_rule_once(self, store, app_settings):
        """Rule on day 5, run on the 5th: one transaction, then nothing."""
        rule = await store.save_rule(make_rule(day_of_month=5, memo="월세"))
        materializer = make_materializer(store, app_settings)

        first = await materializer.process_due(date(2025, 3, 5))
        assert first.processed == 1
        assert first.processed_rule_ids == [rule.id]

        transactions = await store.list_transactions(TransactionKind.SPENDING)
        assert len(transactions) == 1
        posted = transactions[0]
        assert posted.amount == 50_000
        assert posted.entry_date == date(2025, 3, 5)
        assert posted.memo == "[정기] 월세"
        assert posted.is_recurring
        assert posted.recurring_id == rule.id

        stored_rule = await store.get_rule_by_id(rule.id)
        assert stored_rule.last_processed == date(2025, 3, 5)

        second = await materializer.process_due(date(2025, 3, 5))
        third = await materializer.process_due(date(2025, 3, 28))
        assert second.processed == third.processed == 0
        assert second.skipped == 1
        assert len(await store.list_transactions(TransactionKind.SPENDING)) == 1

    @pytest.mark.asyncio
    async def test_posts_again_next_month(self, store, app_settings):
        await store.save_rule(make_rule(day_of_month=5))
        materializer = make_materializer(store, app_settings)

        await materializer.process_due(date(2025, 3, 5))
        result = await materializer.process_due(date(2025, 4, 6))

        assert result.processed == 1
        dates = sorted(t.entry_date for t in await store.list_transactions(TransactionKind.SPENDING))
        assert dates == [date(2025, 3, 5), date(2025, 4, 6)]

    @pytest.mark.asyncio
    async def test_not_due_rule_is_skipped(self, store, app_settings):
        await store.save_rule(make_rule(day_of_month=20))
        result = await make_materializer(store, app_settings).process_due(date(2025, 3, 5))

        assert result.processed == 0
        assert result.skipped == 1
        assert await store.list_transactions(TransactionKind.SPENDING) == []

    @pytest.mark.asyncio
    async def test_inactive_rule_is_ignored(self, store, app_settings):
        active = await store.save_rule(make_rule(day_of_month=1))
        await store.save_rule(make_rule(day_of_month=1, is_active=False))

        result = await make_materializer(store, app_settings).process_due(date(2025, 3, 5))

        assert result.processed_rule_ids == [active.id]
        assert len(await store.list_transactions(TransactionKind.SPENDING)) == 1

    @pytest.mark.asyncio
    async def test_creates_missing_family(self, store, app_settings):
        await store.save_rule(make_rule(family_code="park77", user_name="지영"))
        await make_materializer(store, app_settings).process_due(date(2025, 3, 5))

        family = await store.get_family("park77")
        assert family is not None
        assert family.users == ["지영"]

    @pytest.mark.asyncio
    async def test_run_is_audited_under_one_correlation_id(self, store, app_settings):
        await store.save_rule(make_rule())
        await make_materializer(store, app_settings).process_due(date(2025, 3, 5))

        started = [
            e for e in await store.get_recent_events()
            if e.event_type == AuditEventType.RECURRING_RUN_STARTED
        ]
        assert len(started) == 1
        run_events = await store.get_events_by_correlation_id(started[0].correlation_id)
        types = [e.event_type for e in run_events]
        assert AuditEventType.RECURRING_RULE_MATERIALIZED in types
        assert AuditEventType.RECURRING_RUN_COMPLETED in types


class TestBuildTransaction:

    def test_memo_without_rule_memo(self, app_settings):
        materializer = make_materializer(InMemoryStorage(), app_settings)
        transaction = materializer.build_transaction(make_rule(memo=None), date(2025, 3, 5))
        assert transaction.memo == "[정기]"

    def test_spending_defaults_to_card(self, app_settings):
        materializer = make_materializer(InMemoryStorage(), app_settings)
        transaction = materializer.build_transaction(make_rule(), date(2025, 3, 5))
        assert transaction.payment_method == PaymentMethod.CARD

    def test_rule_payment_method_wins(self, app_settings):
        materializer = make_materializer(InMemoryStorage(), app_settings)
        rule = make_rule(payment_method=PaymentMethod.TRANSFER)
        assert materializer.build_transaction(rule, date(2025, 3, 5)).payment_method == PaymentMethod.TRANSFER

    def test_income_has_no_default_payment_method(self, app_settings):
        materializer = make_materializer(InMemoryStorage(), app_settings)
        rule = make_rule(kind=TransactionKind.INCOME, category="급여 - 정규급여")
        transaction = materializer.build_transaction(rule, date(2025, 3, 25))
        assert transaction.kind == TransactionKind.INCOME
        assert transaction.payment_method is None

    def test_memo_is_truncated(self, app_settings):
        materializer = make_materializer(InMemoryStorage(), app_settings)
        transaction = materializer.build_transaction(make_rule(memo="가" * 200), date(2025, 3, 5))
        assert len(transaction.memo) == app_settings.max_memo_length


class TestFailureHandling:

    @pytest.mark.asyncio
    async def test_failed_write_releases_claim(self, app_settings):
        """A failed post leaves the month unclaimed so the next run retries."""
        store = FlakyTransactionStore(failures=1)
        rule = await store.save_rule(make_rule())
        materializer = make_materializer(store, app_settings)

        result = await materializer.process_due(date(2025, 3, 5))
        assert result.failed == 1
        assert result.failed_rule_ids == [rule.id]
        assert (await store.get_rule_by_id(rule.id)).last_processed is None

        retry = await materializer.process_due(date(2025, 3, 6))
        assert retry.processed == 1
        assert len(await store.list_transactions(TransactionKind.SPENDING)) == 1

    @pytest.mark.asyncio
    async def test_failed_write_restores_previous_month(self, app_settings):
        store = FlakyTransactionStore(failures=1)
        rule = await store.save_rule(make_rule(last_processed=date(2025, 2, 5)))

        await make_materializer(store, app_settings).process_due(date(2025, 3, 5))

        assert (await store.get_rule_by_id(rule.id)).last_processed == date(2025, 2, 5)

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_other_rules(self, app_settings):
        store = FlakyTransactionStore(failures=1, family_code="kim2024")
        await store.save_rule(make_rule(family_code="kim2024"))
        await store.save_rule(make_rule(family_code="park77"))

        result = await make_materializer(store, app_settings).process_due(date(2025, 3, 5))

        assert result.processed == 1
        assert result.failed == 1
        assert result.has_failures

    @pytest.mark.asyncio
    async def test_lost_claim_posts_nothing(self, app_settings):
        store = ContendedStore()
        await store.save_rule(make_rule())

        result = await make_materializer(store, app_settings).process_due(date(2025, 3, 5))

        assert result.processed == 0
        assert result.skipped == 1
        assert await store.list_transactions(TransactionKind.SPENDING) == []

    @pytest.mark.asyncio
    async def test_listing_failure_raises(self, app_settings):
        store = BrokenRuleStore()
        with pytest.raises(RecurringProcessingError):
            await make_materializer(store, app_settings).process_due(date(2025, 3, 5))

        failures = [
            e for e in await store.get_recent_events()
            if e.event_type == AuditEventType.RECURRING_RUN_FAILED
        ]
        assert len(failures) == 1


class TestShortMonths:

    @pytest.mark.asyncio
    async def test_skip_policy(self, store, app_settings):
        await store.save_rule(make_rule(day_of_month=31))
        result = await make_materializer(store, app_settings).process_due(date(2025, 4, 30))
        assert result.processed == 0

    @pytest.mark.asyncio
    async def test_last_day_policy(self, store, app_settings):
        settings = app_settings.model_copy(update={"short_month_policy": "last_day"})
        await store.save_rule(make_rule(day_of_month=31))
        result = await make_materializer(store, settings).process_due(date(2025, 4, 30))
        assert result.processed == 1
