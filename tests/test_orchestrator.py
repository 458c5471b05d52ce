"""Tests for the family, ledger and recurring flows."""

from datetime import date
from uuid import uuid4

import pytest

from family_ledger.config import DatabaseSettings
from family_ledger.models import (
    AuditEventType,
    RecurringRuleCreate,
    TransactionCreate,
    TransactionKind,
)
from family_ledger.orchestrator import (
    EntryNotFoundError,
    FamilyFullError,
    StorageBundle,
    create_app_components,
    create_storage,
)
from family_ledger.services.storage import InMemoryStorage, SqlFamilyStorage, StorageError
from family_ledger.validation import EntryValidationError


def spending_payload(**overrides) -> TransactionCreate:
    fields = dict(
        amount=12_000,
        category="식비 - 외식",
        user_name="민수",
        family_code="kim2024",
    )
    fields.update(overrides)
    return TransactionCreate(**fields)


def rule_payload(**overrides) -> RecurringRuleCreate:
    fields = dict(
        amount=17_000,
        category="문화생활 - 취미",
        memo="넷플릭스",
        user_name="민수",
        family_code="kim2024",
        day_of_month=15,
    )
    fields.update(overrides)
    return RecurringRuleCreate(**fields)


async def event_types(store) -> list[AuditEventType]:
    return [e.event_type for e in await store.get_recent_events()]


class TestFamilyFlow:

    @pytest.mark.asyncio
    async def test_first_join_creates_family(self, components, store):
        family = await components.family_flow.join("kim2024", "민수")
        assert family.users == ["민수"]
        assert AuditEventType.FAMILY_CREATED in await event_types(store)

    @pytest.mark.asyncio
    async def test_second_member_joins(self, components, store):
        await components.family_flow.join("kim2024", "민수")
        family = await components.family_flow.join("kim2024", " 지영 ")

        assert family.users == ["민수", "지영"]
        assert (await store.get_family("kim2024")).users == ["민수", "지영"]

    @pytest.mark.asyncio
    async def test_rejoin_is_a_no_op(self, components, store):
        await components.family_flow.join("kim2024", "민수")
        family = await components.family_flow.join("kim2024", "민수")
        assert family.users == ["민수"]

    @pytest.mark.asyncio
    async def test_full_family_rejects_newcomer(self, components, store):
        await components.family_flow.join("kim2024", "민수")
        await components.family_flow.join("kim2024", "지영")

        with pytest.raises(FamilyFullError) as exc_info:
            await components.family_flow.join("kim2024", "철수")

        assert exc_info.value.capacity == 2
        assert (await store.get_family("kim2024")).users == ["민수", "지영"]
        assert AuditEventType.FAMILY_JOIN_REJECTED in await event_types(store)

    @pytest.mark.asyncio
    async def test_members_can_still_rejoin_full_family(self, components):
        await components.family_flow.join("kim2024", "민수")
        await components.family_flow.join("kim2024", "지영")
        family = await components.family_flow.join("kim2024", "지영")
        assert family.users == ["민수", "지영"]

    @pytest.mark.asyncio
    async def test_invalid_name_is_rejected_and_audited(self, components, store):
        with pytest.raises(EntryValidationError):
            await components.family_flow.join("kim2024", "민수!")
        assert await store.get_family("kim2024") is None
        assert AuditEventType.VALIDATION_FAILED in await event_types(store)


class TestLedgerFlow:

    @pytest.mark.asyncio
    async def test_record_defaults_to_today(self, components, store):
        transaction = await components.ledger_flow.record(
            TransactionKind.SPENDING, spending_payload(), today=date(2025, 3, 10)
        )
        assert transaction.entry_date == date(2025, 3, 10)
        assert transaction.kind == TransactionKind.SPENDING
        assert await store.get_family("kim2024") is not None

    @pytest.mark.asyncio
    async def test_record_income(self, components):
        transaction = await components.ledger_flow.record(
            TransactionKind.INCOME,
            spending_payload(category="급여 - 보너스", amount=1_000_000),
            today=date(2025, 3, 10),
        )
        listed = await components.ledger_flow.list_entries(TransactionKind.INCOME, ["kim2024"])
        assert [t.id for t in listed] == [transaction.id]

    @pytest.mark.asyncio
    async def test_future_date_rejected(self, components, store):
        with pytest.raises(EntryValidationError):
            await components.ledger_flow.record(
                TransactionKind.SPENDING,
                spending_payload(entry_date=date(2025, 3, 11)),
                today=date(2025, 3, 10),
            )
        assert await store.list_transactions(TransactionKind.SPENDING) == []

    @pytest.mark.asyncio
    async def test_storage_failure_is_audited(self, app_settings):
        class FullSheetStore(InMemoryStorage):
            async def save_transaction(self, transaction):
                raise StorageError("quota exceeded")

        store = FullSheetStore()
        components = create_app_components(
            settings=app_settings,
            storage=StorageBundle(store, store, store, store),
        )
        with pytest.raises(StorageError):
            await components.ledger_flow.record(
                TransactionKind.SPENDING, spending_payload(), today=date(2025, 3, 10)
            )
        assert AuditEventType.STORAGE_ERROR in await event_types(store)

    @pytest.mark.asyncio
    async def test_delete(self, components):
        transaction = await components.ledger_flow.record(
            TransactionKind.SPENDING, spending_payload(), today=date(2025, 3, 10)
        )
        await components.ledger_flow.delete(TransactionKind.SPENDING, transaction.id)

        with pytest.raises(EntryNotFoundError):
            await components.ledger_flow.delete(TransactionKind.SPENDING, transaction.id)

    @pytest.mark.asyncio
    async def test_delete_checks_kind(self, components):
        transaction = await components.ledger_flow.record(
            TransactionKind.SPENDING, spending_payload(), today=date(2025, 3, 10)
        )
        with pytest.raises(EntryNotFoundError):
            await components.ledger_flow.delete(TransactionKind.INCOME, transaction.id)


class TestRecurringFlow:

    @pytest.mark.asyncio
    async def test_create_and_list(self, components):
        rule = await components.recurring_flow.create_rule(rule_payload())
        views = await components.recurring_flow.list_rules("kim2024", today=date(2025, 3, 10))

        assert [v.id for v in views] == [rule.id]
        assert views[0].next_due_date == date(2025, 3, 15)

    @pytest.mark.asyncio
    async def test_deactivate_hides_rule(self, components):
        rule = await components.recurring_flow.create_rule(rule_payload())
        await components.recurring_flow.deactivate(rule.id)

        assert await components.recurring_flow.list_rules("kim2024") == []
        result = await components.recurring_flow.process(date(2025, 3, 20))
        assert result.processed == 0

    @pytest.mark.asyncio
    async def test_deactivate_after_posting_stops_next_month(self, components):
        rule = await components.recurring_flow.create_rule(rule_payload())
        assert (await components.recurring_flow.process(date(2025, 3, 20))).processed == 1

        await components.recurring_flow.deactivate(rule.id)
        result = await components.recurring_flow.process(date(2025, 4, 20))

        assert result.processed == 0
        assert result.failed == 0

    @pytest.mark.asyncio
    async def test_deactivate_unknown(self, components):
        with pytest.raises(EntryNotFoundError):
            await components.recurring_flow.deactivate(uuid4())

    @pytest.mark.asyncio
    async def test_process_then_next_due_moves_on(self, components):
        await components.recurring_flow.create_rule(rule_payload())
        result = await components.recurring_flow.process(date(2025, 3, 20))
        views = await components.recurring_flow.list_rules("kim2024", today=date(2025, 3, 20))

        assert result.processed == 1
        assert views[0].last_processed == date(2025, 3, 20)
        assert views[0].next_due_date == date(2025, 4, 15)


class TestComponentFactory:

    def test_memory_backend(self, app_settings):
        components = create_app_components(backend="memory", settings=app_settings)
        assert isinstance(components.storage.families, InMemoryStorage)

    def test_sql_backend(self):
        bundle = create_storage("sql", DatabaseSettings(url="sqlite://"))
        assert isinstance(bundle.families, SqlFamilyStorage)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_storage("excel")

    def test_scheduler_uses_same_materializer(self, components):
        scheduler = components.create_scheduler()
        assert scheduler._materializer is components.materializer
        assert not scheduler.running
