"""Tests for the audit logger."""

from uuid import uuid4

import pytest

from family_ledger.audit import AuditLogger, create_correlation_id
from family_ledger.models import AuditEventBuilder, AuditEventType, AuditSeverity
from family_ledger.services.storage import InMemoryStorage
from conftest import make_rule, make_transaction


class ExplodingAuditStore(InMemoryStorage):
    async def append_event(self, event):
        raise RuntimeError("disk full")


class TestAuditLogger:

    @pytest.mark.asyncio
    async def test_persists_events(self, store):
        audit = AuditLogger(store)
        transaction = make_transaction()

        await audit.log_transaction_saved(transaction)

        events = await store.get_events_by_entity("transaction", str(transaction.id))
        assert len(events) == 1
        assert events[0].details["amount"] == transaction.amount
        assert events[0].is_user_action

    @pytest.mark.asyncio
    async def test_without_storage_logs_locally(self):
        audit = AuditLogger()
        assert await audit.log(_validation_event()) is True

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        audit = AuditLogger(ExplodingAuditStore())
        assert await audit.log(_validation_event()) is False

    @pytest.mark.asyncio
    async def test_recurring_events_share_correlation_id(self, store):
        audit = AuditLogger(store)
        correlation_id = create_correlation_id()
        rule = make_rule()

        await audit.log_run_started("2025-03-05", 1, correlation_id)
        await audit.log_rule_failed(rule, "sheet unavailable", correlation_id)
        await audit.log_run_completed("2025-03-05", 0, 0, 1, correlation_id)

        events = await store.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.RECURRING_RUN_STARTED,
            AuditEventType.RECURRING_RULE_FAILED,
            AuditEventType.RECURRING_RUN_COMPLETED,
        ]
        assert events[1].severity == AuditSeverity.ERROR
        assert events[1].error_message == "sheet unavailable"

    @pytest.mark.asyncio
    async def test_rule_lifecycle(self, store):
        audit = AuditLogger(store)
        rule = make_rule()

        await audit.log_rule_created(rule)
        await audit.log_rule_deactivated(rule.id)

        events = await store.get_events_by_entity("recurring_rule", str(rule.id))
        assert [e.event_type for e in events] == [
            AuditEventType.RECURRING_RULE_CREATED,
            AuditEventType.RECURRING_RULE_DEACTIVATED,
        ]

    def test_correlation_ids_are_unique(self):
        assert create_correlation_id() != create_correlation_id()


def _validation_event():
    return AuditEventBuilder.validation_failed(
        "transaction",
        "kim2024",
        [{"field": "amount", "message": "Too large"}],
    )
