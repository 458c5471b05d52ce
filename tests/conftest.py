"""Shared fixtures: in-memory stores and settings built without the environment."""

from datetime import date

import pytest

from family_ledger.config import AppSettings
from family_ledger.models import RecurringRule, Transaction, TransactionKind
from family_ledger.orchestrator import StorageBundle, create_app_components
from family_ledger.services.storage import InMemoryStorage


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(
        storage_backend="memory",
        timezone="Asia/Seoul",
        family_capacity=2,
        short_month_policy="skip",
        scheduler_enabled=False,
    )


@pytest.fixture
def store() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def components(app_settings, store):
    return create_app_components(
        settings=app_settings,
        storage=StorageBundle(store, store, store, store),
    )


def make_rule(**overrides) -> RecurringRule:
    fields = dict(
        amount=50_000,
        category="주거비 - 월세/관리비",
        memo="월세",
        user_name="민수",
        family_code="kim2024",
        day_of_month=5,
    )
    fields.update(overrides)
    return RecurringRule(**fields)


def make_transaction(**overrides) -> Transaction:
    fields = dict(
        kind=TransactionKind.SPENDING,
        amount=12_000,
        category="식비 - 외식",
        user_name="민수",
        family_code="kim2024",
        entry_date=date(2025, 3, 10),
    )
    fields.update(overrides)
    return Transaction(**fields)
