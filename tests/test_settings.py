"""Tests for configuration and calendar helpers."""

from datetime import date

import pytest
from pydantic import ValidationError

from family_ledger.config import AppSettings, DatabaseSettings, get_settings, validate_all_settings
from family_ledger.utils.dates import (
    last_day_of_month,
    month_bounds,
    next_month,
    parse_month,
    same_month,
)


class TestAppSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("APP_FAMILY_CAPACITY", raising=False)
        settings = AppSettings(_env_file=None)
        assert settings.timezone == "Asia/Seoul"
        assert settings.family_capacity == 2
        assert settings.recurring_memo_prefix == "[정기]"
        assert settings.short_month_policy == "skip"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("APP_FAMILY_CAPACITY", "4")
        monkeypatch.setenv("APP_SHORT_MONTH_POLICY", "last_day")
        settings = AppSettings(_env_file=None)
        assert settings.family_capacity == 4
        assert settings.short_month_policy == "last_day"

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError):
            AppSettings(_env_file=None, timezone="Mars/Olympus")

    def test_unknown_policy(self):
        with pytest.raises(ValidationError):
            AppSettings(_env_file=None, short_month_policy="next_month")

    def test_database_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///other.db")
        assert DatabaseSettings().url == "sqlite:///other.db"


class TestValidateAllSettings:

    def test_memory_backend_needs_nothing_else(self, monkeypatch):
        monkeypatch.setenv("APP_STORAGE_BACKEND", "memory")
        get_settings.cache_clear()
        assert validate_all_settings() == {"app": True}

    def test_missing_sheets_configuration(self, monkeypatch):
        monkeypatch.setenv("APP_STORAGE_BACKEND", "google_sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        get_settings.cache_clear()

        results = validate_all_settings()
        assert results["app"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results


class TestDates:

    def test_last_day_of_month(self):
        assert last_day_of_month(2024, 2) == 29
        assert last_day_of_month(2025, 2) == 28
        assert last_day_of_month(2025, 12) == 31

    def test_month_bounds(self):
        assert month_bounds(2025, 4) == (date(2025, 4, 1), date(2025, 4, 30))

    def test_same_month(self):
        assert same_month(date(2025, 3, 1), date(2025, 3, 31))
        assert not same_month(date(2024, 3, 1), date(2025, 3, 1))
        assert not same_month(None, date(2025, 3, 1))

    def test_next_month(self):
        assert next_month(2025, 12) == (2026, 1)
        assert next_month(2025, 1) == (2025, 2)

    def test_parse_month(self):
        assert parse_month("2025-03") == (2025, 3)
        with pytest.raises(ValueError):
            parse_month("2025-13")
        with pytest.raises(ValueError):
            parse_month("March")
