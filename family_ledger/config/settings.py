"""
Configuration Management for Family Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every external dependency (Google Sheets, SQL database) and every
business constant (amount ceiling, family capacity, recurring memo marker)
is declared in one place and validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Worksheet names within the spreadsheet
    families_sheet_name: str = Field(
        default="Families",
        description="Name of the sheet for families"
    )
    spending_sheet_name: str = Field(
        default="Spending",
        description="Name of the sheet for spending transactions"
    )
    income_sheet_name: str = Field(
        default="Income",
        description="Name of the sheet for income transactions"
    )
    recurring_sheet_name: str = Field(
        default="RecurringRules",
        description="Name of the sheet for recurring rules"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class DatabaseSettings(BaseSettings):
    """Relational database configuration (SQL storage backend)."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///family_ledger.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )

    # Storage
    storage_backend: Literal["google_sheets", "sql", "memory"] = Field(
        default="google_sheets",
        description="Which storage backend to use"
    )

    # Calendar
    timezone: str = Field(
        default="Asia/Seoul",
        description="Timezone used to decide what 'today' is"
    )

    # Ledger rules
    max_amount: int = Field(
        default=100_000_000,
        ge=1,
        description="Largest amount accepted for a single transaction"
    )
    max_memo_length: int = Field(
        default=200,
        ge=1,
        description="Maximum memo length"
    )
    family_capacity: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Maximum number of members in one family"
    )

    # Recurring transactions
    recurring_memo_prefix: str = Field(
        default="[정기]",
        description="Marker prepended to the memo of materialized transactions"
    )
    default_payment_method: str = Field(
        default="card",
        pattern="^(card|cash|transfer)$",
        description="Payment method used when a recurring rule has none"
    )
    short_month_policy: Literal["skip", "last_day"] = Field(
        default="skip",
        description=(
            "What to do with a rule whose day does not exist this month: "
            "'skip' posts nothing, 'last_day' posts on the last day"
        )
    )

    # Scheduler
    scheduler_enabled: bool = Field(
        default=False,
        description="Run the recurring materializer daily in the background"
    )
    recurring_run_hour: int = Field(
        default=0,
        ge=0,
        le=23,
        description="Hour of day (in the configured timezone) for the daily run"
    )

    # HTTP API
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=5000, ge=1, le=65535)

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA timezone names."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so a missing Google Sheets
    # configuration does not prevent the SQL or memory backends from working.

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Only the storage backend that is actually selected is checked.
    """
    results = {}

    settings = get_settings()

    try:
        app_settings = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)
        return results

    if app_settings.storage_backend == "google_sheets":
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)
    elif app_settings.storage_backend == "sql":
        try:
            _ = settings.database
            results["database"] = True
        except Exception as e:
            results["database"] = False
            results["database_error"] = str(e)

    return results
