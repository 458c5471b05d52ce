"""Semantic validation of ledger entries."""

from family_ledger.validation.validator import (
    EntryValidationError,
    EntryValidator,
)

__all__ = ["EntryValidationError", "EntryValidator"]
