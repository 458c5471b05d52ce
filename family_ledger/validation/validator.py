"""
Entry Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION (pydantic):
- Type checking, required fields, amount range, family code format
- Happens when a request payload is parsed into TransactionCreate /
  RecurringRuleCreate; failures surface as pydantic ValidationError

STAGE 2 - SEMANTIC VALIDATION (this module):
- Category belongs to the catalog of the entry's kind
- Date is not in the future (in the configured timezone)
- Amount is within the configured ceiling
- Member names use allowed characters
- Memo length

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the caller can reject the entry.
"""

import re
from datetime import date
from typing import Optional

from family_ledger.config import AppSettings, get_settings
from family_ledger.models.categories import TransactionKind, category_for
from family_ledger.models.ledger import (
    FAMILY_CODE_PATTERN,
    RecurringRuleCreate,
    TransactionCreate,
    ValidationIssue,
    ValidationResult,
)
from family_ledger.utils.dates import today_in


USER_NAME_PATTERN = re.compile(r"^[가-힣a-zA-Z0-9\s]{1,20}$")
_FAMILY_CODE_RE = re.compile(FAMILY_CODE_PATTERN)


class EntryValidationError(Exception):
    """Raised when an entry fails semantic validation."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(issue.message for issue in result.errors)
        super().__init__(f"Invalid {result.entity_type}: {messages}")


class EntryValidator:
    """
    Semantic checks for everything a user can write to the ledger.

    Stateless apart from settings; safe to share between requests.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    # -------------------------------------------------------------------------
    # Field checks
    # -------------------------------------------------------------------------

    def _check_family_code(self, code: str) -> list[ValidationIssue]:
        if not isinstance(code, str) or not _FAMILY_CODE_RE.match(code.strip()):
            return [ValidationIssue(
                field="familyCode",
                issue_type="invalid_format",
                message="Family code must be 3-20 letters or digits",
                suggested_fix="Use only A-Z, a-z and 0-9",
            )]
        return []

    def _check_user_name(self, name: str) -> list[ValidationIssue]:
        if not isinstance(name, str) or not USER_NAME_PATTERN.match(name.strip()):
            return [ValidationIssue(
                field="userName",
                issue_type="invalid_format",
                message="Name must be 1-20 Korean letters, Latin letters, digits or spaces",
            )]
        return []

    def _check_amount(self, amount: int) -> list[ValidationIssue]:
        if amount <= 0:
            return [ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
            )]
        if amount > self._settings.max_amount:
            return [ValidationIssue(
                field="amount",
                issue_type="out_of_range",
                message=f"Amount must not exceed ₩{self._settings.max_amount:,}",
            )]
        return []

    def _check_category(self, kind: TransactionKind, label: str) -> list[ValidationIssue]:
        try:
            category_for(kind, label)
        except ValueError:
            return [ValidationIssue(
                field="category",
                issue_type="unknown_category",
                message=f"'{label}' is not a {TransactionKind(kind).value} category",
                suggested_fix="Pick a category from the list",
            )]
        return []

    def _check_memo(self, memo: Optional[str]) -> list[ValidationIssue]:
        if memo and len(memo) > self._settings.max_memo_length:
            return [ValidationIssue(
                field="memo",
                issue_type="too_long",
                message=f"Memo must be at most {self._settings.max_memo_length} characters",
            )]
        return []

    def _check_date(self, entry_date: Optional[date], today: date) -> list[ValidationIssue]:
        if entry_date and entry_date > today:
            return [ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({entry_date}) is in the future",
                suggested_fix="Record the entry on or after that day",
            )]
        return []

    # -------------------------------------------------------------------------
    # Entry validation
    # -------------------------------------------------------------------------

    def today(self) -> date:
        return today_in(self._settings.timezone)

    def validate_member(self, family_code: str, user_name: str) -> ValidationResult:
        """Validate the sign-in pair (family code, member name)."""
        issues = self._check_family_code(family_code) + self._check_user_name(user_name)
        return ValidationResult(entity_type="family", issues=issues)

    def validate_transaction(
        self,
        payload: TransactionCreate,
        kind: TransactionKind,
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Validate a one-time spending or income entry.

        Args:
            payload: Parsed request payload
            kind: Which store the entry is going to
            today: Reference date for the future-date check
                   (defaults to today in the configured timezone)

        Returns:
            ValidationResult with all issues found
        """
        today = today or self.today()
        issues = []
        issues += self._check_family_code(payload.family_code)
        issues += self._check_user_name(payload.user_name)
        issues += self._check_amount(payload.amount)
        issues += self._check_category(kind, payload.category)
        issues += self._check_memo(payload.memo)
        issues += self._check_date(payload.entry_date, today)
        return ValidationResult(entity_type="transaction", issues=issues)

    def validate_rule(self, payload: RecurringRuleCreate) -> ValidationResult:
        """Validate a new recurring rule."""
        issues = []
        issues += self._check_family_code(payload.family_code)
        issues += self._check_user_name(payload.user_name)
        issues += self._check_amount(payload.amount)
        issues += self._check_category(payload.kind, payload.category)
        issues += self._check_memo(payload.memo)

        if payload.day_of_month > 28:
            policy = self._settings.short_month_policy
            issues.append(ValidationIssue(
                field="dayOfMonth",
                issue_type="short_month",
                message=(
                    f"Day {payload.day_of_month} does not exist in every month; "
                    + ("those months are skipped" if policy == "skip"
                       else "those months post on the last day")
                ),
                severity="warning",
            ))

        return ValidationResult(entity_type="recurring_rule", issues=issues)

    @staticmethod
    def ensure_valid(result: ValidationResult) -> ValidationResult:
        """
        Raise if the result has errors.

        Raises:
            EntryValidationError: If any issue has severity "error"
        """
        if not result.is_valid:
            raise EntryValidationError(result)
        return result

    @staticmethod
    def get_user_friendly_summary(result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show in the UI.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []
        if result.errors:
            lines.append("❌ Please fix the following:")
            for issue in result.errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please note:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
