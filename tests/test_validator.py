"""Tests for semantic validation of ledger entries."""

from datetime import date

import pytest

from family_ledger.models import RecurringRuleCreate, TransactionCreate, TransactionKind
from family_ledger.validation import EntryValidationError, EntryValidator


def make_payload(**overrides) -> TransactionCreate:
    fields = dict(
        amount=12_000,
        category="식비 - 외식",
        user_name="민수",
        family_code="kim2024",
        entry_date=date(2025, 3, 10),
    )
    fields.update(overrides)
    return TransactionCreate(**fields)


class TestMemberValidation:

    def test_valid_pair(self, app_settings):
        assert EntryValidator(app_settings).validate_member("kim2024", "민수").is_valid

    @pytest.mark.parametrize("name", ["민수!", "", "<script>"])
    def test_invalid_names(self, app_settings, name):
        result = EntryValidator(app_settings).validate_member("kim2024", name)
        assert [i.field for i in result.errors] == ["userName"]

    def test_mixed_script_name_with_space(self, app_settings):
        assert EntryValidator(app_settings).validate_member("kim2024", "Kim 민수").is_valid

    @pytest.mark.parametrize("code", ["ab", "kim_2024", "가족코드", "a" * 21])
    def test_invalid_codes(self, app_settings, code):
        result = EntryValidator(app_settings).validate_member(code, "민수")
        assert [i.field for i in result.errors] == ["familyCode"]


class TestTransactionValidation:

    def test_valid_spending(self, app_settings):
        result = EntryValidator(app_settings).validate_transaction(
            make_payload(), TransactionKind.SPENDING, today=date(2025, 3, 10)
        )
        assert result.is_valid
        assert result.issues == []

    def test_future_date(self, app_settings):
        result = EntryValidator(app_settings).validate_transaction(
            make_payload(entry_date=date(2025, 3, 11)),
            TransactionKind.SPENDING,
            today=date(2025, 3, 10),
        )
        assert [i.issue_type for i in result.errors] == ["future_date"]

    def test_missing_date_is_fine(self, app_settings):
        result = EntryValidator(app_settings).validate_transaction(
            make_payload(entry_date=None), TransactionKind.SPENDING, today=date(2025, 3, 10)
        )
        assert result.is_valid

    def test_category_of_other_kind(self, app_settings):
        result = EntryValidator(app_settings).validate_transaction(
            make_payload(category="식비 - 외식"), TransactionKind.INCOME, today=date(2025, 3, 10)
        )
        assert [i.issue_type for i in result.errors] == ["unknown_category"]

    def test_configured_amount_limit(self, app_settings):
        settings = app_settings.model_copy(update={"max_amount": 10_000})
        result = EntryValidator(settings).validate_transaction(
            make_payload(amount=10_001), TransactionKind.SPENDING, today=date(2025, 3, 10)
        )
        assert [i.issue_type for i in result.errors] == ["out_of_range"]

    def test_configured_memo_limit(self, app_settings):
        settings = app_settings.model_copy(update={"max_memo_length": 5})
        result = EntryValidator(settings).validate_transaction(
            make_payload(memo="여섯글자메모"), TransactionKind.SPENDING, today=date(2025, 3, 10)
        )
        assert [i.field for i in result.errors] == ["memo"]


class TestRuleValidation:

    def test_day_after_28_warns(self, app_settings):
        payload = RecurringRuleCreate(
            amount=500_000,
            category="주거비 - 월세/관리비",
            user_name="민수",
            family_code="kim2024",
            day_of_month=31,
        )
        result = EntryValidator(app_settings).validate_rule(payload)
        assert result.is_valid
        assert len(result.warnings) == 1
        assert "skipped" in result.warnings[0]

    def test_income_rule_checks_income_catalog(self, app_settings):
        payload = RecurringRuleCreate(
            kind=TransactionKind.INCOME,
            amount=3_000_000,
            category="주거비 - 월세/관리비",
            user_name="민수",
            family_code="kim2024",
            day_of_month=25,
        )
        assert not EntryValidator(app_settings).validate_rule(payload).is_valid


class TestEnsureValid:

    def test_raises_with_result(self, app_settings):
        result = EntryValidator(app_settings).validate_member("ab", "민수")
        with pytest.raises(EntryValidationError) as exc_info:
            EntryValidator.ensure_valid(result)
        assert exc_info.value.result is result
        assert "Invalid family" in str(exc_info.value)

    def test_summary_lists_errors(self, app_settings):
        result = EntryValidator(app_settings).validate_member("ab", "민수!")
        summary = EntryValidator.get_user_friendly_summary(result)
        assert "Please fix" in summary
        assert "Family code" in summary
