"""Tests for the spending and income category catalogs."""

import pytest

from family_ledger.models import (
    CategoryGroup,
    IncomeCategory,
    SpendingCategory,
    TransactionKind,
    categories_for,
    category_for,
    group_of,
    groups_for,
)


class TestCatalogs:

    def test_label_and_group(self):
        category = SpendingCategory.HOUSING_RENT
        assert category.label == "주거비 - 월세/관리비"
        assert category.group == CategoryGroup.HOUSING

    def test_category_for_strips_whitespace(self):
        assert category_for(TransactionKind.SPENDING, " 식비 - 외식 ") is SpendingCategory.FOOD_DINING_OUT

    def test_unknown_label_raises(self):
        with pytest.raises(ValueError, match="Unknown income category"):
            category_for(TransactionKind.INCOME, "식비 - 외식")

    def test_group_of_unknown_label_is_other(self):
        assert group_of(TransactionKind.SPENDING, "없는 카테고리") == CategoryGroup.OTHER

    def test_catalogs_are_disjoint(self):
        spending = {c.value for c in categories_for(TransactionKind.SPENDING)}
        income = {c.value for c in categories_for(TransactionKind.INCOME)}
        assert not spending & income

    def test_groups_keep_display_order(self):
        groups = groups_for(TransactionKind.INCOME)
        assert groups[0] == CategoryGroup.SALARY
        assert len(groups) == len(set(groups))
        assert all(c.group in groups for c in IncomeCategory)
