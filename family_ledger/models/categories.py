"""
Category Catalog

Every transaction category belongs to exactly one catalog (spending or
income) and one group. Groups drive the dashboard breakdown.

DESIGN DECISION: Each category member carries its group explicitly.
The label strings are what gets stored and shown; the group is never
derived by parsing the label.
"""

from enum import Enum
from typing import Union


class TransactionKind(str, Enum):
    """Which store a transaction lives in."""
    SPENDING = "spending"
    INCOME = "income"


class CategoryGroup(str, Enum):
    """Top-level grouping used for dashboard totals."""
    # Spending groups
    FOOD = "식비"
    TRANSPORT = "교통비"
    CAFE = "카페"
    HOUSEHOLD = "생활용품"
    SHOPPING = "쇼핑"
    FINANCE = "금융"
    MEDICAL = "의료비"
    CULTURE = "문화생활"
    CLOTHING = "의류"
    HOUSING = "주거비"
    EDUCATION = "교육"

    # Income groups
    SALARY = "급여"
    SIDE_JOB = "부업"
    INVESTMENT = "투자"
    BUSINESS = "사업"
    OTHER_INCOME = "기타수입"

    OTHER = "기타"


class _GroupedCategory(str, Enum):
    """Base for category enums whose members are (label, group) pairs."""

    def __new__(cls, label: str, group: CategoryGroup):
        obj = str.__new__(cls, label)
        obj._value_ = label
        obj.group = group
        return obj

    @property
    def label(self) -> str:
        return self.value


class SpendingCategory(_GroupedCategory):
    """Spending categories."""
    FOOD_GROCERIES = ("식비 - 식료품", CategoryGroup.FOOD)
    FOOD_DINING_OUT = ("식비 - 외식", CategoryGroup.FOOD)
    FOOD_CAFE_DRINKS = ("식비 - 카페/음료", CategoryGroup.FOOD)
    FOOD_DELIVERY = ("식비 - 배달음식", CategoryGroup.FOOD)
    FOOD_SNACKS = ("식비 - 간식/디저트", CategoryGroup.FOOD)

    TRANSPORT_PUBLIC = ("교통비 - 대중교통", CategoryGroup.TRANSPORT)
    TRANSPORT_TAXI = ("교통비 - 택시", CategoryGroup.TRANSPORT)
    TRANSPORT_FUEL = ("교통비 - 주유비", CategoryGroup.TRANSPORT)
    TRANSPORT_PARKING = ("교통비 - 주차비", CategoryGroup.TRANSPORT)
    TRANSPORT_TOLL = ("교통비 - 톨게이트", CategoryGroup.TRANSPORT)

    CAFE_COFFEE = ("카페 - 커피", CategoryGroup.CAFE)
    CAFE_TEA = ("카페 - 차/음료", CategoryGroup.CAFE)
    CAFE_DESSERT = ("카페 - 디저트", CategoryGroup.CAFE)
    CAFE_BRUNCH = ("카페 - 브런치", CategoryGroup.CAFE)

    HOUSEHOLD_DAILY = ("생활용품 - 일용품", CategoryGroup.HOUSEHOLD)
    HOUSEHOLD_CLEANING = ("생활용품 - 청소용품", CategoryGroup.HOUSEHOLD)
    HOUSEHOLD_COSMETICS = ("생활용품 - 화장품", CategoryGroup.HOUSEHOLD)
    HOUSEHOLD_LAUNDRY = ("생활용품 - 세탁용품", CategoryGroup.HOUSEHOLD)
    HOUSEHOLD_OTHER = ("생활용품 - 기타", CategoryGroup.HOUSEHOLD)

    SHOPPING_ONLINE = ("쇼핑 - 온라인쇼핑", CategoryGroup.SHOPPING)
    SHOPPING_DEPARTMENT = ("쇼핑 - 백화점", CategoryGroup.SHOPPING)
    SHOPPING_MART = ("쇼핑 - 마트", CategoryGroup.SHOPPING)
    SHOPPING_CONVENIENCE = ("쇼핑 - 편의점", CategoryGroup.SHOPPING)
    SHOPPING_OTHER = ("쇼핑 - 기타", CategoryGroup.SHOPPING)

    FINANCE_INSURANCE = ("금융 - 보험료", CategoryGroup.FINANCE)
    FINANCE_SAVINGS = ("금융 - 적금/투자", CategoryGroup.FINANCE)
    FINANCE_LOAN_INTEREST = ("금융 - 대출이자", CategoryGroup.FINANCE)
    FINANCE_CARD_FEE = ("금융 - 카드연회비", CategoryGroup.FINANCE)
    FINANCE_BANK_FEE = ("금융 - 은행수수료", CategoryGroup.FINANCE)
    FINANCE_TAX = ("금융 - 세금", CategoryGroup.FINANCE)

    MEDICAL_HOSPITAL = ("의료비 - 병원비", CategoryGroup.MEDICAL)
    MEDICAL_PHARMACY = ("의료비 - 약값", CategoryGroup.MEDICAL)
    MEDICAL_CHECKUP = ("의료비 - 건강검진", CategoryGroup.MEDICAL)
    MEDICAL_DENTAL = ("의료비 - 치과", CategoryGroup.MEDICAL)

    CULTURE_MOVIE = ("문화생활 - 영화", CategoryGroup.CULTURE)
    CULTURE_PERFORMANCE = ("문화생활 - 공연", CategoryGroup.CULTURE)
    CULTURE_TRAVEL = ("문화생활 - 여행", CategoryGroup.CULTURE)
    CULTURE_HOBBY = ("문화생활 - 취미", CategoryGroup.CULTURE)

    CLOTHING_CLOTHES = ("의류 - 옷", CategoryGroup.CLOTHING)
    CLOTHING_SHOES = ("의류 - 신발", CategoryGroup.CLOTHING)
    CLOTHING_BAGS = ("의류 - 가방", CategoryGroup.CLOTHING)
    CLOTHING_ACCESSORIES = ("의류 - 액세서리", CategoryGroup.CLOTHING)

    HOUSING_RENT = ("주거비 - 월세/관리비", CategoryGroup.HOUSING)
    HOUSING_ELECTRICITY = ("주거비 - 전기요금", CategoryGroup.HOUSING)
    HOUSING_GAS = ("주거비 - 가스요금", CategoryGroup.HOUSING)
    HOUSING_WATER = ("주거비 - 수도요금", CategoryGroup.HOUSING)
    HOUSING_INTERNET = ("주거비 - 인터넷", CategoryGroup.HOUSING)

    EDUCATION_ACADEMY = ("교육 - 학원비", CategoryGroup.EDUCATION)
    EDUCATION_BOOKS = ("교육 - 도서", CategoryGroup.EDUCATION)
    EDUCATION_ONLINE = ("교육 - 온라인강의", CategoryGroup.EDUCATION)


class IncomeCategory(_GroupedCategory):
    """Income categories."""
    SALARY_REGULAR = ("급여 - 정규급여", CategoryGroup.SALARY)
    SALARY_BONUS = ("급여 - 보너스", CategoryGroup.SALARY)
    SALARY_INCENTIVE = ("급여 - 상여금", CategoryGroup.SALARY)
    SALARY_OVERTIME = ("급여 - 야근수당", CategoryGroup.SALARY)
    SALARY_VACATION = ("급여 - 휴가수당", CategoryGroup.SALARY)

    SIDE_FREELANCE = ("부업 - 프리랜서", CategoryGroup.SIDE_JOB)
    SIDE_PART_TIME = ("부업 - 아르바이트", CategoryGroup.SIDE_JOB)
    SIDE_TEACHING = ("부업 - 온라인강의", CategoryGroup.SIDE_JOB)
    SIDE_CONSULTING = ("부업 - 컨설팅", CategoryGroup.SIDE_JOB)
    SIDE_TRANSLATION = ("부업 - 번역", CategoryGroup.SIDE_JOB)

    INVESTMENT_DIVIDEND = ("투자 - 주식배당", CategoryGroup.INVESTMENT)
    INVESTMENT_FUND = ("투자 - 펀드수익", CategoryGroup.INVESTMENT)
    INVESTMENT_SAVINGS = ("투자 - 적금만기", CategoryGroup.INVESTMENT)
    INVESTMENT_BOND = ("투자 - 채권이자", CategoryGroup.INVESTMENT)
    INVESTMENT_CRYPTO = ("투자 - 암호화폐", CategoryGroup.INVESTMENT)

    BUSINESS_SALES = ("사업 - 매출", CategoryGroup.BUSINESS)
    BUSINESS_COMMISSION = ("사업 - 수수료", CategoryGroup.BUSINESS)
    BUSINESS_ROYALTY = ("사업 - 로열티", CategoryGroup.BUSINESS)
    BUSINESS_LICENSE = ("사업 - 라이센스", CategoryGroup.BUSINESS)

    OTHER_GIFT = ("기타수입 - 선물", CategoryGroup.OTHER_INCOME)
    OTHER_REFUND = ("기타수입 - 환급금", CategoryGroup.OTHER_INCOME)
    OTHER_RESALE = ("기타수입 - 중고판매", CategoryGroup.OTHER_INCOME)
    OTHER_REBATE = ("기타수입 - 리베이트", CategoryGroup.OTHER_INCOME)
    OTHER_MISC = ("기타수입 - 기타", CategoryGroup.OTHER_INCOME)


Category = Union[SpendingCategory, IncomeCategory]

_CATALOGS: dict[TransactionKind, type[_GroupedCategory]] = {
    TransactionKind.SPENDING: SpendingCategory,
    TransactionKind.INCOME: IncomeCategory,
}


def categories_for(kind: TransactionKind) -> list[Category]:
    """All categories of a catalog, in display order."""
    return list(_CATALOGS[TransactionKind(kind)])


def category_for(kind: TransactionKind, label: str) -> Category:
    """
    Look up a category by its label.

    Raises:
        ValueError: If the label is not in the catalog for this kind
    """
    catalog = _CATALOGS[TransactionKind(kind)]
    try:
        return catalog(label.strip())
    except ValueError:
        raise ValueError(
            f"Unknown {TransactionKind(kind).value} category: {label!r}"
        ) from None


def group_of(kind: TransactionKind, label: str) -> CategoryGroup:
    """Group for a category label; unknown labels fall into OTHER."""
    try:
        return category_for(kind, label).group
    except ValueError:
        return CategoryGroup.OTHER


def groups_for(kind: TransactionKind) -> list[CategoryGroup]:
    """Distinct groups of a catalog, in display order."""
    seen: list[CategoryGroup] = []
    for category in categories_for(kind):
        if category.group not in seen:
            seen.append(category.group)
    return seen
