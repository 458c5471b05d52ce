"""
Family Ledger - Source Package

A shared household account book: family members record spending and
income under one family code, and monthly recurring rules (rent,
subscriptions, salary) are posted automatically.

DESIGN PRINCIPLES:
1. Each recurring rule posts at most once per calendar month
2. Fail early, fail visibly
3. Every write is auditable
4. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Family Ledger Team"
