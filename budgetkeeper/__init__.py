"""
BudgetKeeper - Source Package

Weekly budgeting that keeps transactions, scheduled payments and
weekly budgets consistent with each other, and learns from their history.

DESIGN PRINCIPLES:
1. Schedules are the source of truth, budgets are projections
2. Fail early, fail visibly
3. No silent double counting
4. Every state change must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "BudgetKeeper Team"
