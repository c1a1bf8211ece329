"""Reconciliation engine: keeps transactions, schedules and weekly budgets consistent."""

from budgetkeeper.reconciliation.results import (
    BudgetCreation,
    DeletionOutcome,
    LinkRepairReport,
    PaymentOutcome,
    SyncReport,
)
from budgetkeeper.reconciliation.service import BudgetReconciliationService
from budgetkeeper.reconciliation.transitions import Transition
from budgetkeeper.reconciliation.weeks import start_of_week, week_bounds

__all__ = [
    "BudgetCreation",
    "BudgetReconciliationService",
    "DeletionOutcome",
    "LinkRepairReport",
    "PaymentOutcome",
    "SyncReport",
    "Transition",
    "start_of_week",
    "week_bounds",
]
