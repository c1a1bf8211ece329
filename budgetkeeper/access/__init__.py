"""Access control package."""

from budgetkeeper.access.directory import HouseholdDirectory, InMemoryHouseholdDirectory
from budgetkeeper.access.policy import BudgetAccessPolicy

__all__ = [
    "BudgetAccessPolicy",
    "HouseholdDirectory",
    "InMemoryHouseholdDirectory",
]
