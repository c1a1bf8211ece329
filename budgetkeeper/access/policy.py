"""
Budget Access Policy

A requester may read or write a budget when they own it, or when the
budget is shared with a household the requester belongs to.
"""

from uuid import UUID

from budgetkeeper.access.directory import HouseholdDirectory
from budgetkeeper.errors import UnauthorizedError
from budgetkeeper.models.ledger import WeeklyBudget


class BudgetAccessPolicy:
    """Access predicate over weekly budgets."""

    def __init__(self, directory: HouseholdDirectory):
        self._directory = directory

    @property
    def directory(self) -> HouseholdDirectory:
        return self._directory

    async def can_access(self, budget: WeeklyBudget, user_id: UUID) -> bool:
        if budget.user_id == user_id:
            return True
        if budget.is_shared_with_household and budget.household_id:
            return await self._directory.is_member(budget.household_id, user_id)
        return False

    async def ensure_access(self, budget: WeeklyBudget, user_id: UUID) -> None:
        """
        Raises:
            UnauthorizedError: If the requester may not access the budget
        """
        if not await self.can_access(budget, user_id):
            raise UnauthorizedError()
