"""
Household Directory

Household membership is managed by another service. The engines only
consume it as a lookup, through this interface.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional
from uuid import UUID

from budgetkeeper.models.ledger import Household


class HouseholdDirectory(ABC):
    """Read-only view of households and their members."""

    @abstractmethod
    async def get_household(self, household_id: UUID) -> Optional[Household]:
        """
        Look up a household.

        Returns:
            The household if it exists, None otherwise
        """
        pass

    async def is_member(self, household_id: UUID, user_id: UUID) -> bool:
        """True when the user created the household or is listed as a member."""
        household = await self.get_household(household_id)
        return household is not None and household.has_member(user_id)


class InMemoryHouseholdDirectory(HouseholdDirectory):
    """Directory backed by a dict; used by tests and embedding callers."""

    def __init__(self, households: Optional[Iterable[Household]] = None):
        self._households: dict[UUID, Household] = {
            h.id: h for h in (households or [])
        }

    def add(self, household: Household) -> None:
        self._households[household.id] = household

    async def get_household(self, household_id: UUID) -> Optional[Household]:
        return self._households.get(household_id)
