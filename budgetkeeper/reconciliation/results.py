"""
Reconciliation Results

Return types of the reconciliation service that carry more than a budget.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from budgetkeeper.models.ledger import PaymentEntry, PaymentSchedule, WeeklyBudget
from budgetkeeper.reconciliation.creation import HistoryInsights
from budgetkeeper.reconciliation.transitions import Transition


class BudgetCreation(BaseModel):
    """A newly created budget and the schedules created alongside it."""

    budget: WeeklyBudget
    schedules: list[PaymentSchedule] = Field(default_factory=list)
    replaced_budget_id: Optional[UUID] = None
    insights: Optional[HistoryInsights] = Field(
        default=None,
        description="History summary, for smart mode only"
    )


class PaymentOutcome(BaseModel):
    """Result of adding or updating one payment entry."""

    budget: WeeklyBudget
    payment: PaymentEntry
    transition: Transition = Transition.NONE
    transaction_id: Optional[UUID] = Field(
        default=None,
        description="Transaction created or deleted by the transition"
    )
    schedule: Optional[PaymentSchedule] = None


class DeletionOutcome(BaseModel):
    """
    Result of deleting a payment.

    budget is None when the id named a raw transaction and no budget
    entry was involved.
    """

    payment_id: UUID
    budget: Optional[WeeklyBudget] = None
    deleted_transaction: bool = False
    deleted_schedule: bool = False


class SyncReport(BaseModel):
    budget: WeeklyBudget
    changed: bool
    skipped_schedule_ids: list[UUID] = Field(default_factory=list)
    linked_schedule_ids: list[UUID] = Field(default_factory=list)


class LinkRepairReport(BaseModel):
    budget_id: UUID
    entries_inspected: int = 0
    schedules_linked: int = 0
    households_set: int = 0
