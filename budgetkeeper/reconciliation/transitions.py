"""
Payment Status Transitions

State machine for budget entries:

    pending --pay--> paid
    paid --revert--> pending

Overdue is a schedule-only state; an overdue entry pays like a pending one.
Requesting the status an entry already has is not a transition and never
creates or deletes a transaction.

These helpers only mutate the in-memory budget. The service applies them
inside its save-retry loop and performs the ledger side effects after the
budget is saved.
"""

from datetime import date
from enum import Enum
from typing import Optional
from uuid import UUID

from budgetkeeper.errors import PaymentNotFoundError
from budgetkeeper.models.ledger import (
    BudgetCategory,
    EntryRef,
    PaymentEntry,
    PaymentStatus,
    RefKind,
    WeeklyBudget,
)
from budgetkeeper.models.requests import PaymentUpdate


class Transition(str, Enum):
    NONE = "none"
    PAY = "pay"
    REVERT = "revert"


def plan_transition(
    current: PaymentStatus,
    requested: Optional[PaymentStatus],
) -> Transition:
    if requested == PaymentStatus.PAID and current != PaymentStatus.PAID:
        return Transition.PAY
    if requested == PaymentStatus.PENDING and current == PaymentStatus.PAID:
        return Transition.REVERT
    return Transition.NONE


def locate_entry(
    budget: WeeklyBudget,
    payment_id: UUID,
) -> tuple[BudgetCategory, PaymentEntry]:
    """
    Find an entry by its id, its schedule id, or its linked transaction id.

    Raises:
        PaymentNotFoundError: If no entry matches
    """
    found = budget.find_payment(payment_id) or budget.find_payment_by_transaction(payment_id)
    if found is None:
        raise PaymentNotFoundError(payment_id)
    return found


def _category_exact(budget: WeeklyBudget, category_id: UUID) -> Optional[BudgetCategory]:
    for category in budget.categories:
        if category.category_id == category_id:
            return category
    return None


def apply_field_changes(
    budget: WeeklyBudget,
    entry_id: UUID,
    update: PaymentUpdate,
) -> tuple[BudgetCategory, PaymentEntry]:
    """
    Apply in-place edits to an entry, moving it between categories if asked.

    The entry keeps its id and linked ids when it moves. A destination
    category missing from the budget is created with zero allocation.
    """
    category, entry = locate_entry(budget, entry_id)

    if update.name is not None:
        entry.name = update.name
    if update.amount is not None:
        entry.amount = update.amount
    if update.scheduled_date is not None:
        entry.scheduled_date = update.scheduled_date
    if update.notes is not None:
        entry.notes = update.notes

    if update.category_id is not None and update.category_id != category.category_id:
        category.remove_payment(entry.id)
        destination = _category_exact(budget, update.category_id)
        if destination is None:
            destination = BudgetCategory(category_id=update.category_id)
            budget.categories.append(destination)
        destination.payments.append(entry)
        category = destination

    return category, entry


def mark_entry_paid(
    entry: PaymentEntry,
    paid_by: UUID,
    today: date,
    transaction_id: Optional[UUID],
) -> None:
    entry.status = PaymentStatus.PAID
    entry.paid_date = today
    entry.paid_by = paid_by
    entry.transaction_id = entry.transaction_id or transaction_id


def mark_entry_pending(entry: PaymentEntry) -> Optional[UUID]:
    """
    Revert an entry to pending.

    Returns:
        The transaction id the entry was linked to, if any
    """
    previous = entry.transaction_id
    entry.status = PaymentStatus.PENDING
    entry.paid_date = None
    entry.paid_by = None
    entry.transaction_id = None
    if entry.ref.kind == RefKind.TRANSACTION:
        entry.ref = EntryRef.none()
    return previous
