"""
Explicit Sync

Rebuilds a budget's categories from the payment schedules due in its week.

DESIGN DECISION: Schedules are the source of truth. A budget entry that
mirrors a schedule keeps its own identity and payment history across a
rebuild (id, status, paid-by, paid date, linked transaction), but its
name, amount, date and notes come from the schedule.

Entries that no schedule backs (instant payments linked to a raw
transaction) cannot be rebuilt from schedules, so they are carried over
into their category unchanged.
"""

from decimal import Decimal
from typing import Iterable, Mapping, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from budgetkeeper.models.ledger import (
    BudgetCategory,
    EntryRef,
    PaymentEntry,
    PaymentSchedule,
    PaymentStatus,
    RefKind,
    WeeklyBudget,
)


class SyncResult(BaseModel):
    budget: WeeklyBudget
    changed: bool = Field(description="False when no schedule fell in the week")
    skipped_schedule_ids: list[UUID] = Field(
        default_factory=list,
        description="Schedules whose category does not exist"
    )
    unlinked_schedule_ids: list[UUID] = Field(
        default_factory=list,
        description="Schedules to be linked to this budget"
    )


def entry_from_schedule(
    schedule: PaymentSchedule,
    existing: Optional[PaymentEntry] = None,
    transaction_id: Optional[UUID] = None,
) -> PaymentEntry:
    """Project a schedule into a budget entry, keeping an existing entry's history."""
    if existing is not None:
        entry = existing.model_copy(deep=True)
        entry.name = schedule.name
        entry.amount = schedule.amount
        entry.scheduled_date = schedule.due_date
        entry.notes = schedule.notes
        entry.is_recurring = schedule.is_recurring
        entry.ref = EntryRef.schedule(schedule.id)
        return entry

    is_paid = schedule.status == PaymentStatus.PAID
    return PaymentEntry(
        id=schedule.id,
        name=schedule.name,
        amount=schedule.amount,
        scheduled_date=schedule.due_date,
        status=PaymentStatus.PAID if is_paid else PaymentStatus.PENDING,
        paid_date=schedule.paid_date if is_paid else None,
        paid_by=schedule.paid_by if is_paid else None,
        notes=schedule.notes,
        is_recurring=schedule.is_recurring,
        ref=EntryRef.schedule(schedule.id),
        transaction_id=transaction_id if is_paid else None,
    )


def rebuild_from_schedules(
    budget: WeeklyBudget,
    schedules: Iterable[PaymentSchedule],
    known_category_ids: set[UUID],
    paid_transactions: Optional[Mapping[UUID, UUID]] = None,
) -> SyncResult:
    """
    Rebuild the category list of a copy of `budget`.

    Args:
        budget: Budget to rebuild (left untouched)
        schedules: Schedules due in the budget's week
        known_category_ids: Categories that exist in the store
        paid_transactions: schedule id -> transaction id, for paid schedules
            that no entry tracks yet

    Returns:
        SyncResult; when no schedule is due in the week the budget is
        returned unchanged with changed=False
    """
    paid_transactions = paid_transactions or {}
    in_week = sorted(
        (s for s in schedules if budget.covers(s.due_date)),
        key=lambda s: s.due_date,
    )
    if not in_week:
        return SyncResult(budget=budget.model_copy(deep=True), changed=False)

    existing: dict[UUID, PaymentEntry] = {}
    carried: dict[UUID, list[PaymentEntry]] = {}
    for category, entry in budget.iter_payments():
        if entry.ref.kind == RefKind.SCHEDULE:
            existing[entry.ref.id] = entry
        elif not entry.from_transaction:
            carried.setdefault(category.category_id, []).append(entry)

    rebuilt: dict[UUID, BudgetCategory] = {}
    skipped: list[UUID] = []
    unlinked: list[UUID] = []

    for schedule in in_week:
        if schedule.category_id not in known_category_ids:
            skipped.append(schedule.id)
            continue

        category = rebuilt.get(schedule.category_id)
        if category is None:
            previous = budget.find_category(schedule.category_id)
            category = BudgetCategory(
                id=previous.id if previous else uuid4(),
                category_id=schedule.category_id,
                allocation=Decimal("0"),
            )
            rebuilt[schedule.category_id] = category

        category.allocation += schedule.amount
        category.payments.append(entry_from_schedule(
            schedule,
            existing.get(schedule.id),
            paid_transactions.get(schedule.id),
        ))
        if schedule.weekly_budget_id is None:
            unlinked.append(schedule.id)

    for category_id, entries in carried.items():
        category = rebuilt.get(category_id)
        if category is None:
            previous = budget.find_category(category_id)
            category = BudgetCategory(
                id=previous.id,
                category_id=category_id,
                allocation=previous.allocation,
            )
            rebuilt[category_id] = category
        category.payments.extend(e.model_copy(deep=True) for e in entries)

    for category in rebuilt.values():
        category.payments.sort(key=lambda p: p.scheduled_date)

    synced = budget.model_copy(deep=True)
    synced.categories = list(rebuilt.values())
    return SyncResult(
        budget=synced,
        changed=True,
        skipped_schedule_ids=skipped,
        unlinked_schedule_ids=unlinked,
    )
