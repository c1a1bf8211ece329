"""
Record filters shared by the storage adapters.

Neither adapter has a query language worth the name, so both load
candidate records and filter them in Python with these predicates.
"""

from datetime import date
from typing import Iterable, Optional
from uuid import UUID

from budgetkeeper.models.ledger import (
    PaymentSchedule,
    PaymentStatus,
    Transaction,
    TransactionType,
    WeeklyBudget,
)


def _as_set(values: Optional[Iterable]) -> Optional[set]:
    return set(values) if values is not None else None


def filter_transactions(
    transactions: Iterable[Transaction],
    user_ids: Optional[Iterable[UUID]] = None,
    transaction_type: Optional[TransactionType] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    exclude_category_ids: Optional[Iterable[UUID]] = None,
) -> list[Transaction]:
    users = _as_set(user_ids)
    excluded = _as_set(exclude_category_ids) or set()

    matched = []
    for tx in transactions:
        if users is not None and tx.user_id not in users:
            continue
        if transaction_type and tx.type != transaction_type:
            continue
        if date_from and tx.transaction_date < date_from:
            continue
        if date_to and tx.transaction_date > date_to:
            continue
        if tx.category_id in excluded:
            continue
        matched.append(tx)

    matched.sort(key=lambda t: (t.transaction_date, t.created_at))
    return matched


def filter_schedules(
    schedules: Iterable[PaymentSchedule],
    user_ids: Optional[Iterable[UUID]] = None,
    due_from: Optional[date] = None,
    due_to: Optional[date] = None,
    statuses: Optional[Iterable[PaymentStatus]] = None,
    weekly_budget_id: Optional[UUID] = None,
    category_id: Optional[UUID] = None,
) -> list[PaymentSchedule]:
    users = _as_set(user_ids)
    wanted_statuses = _as_set(statuses)

    matched = []
    for schedule in schedules:
        if users is not None and schedule.user_id not in users:
            continue
        if due_from and schedule.due_date < due_from:
            continue
        if due_to and schedule.due_date > due_to:
            continue
        if wanted_statuses is not None and schedule.status not in wanted_statuses:
            continue
        if weekly_budget_id and schedule.weekly_budget_id != weekly_budget_id:
            continue
        if category_id and schedule.category_id != category_id:
            continue
        matched.append(schedule)

    matched.sort(key=lambda s: (s.due_date, s.created_at))
    return matched


def week_overlaps(budget: WeeklyBudget, date_from: date, date_to: date) -> bool:
    """
    True when the budget's week starts in, ends in, or spans the range.
    """
    starts_in = date_from <= budget.week_start <= date_to
    ends_in = date_from <= budget.week_end <= date_to
    spans = budget.week_start <= date_from and budget.week_end >= date_to
    return starts_in or ends_in or spans


def filter_budgets(
    budgets: Iterable[WeeklyBudget],
    user_ids: Optional[Iterable[UUID]] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    household_id: Optional[UUID] = None,
    shared_only: bool = False,
) -> list[WeeklyBudget]:
    users = _as_set(user_ids)

    matched = []
    for budget in budgets:
        if users is not None and budget.user_id not in users:
            continue
        if household_id and budget.household_id != household_id:
            continue
        if shared_only and not budget.is_shared_with_household:
            continue
        if date_from and date_to and not week_overlaps(budget, date_from, date_to):
            continue
        if date_from and not date_to and budget.week_end < date_from:
            continue
        if date_to and not date_from and budget.week_start > date_to:
            continue
        matched.append(budget)

    # Newest first
    matched.sort(key=lambda b: b.week_start, reverse=True)
    return matched
