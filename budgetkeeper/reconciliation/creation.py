"""
Budget Creation Helpers

Pure builders for the three creation modes. The service persists what
these return and creates schedules for any payments they carry.

SMART MODE: looks at the paid spending of recent budgets.
- Per category: average paid spend per budget it appeared in
- Top 5 categories by that average get allocation = average * 1.1
- Total = average weekly spend * 1.05
- Needs at least 3 budgets of history
"""

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Mapping, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from budgetkeeper.models.ledger import (
    BudgetCategory,
    Category,
    CreationMode,
    PaymentEntry,
    PaymentStatus,
    WeeklyBudget,
)
from budgetkeeper.reconciliation.weeks import week_bounds, week_offset


CATEGORY_BUFFER = Decimal("1.1")
TOTAL_BUFFER = Decimal("1.05")
TOP_CATEGORY_COUNT = 5


class HistoryTrend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class TopCategory(BaseModel):
    category_id: UUID
    name: str
    average: Decimal
    trend: HistoryTrend


class HistoryInsights(BaseModel):
    """Summary of recent budgets that smart creation is based on."""

    budgets_considered: int
    average_weekly_spending: Decimal = Decimal("0")
    top_categories: list[TopCategory] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    suggested_total: Decimal = Decimal("0")


def _whole(value: Decimal) -> Decimal:
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def _cents(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _trend(amounts: list[Decimal]) -> HistoryTrend:
    """Compare the mean of the last three budgets with the first three."""
    recent = sum(amounts[-3:], Decimal("0")) / 3
    older = sum(amounts[:3], Decimal("0")) / 3
    if recent > older * Decimal("1.1"):
        return HistoryTrend.UP
    if recent < older * Decimal("0.9"):
        return HistoryTrend.DOWN
    return HistoryTrend.STABLE


def summarize_history(
    budgets: Iterable[WeeklyBudget],
    categories: Mapping[UUID, Category],
) -> HistoryInsights:
    """
    Summarize paid spending across historical budgets.

    Args:
        budgets: Historical budgets, any order
        categories: Category lookup for names

    Returns:
        HistoryInsights (empty figures when there are no budgets)
    """
    ordered = sorted(budgets, key=lambda b: b.week_start)
    if not ordered:
        return HistoryInsights(budgets_considered=0)

    per_category: dict[UUID, list[Decimal]] = {}
    total_spending = Decimal("0")
    for budget in ordered:
        for category in budget.categories:
            spent = category.spent
            per_category.setdefault(category.category_id, []).append(spent)
            total_spending += spent

    top = []
    for category_id, amounts in per_category.items():
        category = categories.get(category_id)
        top.append(TopCategory(
            category_id=category_id,
            name=category.name if category else "Unknown",
            average=_whole(sum(amounts, Decimal("0")) / len(amounts)),
            trend=_trend(amounts),
        ))
    top.sort(key=lambda c: c.average, reverse=True)
    top = top[:TOP_CATEGORY_COUNT]

    average_weekly = _whole(total_spending / len(ordered))
    recommendations = [
        f"Your {c.name} spending is trending up. Consider reviewing this category."
        for c in top
        if c.trend == HistoryTrend.UP
    ][:3]

    return HistoryInsights(
        budgets_considered=len(ordered),
        average_weekly_spending=average_weekly,
        top_categories=top,
        recommendations=recommendations,
        suggested_total=_cents(average_weekly * TOTAL_BUFFER),
    )


def build_smart_budget(
    user_id: UUID,
    week_start: date,
    insights: HistoryInsights,
) -> WeeklyBudget:
    start, end = week_bounds(week_start)
    return WeeklyBudget(
        user_id=user_id,
        week_start=start,
        week_end=end,
        total_budget=insights.suggested_total,
        creation_mode=CreationMode.SMART,
        categories=[
            BudgetCategory(
                category_id=c.category_id,
                allocation=_cents(c.average * CATEGORY_BUFFER),
            )
            for c in insights.top_categories
        ],
    )


def build_from_template(
    user_id: UUID,
    week_start: date,
    template: WeeklyBudget,
) -> WeeklyBudget:
    """
    Copy a budget into another week.

    Payment dates keep their offset within the week. Every copied payment
    starts over as pending with no payment history or links.
    """
    start, end = week_bounds(week_start)
    shift = week_offset(template.week_start, start)

    categories = []
    for source in template.categories:
        payments = [
            PaymentEntry(
                name=p.name,
                amount=p.amount,
                scheduled_date=p.scheduled_date + shift,
                status=PaymentStatus.PENDING,
                notes=p.notes,
                is_recurring=p.is_recurring,
            )
            for p in source.payments
            if not p.from_transaction
        ]
        categories.append(BudgetCategory(
            category_id=source.category_id,
            allocation=source.allocation,
            payments=payments,
        ))

    return WeeklyBudget(
        user_id=user_id,
        week_start=start,
        week_end=end,
        total_budget=template.total_budget,
        creation_mode=CreationMode.TEMPLATE,
        template_source_id=template.id,
        categories=categories,
    )


def build_manual_budget(
    user_id: UUID,
    week_start: date,
    total_budget: Decimal,
    allocations: Optional[Mapping[UUID, Decimal]] = None,
) -> WeeklyBudget:
    start, end = week_bounds(week_start)
    return WeeklyBudget(
        user_id=user_id,
        week_start=start,
        week_end=end,
        total_budget=total_budget,
        creation_mode=CreationMode.MANUAL,
        categories=[
            BudgetCategory(category_id=category_id, allocation=allocation)
            for category_id, allocation in (allocations or {}).items()
        ],
    )


def history_window(today: date, days: int) -> tuple[date, date]:
    return today - timedelta(days=days), today
