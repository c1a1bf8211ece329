"""
Spending Insights

Daily totals, spending velocity and category co-occurrence for a window.
"""

from collections import Counter
from datetime import date
from itertools import combinations
from typing import Iterable, Mapping
from uuid import UUID

from budgetkeeper.models.analytics import (
    CategoryCorrelation,
    DailySpending,
    SpendingInsights,
    SpendingVelocity,
    TrendLabel,
)
from budgetkeeper.models.ledger import Category, Transaction, TransactionType


VELOCITY_THRESHOLD = 10.0
TOP_CORRELATIONS = 5


def daily_spending(transactions: Iterable[Transaction]) -> list[DailySpending]:
    """Totals per day with spending, most recent day first."""
    totals: dict[date, DailySpending] = {}
    for t in transactions:
        if t.type != TransactionType.EXPENSE:
            continue
        day = totals.setdefault(
            t.transaction_date,
            DailySpending(day=t.transaction_date, total=0.0, count=0),
        )
        day.total += float(t.amount)
        day.count += 1
    return sorted(totals.values(), key=lambda d: d.day, reverse=True)


def velocity(days: list[DailySpending]) -> SpendingVelocity:
    """
    Compare the mean of the seven most recent spending days with the seven
    before them, as a percentage change.

    Args:
        days: Daily totals, most recent first
    """
    percentage = 0.0
    if len(days) > 1:
        recent = sum(d.total for d in days[:7]) / 7
        older = sum(d.total for d in days[7:14]) / 7
        percentage = (recent - older) / older * 100 if older > 0 else 0.0

    if percentage > VELOCITY_THRESHOLD:
        trend = TrendLabel.INCREASING
    elif percentage < -VELOCITY_THRESHOLD:
        trend = TrendLabel.DECREASING
    else:
        trend = TrendLabel.STABLE
    return SpendingVelocity(percentage=percentage, trend=trend)


def category_correlations(
    transactions: Iterable[Transaction],
    categories: Mapping[UUID, Category],
) -> list[CategoryCorrelation]:
    """Category pairs that most often have spending on the same day."""
    names_by_day: dict[date, set[str]] = {}
    for t in transactions:
        if t.type != TransactionType.EXPENSE:
            continue
        category = categories.get(t.category_id)
        names_by_day.setdefault(t.transaction_date, set()).add(
            category.name if category else "Uncategorized"
        )

    pairs: Counter = Counter()
    for names in names_by_day.values():
        pairs.update(combinations(sorted(names), 2))

    return [
        CategoryCorrelation(category_names=pair, occurrences=count)
        for pair, count in pairs.most_common(TOP_CORRELATIONS)
    ]


def build_insights(
    transactions: Iterable[Transaction],
    categories: Mapping[UUID, Category],
    window_start: date,
    window_end: date,
) -> SpendingInsights:
    transactions = list(transactions)
    days = daily_spending(transactions)
    return SpendingInsights(
        window_start=window_start,
        window_end=window_end,
        daily_spending=days,
        velocity=velocity(days),
        category_correlations=category_correlations(transactions, categories),
        daily_average=sum(d.total for d in days) / len(days) if days else 0.0,
    )
