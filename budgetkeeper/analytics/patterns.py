"""
Pattern Extraction

Turns a window of expense transactions into per-category statistical
profiles (CategoryPattern) plus overall daily and weekly averages.
"""

from datetime import date
from typing import Iterable, Mapping
from uuid import UUID

from budgetkeeper.analytics.statistics import (
    population_std,
    quartiles,
    relative_trend,
    top_buckets,
)
from budgetkeeper.models.analytics import CategoryPattern, SpendingAnalysis
from budgetkeeper.models.ledger import Category, Transaction, TransactionType


PEAK_DAY_COUNT = 2
PEAK_MONTH_COUNT = 3


def build_pattern(
    category_id: UUID,
    category_name: str,
    transactions: list[Transaction],
) -> CategoryPattern:
    """
    Profile one category.

    Args:
        transactions: The category's transactions in chronological order
    """
    chronological = [float(t.amount) for t in transactions]
    amounts = sorted(chronological)
    weekday_totals = [0.0] * 7
    monthly_totals = [0.0] * 12
    for t in transactions:
        weekday_totals[t.transaction_date.weekday()] += float(t.amount)
        monthly_totals[t.transaction_date.month - 1] += float(t.amount)

    total = sum(amounts)
    q1, median, q3 = quartiles(amounts)

    return CategoryPattern(
        category_id=category_id,
        category_name=category_name,
        total=total,
        count=len(amounts),
        amounts=amounts,
        weekday_totals=weekday_totals,
        monthly_totals=monthly_totals,
        mean=total / len(amounts) if amounts else 0.0,
        median=median,
        q1=q1,
        q3=q3,
        iqr=q3 - q1,
        standard_deviation=population_std(amounts),
        trend=relative_trend(chronological),
        peak_days=top_buckets(weekday_totals, PEAK_DAY_COUNT),
        peak_months=top_buckets(monthly_totals, PEAK_MONTH_COUNT),
    )


def group_by_category(transactions: Iterable[Transaction]) -> dict[UUID, list[Transaction]]:
    """Expense transactions per category, each list in chronological order."""
    grouped: dict[UUID, list[Transaction]] = {}
    for t in sorted(transactions, key=lambda t: (t.transaction_date, t.created_at)):
        if t.type != TransactionType.EXPENSE:
            continue
        grouped.setdefault(t.category_id, []).append(t)
    return grouped


def daily_totals(transactions: Iterable[Transaction]) -> dict[date, float]:
    totals: dict[date, float] = {}
    for t in transactions:
        if t.type == TransactionType.EXPENSE:
            totals[t.transaction_date] = totals.get(t.transaction_date, 0.0) + float(t.amount)
    return totals


def analyze(
    transactions: Iterable[Transaction],
    categories: Mapping[UUID, Category],
    window_start: date,
    window_end: date,
) -> SpendingAnalysis:
    """
    Build the SpendingAnalysis for a window.

    The daily average is taken over days that had spending; the weekly
    average is seven times that.
    """
    transactions = list(transactions)
    patterns = {}
    for category_id, items in group_by_category(transactions).items():
        category = categories.get(category_id)
        patterns[category_id] = build_pattern(
            category_id,
            category.name if category else "Uncategorized",
            items,
        )

    per_day = daily_totals(transactions)
    daily_average = sum(per_day.values()) / len(per_day) if per_day else 0.0

    return SpendingAnalysis(
        window_start=window_start,
        window_end=window_end,
        patterns=patterns,
        daily_average=daily_average,
        weekly_average=daily_average * 7,
    )
