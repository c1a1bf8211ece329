"""
Budget Optimizer

Rule-based recommendations, the allocation waterfall and weekly-pattern
insights, all derived from a SpendingAnalysis.

DESIGN DECISION: These are pure functions over already-fetched data.
The analytics service does the store I/O; everything here is
deterministic and unit-testable without a store.

Thresholds:
- Overallocation:  allocation > Q3 * 1.2        -> suggest Q3
- Underallocation: allocation < median * 0.9    -> suggest median
- High variance:   stdev > mean * 0.5           -> buffer = stdev
- Rising trend:    trend > 0.1
- Missing:         >= 5 transactions, no allocation -> suggest median
"""

from typing import Mapping
from uuid import UUID

from budgetkeeper.models.analytics import (
    AllocationSource,
    AllocationSuggestion,
    OptimizedAllocation,
    Recommendation,
    RecommendationType,
    SpendingAnalysis,
    WeeklyInsight,
)
from budgetkeeper.models.ledger import WeeklyBudget


OVERALLOCATION_FACTOR = 1.2
UNDERALLOCATION_FACTOR = 0.9
VARIANCE_FACTOR = 0.5
TREND_THRESHOLD = 0.1
MISSING_CATEGORY_MIN_COUNT = 5

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def recommend(budget: WeeklyBudget, analysis: SpendingAnalysis) -> list[Recommendation]:
    """
    Compare a budget's allocations with historical patterns.

    Every budget category with history goes through the allocation rules.
    One allocated zero also counts as unallocated for the missing rule.
    """
    recommendations: list[Recommendation] = []
    allocated: set[UUID] = set()

    for category in budget.categories:
        allocation = float(category.allocation)
        pattern = analysis.pattern_for(category.category_id)
        if pattern is None:
            continue
        if allocation > 0:
            allocated.add(category.category_id)
        name = pattern.category_name

        if allocation > pattern.q3 * OVERALLOCATION_FACTOR:
            savings = allocation - pattern.q3
            recommendations.append(Recommendation(
                type=RecommendationType.OVERALLOCATION,
                category_id=category.category_id,
                category_name=name,
                message=(
                    f"You've allocated {allocation:.2f} to {name}, but typically spend "
                    f"only {pattern.q3:.2f}. Consider reducing by {savings:.2f}."
                ),
                suggested_amount=pattern.q3,
                savings_potential=savings,
            ))

        if allocation < pattern.median * UNDERALLOCATION_FACTOR:
            recommendations.append(Recommendation(
                type=RecommendationType.UNDERALLOCATION,
                category_id=category.category_id,
                category_name=name,
                message=(
                    f"You've allocated {allocation:.2f} to {name}, but typically spend "
                    f"{pattern.median:.2f}. Consider increasing the allocation."
                ),
                suggested_amount=pattern.median,
            ))

        if pattern.standard_deviation > pattern.mean * VARIANCE_FACTOR:
            recommendations.append(Recommendation(
                type=RecommendationType.HIGH_VARIANCE,
                category_id=category.category_id,
                category_name=name,
                message=(
                    f"Your {name} spending varies significantly. Consider a buffer "
                    f"of {pattern.standard_deviation:.2f}."
                ),
                buffer_amount=pattern.standard_deviation,
            ))

        if pattern.trend > TREND_THRESHOLD:
            recommendations.append(Recommendation(
                type=RecommendationType.INCREASING_TREND,
                category_id=category.category_id,
                category_name=name,
                message=(
                    f"Your {name} spending has been increasing "
                    f"({pattern.trend * 100:.0f}% per transaction relative to average)."
                ),
                trend=pattern.trend,
            ))

    for category_id, pattern in analysis.patterns.items():
        if category_id in allocated or pattern.count < MISSING_CATEGORY_MIN_COUNT:
            continue
        recommendations.append(Recommendation(
            type=RecommendationType.MISSING_CATEGORY,
            category_id=category_id,
            category_name=pattern.category_name,
            message=(
                f"You regularly spend on {pattern.category_name} "
                f"(avg {pattern.mean:.2f}) but haven't allocated budget for it."
            ),
            suggested_amount=pattern.median,
        ))

    return recommendations


def optimize_allocation(
    total_budget: float,
    analysis: SpendingAnalysis,
    scheduled_by_category: Mapping[UUID, float],
    category_names: Mapping[UUID, str],
) -> OptimizedAllocation:
    """
    Waterfall allocation.

    Pass 1 covers pending scheduled payments in full (confidence 1.0).
    Pass 2 hands what is left to the other historical categories, most
    frequent first; each gets median * c + Q1 * (1 - c) with
    c = min(count / 10, 1), capped at the remainder.

    Args:
        total_budget: Budget to distribute
        analysis: Historical patterns
        scheduled_by_category: Pending scheduled amounts in the target week
        category_names: Names for scheduled categories
    """
    allocations: list[AllocationSuggestion] = []
    remaining = total_budget

    for category_id, amount in scheduled_by_category.items():
        if amount <= 0:
            continue
        allocations.append(AllocationSuggestion(
            category_id=category_id,
            category_name=category_names.get(category_id, "Uncategorized"),
            amount=amount,
            source=AllocationSource.SCHEDULED,
            confidence=1.0,
        ))
        remaining -= amount

    candidates = sorted(
        (p for cid, p in analysis.patterns.items() if cid not in scheduled_by_category),
        key=lambda p: p.count / 30,
        reverse=True,
    )
    for pattern in candidates:
        if remaining <= 0:
            break
        confidence = min(pattern.count / 10, 1.0)
        suggested = pattern.median * confidence + pattern.q1 * (1 - confidence)
        amount = min(suggested, remaining)
        if amount > 0:
            allocations.append(AllocationSuggestion(
                category_id=pattern.category_id,
                category_name=pattern.category_name,
                amount=amount,
                source=AllocationSource.HISTORICAL,
                confidence=confidence,
            ))
            remaining -= amount

    utilization = (total_budget - remaining) / total_budget * 100 if total_budget > 0 else 0.0
    return OptimizedAllocation(
        total_budget=total_budget,
        allocations=allocations,
        remaining_budget=remaining,
        utilization_rate=utilization,
    )


def weekly_insights(analysis: SpendingAnalysis) -> list[WeeklyInsight]:
    """Peak days, low days and weekend-versus-weekday spending."""
    totals = [0.0] * 7
    for pattern in analysis.patterns.values():
        for day, amount in enumerate(pattern.weekday_totals):
            totals[day] += amount

    average = sum(totals) / 7
    if average == 0:
        return []

    insights = []
    peak = sorted((d for d in range(7) if totals[d] > average * 1.2), key=lambda d: -totals[d])
    if peak:
        insights.append(WeeklyInsight(
            type="peak_days",
            message=f"Your highest spending days are {' and '.join(DAY_NAMES[d] for d in peak)}.",
            days=peak,
        ))

    low = sorted((d for d in range(7) if totals[d] < average * 0.8), key=lambda d: totals[d])
    if low:
        insights.append(WeeklyInsight(
            type="low_days",
            message=f"You tend to spend less on {' and '.join(DAY_NAMES[d] for d in low)}.",
            days=low,
        ))

    weekday_average = sum(totals[:5]) / 5
    weekend_average = sum(totals[5:]) / 2
    if weekday_average > 0 and weekend_average > weekday_average * 1.3:
        insights.append(WeeklyInsight(
            type="weekend_spending",
            message=(
                f"Your weekend spending is "
                f"{(weekend_average / weekday_average - 1) * 100:.0f}% higher than weekdays."
            ),
            days=[5, 6],
            weekday_average=weekday_average,
            weekend_average=weekend_average,
        ))

    return insights
