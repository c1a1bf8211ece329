"""
Spending Forecast

Per-category weekly projection from the median, the relative trend and
a bounded noise term:

    amount(w) = max(0, median + trend * median * w + noise)
    noise     ~ uniform(-stdev / 4, +stdev / 4)
    confidence(w) = max(0.5, 1 - 0.1 * (w - 1))

The noise source is a numpy Generator so callers (and tests) can seed it.
"""

from typing import Optional

import numpy as np

from budgetkeeper.models.analytics import (
    CategoryForecast,
    CategoryPattern,
    Forecast,
    ForecastPoint,
    SpendingAnalysis,
    TrendLabel,
)


TREND_LABEL_THRESHOLD = 0.05


def trend_label(trend: float) -> TrendLabel:
    if trend > TREND_LABEL_THRESHOLD:
        return TrendLabel.INCREASING
    if trend < -TREND_LABEL_THRESHOLD:
        return TrendLabel.DECREASING
    return TrendLabel.STABLE


def confidence_for(week: int) -> float:
    return max(0.5, 1 - 0.1 * (week - 1))


def forecast_category(
    pattern: CategoryPattern,
    weeks: int,
    rng: np.random.Generator,
) -> CategoryForecast:
    spread = pattern.standard_deviation / 4
    points = []
    for week in range(1, weeks + 1):
        noise = rng.uniform(-spread, spread) if spread > 0 else 0.0
        amount = pattern.median + pattern.trend * pattern.median * week + noise
        points.append(ForecastPoint(
            week=week,
            amount=max(0.0, float(amount)),
            confidence=confidence_for(week),
        ))
    return CategoryForecast(
        category_id=pattern.category_id,
        category_name=pattern.category_name,
        trend=trend_label(pattern.trend),
        points=points,
    )


def build_forecast(
    analysis: SpendingAnalysis,
    weeks: int,
    rng: Optional[np.random.Generator] = None,
    min_points: int = 5,
) -> Forecast:
    """
    Forecast every category with at least `min_points` transactions.

    Args:
        analysis: Patterns to project from
        weeks: Number of weeks ahead (>= 1)
        rng: Noise source; a fresh unseeded Generator when omitted
        min_points: Minimum history per category
    """
    if weeks < 1:
        raise ValueError("weeks must be at least 1")
    rng = rng or np.random.default_rng()

    forecasts = []
    for pattern in analysis.patterns.values():
        if pattern.count < min_points:
            continue
        forecasts.append(forecast_category(pattern, weeks, rng))

    totals = [
        ForecastPoint(
            week=week,
            amount=sum(f.points[week - 1].amount for f in forecasts),
            confidence=confidence_for(week),
        )
        for week in range(1, weeks + 1)
    ]

    return Forecast(
        weeks=weeks,
        category_forecasts=forecasts,
        total_forecast=totals,
        baseline_weekly=analysis.weekly_average,
    )
