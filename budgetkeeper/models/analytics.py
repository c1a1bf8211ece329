"""
Spending Analytics Models

Result schemas for the Spending Analytics Engine.

DESIGN DECISION: Statistical figures are floats, not Decimals.
They are estimates derived from history (medians, deviations, trends),
never amounts that get written back to the ledger.
"""

from datetime import date
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class RecommendationType(str, Enum):
    OVERALLOCATION = "overallocation"
    UNDERALLOCATION = "underallocation"
    HIGH_VARIANCE = "high_variance"
    INCREASING_TREND = "increasing_trend"
    MISSING_CATEGORY = "missing_category"


class AnomalyDirection(str, Enum):
    UNUSUALLY_HIGH = "unusually_high"
    UNUSUALLY_LOW = "unusually_low"


class AllocationSource(str, Enum):
    SCHEDULED = "scheduled"
    HISTORICAL = "historical"


class TrendLabel(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


# =============================================================================
# PATTERNS
# =============================================================================

class CategoryPattern(BaseModel):
    """
    Statistical profile of one category's expense history.

    Quartiles and median are taken by index on the sorted amount list:
    Q1 = amounts[floor(n * 0.25)], median = amounts[floor(n / 2)],
    Q3 = amounts[floor(n * 0.75)].
    """

    category_id: UUID
    category_name: str
    total: float
    count: int = Field(ge=0)
    amounts: list[float] = Field(
        default_factory=list,
        description="Amounts sorted ascending"
    )
    weekday_totals: list[float] = Field(
        default_factory=lambda: [0.0] * 7,
        description="Totals per weekday, Monday=0"
    )
    monthly_totals: list[float] = Field(
        default_factory=lambda: [0.0] * 12,
        description="Totals per calendar month, January=0"
    )
    mean: float
    median: float
    q1: float
    q3: float
    iqr: float
    standard_deviation: float
    trend: float = Field(
        description="OLS slope of amount vs. sequence index, divided by the mean"
    )
    peak_days: list[int] = Field(default_factory=list)
    peak_months: list[int] = Field(default_factory=list)

    @property
    def lower_bound(self) -> float:
        """Tukey lower fence."""
        return self.q1 - 1.5 * self.iqr

    @property
    def upper_bound(self) -> float:
        """Tukey upper fence."""
        return self.q3 + 1.5 * self.iqr

    def classify(self, amount: float) -> Optional[AnomalyDirection]:
        if amount > self.upper_bound:
            return AnomalyDirection.UNUSUALLY_HIGH
        if amount < self.lower_bound:
            return AnomalyDirection.UNUSUALLY_LOW
        return None


class SpendingAnalysis(BaseModel):
    """Patterns for every category seen in the analysis window."""

    window_start: date
    window_end: date
    patterns: dict[UUID, CategoryPattern] = Field(default_factory=dict)
    daily_average: float = 0.0
    weekly_average: float = 0.0

    def pattern_for(self, category_id: UUID) -> Optional[CategoryPattern]:
        return self.patterns.get(category_id)


# =============================================================================
# RECOMMENDATIONS
# =============================================================================

class Recommendation(BaseModel):
    type: RecommendationType
    category_id: UUID
    category_name: str
    message: str
    suggested_amount: Optional[float] = None
    savings_potential: Optional[float] = None
    buffer_amount: Optional[float] = None
    trend: Optional[float] = None


class WeeklyInsight(BaseModel):
    """Observations about which days of the week carry the spending."""

    type: str = Field(pattern="^(peak_days|low_days|weekend_spending)$")
    message: str
    days: list[int] = Field(default_factory=list)
    weekday_average: Optional[float] = None
    weekend_average: Optional[float] = None


class AllocationSuggestion(BaseModel):
    category_id: UUID
    category_name: str
    amount: float = Field(ge=0)
    source: AllocationSource
    confidence: float = Field(ge=0.0, le=1.0)


class OptimizedAllocation(BaseModel):
    total_budget: float
    allocations: list[AllocationSuggestion] = Field(default_factory=list)
    remaining_budget: float
    utilization_rate: float = Field(description="Percent of the budget allocated")

    def amount_for(self, category_id: UUID) -> float:
        return sum(a.amount for a in self.allocations if a.category_id == category_id)


class RecommendationReport(BaseModel):
    budget_id: UUID
    recommendations: list[Recommendation] = Field(default_factory=list)
    total_savings_potential: float = 0.0
    optimized_allocation: OptimizedAllocation
    weekly_insights: list[WeeklyInsight] = Field(default_factory=list)
    daily_average: float = 0.0
    weekly_average: float = 0.0


# =============================================================================
# ANOMALIES
# =============================================================================

class Anomaly(BaseModel):
    transaction_id: UUID
    category_id: UUID
    category_name: str
    amount: float
    transaction_date: date
    description: Optional[str] = None
    direction: AnomalyDirection
    typical_min: float
    typical_max: float


class AnomalyReport(BaseModel):
    anomalies: list[Anomaly] = Field(
        default_factory=list,
        description="Most recent first, capped"
    )
    total: int = 0
    high: int = 0
    low: int = 0


# =============================================================================
# FORECAST
# =============================================================================

class ForecastPoint(BaseModel):
    week: int = Field(ge=1)
    amount: float = Field(ge=0)
    confidence: float = Field(ge=0.0, le=1.0)


class CategoryForecast(BaseModel):
    category_id: UUID
    category_name: str
    trend: TrendLabel
    points: list[ForecastPoint] = Field(default_factory=list)


class Forecast(BaseModel):
    weeks: int = Field(ge=1)
    category_forecasts: list[CategoryForecast] = Field(default_factory=list)
    total_forecast: list[ForecastPoint] = Field(default_factory=list)
    baseline_weekly: float = 0.0


# =============================================================================
# SPENDING INSIGHTS
# =============================================================================

class DailySpending(BaseModel):
    day: date
    total: float
    count: int


class CategoryCorrelation(BaseModel):
    category_names: tuple[str, str]
    occurrences: int


class SpendingVelocity(BaseModel):
    percentage: float
    trend: TrendLabel


class SpendingInsights(BaseModel):
    window_start: date
    window_end: date
    daily_spending: list[DailySpending] = Field(default_factory=list)
    velocity: SpendingVelocity
    category_correlations: list[CategoryCorrelation] = Field(default_factory=list)
    daily_average: float = 0.0
