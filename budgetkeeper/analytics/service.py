"""
Spending Analytics Service

Fetches the requester's ledger history from the entity store and runs
the analytics functions over it.

DESIGN DECISION: The service is read-only. Nothing it computes is
written back; recommendations are suggestions for the caller to apply
through the reconciliation service.
"""

from datetime import date, timedelta
from typing import Callable, Iterable, Optional
from uuid import UUID

import numpy as np

from budgetkeeper.analytics import anomalies, forecast, insights, optimizer, patterns
from budgetkeeper.config import get_settings
from budgetkeeper.config.settings import AnalyticsSettings
from budgetkeeper.errors import BudgetValidationError
from budgetkeeper.models.analytics import (
    AnomalyReport,
    Forecast,
    OptimizedAllocation,
    RecommendationReport,
    SpendingAnalysis,
    SpendingInsights,
)
from budgetkeeper.models.ledger import (
    Category,
    PaymentStatus,
    Transaction,
    TransactionType,
    WeeklyBudget,
)
from budgetkeeper.reconciliation.service import translate_storage_errors
from budgetkeeper.reconciliation.weeks import week_bounds
from budgetkeeper.services.storage import EntityStore


class SpendingAnalyticsService:
    """Statistical views over one user's expense history."""

    def __init__(
        self,
        store: EntityStore,
        settings: Optional[AnalyticsSettings] = None,
        rng: Optional[np.random.Generator] = None,
        today: Callable[[], date] = date.today,
    ):
        self._store = store
        self._settings = settings or get_settings().analytics
        self._rng = rng or np.random.default_rng(self._settings.forecast_seed)
        self._today = today

    # -------------------------------------------------------------------------
    # Data access
    # -------------------------------------------------------------------------

    def _window(self, days: int) -> tuple[date, date]:
        if days < 1:
            raise BudgetValidationError("Analysis window must be at least one day")
        today = self._today()
        return today - timedelta(days=days), today

    async def _expenses(
        self,
        user_id: UUID,
        start: date,
        end: date,
    ) -> list[Transaction]:
        return await self._store.list_transactions(
            user_ids=[user_id],
            transaction_type=TransactionType.EXPENSE,
            date_from=start,
            date_to=end,
        )

    async def _categories(self, category_ids: Iterable[UUID]) -> dict[UUID, Category]:
        lookup = {}
        for category_id in set(category_ids):
            category = await self._store.get_category(category_id)
            if category is not None:
                lookup[category_id] = category
        return lookup

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    @translate_storage_errors
    async def analyze_spending_patterns(
        self,
        user_id: UUID,
        days: Optional[int] = None,
    ) -> SpendingAnalysis:
        """
        Per-category statistical profiles over the trailing window.

        Args:
            user_id: Whose transactions to analyze
            days: Window length (defaults to the configured pattern window)
        """
        start, end = self._window(days or self._settings.pattern_window_days)
        transactions = await self._expenses(user_id, start, end)
        categories = await self._categories(t.category_id for t in transactions)
        return patterns.analyze(transactions, categories, start, end)

    @translate_storage_errors
    async def optimized_allocations(
        self,
        user_id: UUID,
        total_budget: float,
        week_of: Optional[date] = None,
        analysis: Optional[SpendingAnalysis] = None,
    ) -> OptimizedAllocation:
        """
        Distribute `total_budget` over categories for the week containing `week_of`.

        Pending schedules due that week are covered first.
        """
        if total_budget < 0:
            raise BudgetValidationError("Total budget cannot be negative")
        analysis = analysis or await self.analyze_spending_patterns(user_id)

        start, end = week_bounds(week_of or self._today())
        pending = await self._store.list_schedules(
            user_ids=[user_id],
            due_from=start,
            due_to=end,
            statuses=[PaymentStatus.PENDING],
        )
        scheduled: dict[UUID, float] = {}
        for schedule in pending:
            scheduled[schedule.category_id] = (
                scheduled.get(schedule.category_id, 0.0) + float(schedule.amount)
            )
        # Scheduled categories that no longer exist are not allocated
        categories = await self._categories(scheduled)
        scheduled = {cid: amount for cid, amount in scheduled.items() if cid in categories}

        return optimizer.optimize_allocation(
            float(total_budget),
            analysis,
            scheduled,
            {cid: c.name for cid, c in categories.items()},
        )

    @translate_storage_errors
    async def generate_recommendations(
        self,
        user_id: UUID,
        budget: WeeklyBudget,
    ) -> RecommendationReport:
        """
        Review a budget's allocations against the user's history.

        Includes the optimized allocation of the budget's total for its
        week and the weekly-pattern insights.
        """
        analysis = await self.analyze_spending_patterns(user_id)
        recommendations = optimizer.recommend(budget, analysis)
        allocation = await self.optimized_allocations(
            user_id,
            float(budget.total_budget),
            week_of=budget.week_start,
            analysis=analysis,
        )

        return RecommendationReport(
            budget_id=budget.id,
            recommendations=recommendations,
            total_savings_potential=sum(r.savings_potential or 0.0 for r in recommendations),
            optimized_allocation=allocation,
            weekly_insights=optimizer.weekly_insights(analysis),
            daily_average=analysis.daily_average,
            weekly_average=analysis.weekly_average,
        )

    @translate_storage_errors
    async def spending_insights(
        self,
        user_id: UUID,
        days: Optional[int] = None,
    ) -> SpendingInsights:
        start, end = self._window(days or self._settings.insights_window_days)
        transactions = await self._expenses(user_id, start, end)
        categories = await self._categories(t.category_id for t in transactions)
        return insights.build_insights(transactions, categories, start, end)

    @translate_storage_errors
    async def detect_anomalies(
        self,
        user_id: UUID,
        days: Optional[int] = None,
    ) -> AnomalyReport:
        start, end = self._window(days or self._settings.pattern_window_days)
        transactions = await self._expenses(user_id, start, end)
        categories = await self._categories(t.category_id for t in transactions)
        return anomalies.detect(
            transactions,
            categories,
            min_points=self._settings.min_points,
            limit=self._settings.anomaly_limit,
        )

    @translate_storage_errors
    async def forecast(
        self,
        user_id: UUID,
        weeks: int = 4,
    ) -> Forecast:
        """Project weekly spending per category for the next `weeks` weeks."""
        if weeks < 1:
            raise BudgetValidationError("Forecast needs at least one week")
        analysis = await self.analyze_spending_patterns(user_id)
        return forecast.build_forecast(
            analysis,
            weeks,
            rng=self._rng,
            min_points=self._settings.min_points,
        )
