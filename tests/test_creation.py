"""Tests for budget creation, replacement and auto-provisioning."""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from budgetkeeper.errors import BudgetValidationError, CategoryNotFoundError, UnauthorizedError
from budgetkeeper.models import (
    AuditEventType,
    BudgetCategory,
    BudgetPlan,
    CategoryPlan,
    CreationMode,
    PaymentDraft,
    PaymentEntry,
    PaymentStatus,
    WeeklyBudget,
)
from budgetkeeper.reconciliation import start_of_week, week_bounds
from budgetkeeper.reconciliation.creation import HistoryTrend, build_from_template, summarize_history

from conftest import TODAY, WEEK_END, WEEK_START


NEXT_WEEK = date(2024, 3, 18)


def paid_week(user_id, category_id, week_start, spent):
    start, end = week_bounds(week_start)
    return WeeklyBudget(
        user_id=user_id,
        week_start=start,
        week_end=end,
        categories=[BudgetCategory(
            category_id=category_id,
            allocation=Decimal("200"),
            payments=[PaymentEntry(
                name="Shop",
                amount=Decimal(str(spent)),
                scheduled_date=start,
                status=PaymentStatus.PAID,
                paid_date=start,
            )],
        )],
    )


async def events_of(audit_storage, event_type):
    return [e for e in await audit_storage.get_recent_events() if e.event_type == event_type]


class TestWeeks:
    """Week arithmetic."""

    @pytest.mark.parametrize("day, monday", [
        (date(2024, 3, 11), date(2024, 3, 11)),
        (date(2024, 3, 13), date(2024, 3, 11)),
        (date(2024, 3, 17), date(2024, 3, 11)),
        (date(2024, 3, 18), date(2024, 3, 18)),
    ])
    def test_start_of_week(self, day, monday):
        assert start_of_week(day) == monday

    def test_week_bounds(self):
        assert week_bounds(TODAY) == (WEEK_START, WEEK_END)


class TestHistorySummary:
    """Pure smart-mode helpers."""

    def test_averages_and_suggested_total(self):
        user_id, food = uuid4(), uuid4()
        history = [
            paid_week(user_id, food, date(2024, 2, 19), 100),
            paid_week(user_id, food, date(2024, 2, 26), 120),
            paid_week(user_id, food, date(2024, 3, 4), 140),
        ]
        insights = summarize_history(history, {})

        assert insights.budgets_considered == 3
        assert insights.average_weekly_spending == Decimal("120")
        assert insights.suggested_total == Decimal("126.00")
        assert insights.top_categories[0].average == Decimal("120")
        assert insights.top_categories[0].name == "Unknown"

    def test_rising_category_recommended(self):
        user_id, food = uuid4(), uuid4()
        amounts = [50, 50, 50, 100, 100, 100]
        history = [
            paid_week(user_id, food, date(2024, 1, 1) + timedelta(weeks=i), amount)
            for i, amount in enumerate(amounts)
        ]
        insights = summarize_history(history, {})

        assert insights.top_categories[0].trend == HistoryTrend.UP
        assert len(insights.recommendations) == 1

    def test_template_copy_shifts_dates_and_resets_status(self):
        user_id, food = uuid4(), uuid4()
        template = paid_week(user_id, food, date(2024, 3, 4), 80)

        copy = build_from_template(user_id, WEEK_START, template)

        entry = copy.categories[0].payments[0]
        assert entry.scheduled_date == WEEK_START
        assert entry.status == PaymentStatus.PENDING
        assert entry.paid_date is None
        assert entry.id != template.categories[0].payments[0].id
        assert copy.template_source_id == template.id
        assert copy.categories[0].allocation == Decimal("200")


class TestCreateBudget:
    """Creation through the reconciliation service."""

    @pytest.mark.anyio
    async def test_manual_with_payments(self, service, store, audit_storage, user_id, housing):
        plan = BudgetPlan(
            week_start=NEXT_WEEK,
            total_budget=Decimal("300"),
            categories=[CategoryPlan(
                category_id=housing.id,
                allocation=Decimal("200"),
                payments=[PaymentDraft(
                    name="Rent", amount=Decimal("150"), scheduled_date=date(2024, 3, 22)
                )],
            )],
        )

        created = await service.create_budget(user_id, plan)

        budget = created.budget
        assert budget.week_start == NEXT_WEEK
        assert budget.week_end == date(2024, 3, 24)
        assert budget.total_budget == Decimal("300")
        assert created.replaced_budget_id is None

        entry = budget.categories[0].payments[0]
        assert entry.status == PaymentStatus.PENDING
        assert len(created.schedules) == 1
        assert entry.schedule_id == created.schedules[0].id

        schedule = await store.get_schedule(entry.schedule_id)
        assert schedule.weekly_budget_id == budget.id
        assert schedule.user_id == user_id
        assert len(await events_of(audit_storage, AuditEventType.BUDGET_CREATED)) == 1

    @pytest.mark.anyio
    async def test_week_start_normalized_to_monday(self, service, user_id):
        created = await service.create_budget(user_id, BudgetPlan(week_start=date(2024, 3, 21)))
        assert created.budget.week_start == NEXT_WEEK

    @pytest.mark.anyio
    async def test_unknown_category_rejected(self, service, store, user_id):
        plan = BudgetPlan(
            week_start=NEXT_WEEK,
            categories=[CategoryPlan(category_id=uuid4())],
        )
        with pytest.raises(CategoryNotFoundError):
            await service.create_budget(user_id, plan)
        assert await store.list_budgets(user_ids=[user_id]) == []

    @pytest.mark.anyio
    async def test_overflowing_payments_rejected(self, service, store, user_id, housing):
        plan = BudgetPlan(
            week_start=NEXT_WEEK,
            categories=[CategoryPlan(
                category_id=housing.id,
                allocation=Decimal("100"),
                payments=[
                    PaymentDraft(name="A", amount=Decimal("60"), scheduled_date=NEXT_WEEK),
                    PaymentDraft(name="B", amount=Decimal("60"), scheduled_date=NEXT_WEEK),
                ],
            )],
        )

        with pytest.raises(BudgetValidationError) as exc_info:
            await service.create_budget(user_id, plan)

        assert exc_info.value.issues[0].issue_type == "exceeds_allocation"
        assert await store.list_budgets(user_ids=[user_id]) == []
        assert await store.list_schedules(user_ids=[user_id]) == []

    @pytest.mark.anyio
    async def test_replaces_existing_week(
        self, service, store, audit_storage, user_id, budget, housing
    ):
        old = await service.add_payment_to_category(
            user_id, budget.id, housing.id,
            PaymentDraft(name="Rent", amount=Decimal("500"), scheduled_date=TODAY),
        )

        created = await service.create_budget(
            user_id, BudgetPlan(week_start=WEEK_START, total_budget=Decimal("50"))
        )

        assert created.replaced_budget_id == budget.id
        assert await store.get_budget(budget.id) is None
        assert await store.get_schedule(old.schedule.id) is None
        assert [b.id for b in await store.list_budgets(user_ids=[user_id])] == [created.budget.id]
        assert len(await events_of(audit_storage, AuditEventType.BUDGET_REPLACED)) == 1

    @pytest.mark.anyio
    async def test_from_template(self, service, store, user_id, housing):
        template = await store.create_budget(paid_week(user_id, housing.id, date(2024, 3, 4), 80))

        created = await service.create_budget(user_id, BudgetPlan(
            week_start=WEEK_START,
            mode=CreationMode.TEMPLATE,
            template_id=template.id,
        ))

        budget = created.budget
        assert budget.creation_mode == CreationMode.TEMPLATE
        assert budget.template_source_id == template.id
        entry = budget.categories[0].payments[0]
        assert entry.status == PaymentStatus.PENDING
        assert entry.scheduled_date == WEEK_START
        assert entry.schedule_id == created.schedules[0].id
        assert await store.get_budget(template.id) is not None

    @pytest.mark.anyio
    async def test_foreign_template_rejected(self, service, store, user_id, housing):
        template = await store.create_budget(paid_week(uuid4(), housing.id, date(2024, 3, 4), 80))

        with pytest.raises(UnauthorizedError):
            await service.create_budget(user_id, BudgetPlan(
                week_start=WEEK_START,
                mode=CreationMode.TEMPLATE,
                template_id=template.id,
            ))

    @pytest.mark.anyio
    async def test_smart_from_history(self, service, store, user_id, groceries):
        for week_start, spent in [
            (date(2024, 2, 19), 100),
            (date(2024, 2, 26), 120),
            (date(2024, 3, 4), 140),
        ]:
            await store.create_budget(paid_week(user_id, groceries.id, week_start, spent))

        created = await service.create_budget(
            user_id, BudgetPlan(week_start=NEXT_WEEK, mode=CreationMode.SMART)
        )

        assert created.budget.creation_mode == CreationMode.SMART
        assert created.budget.total_budget == Decimal("126.00")
        assert created.budget.categories[0].category_id == groceries.id
        assert created.budget.categories[0].allocation == Decimal("132.00")
        assert created.insights.top_categories[0].name == "Groceries"

    @pytest.mark.anyio
    async def test_smart_needs_history(self, service, store, user_id, groceries):
        await store.create_budget(paid_week(user_id, groceries.id, date(2024, 3, 4), 100))

        with pytest.raises(BudgetValidationError) as exc_info:
            await service.create_budget(
                user_id, BudgetPlan(week_start=NEXT_WEEK, mode=CreationMode.SMART)
            )
        assert exc_info.value.issues[0].issue_type == "insufficient_history"

    @pytest.mark.anyio
    async def test_smart_ignores_budget_being_replaced(self, service, store, user_id, groceries):
        for week_start in (date(2024, 2, 26), date(2024, 3, 4), WEEK_START):
            await store.create_budget(paid_week(user_id, groceries.id, week_start, 100))

        with pytest.raises(BudgetValidationError):
            await service.create_budget(
                user_id, BudgetPlan(week_start=WEEK_START, mode=CreationMode.SMART)
            )


class TestCurrentWeek:
    """Auto-provisioning of the current week's budget."""

    @pytest.mark.anyio
    async def test_created_once(self, service, store, audit_storage, user_id, quick_payment):
        first = await service.get_or_create_current_week(user_id)
        second = await service.get_or_create_current_week(user_id)

        assert first.id == second.id
        assert first.week_start == WEEK_START
        assert first.total_budget == Decimal("0")
        assert [c.category_id for c in first.categories] == [quick_payment.id]
        assert len(await events_of(audit_storage, AuditEventType.BUDGET_AUTO_PROVISIONED)) == 1

    @pytest.mark.anyio
    async def test_without_quick_payment_category(self, service, user_id):
        budget = await service.get_or_create_current_week(user_id)
        assert budget.categories == []

    @pytest.mark.anyio
    async def test_existing_budget_returned(self, service, user_id, budget):
        current = await service.get_or_create_current_week(user_id)
        assert current.id == budget.id
