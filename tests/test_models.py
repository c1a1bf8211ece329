"""
Tests for BudgetKeeper models

Test strategy:
1. Unit tests for individual components (models, validators, pure helpers)
2. Service tests against the in-memory entity store
3. No real spreadsheet calls in tests
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from budgetkeeper.models import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    BudgetCategory,
    BudgetPlan,
    Category,
    CreationMode,
    EntryRef,
    Household,
    PaymentEntry,
    PaymentSchedule,
    PaymentStatus,
    RefKind,
    ValidationIssue,
    ValidationResult,
    WeeklyBudget,
)


def entry(amount, status=PaymentStatus.PENDING, **kwargs):
    return PaymentEntry(
        name=kwargs.pop("name", "Item"),
        amount=Decimal(str(amount)),
        scheduled_date=kwargs.pop("scheduled_date", date(2024, 3, 12)),
        status=status,
        **kwargs,
    )


class TestEntryRef:
    """Tests for tagged entry references."""

    def test_none_reference_has_no_id(self):
        ref = EntryRef.none()
        assert ref.kind == RefKind.NONE
        assert ref.id is None

    def test_schedule_reference(self):
        schedule_id = uuid4()
        ref = EntryRef.schedule(schedule_id)
        assert ref.kind == RefKind.SCHEDULE
        assert ref.id == schedule_id

    def test_kind_without_id_rejected(self):
        with pytest.raises(ValidationError):
            EntryRef(kind=RefKind.TRANSACTION)

    def test_none_with_id_rejected(self):
        with pytest.raises(ValidationError):
            EntryRef(kind=RefKind.NONE, id=uuid4())

    def test_entry_matches_own_and_schedule_id(self):
        schedule_id = uuid4()
        e = entry(10, ref=EntryRef.schedule(schedule_id))
        assert e.matches(e.id)
        assert e.matches(schedule_id)
        assert e.schedule_id == schedule_id
        assert not e.matches(uuid4())


class TestWeeklyBudget:
    """Tests for the weekly budget model and its derived figures."""

    def test_week_must_span_seven_days(self):
        with pytest.raises(ValidationError):
            WeeklyBudget(
                user_id=uuid4(),
                week_start=date(2024, 3, 11),
                week_end=date(2024, 3, 18),
            )

    def test_spent_counts_only_paid_entries(self):
        category = BudgetCategory(
            category_id=uuid4(),
            allocation=Decimal("100"),
            payments=[entry(30, PaymentStatus.PAID), entry(50)],
        )
        assert category.spent == Decimal("30")
        assert category.scheduled == Decimal("80")

        spending = category.spending()
        assert spending.remaining == Decimal("70")
        assert spending.percentage_used == pytest.approx(30.0)

    def test_derived_totals(self):
        budget = WeeklyBudget(
            user_id=uuid4(),
            week_start=date(2024, 3, 11),
            week_end=date(2024, 3, 17),
            total_budget=Decimal("200"),
            categories=[
                BudgetCategory(
                    category_id=uuid4(),
                    allocation=Decimal("120"),
                    payments=[entry(40, PaymentStatus.PAID)],
                ),
                BudgetCategory(category_id=uuid4(), allocation=Decimal("50")),
            ],
        )
        assert budget.total_spent == Decimal("40")
        assert budget.remaining_budget == Decimal("160")
        assert budget.total_allocated == Decimal("170")
        assert budget.unallocated == Decimal("30")

    def test_zero_allocation_reports_zero_percent(self):
        category = BudgetCategory(
            category_id=uuid4(),
            payments=[entry(25, PaymentStatus.PAID)],
        )
        assert category.spending().percentage_used == 0.0

    def test_linked_transaction_ids(self):
        tx_id = uuid4()
        budget = WeeklyBudget(
            user_id=uuid4(),
            week_start=date(2024, 3, 11),
            week_end=date(2024, 3, 17),
            categories=[BudgetCategory(
                category_id=uuid4(),
                payments=[entry(10, PaymentStatus.PAID, transaction_id=tx_id), entry(5)],
            )],
        )
        assert budget.linked_transaction_ids() == {tx_id}
        assert budget.find_payment_by_transaction(tx_id) is not None


class TestPaymentSchedule:
    """Tests for schedule status helpers."""

    def test_check_overdue(self):
        schedule = PaymentSchedule(
            user_id=uuid4(),
            name="Rent",
            amount=Decimal("500"),
            category_id=uuid4(),
            due_date=date(2024, 3, 1),
        )
        assert schedule.check_overdue(date(2024, 3, 2)) is True
        assert schedule.status == PaymentStatus.OVERDUE

    def test_paid_schedule_never_overdue(self):
        schedule = PaymentSchedule(
            user_id=uuid4(),
            name="Rent",
            amount=Decimal("500"),
            category_id=uuid4(),
            due_date=date(2024, 3, 1),
            status=PaymentStatus.PAID,
        )
        assert schedule.check_overdue(date(2024, 3, 20)) is False

    def test_mark_paid_then_pending(self):
        payer = uuid4()
        schedule = PaymentSchedule(
            user_id=uuid4(),
            name="Rent",
            amount=Decimal("500"),
            category_id=uuid4(),
            due_date=date(2024, 3, 12),
        )
        schedule.mark_paid(payer, date(2024, 3, 13))
        assert schedule.paid_by == payer

        schedule.mark_pending()
        assert schedule.status == PaymentStatus.PENDING
        assert schedule.paid_by is None
        assert schedule.paid_date is None


class TestReferenceData:
    """Tests for categories and households."""

    def test_quick_payment_category(self):
        assert Category(name="Quick Payment", is_system=True).is_quick_payment
        assert not Category(name="Quick Payment").is_quick_payment

    def test_household_members(self):
        owner, member = uuid4(), uuid4()
        household = Household(name="Home", created_by=owner, member_ids=[member, owner])
        assert household.has_member(owner)
        assert household.has_member(member)
        assert household.all_member_ids == [owner, member]
        assert not household.has_member(uuid4())

    def test_template_plan_requires_template_id(self):
        with pytest.raises(ValidationError):
            BudgetPlan(week_start=date(2024, 3, 11), mode=CreationMode.TEMPLATE)


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED,
            description="Budget created",
            details={"mode": "manual"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "budget_created"
        assert log_dict["details"]["mode"] == "manual"

    def test_audit_event_to_sheets_row(self):
        event = AuditEvent(
            event_type=AuditEventType.SAVE_CONFLICT,
            description="Conflict",
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "save_conflict"

    def test_builder_partial_failure_is_error(self):
        budget_id, payment_id, tx_id = uuid4(), uuid4(), uuid4()
        event = AuditEventBuilder.partial_failure(
            budget_id=budget_id,
            payment_id=payment_id,
            transaction_id=tx_id,
            step="transaction creation",
            error_message="boom",
        )
        assert event.severity == AuditSeverity.ERROR
        assert event.entity_id == budget_id
        assert event.details["transaction_id"] == str(tx_id)

    def test_builder_conflict_exhausted_is_error(self):
        event = AuditEventBuilder.conflict_exhausted(budget_id=uuid4(), attempts=3)
        assert event.event_type == AuditEventType.CONFLICT_EXHAUSTED
        assert event.severity == AuditSeverity.ERROR


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        result = ValidationResult(
            schema_valid=False,
            semantic_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="missing",
                    message="Payment amount is required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1
        assert result.is_valid is False

    def test_validation_result_warnings_only(self):
        result = ValidationResult(
            schema_valid=True,
            semantic_valid=True,
            issues=[
                ValidationIssue(
                    field="scheduled_date",
                    issue_type="outside_week",
                    message="Outside week",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert len(result.warnings) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
