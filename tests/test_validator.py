"""
Tests for the two-stage payment validator.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from budgetkeeper.config import ReconciliationSettings
from budgetkeeper.models import (
    BudgetCategory,
    PaymentDraft,
    PaymentEntry,
    PaymentStatus,
    PaymentUpdate,
    WeeklyBudget,
)
from budgetkeeper.validation import PaymentValidator

from conftest import WEEK_END, WEEK_START


@pytest.fixture
def validator():
    return PaymentValidator(ReconciliationSettings(max_payment_amount=10000))


@pytest.fixture
def week():
    return WeeklyBudget(user_id=uuid4(), week_start=WEEK_START, week_end=WEEK_END)


def draft(**overrides):
    fields = {"name": "Rent", "amount": Decimal("500"), "scheduled_date": date(2024, 3, 15)}
    fields.update(overrides)
    return PaymentDraft(**fields)


def issue_types(result):
    return [i.issue_type for i in result.issues]


class TestSchemaStage:
    """Presence and range checks."""

    def test_valid_draft(self, validator, week):
        result = validator.validate_new_payment(draft(), week)
        assert result.is_valid
        assert result.issues == []

    @pytest.mark.parametrize("field", ["name", "amount", "scheduled_date"])
    def test_missing_required(self, validator, week, field):
        result = validator.validate_new_payment(draft(**{field: None}), week)
        assert not result.schema_valid
        assert "missing" in issue_types(result)

    def test_blank_name_is_missing(self, validator, week):
        result = validator.validate_new_payment(draft(name="   "), week)
        assert issue_types(result) == ["missing"]

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_non_positive_amount(self, validator, week, amount):
        result = validator.validate_new_payment(draft(amount=Decimal(amount)), week)
        assert result.has_errors

    def test_sub_cent_amount(self, validator, week):
        result = validator.validate_new_payment(draft(amount=Decimal("10.006")), week)
        assert result.issues[0].suggested_fix == "Use 10.01"

    def test_semantic_stage_skipped_on_schema_errors(self, validator, week):
        result = validator.validate_new_payment(
            draft(name=None, scheduled_date=date(2024, 4, 1)), week
        )
        assert "outside_week" not in issue_types(result)
        assert result.semantic_valid is False


class TestSemanticStage:
    """Week, ceiling and allocation checks."""

    def test_outside_week_is_warning(self, validator, week):
        result = validator.validate_new_payment(draft(scheduled_date=date(2024, 3, 25)), week)
        assert result.is_valid
        assert [w.issue_type for w in result.warnings] == ["outside_week"]

    def test_amount_above_ceiling(self, validator, week):
        result = validator.validate_new_payment(draft(amount=Decimal("20000")), week)
        assert result.schema_valid
        assert not result.semantic_valid
        assert issue_types(result) == ["suspicious_value"]

    def test_allocation_overflow(self, validator, week):
        category = BudgetCategory(
            category_id=uuid4(),
            allocation=Decimal("600"),
            payments=[PaymentEntry(
                name="Water", amount=Decimal("150"), scheduled_date=date(2024, 3, 12)
            )],
        )
        result = validator.validate_new_payment(draft(), week, category)
        assert issue_types(result) == ["exceeds_allocation"]

    def test_paid_entries_count_against_allocation(self, validator, week):
        category = BudgetCategory(
            category_id=uuid4(),
            allocation=Decimal("600"),
            payments=[PaymentEntry(
                name="Water",
                amount=Decimal("100"),
                scheduled_date=date(2024, 3, 12),
                status=PaymentStatus.PAID,
            )],
        )
        assert validator.validate_new_payment(draft(), week, category).is_valid
        assert not validator.validate_new_payment(
            draft(amount=Decimal("501")), week, category
        ).is_valid

    def test_zero_allocation_is_uncapped(self, validator, week):
        category = BudgetCategory(category_id=uuid4())
        assert validator.validate_new_payment(draft(), week, category).is_valid


class TestUpdateValidation:
    """Partial updates only check what they change."""

    def test_empty_update_is_valid(self, validator, week):
        assert validator.validate_update(PaymentUpdate(), week).is_valid

    def test_overdue_cannot_be_requested(self, validator, week):
        result = validator.validate_update(PaymentUpdate(status=PaymentStatus.OVERDUE), week)
        assert not result.is_valid

    def test_negative_amount(self, validator, week):
        result = validator.validate_update(PaymentUpdate(amount=Decimal("-1")), week)
        assert issue_types(result) == ["invalid_value"]

    def test_summary_lists_errors(self, validator, week):
        result = validator.validate_update(
            PaymentUpdate(name="", amount=Decimal("0")), week
        )
        summary = PaymentValidator.summarize(result)
        assert summary.startswith("Invalid payment: ")
        assert "name is required" in summary
        assert "greater than zero" in summary
