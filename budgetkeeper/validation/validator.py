"""
Two-Stage Payment Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (name, amount, date)
- Range checks (amount > 0, at most two decimal places)

STAGE 2 - SEMANTIC VALIDATION:
- Scheduled date outside the budget's week
- Absurd amount detection
- Allocation overflow for the target category

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the service decides whether to reject.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from budgetkeeper.config import get_settings
from budgetkeeper.config.settings import ReconciliationSettings
from budgetkeeper.models.ledger import BudgetCategory, PaymentStatus, WeeklyBudget
from budgetkeeper.models.requests import PaymentDraft, PaymentUpdate
from budgetkeeper.models.validation import ValidationIssue, ValidationResult


class PaymentValidator:
    """
    Validates payments before they are added to or changed in a budget.
    """

    def __init__(self, settings: Optional[ReconciliationSettings] = None):
        self._settings = settings or get_settings().reconciliation

    # -------------------------------------------------------------------------
    # Shared checks
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_name(name: Optional[str], required: bool) -> list[ValidationIssue]:
        if name is None and not required:
            return []
        if not name:
            return [ValidationIssue(
                field="name",
                issue_type="missing",
                message="Payment name is required",
                severity="error",
            )]
        if len(name) > 200:
            return [ValidationIssue(
                field="name",
                issue_type="invalid_value",
                message="Payment name must be at most 200 characters",
                severity="error",
            )]
        return []

    @staticmethod
    def _check_amount(amount: Optional[Decimal], required: bool) -> list[ValidationIssue]:
        if amount is None:
            if not required:
                return []
            return [ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Payment amount is required",
                severity="error",
            )]
        if amount <= 0:
            return [ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Payment amount must be greater than zero",
                severity="error",
            )]
        if amount.as_tuple().exponent < -2:
            return [ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Payment amount can have at most two decimal places",
                severity="error",
                suggested_fix=f"Use {amount.quantize(Decimal('0.01'))}",
            )]
        return []

    def _check_ceiling(self, amount: Optional[Decimal]) -> list[ValidationIssue]:
        max_amount = Decimal(str(self._settings.max_payment_amount))
        if amount is not None and amount > max_amount:
            return [ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) exceeds the maximum of {max_amount:,.2f}",
                severity="error",
                suggested_fix="Please verify this amount is correct",
            )]
        return []

    @staticmethod
    def _check_week(scheduled: Optional[date], budget: WeeklyBudget) -> list[ValidationIssue]:
        if scheduled is not None and not budget.covers(scheduled):
            return [ValidationIssue(
                field="scheduled_date",
                issue_type="outside_week",
                message=(
                    f"Scheduled date {scheduled} is outside the budget week "
                    f"{budget.week_start} to {budget.week_end}"
                ),
                severity="warning",
            )]
        return []

    @staticmethod
    def _result(
        schema_issues: list[ValidationIssue],
        semantic_issues: list[ValidationIssue],
    ) -> ValidationResult:
        schema_valid = not any(i.severity == "error" for i in schema_issues)
        semantic_valid = schema_valid and not any(
            i.severity == "error" for i in semantic_issues
        )
        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            issues=schema_issues + semantic_issues,
        )

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def validate_new_payment(
        self,
        draft: PaymentDraft,
        budget: WeeklyBudget,
        category: Optional[BudgetCategory] = None,
    ) -> ValidationResult:
        """
        Validate a payment about to be added to a budget category.

        Args:
            draft: The payment to add
            budget: Budget that will hold the payment
            category: Target budget category, if it already exists

        Returns:
            ValidationResult with all issues found
        """
        schema_issues = (
            self._check_name(draft.name, required=True)
            + self._check_amount(draft.amount, required=True)
        )
        if draft.scheduled_date is None:
            schema_issues.append(ValidationIssue(
                field="scheduled_date",
                issue_type="missing",
                message="Scheduled date is required",
                severity="error",
            ))

        semantic_issues: list[ValidationIssue] = []
        if not any(i.severity == "error" for i in schema_issues):
            semantic_issues += self._check_week(draft.scheduled_date, budget)
            semantic_issues += self._check_ceiling(draft.amount)

            # Only categories with a positive allocation are capped
            if category is not None and category.allocation > 0:
                new_total = category.scheduled + draft.amount
                if new_total > category.allocation:
                    semantic_issues.append(ValidationIssue(
                        field="amount",
                        issue_type="exceeds_allocation",
                        message=(
                            f"Payments would total {new_total:,.2f}, above the "
                            f"category allocation of {category.allocation:,.2f}"
                        ),
                        severity="error",
                        suggested_fix="Raise the category allocation first",
                    ))

        return self._result(schema_issues, semantic_issues)

    def validate_update(
        self,
        update: PaymentUpdate,
        budget: WeeklyBudget,
    ) -> ValidationResult:
        """Validate in-place edits to an existing entry."""
        schema_issues = (
            self._check_name(update.name, required=False)
            + self._check_amount(update.amount, required=False)
        )
        if update.status == PaymentStatus.OVERDUE:
            schema_issues.append(ValidationIssue(
                field="status",
                issue_type="invalid_value",
                message="Budget entries can only be set to pending or paid",
                severity="error",
            ))

        semantic_issues: list[ValidationIssue] = []
        if not any(i.severity == "error" for i in schema_issues):
            semantic_issues += self._check_week(update.scheduled_date, budget)
            semantic_issues += self._check_ceiling(update.amount)

        return self._result(schema_issues, semantic_issues)

    @staticmethod
    def summarize(result: ValidationResult) -> str:
        """One line per error, for exception messages."""
        errors = [i.message for i in result.issues if i.severity == "error"]
        if not errors:
            return "Payment is valid"
        return "Invalid payment: " + "; ".join(errors)
