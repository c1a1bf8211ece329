"""
Request Models

Inputs to the reconciliation service that are validated by the
PaymentValidator before they touch a budget.

DESIGN DECISION: PaymentDraft and PaymentUpdate are deliberately lenient
(everything optional, no range constraints). Range and presence checks
belong to the validator so that callers get a full list of
ValidationIssues instead of the first pydantic error.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from budgetkeeper.models.ledger import (
    CreationMode,
    Frequency,
    PaymentStatus,
    TransactionType,
)


class PaymentDraft(BaseModel):
    """A payment to be added to a budget category. New payments start pending."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    amount: Optional[Decimal] = None
    scheduled_date: Optional[date] = None
    notes: Optional[str] = None
    is_recurring: bool = False
    frequency: Frequency = Frequency.ONCE
    type: TransactionType = TransactionType.EXPENSE


class PaymentUpdate(BaseModel):
    """
    Field changes for an existing budget entry.

    Unset fields are left alone. A status of None means "no status change".
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    amount: Optional[Decimal] = None
    scheduled_date: Optional[date] = None
    notes: Optional[str] = None
    category_id: Optional[UUID] = Field(
        default=None,
        description="Move the entry to this category"
    )
    status: Optional[PaymentStatus] = None
    paid_by: Optional[UUID] = Field(
        default=None,
        description="Payer to record on a pay transition; defaults to the requester"
    )

    @property
    def has_field_changes(self) -> bool:
        return any(
            value is not None
            for value in (
                self.name,
                self.amount,
                self.scheduled_date,
                self.notes,
                self.category_id,
            )
        )


class CategoryPlan(BaseModel):
    """One category of a budget being created or replaced."""

    category_id: UUID
    allocation: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    payments: list[PaymentDraft] = Field(default_factory=list)


class BudgetPlan(BaseModel):
    """
    Request to create a weekly budget.

    mode=MANUAL   -> total_budget and categories are used as given
    mode=TEMPLATE -> template_id names the budget to copy
    mode=SMART    -> total and allocations are derived from history

    Payments listed under categories are created (with schedules) in
    every mode.
    """

    week_start: date
    mode: CreationMode = CreationMode.MANUAL
    template_id: Optional[UUID] = None
    total_budget: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    categories: list[CategoryPlan] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_template(self) -> 'BudgetPlan':
        if self.mode == CreationMode.TEMPLATE and self.template_id is None:
            raise ValueError("Template mode requires template_id")
        return self
