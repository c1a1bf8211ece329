"""
Core Ledger Models for BudgetKeeper

These models define the strict schemas for the three records the system keeps
consistent with each other:
1. Transactions (the ledger)
2. Payment schedules (the source of truth for planned obligations)
3. Weekly budgets (a rebuildable projection of schedules and transactions)

DESIGN DECISION: PaymentSchedule is the single source of truth for planned
payments. A WeeklyBudget's category list is a materialized view that can be
rebuilt from schedules at any time (see reconciliation.sync).

DESIGN DECISION: Every reference a budget entry holds states its kind
explicitly (EntryRef). We never guess whether an opaque id belongs to a
schedule or to a raw transaction.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money flow. Also used as the kind of a Category."""
    EXPENSE = "expense"
    INCOME = "income"


class PaymentStatus(str, Enum):
    """
    Status of a scheduled payment or budget entry.

    Only PENDING and PAID take part in the status transition state machine.
    OVERDUE is set on schedules whose due date has passed and is treated
    like PENDING when paying.
    """
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class Frequency(str, Enum):
    """Recurrence descriptor for a payment schedule."""
    ONCE = "once"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class CreationMode(str, Enum):
    """How a weekly budget came into existence."""
    MANUAL = "manual"
    TEMPLATE = "template"
    SMART = "smart"


class RefKind(str, Enum):
    """What a budget entry's reference points at."""
    SCHEDULE = "schedule"
    TRANSACTION = "transaction"
    NONE = "none"


class SourceKind(str, Enum):
    """What produced a transaction (if anything)."""
    SCHEDULE = "schedule"
    ENTRY = "entry"
    NONE = "none"


# Name of the system category used by the instant-payment flow.
# Transactions in this category are always pre-linked to a budget entry.
QUICK_PAYMENT_CATEGORY_NAME = "Quick Payment"


# =============================================================================
# TAGGED REFERENCES
# =============================================================================

class EntryRef(BaseModel):
    """
    Tagged reference held by a PaymentEntry.

    kind=SCHEDULE    -> id is a PaymentSchedule id
    kind=TRANSACTION -> id is a raw Transaction id (materialized entry)
    kind=NONE        -> no backing record
    """
    model_config = ConfigDict(frozen=True)

    kind: RefKind = RefKind.NONE
    id: Optional[UUID] = None

    @model_validator(mode='after')
    def validate_id_presence(self) -> 'EntryRef':
        if self.kind == RefKind.NONE and self.id is not None:
            raise ValueError("A 'none' reference cannot carry an id")
        if self.kind != RefKind.NONE and self.id is None:
            raise ValueError(f"A '{self.kind.value}' reference requires an id")
        return self

    @classmethod
    def none(cls) -> 'EntryRef':
        return cls()

    @classmethod
    def schedule(cls, schedule_id: UUID) -> 'EntryRef':
        return cls(kind=RefKind.SCHEDULE, id=schedule_id)

    @classmethod
    def transaction(cls, transaction_id: UUID) -> 'EntryRef':
        return cls(kind=RefKind.TRANSACTION, id=transaction_id)


class TransactionSource(BaseModel):
    """Back-reference from a Transaction to the record that produced it."""
    model_config = ConfigDict(frozen=True)

    kind: SourceKind = SourceKind.NONE
    id: Optional[UUID] = None

    @model_validator(mode='after')
    def validate_id_presence(self) -> 'TransactionSource':
        if (self.kind == SourceKind.NONE) != (self.id is None):
            raise ValueError("Source id must be set exactly when kind is not 'none'")
        return self


# =============================================================================
# REFERENCE DATA
# =============================================================================

class Category(BaseModel):
    """
    A spending or income category.

    Categories with user_id=None are system-wide defaults.
    Category CRUD lives outside this package; we only read categories.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: Optional[UUID] = Field(
        default=None,
        description="Owning user, None for system-wide defaults"
    )
    name: str = Field(..., min_length=1, max_length=100)
    kind: TransactionType = TransactionType.EXPENSE
    color: str = Field(default="#808080", max_length=20)
    icon: Optional[str] = Field(default=None, max_length=20)
    is_system: bool = False
    description: Optional[str] = Field(default=None, max_length=500)

    @property
    def is_quick_payment(self) -> bool:
        return self.is_system and self.name == QUICK_PAYMENT_CATEGORY_NAME


class Household(BaseModel):
    """Minimal view of a household, as exposed by the membership directory."""

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    created_by: UUID
    member_ids: list[UUID] = Field(default_factory=list)

    @property
    def all_member_ids(self) -> list[UUID]:
        """Owner first, then listed members, without duplicates."""
        ids = [self.created_by]
        for member_id in self.member_ids:
            if member_id not in ids:
                ids.append(member_id)
        return ids

    def has_member(self, user_id: UUID) -> bool:
        return user_id == self.created_by or user_id in self.member_ids


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Transaction(BaseModel):
    """
    A ledger transaction.

    Created directly by ordinary ledger entry, or by the reconciliation
    engine when a budget entry is marked paid (source set in that case).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    household_id: Optional[UUID] = None
    type: TransactionType = TransactionType.EXPENSE
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Transaction amount (always positive)"
    )
    category_id: UUID
    description: Optional[str] = Field(default=None, max_length=500)
    transaction_date: date
    source: TransactionSource = Field(default_factory=TransactionSource)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PaymentSchedule(BaseModel):
    """
    A scheduled (planned) payment.

    This is the source of truth for planned obligations. The matching
    PaymentEntry inside a WeeklyBudget mirrors it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    household_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    category_id: UUID
    type: TransactionType = TransactionType.EXPENSE
    due_date: date
    frequency: Frequency = Frequency.ONCE
    is_recurring: bool = False
    status: PaymentStatus = PaymentStatus.PENDING
    paid_date: Optional[date] = None
    paid_by: Optional[UUID] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    weekly_budget_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def check_overdue(self, today: date) -> bool:
        """Flip a pending schedule past its due date to OVERDUE."""
        if self.status == PaymentStatus.PENDING and self.due_date < today:
            self.status = PaymentStatus.OVERDUE
            return True
        return False

    def mark_paid(self, paid_by: Optional[UUID], paid_date: date) -> None:
        self.status = PaymentStatus.PAID
        self.paid_date = paid_date
        self.paid_by = paid_by

    def mark_pending(self) -> None:
        self.status = PaymentStatus.PENDING
        self.paid_date = None
        self.paid_by = None


# =============================================================================
# WEEKLY BUDGET
# =============================================================================

class PaymentEntry(BaseModel):
    """One obligation or paid item inside a BudgetCategory."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    scheduled_date: date
    status: PaymentStatus = PaymentStatus.PENDING
    paid_date: Optional[date] = None
    paid_by: Optional[UUID] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    is_recurring: bool = False
    ref: EntryRef = Field(default_factory=EntryRef)
    transaction_id: Optional[UUID] = Field(
        default=None,
        description="Transaction recorded for this entry when paid"
    )
    from_transaction: bool = Field(
        default=False,
        description="True when synthesized from a raw ledger transaction"
    )

    @property
    def schedule_id(self) -> Optional[UUID]:
        return self.ref.id if self.ref.kind == RefKind.SCHEDULE else None

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID

    def matches(self, payment_id: UUID) -> bool:
        """Entries are addressable by their own id or their schedule id."""
        return self.id == payment_id or self.schedule_id == payment_id


class CategorySpending(BaseModel):
    """Derived spending figures for one budget category."""

    category_id: UUID
    allocated: Decimal
    spent: Decimal
    scheduled: Decimal
    remaining: Decimal
    percentage_used: float


class BudgetCategory(BaseModel):
    """A category's allocation and payment entries within a WeeklyBudget."""

    id: UUID = Field(default_factory=uuid4)
    category_id: UUID
    allocation: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    payments: list[PaymentEntry] = Field(default_factory=list)

    @property
    def spent(self) -> Decimal:
        """Canonical spent figure: sum of paid entries."""
        return sum((p.amount for p in self.payments if p.is_paid), Decimal("0"))

    @property
    def scheduled(self) -> Decimal:
        return sum((p.amount for p in self.payments), Decimal("0"))

    def find_payment(self, payment_id: UUID) -> Optional[PaymentEntry]:
        for payment in self.payments:
            if payment.matches(payment_id):
                return payment
        return None

    def remove_payment(self, payment_id: UUID) -> Optional[PaymentEntry]:
        for index, payment in enumerate(self.payments):
            if payment.matches(payment_id):
                return self.payments.pop(index)
        return None

    def spending(self) -> CategorySpending:
        spent = self.spent
        percentage = (
            float(spent / self.allocation * 100) if self.allocation > 0 else 0.0
        )
        return CategorySpending(
            category_id=self.category_id,
            allocated=self.allocation,
            spent=spent,
            scheduled=self.scheduled,
            remaining=self.allocation - spent,
            percentage_used=percentage,
        )


class WeeklyBudget(BaseModel):
    """
    A weekly spending envelope (Monday to Sunday inclusive).

    The `version` field is the optimistic-concurrency token: stores only
    accept a save whose version matches the persisted one.
    """

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    household_id: Optional[UUID] = None
    is_shared_with_household: bool = False
    week_start: date
    week_end: date
    total_budget: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    creation_mode: CreationMode = CreationMode.MANUAL
    template_source_id: Optional[UUID] = None
    categories: list[BudgetCategory] = Field(default_factory=list)
    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_week(self) -> 'WeeklyBudget':
        if self.week_end != self.week_start + timedelta(days=6):
            raise ValueError("Week end must be exactly six days after week start")
        return self

    # -- lookups -------------------------------------------------------------

    def covers(self, day: date) -> bool:
        return self.week_start <= day <= self.week_end

    def find_category(self, category_id: UUID) -> Optional[BudgetCategory]:
        """Match on the referenced category id or on the entry's own id."""
        for category in self.categories:
            if category.category_id == category_id or category.id == category_id:
                return category
        return None

    def find_payment(
        self,
        payment_id: UUID,
    ) -> Optional[tuple[BudgetCategory, PaymentEntry]]:
        for category in self.categories:
            payment = category.find_payment(payment_id)
            if payment is not None:
                return category, payment
        return None

    def find_payment_by_transaction(
        self,
        transaction_id: UUID,
    ) -> Optional[tuple[BudgetCategory, PaymentEntry]]:
        for category in self.categories:
            for payment in category.payments:
                if payment.transaction_id == transaction_id:
                    return category, payment
        return None

    def linked_transaction_ids(self) -> set[UUID]:
        """The exclusion set: every transaction id already referenced."""
        return {
            payment.transaction_id
            for category in self.categories
            for payment in category.payments
            if payment.transaction_id is not None
        }

    def iter_payments(self):
        for category in self.categories:
            for payment in category.payments:
                yield category, payment

    # -- derived totals ------------------------------------------------------

    @property
    def total_spent(self) -> Decimal:
        return sum((c.spent for c in self.categories), Decimal("0"))

    @property
    def total_scheduled(self) -> Decimal:
        return sum((c.scheduled for c in self.categories), Decimal("0"))

    @property
    def total_allocated(self) -> Decimal:
        return sum((c.allocation for c in self.categories), Decimal("0"))

    @property
    def remaining_budget(self) -> Decimal:
        return self.total_budget - self.total_spent

    @property
    def unallocated(self) -> Decimal:
        return self.total_budget - self.total_allocated

    def spending_by_category(self) -> list[CategorySpending]:
        return [category.spending() for category in self.categories]
