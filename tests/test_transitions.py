"""Tests for the payment status state machine and in-place edits."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from budgetkeeper.errors import BudgetValidationError, PaymentNotFoundError
from budgetkeeper.models import (
    BudgetCategory,
    EntryRef,
    PaymentDraft,
    PaymentEntry,
    PaymentStatus,
    PaymentUpdate,
    RefKind,
    SourceKind,
    Transaction,
    TransactionSource,
    TransactionType,
    WeeklyBudget,
)
from budgetkeeper.reconciliation import Transition
from budgetkeeper.reconciliation.transitions import (
    apply_field_changes,
    locate_entry,
    mark_entry_paid,
    mark_entry_pending,
    plan_transition,
)

from conftest import TODAY, WEEK_END, WEEK_START


def rent_draft() -> PaymentDraft:
    return PaymentDraft(name="Rent", amount=Decimal("500"), scheduled_date=date(2024, 3, 15))


class TestPlanTransition:
    """State machine table."""

    @pytest.mark.parametrize("current, requested, expected", [
        (PaymentStatus.PENDING, PaymentStatus.PAID, Transition.PAY),
        (PaymentStatus.OVERDUE, PaymentStatus.PAID, Transition.PAY),
        (PaymentStatus.PAID, PaymentStatus.PENDING, Transition.REVERT),
        (PaymentStatus.PAID, PaymentStatus.PAID, Transition.NONE),
        (PaymentStatus.PENDING, PaymentStatus.PENDING, Transition.NONE),
        (PaymentStatus.PAID, None, Transition.NONE),
    ])
    def test_plan(self, current, requested, expected):
        assert plan_transition(current, requested) == expected


class TestEntryHelpers:
    """Pure helpers applied inside the save loop."""

    def make_budget(self):
        source, target = uuid4(), uuid4()
        schedule_id = uuid4()
        budget = WeeklyBudget(
            user_id=uuid4(),
            week_start=WEEK_START,
            week_end=WEEK_END,
            categories=[BudgetCategory(
                category_id=source,
                allocation=Decimal("100"),
                payments=[PaymentEntry(
                    name="Gym",
                    amount=Decimal("40"),
                    scheduled_date=date(2024, 3, 12),
                    ref=EntryRef.schedule(schedule_id),
                )],
            )],
        )
        return budget, source, target, schedule_id

    def test_locate_by_schedule_id(self):
        budget, _, _, schedule_id = self.make_budget()
        _, found = locate_entry(budget, schedule_id)
        assert found.name == "Gym"

    def test_locate_missing_raises(self):
        budget, *_ = self.make_budget()
        with pytest.raises(PaymentNotFoundError):
            locate_entry(budget, uuid4())

    def test_move_between_categories_keeps_identity(self):
        budget, source, target, schedule_id = self.make_budget()
        entry_id = budget.categories[0].payments[0].id

        category, moved = apply_field_changes(
            budget, entry_id, PaymentUpdate(category_id=target, amount=Decimal("45"))
        )

        assert category.category_id == target
        assert category.allocation == Decimal("0")
        assert moved.id == entry_id
        assert moved.schedule_id == schedule_id
        assert moved.amount == Decimal("45")
        assert budget.categories[0].payments == []

    def test_pay_keeps_existing_transaction(self):
        existing = uuid4()
        entry = PaymentEntry(
            name="x", amount=Decimal("1"), scheduled_date=TODAY, transaction_id=existing
        )
        mark_entry_paid(entry, uuid4(), TODAY, uuid4())
        assert entry.transaction_id == existing

    def test_revert_clears_transaction_reference(self):
        tx_id = uuid4()
        entry = PaymentEntry(
            name="x",
            amount=Decimal("1"),
            scheduled_date=TODAY,
            status=PaymentStatus.PAID,
            paid_date=TODAY,
            paid_by=uuid4(),
            transaction_id=tx_id,
            ref=EntryRef.transaction(tx_id),
        )
        assert mark_entry_pending(entry) == tx_id
        assert entry.transaction_id is None
        assert entry.paid_by is None
        assert entry.ref.kind == RefKind.NONE


class TestStatusTransitions:
    """Status changes through the reconciliation service."""

    @pytest.mark.anyio
    async def test_rent_scenario(self, service, store, user_id, budget, housing):
        added = await service.add_payment_to_category(
            user_id, budget.id, housing.id, rent_draft()
        )

        assert len(added.budget.categories) == 1
        assert len(added.budget.categories[0].payments) == 1
        assert added.payment.status == PaymentStatus.PENDING
        assert added.schedule.weekly_budget_id == budget.id

        paid = await service.update_payment_status(
            user_id, budget.id, added.payment.id, PaymentStatus.PAID
        )

        transactions = await store.list_transactions(user_ids=[user_id])
        assert len(transactions) == 1
        tx = transactions[0]
        assert tx.amount == Decimal("500")
        assert tx.type == TransactionType.EXPENSE
        assert tx.category_id == housing.id
        assert tx.transaction_date == TODAY
        assert tx.description == "Payment: Rent"
        assert tx.source.kind == SourceKind.SCHEDULE
        assert tx.source.id == added.schedule.id

        assert paid.transition == Transition.PAY
        assert paid.payment.transaction_id == tx.id
        assert paid.payment.paid_by == user_id
        assert paid.budget.total_spent == Decimal("500")

        schedule = await store.get_schedule(added.schedule.id)
        assert schedule.status == PaymentStatus.PAID
        assert schedule.paid_date == TODAY

    @pytest.mark.anyio
    async def test_pay_then_revert_is_symmetric(self, service, store, user_id, budget, housing):
        added = await service.add_payment_to_category(
            user_id, budget.id, housing.id, rent_draft()
        )
        await service.update_payment_status(
            user_id, budget.id, added.payment.id, PaymentStatus.PAID
        )
        reverted = await service.update_payment_status(
            user_id, budget.id, added.payment.id, PaymentStatus.PENDING
        )

        assert reverted.transition == Transition.REVERT
        assert reverted.payment.status == PaymentStatus.PENDING
        assert reverted.payment.transaction_id is None
        assert reverted.payment.paid_date is None
        assert await store.list_transactions(user_ids=[user_id]) == []

        schedule = await store.get_schedule(added.schedule.id)
        assert schedule.status == PaymentStatus.PENDING
        assert schedule.paid_by is None

    @pytest.mark.anyio
    async def test_same_status_creates_nothing(self, service, store, user_id, budget, housing):
        added = await service.add_payment_to_category(
            user_id, budget.id, housing.id, rent_draft()
        )
        for _ in range(2):
            await service.update_payment_status(
                user_id, budget.id, added.payment.id, PaymentStatus.PAID
            )

        again = await service.update_payment_status(
            user_id, budget.id, added.payment.id, PaymentStatus.PAID
        )
        assert again.transition == Transition.NONE
        assert len(await store.list_transactions(user_ids=[user_id])) == 1

    @pytest.mark.anyio
    async def test_existing_source_transaction_is_reused(
        self, service, store, user_id, budget, housing
    ):
        added = await service.add_payment_to_category(
            user_id, budget.id, housing.id, rent_draft()
        )
        existing = await store.save_transaction(Transaction(
            user_id=user_id,
            amount=Decimal("500"),
            category_id=housing.id,
            transaction_date=TODAY,
            source=TransactionSource(kind=SourceKind.SCHEDULE, id=added.schedule.id),
        ))

        paid = await service.update_payment_status(
            user_id, budget.id, added.payment.id, PaymentStatus.PAID
        )

        assert paid.payment.transaction_id == existing.id
        assert len(await store.list_transactions(user_ids=[user_id])) == 1

    @pytest.mark.anyio
    async def test_explicit_payer_recorded(self, service, user_id, budget, housing):
        payer = uuid4()
        added = await service.add_payment_to_category(
            user_id, budget.id, housing.id, rent_draft()
        )
        paid = await service.update_payment_status(
            user_id, budget.id, added.payment.id, PaymentStatus.PAID, paid_by=payer
        )
        assert paid.payment.paid_by == payer

    @pytest.mark.anyio
    async def test_overdue_is_not_a_settable_status(self, service, user_id, budget, housing):
        added = await service.add_payment_to_category(
            user_id, budget.id, housing.id, rent_draft()
        )
        with pytest.raises(BudgetValidationError):
            await service.update_payment_status(
                user_id, budget.id, added.payment.id, PaymentStatus.OVERDUE
            )


class TestFieldUpdates:
    """In-place edits with and without status changes."""

    @pytest.mark.anyio
    async def test_edit_and_pay_together(self, service, store, user_id, budget, housing):
        added = await service.add_payment_to_category(
            user_id, budget.id, housing.id, rent_draft()
        )
        outcome = await service.update_payment_fields(
            user_id,
            budget.id,
            added.payment.id,
            PaymentUpdate(name="March rent", amount=Decimal("520"), status=PaymentStatus.PAID),
        )

        assert outcome.payment.name == "March rent"
        tx = (await store.list_transactions(user_ids=[user_id]))[0]
        assert tx.amount == Decimal("520")
        assert tx.description == "Payment: March rent"

        schedule = await store.get_schedule(added.schedule.id)
        assert schedule.name == "March rent"
        assert schedule.amount == Decimal("520")

    @pytest.mark.anyio
    async def test_category_move_follows_to_schedule(
        self, service, store, user_id, budget, housing, groceries
    ):
        added = await service.add_payment_to_category(
            user_id, budget.id, housing.id, rent_draft()
        )
        outcome = await service.update_payment_fields(
            user_id, budget.id, added.payment.id, PaymentUpdate(category_id=groceries.id)
        )

        moved_to = outcome.budget.find_category(groceries.id)
        assert moved_to.payments[0].id == added.payment.id
        assert outcome.budget.find_category(housing.id).payments == []

        schedule = await store.get_schedule(added.schedule.id)
        assert schedule.category_id == groceries.id

    @pytest.mark.anyio
    async def test_unknown_payment(self, service, user_id, budget):
        with pytest.raises(PaymentNotFoundError):
            await service.update_payment_fields(
                user_id, budget.id, uuid4(), PaymentUpdate(name="x")
            )
