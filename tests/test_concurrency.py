"""Tests for the compare-and-swap save loop."""

import pytest
from decimal import Decimal
from uuid import uuid4

from budgetkeeper.errors import (
    ConflictExhaustedError,
    DependencyFailureError,
    PartialFailureError,
)
from budgetkeeper.models import (
    AuditEventType,
    BudgetCategory,
    PaymentDraft,
    PaymentEntry,
    PaymentStatus,
    PaymentUpdate,
)
from budgetkeeper.services.storage import InMemoryEntityStore, StorageError

from conftest import TODAY


class RacingStore(InMemoryEntityStore):
    """
    Entity store where another writer gets in before each of our saves.

    Each queued rival is a callable applied to a fresh copy of the budget
    and saved just before the caller's own save_budget runs.
    """

    def __init__(self):
        super().__init__()
        self.rivals = []

    async def save_budget(self, budget):
        if self.rivals:
            rival = self.rivals.pop(0)
            theirs = await self.get_budget(budget.id)
            rival(theirs)
            await super().save_budget(theirs)
        return await super().save_budget(budget)


class FailingTransactionStore(InMemoryEntityStore):
    """Entity store whose ledger writes fail."""

    async def save_transaction(self, transaction):
        raise StorageError("ledger unavailable")


class UnreachableBudgetStore(InMemoryEntityStore):
    """Entity store whose budget reads fail."""

    async def get_budget(self, budget_id):
        raise StorageError("budgets sheet unavailable")


async def events_of(audit_storage, event_type):
    return [e for e in await audit_storage.get_recent_events() if e.event_type == event_type]


class TestSaveRetry:
    """Concurrent writers never lose each other's changes."""

    @pytest.fixture
    def store(self):
        return RacingStore()

    @pytest.mark.anyio
    async def test_both_writers_persist(
        self, service, store, audit_storage, user_id, budget, housing
    ):
        added = await service.add_payment_to_category(
            user_id, budget.id, housing.id,
            PaymentDraft(name="Rent", amount=Decimal("500"), scheduled_date=TODAY),
        )

        def rival(b):
            b.total_budget = Decimal("900")

        store.rivals.append(rival)
        await service.update_payment_fields(
            user_id, budget.id, added.payment.id, PaymentUpdate(notes="split with flatmate")
        )

        stored = await store.get_budget(budget.id)
        assert stored.total_budget == Decimal("900")
        assert stored.categories[0].payments[0].notes == "split with flatmate"

        conflicts = await events_of(audit_storage, AuditEventType.SAVE_CONFLICT)
        assert len(conflicts) == 1

    @pytest.mark.anyio
    async def test_rival_payment_survives_our_add(self, service, store, user_id, budget, housing):
        rival_entry = {}

        def rival(b):
            entry = PaymentEntry(name="Power", amount=Decimal("60"), scheduled_date=TODAY)
            rival_entry["id"] = entry.id
            b.categories.append(BudgetCategory(category_id=uuid4(), payments=[entry]))

        store.rivals.append(rival)
        await service.add_payment_to_category(
            user_id, budget.id, housing.id,
            PaymentDraft(name="Rent", amount=Decimal("500"), scheduled_date=TODAY),
        )

        stored = await store.get_budget(budget.id)
        assert stored.find_payment(rival_entry["id"]) is not None
        assert len(stored.categories) == 2

    @pytest.mark.anyio
    async def test_pay_retried_creates_one_transaction(
        self, service, store, user_id, budget, housing
    ):
        added = await service.add_payment_to_category(
            user_id, budget.id, housing.id,
            PaymentDraft(name="Rent", amount=Decimal("500"), scheduled_date=TODAY),
        )
        store.rivals.extend([lambda b: None, lambda b: None])

        await service.update_payment_status(
            user_id, budget.id, added.payment.id, PaymentStatus.PAID
        )

        assert len(await store.list_transactions(user_ids=[user_id])) == 1

    @pytest.mark.anyio
    async def test_exhaustion_is_raised_and_audited(
        self, service, store, audit_storage, user_id, budget
    ):
        store.rivals.extend([lambda b: None] * 3)

        with pytest.raises(ConflictExhaustedError) as exc_info:
            await service.update_total(user_id, budget.id, Decimal("300"))

        assert exc_info.value.attempts == 3
        assert len(await events_of(audit_storage, AuditEventType.SAVE_CONFLICT)) == 3
        assert len(await events_of(audit_storage, AuditEventType.CONFLICT_EXHAUSTED)) == 1

        stored = await store.get_budget(budget.id)
        assert stored.total_budget == Decimal("0")

    @pytest.mark.anyio
    async def test_failed_add_removes_its_schedule(self, service, store, user_id, budget, housing):
        store.rivals.extend([lambda b: None] * 3)

        with pytest.raises(ConflictExhaustedError):
            await service.add_payment_to_category(
                user_id, budget.id, housing.id,
                PaymentDraft(name="Rent", amount=Decimal("500"), scheduled_date=TODAY),
            )

        assert await store.list_schedules(user_ids=[user_id]) == []

    @pytest.mark.anyio
    async def test_cleanup_failure_keeps_original_error(
        self, service, store, audit_storage, user_id, budget, housing, monkeypatch
    ):
        async def unavailable(schedule_id):
            raise StorageError("schedules sheet unavailable")

        monkeypatch.setattr(store, "delete_schedule", unavailable)
        store.rivals.extend([lambda b: None] * 3)

        with pytest.raises(ConflictExhaustedError):
            await service.add_payment_to_category(
                user_id, budget.id, housing.id,
                PaymentDraft(name="Rent", amount=Decimal("500"), scheduled_date=TODAY),
            )

        leftover = await store.list_schedules(user_ids=[user_id])
        errors = await events_of(audit_storage, AuditEventType.SYSTEM_ERROR)
        assert len(errors) == 1
        assert errors[0].description == "System error: schedule_cleanup_failed"
        assert errors[0].details == {"schedule_id": str(leftover[0].id)}


class TestPartialFailure:
    """Side effects that fail after the budget was saved."""

    @pytest.fixture
    def store(self):
        return FailingTransactionStore()

    @pytest.mark.anyio
    async def test_ledger_failure_reports_identifiers(
        self, service, store, audit_storage, user_id, budget, housing
    ):
        added = await service.add_payment_to_category(
            user_id, budget.id, housing.id,
            PaymentDraft(name="Rent", amount=Decimal("500"), scheduled_date=TODAY),
        )

        with pytest.raises(PartialFailureError) as exc_info:
            await service.update_payment_status(
                user_id, budget.id, added.payment.id, PaymentStatus.PAID
            )

        error = exc_info.value
        assert error.budget_id == budget.id
        assert error.payment_id == added.payment.id
        assert error.transaction_id is not None

        # The budget save itself stands
        stored = await store.get_budget(budget.id)
        assert stored.categories[0].payments[0].status == PaymentStatus.PAID

        failures = await events_of(audit_storage, AuditEventType.PARTIAL_FAILURE)
        assert len(failures) == 1


class TestDependencyFailure:
    """Store failures surface as DependencyFailureError and are audited."""

    @pytest.fixture
    def store(self):
        return UnreachableBudgetStore()

    @pytest.mark.anyio
    async def test_store_failure_audited(self, service, audit_storage, user_id):
        correlation_id = uuid4()

        with pytest.raises(DependencyFailureError):
            await service.get_budget(user_id, uuid4(), correlation_id=correlation_id)

        errors = await events_of(audit_storage, AuditEventType.SYSTEM_ERROR)
        assert len(errors) == 1
        assert errors[0].error_message == "budgets sheet unavailable"
        assert errors[0].details == {"operation": "get_budget"}
        assert errors[0].correlation_id == correlation_id
