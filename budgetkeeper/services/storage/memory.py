"""
In-Memory Storage Implementation

Process-local store used by tests and by callers that embed the engines.

Every read and write goes through a deep copy, so callers can never mutate
stored state by holding on to a returned model. That keeps the version
check on weekly budgets honest: the only way to change a stored budget is
save_budget.
"""

from datetime import date, datetime
from typing import Iterable, Optional
from uuid import UUID

from budgetkeeper.models.audit import AuditEvent
from budgetkeeper.models.ledger import (
    Category,
    PaymentSchedule,
    PaymentStatus,
    Transaction,
    TransactionType,
    WeeklyBudget,
)
from budgetkeeper.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    EntityStore,
    RecordNotFoundError,
    VersionConflictError,
)
from budgetkeeper.services.storage.queries import (
    filter_budgets,
    filter_schedules,
    filter_transactions,
)


class InMemoryEntityStore(EntityStore):
    """Dictionary-backed EntityStore."""

    def __init__(self):
        self._categories: dict[UUID, Category] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._schedules: dict[UUID, PaymentSchedule] = {}
        self._budgets: dict[UUID, WeeklyBudget] = {}

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def save_category(self, category: Category) -> Category:
        self._categories[category.id] = category.model_copy(deep=True)
        return category.model_copy(deep=True)

    async def get_category(self, category_id: UUID) -> Optional[Category]:
        category = self._categories.get(category_id)
        return category.model_copy(deep=True) if category else None

    async def find_system_category(self, name: str) -> Optional[Category]:
        for category in self._categories.values():
            if category.is_system and category.name == name:
                return category.model_copy(deep=True)
        return None

    async def list_categories(
        self,
        user_id: Optional[UUID] = None,
    ) -> list[Category]:
        return [
            c.model_copy(deep=True)
            for c in self._categories.values()
            if user_id is None or c.user_id in (None, user_id)
        ]

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._transactions[transaction.id] = transaction.model_copy(deep=True)
        return transaction.model_copy(deep=True)

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        transaction = self._transactions.get(transaction_id)
        return transaction.model_copy(deep=True) if transaction else None

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

    async def list_transactions(
        self,
        user_ids: Optional[Iterable[UUID]] = None,
        transaction_type: Optional[TransactionType] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        exclude_category_ids: Optional[Iterable[UUID]] = None,
    ) -> list[Transaction]:
        matched = filter_transactions(
            self._transactions.values(),
            user_ids=user_ids,
            transaction_type=transaction_type,
            date_from=date_from,
            date_to=date_to,
            exclude_category_ids=exclude_category_ids,
        )
        return [t.model_copy(deep=True) for t in matched]

    async def find_by_source(self, source_ids: Iterable[UUID]) -> list[Transaction]:
        wanted = set(source_ids)
        return [
            t.model_copy(deep=True)
            for t in self._transactions.values()
            if t.source.id is not None and t.source.id in wanted
        ]

    # -------------------------------------------------------------------------
    # Payment schedules
    # -------------------------------------------------------------------------

    async def save_schedule(self, schedule: PaymentSchedule) -> PaymentSchedule:
        if schedule.id in self._schedules:
            raise DuplicateError(f"Schedule already exists: {schedule.id}")
        self._schedules[schedule.id] = schedule.model_copy(deep=True)
        return schedule.model_copy(deep=True)

    async def get_schedule(self, schedule_id: UUID) -> Optional[PaymentSchedule]:
        schedule = self._schedules.get(schedule_id)
        return schedule.model_copy(deep=True) if schedule else None

    async def update_schedule(self, schedule: PaymentSchedule) -> PaymentSchedule:
        if schedule.id not in self._schedules:
            raise RecordNotFoundError(f"Schedule not found: {schedule.id}")
        stored = schedule.model_copy(deep=True)
        stored.updated_at = datetime.utcnow()
        self._schedules[schedule.id] = stored
        return stored.model_copy(deep=True)

    async def delete_schedule(self, schedule_id: UUID) -> bool:
        return self._schedules.pop(schedule_id, None) is not None

    async def list_schedules(
        self,
        user_ids: Optional[Iterable[UUID]] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
        statuses: Optional[Iterable[PaymentStatus]] = None,
        weekly_budget_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
    ) -> list[PaymentSchedule]:
        matched = filter_schedules(
            self._schedules.values(),
            user_ids=user_ids,
            due_from=due_from,
            due_to=due_to,
            statuses=statuses,
            weekly_budget_id=weekly_budget_id,
            category_id=category_id,
        )
        return [s.model_copy(deep=True) for s in matched]

    # -------------------------------------------------------------------------
    # Weekly budgets
    # -------------------------------------------------------------------------

    async def create_budget(self, budget: WeeklyBudget) -> WeeklyBudget:
        if budget.id in self._budgets:
            raise DuplicateError(f"Budget already exists: {budget.id}")
        stored = budget.model_copy(deep=True)
        stored.version = 1
        self._budgets[budget.id] = stored
        return stored.model_copy(deep=True)

    async def get_budget(self, budget_id: UUID) -> Optional[WeeklyBudget]:
        budget = self._budgets.get(budget_id)
        return budget.model_copy(deep=True) if budget else None

    async def save_budget(self, budget: WeeklyBudget) -> WeeklyBudget:
        current = self._budgets.get(budget.id)
        if current is None:
            raise RecordNotFoundError(f"Budget not found: {budget.id}")
        if current.version != budget.version:
            raise VersionConflictError(budget.id, budget.version, current.version)

        stored = budget.model_copy(deep=True)
        stored.version = current.version + 1
        stored.updated_at = datetime.utcnow()
        self._budgets[budget.id] = stored
        return stored.model_copy(deep=True)

    async def delete_budget(self, budget_id: UUID) -> bool:
        return self._budgets.pop(budget_id, None) is not None

    async def find_budget_for_day(
        self,
        user_id: UUID,
        day: date,
    ) -> Optional[WeeklyBudget]:
        for budget in self._budgets.values():
            if budget.user_id == user_id and budget.covers(day):
                return budget.model_copy(deep=True)
        return None

    async def list_budgets(
        self,
        user_ids: Optional[Iterable[UUID]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        household_id: Optional[UUID] = None,
        shared_only: bool = False,
    ) -> list[WeeklyBudget]:
        matched = filter_budgets(
            self._budgets.values(),
            user_ids=user_ids,
            date_from=date_from,
            date_to=date_to,
            household_id=household_id,
            shared_only=shared_only,
        )
        return [b.model_copy(deep=True) for b in matched]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
