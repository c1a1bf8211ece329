"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the reconciliation logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the reconciliation and analytics engines need.

DESIGN DECISION: Weekly budgets are saved with compare-and-swap on their
`version` field. Every adapter must reject a save whose version does not
match the stored one with VersionConflictError. Nothing else in the store
is versioned; schedules and transactions are single-writer records.
"""

from abc import ABC, abstractmethod
from datetime import date
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


class CategoryStorageInterface(ABC):
    """
    Read access to categories.

    Category CRUD belongs to another service; save_category exists so
    that stores can be seeded.
    """

    @abstractmethod
    async def save_category(self, category: Category) -> Category:
        pass

    @abstractmethod
    async def get_category(self, category_id: UUID) -> Optional[Category]:
        """
        Retrieve a category by its ID.

        Returns:
            The category if found, None otherwise
        """
        pass

    @abstractmethod
    async def find_system_category(self, name: str) -> Optional[Category]:
        """
        Find a system category by exact name.

        Args:
            name: Category name, e.g. "Quick Payment"

        Returns:
            The system category, or None if it is not defined
        """
        pass

    @abstractmethod
    async def list_categories(
        self,
        user_id: Optional[UUID] = None,
    ) -> list[Category]:
        """
        List categories visible to a user.

        Args:
            user_id: Owner filter. System-wide defaults are always included.

        Returns:
            List of categories
        """
        pass


class TransactionStorageInterface(ABC):
    """Storage operations for ledger transactions."""

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> Transaction:
        """
        Insert a transaction.

        Raises:
            DuplicateError: If a transaction with this id exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """
        Delete a transaction by ID.

        Returns:
            True if a transaction was deleted, False if none existed
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_ids: Optional[Iterable[UUID]] = None,
        transaction_type: Optional[TransactionType] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        exclude_category_ids: Optional[Iterable[UUID]] = None,
    ) -> list[Transaction]:
        """
        List transactions with optional filters.

        Args:
            user_ids: Only transactions of these users
            transaction_type: Filter by expense/income
            date_from: Transactions on or after this date
            date_to: Transactions on or before this date
            exclude_category_ids: Drop transactions in these categories

        Returns:
            Matching transactions ordered by date ascending
        """
        pass

    @abstractmethod
    async def find_by_source(self, source_ids: Iterable[UUID]) -> list[Transaction]:
        """
        Find transactions whose source back-reference points at any of the ids.

        Args:
            source_ids: Schedule ids and/or budget entry ids

        Returns:
            Matching transactions
        """
        pass


class PaymentScheduleStorageInterface(ABC):
    """Storage operations for payment schedules."""

    @abstractmethod
    async def save_schedule(self, schedule: PaymentSchedule) -> PaymentSchedule:
        """
        Insert a payment schedule.

        Raises:
            DuplicateError: If a schedule with this id exists
        """
        pass

    @abstractmethod
    async def get_schedule(self, schedule_id: UUID) -> Optional[PaymentSchedule]:
        pass

    @abstractmethod
    async def update_schedule(self, schedule: PaymentSchedule) -> PaymentSchedule:
        """
        Replace an existing schedule.

        Raises:
            RecordNotFoundError: If the schedule doesn't exist
        """
        pass

    @abstractmethod
    async def delete_schedule(self, schedule_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_schedules(
        self,
        user_ids: Optional[Iterable[UUID]] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
        statuses: Optional[Iterable[PaymentStatus]] = None,
        weekly_budget_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
    ) -> list[PaymentSchedule]:
        """
        List schedules with optional filters.

        Returns:
            Matching schedules ordered by due date ascending
        """
        pass


class WeeklyBudgetStorageInterface(ABC):
    """Storage operations for weekly budgets."""

    @abstractmethod
    async def create_budget(self, budget: WeeklyBudget) -> WeeklyBudget:
        """
        Insert a new budget.

        Returns:
            The stored budget, with version set to 1

        Raises:
            DuplicateError: If a budget with this id exists
        """
        pass

    @abstractmethod
    async def get_budget(self, budget_id: UUID) -> Optional[WeeklyBudget]:
        pass

    @abstractmethod
    async def save_budget(self, budget: WeeklyBudget) -> WeeklyBudget:
        """
        Compare-and-swap save of an existing budget.

        The save succeeds only when `budget.version` equals the stored
        version. The stored copy gets version + 1.

        Returns:
            The stored budget with its new version

        Raises:
            RecordNotFoundError: If the budget doesn't exist
            VersionConflictError: If another writer saved first
        """
        pass

    @abstractmethod
    async def delete_budget(self, budget_id: UUID) -> bool:
        pass

    @abstractmethod
    async def find_budget_for_day(
        self,
        user_id: UUID,
        day: date,
    ) -> Optional[WeeklyBudget]:
        """
        Find the user's budget whose week contains `day`.
        """
        pass

    @abstractmethod
    async def list_budgets(
        self,
        user_ids: Optional[Iterable[UUID]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        household_id: Optional[UUID] = None,
        shared_only: bool = False,
    ) -> list[WeeklyBudget]:
        """
        List budgets with optional filters.

        Args:
            user_ids: Only budgets owned by these users
            date_from: With date_to, keep budgets whose week overlaps the range
            date_to: See date_from
            household_id: Only budgets tied to this household
            shared_only: Only budgets flagged as shared with their household

        Returns:
            Matching budgets, newest week first
        """
        pass


class EntityStore(
    CategoryStorageInterface,
    TransactionStorageInterface,
    PaymentScheduleStorageInterface,
    WeeklyBudgetStorageInterface,
):
    """
    The full record store the engines work against.

    Adapters implement every method of the four record interfaces.
    """


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one service call).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class RecordNotFoundError(StorageError):
    """Record not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate record."""
    pass


class VersionConflictError(StorageError):
    """A compare-and-swap save lost to a concurrent writer."""

    def __init__(self, budget_id: UUID, expected: int, actual: int):
        self.budget_id = budget_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Budget {budget_id} version mismatch: expected {expected}, found {actual}"
        )


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
