"""
Domain Errors

Every error the engines raise to callers derives from BudgetKeeperError.
Storage adapters raise their own StorageError family
(budgetkeeper.services.storage.interface); the services translate those
into DependencyFailureError unless they carry domain meaning.
"""

from typing import Optional
from uuid import UUID

from budgetkeeper.models.validation import ValidationIssue


class BudgetKeeperError(Exception):
    """Base exception for BudgetKeeper."""
    pass


class NotFoundError(BudgetKeeperError):
    """A requested record does not exist (or is not visible to the caller)."""
    pass


class BudgetNotFoundError(NotFoundError):
    def __init__(self, budget_id: Optional[UUID] = None, message: Optional[str] = None):
        self.budget_id = budget_id
        super().__init__(message or f"Budget not found: {budget_id}")


class PaymentNotFoundError(NotFoundError):
    def __init__(self, payment_id: UUID):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class CategoryNotFoundError(NotFoundError):
    def __init__(self, category_id: UUID):
        self.category_id = category_id
        super().__init__(f"Category not found: {category_id}")


class UnauthorizedError(BudgetKeeperError):
    """The caller may see the budget but is not allowed to do this to it."""

    def __init__(self, message: str = "Not authorized to access this budget"):
        super().__init__(message)


class BudgetValidationError(BudgetKeeperError):
    """Input was rejected. Carries the individual issues."""

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        self.issues = issues or []
        super().__init__(message)


class ConflictExhaustedError(BudgetKeeperError):
    """Concurrent writers kept winning; the save was abandoned."""

    def __init__(self, budget_id: UUID, attempts: int):
        self.budget_id = budget_id
        self.attempts = attempts
        super().__init__(
            f"Could not save budget {budget_id} after {attempts} attempts "
            "due to concurrent modifications"
        )


class PartialFailureError(BudgetKeeperError):
    """
    The budget was saved but a follow-up write failed.

    Carries every identifier needed to repair the inconsistency.
    """

    def __init__(
        self,
        message: str,
        budget_id: UUID,
        payment_id: Optional[UUID] = None,
        transaction_id: Optional[UUID] = None,
    ):
        self.budget_id = budget_id
        self.payment_id = payment_id
        self.transaction_id = transaction_id
        super().__init__(message)


class DependencyFailureError(BudgetKeeperError):
    """The entity store (or another dependency) failed."""
    pass
