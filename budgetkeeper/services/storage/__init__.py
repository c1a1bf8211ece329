"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory store and a Google Sheets store; both are swappable.
"""

from budgetkeeper.services.storage.interface import (
    AuditStorageInterface,
    CategoryStorageInterface,
    ConnectionError,
    DuplicateError,
    EntityStore,
    PaymentScheduleStorageInterface,
    RecordNotFoundError,
    StorageError,
    TransactionStorageInterface,
    VersionConflictError,
    WeeklyBudgetStorageInterface,
)
from budgetkeeper.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryEntityStore,
)
from budgetkeeper.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntityStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CategoryStorageInterface",
    "EntityStore",
    "PaymentScheduleStorageInterface",
    "TransactionStorageInterface",
    "WeeklyBudgetStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "RecordNotFoundError",
    "StorageError",
    "VersionConflictError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryEntityStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsEntityStore",
]
