"""
Application Wiring for BudgetKeeper

Builds the object graph both engines run on:
entity store -> access policy -> audit logger -> services.

DESIGN DECISION: Storage is chosen by configuration
(STORAGE_BACKEND=memory|google_sheets). If the spreadsheet backend
cannot be reached we fall back to the in-memory store and say so in the
log, so the engines stay usable for local development.
"""

from typing import NamedTuple, Optional

import numpy as np
import structlog

from budgetkeeper.access import (
    BudgetAccessPolicy,
    HouseholdDirectory,
    InMemoryHouseholdDirectory,
)
from budgetkeeper.analytics.service import SpendingAnalyticsService
from budgetkeeper.audit import AuditLogger
from budgetkeeper.config import get_settings
from budgetkeeper.config.settings import Settings
from budgetkeeper.reconciliation import BudgetReconciliationService
from budgetkeeper.services.storage import (
    EntityStore,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntityStore,
    InMemoryEntityStore,
    StorageError,
)
from budgetkeeper.validation import PaymentValidator


logger = structlog.get_logger("budgetkeeper.orchestrator")


class AppComponents(NamedTuple):
    store: EntityStore
    directory: HouseholdDirectory
    access: BudgetAccessPolicy
    audit_logger: AuditLogger
    reconciliation: BudgetReconciliationService
    analytics: SpendingAnalyticsService
    sheets_client: Optional[GoogleSheetsClient]


def create_app_components(
    settings: Optional[Settings] = None,
    directory: Optional[HouseholdDirectory] = None,
    store: Optional[EntityStore] = None,
    rng: Optional[np.random.Generator] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (defaults to the cached environment settings)
        directory: Household membership lookup. Defaults to an empty
                   in-memory directory (owner-only access).
        store: Pre-built entity store; overrides the configured backend
        rng: Noise source for forecasts

    Returns:
        AppComponents
    """
    settings = settings or get_settings()
    directory = directory or InMemoryHouseholdDirectory()
    sheets_client = None
    audit_logger = AuditLogger()  # Local-only logging

    if store is None and settings.app.storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            sheets_client.connect()
            store = GoogleSheetsEntityStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except (StorageError, FileNotFoundError, ValueError) as e:
            logger.warning("sheets_storage_unavailable", error=str(e))
            sheets_client = None

    if store is None:
        store = InMemoryEntityStore()

    access = BudgetAccessPolicy(directory)
    reconciliation = BudgetReconciliationService(
        store=store,
        access=access,
        validator=PaymentValidator(settings.reconciliation),
        audit_logger=audit_logger,
        settings=settings.reconciliation,
    )
    analytics = SpendingAnalyticsService(
        store=store,
        settings=settings.analytics,
        rng=rng,
    )

    return AppComponents(
        store=store,
        directory=directory,
        access=access,
        audit_logger=audit_logger,
        reconciliation=reconciliation,
        analytics=analytics,
        sheets_client=sheets_client,
    )
