"""
Shared fixtures.

Every service test runs against the in-memory entity store with a fixed
"today" (Wednesday 2024-03-13, week 2024-03-11 .. 2024-03-17) and zero
save backoff.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import numpy as np
import pytest

from budgetkeeper.access import BudgetAccessPolicy, InMemoryHouseholdDirectory
from budgetkeeper.analytics.service import SpendingAnalyticsService
from budgetkeeper.audit import AuditLogger
from budgetkeeper.config import AnalyticsSettings, ReconciliationSettings
from budgetkeeper.models import (
    QUICK_PAYMENT_CATEGORY_NAME,
    Category,
    Transaction,
    TransactionType,
    WeeklyBudget,
)
from budgetkeeper.reconciliation import BudgetReconciliationService
from budgetkeeper.services.storage import InMemoryAuditStorage, InMemoryEntityStore


TODAY = date(2024, 3, 13)
WEEK_START = date(2024, 3, 11)
WEEK_END = date(2024, 3, 17)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def directory():
    return InMemoryHouseholdDirectory()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def recon_settings():
    return ReconciliationSettings(save_backoff_seconds=0)


@pytest.fixture
def service(store, directory, audit_storage, recon_settings):
    return BudgetReconciliationService(
        store=store,
        access=BudgetAccessPolicy(directory),
        audit_logger=AuditLogger(audit_storage),
        settings=recon_settings,
        today=lambda: TODAY,
    )


@pytest.fixture
def analytics(store):
    return SpendingAnalyticsService(
        store=store,
        settings=AnalyticsSettings(),
        rng=np.random.default_rng(42),
        today=lambda: TODAY,
    )


@pytest.fixture
async def housing(anyio_backend, store, user_id):
    return await store.save_category(Category(user_id=user_id, name="Housing"))


@pytest.fixture
async def groceries(anyio_backend, store, user_id):
    return await store.save_category(Category(user_id=user_id, name="Groceries"))


@pytest.fixture
async def quick_payment(anyio_backend, store):
    return await store.save_category(
        Category(name=QUICK_PAYMENT_CATEGORY_NAME, is_system=True)
    )


@pytest.fixture
async def budget(anyio_backend, store, user_id):
    return await store.create_budget(WeeklyBudget(
        user_id=user_id,
        week_start=WEEK_START,
        week_end=WEEK_END,
    ))


def make_transaction(user_id, category, amount, day, **kwargs) -> Transaction:
    return Transaction(
        user_id=user_id,
        type=kwargs.pop("type", TransactionType.EXPENSE),
        amount=Decimal(str(amount)),
        category_id=category.id,
        transaction_date=day,
        **kwargs,
    )
