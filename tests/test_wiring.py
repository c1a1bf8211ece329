"""
Tests for configuration loading and application wiring.
"""

import pytest
from pydantic import ValidationError
from uuid import uuid4

from budgetkeeper.config import (
    AnalyticsSettings,
    AppSettings,
    ReconciliationSettings,
    Settings,
    get_settings,
    validate_all_settings,
)
from budgetkeeper.orchestrator import create_app_components
from budgetkeeper.services.storage import InMemoryEntityStore


@pytest.fixture
def no_sheets_env(monkeypatch):
    monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
    monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Environment prefixes and defaults."""

    def test_defaults(self):
        recon = ReconciliationSettings()
        assert recon.max_save_attempts == 3
        assert recon.smart_history_days == 84
        assert AnalyticsSettings().pattern_window_days == 90

    def test_env_prefixes(self, monkeypatch):
        monkeypatch.setenv("BUDGET_MAX_SAVE_ATTEMPTS", "5")
        monkeypatch.setenv("ANALYTICS_FORECAST_SEED", "7")
        assert ReconciliationSettings().max_save_attempts == 5
        assert AnalyticsSettings().forecast_seed == 7

    def test_attempts_bounded(self, monkeypatch):
        monkeypatch.setenv("BUDGET_MAX_SAVE_ATTEMPTS", "0")
        with pytest.raises(ValidationError):
            ReconciliationSettings()

    def test_unknown_backend_rejected(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "postgres")
        with pytest.raises(ValidationError):
            AppSettings()

    def test_get_settings_is_cached(self, fresh_settings):
        assert get_settings() is get_settings()

    def test_validate_all_reports_missing_sheets_config(self, fresh_settings, no_sheets_env):
        results = validate_all_settings()
        assert results["reconciliation"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results


class TestAppComponents:
    """Object graph construction."""

    def test_memory_backend(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        components = create_app_components(Settings())

        assert isinstance(components.store, InMemoryEntityStore)
        assert components.sheets_client is None

    def test_sheets_falls_back_to_memory(self, monkeypatch, no_sheets_env):
        monkeypatch.setenv("STORAGE_BACKEND", "google_sheets")
        components = create_app_components(Settings())

        assert isinstance(components.store, InMemoryEntityStore)
        assert components.sheets_client is None

    def test_services_share_the_store(self):
        store = InMemoryEntityStore()
        components = create_app_components(Settings(), store=store)
        assert components.store is store

    @pytest.mark.anyio
    async def test_wired_services_work(self):
        components = create_app_components(Settings(), store=InMemoryEntityStore())
        user_id = uuid4()

        budget = await components.reconciliation.get_or_create_current_week(user_id)
        analysis = await components.analytics.analyze_spending_patterns(user_id)

        assert budget.user_id == user_id
        assert await components.store.get_budget(budget.id) is not None
        assert analysis.patterns == {}
