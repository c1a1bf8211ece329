"""Configuration package."""

from budgetkeeper.config.settings import (
    AnalyticsSettings,
    AppSettings,
    GoogleSheetsSettings,
    ReconciliationSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AnalyticsSettings",
    "AppSettings",
    "GoogleSheetsSettings",
    "ReconciliationSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
