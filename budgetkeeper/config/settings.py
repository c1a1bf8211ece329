"""
Configuration Management for BudgetKeeper

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Tuning knobs for the reconciliation retry loop and the analytics windows
live next to the storage credentials, so everything that changes behavior
between deployments is visible in one place.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReconciliationSettings(BaseSettings):
    """Reconciliation engine tuning."""

    model_config = SettingsConfigDict(
        env_prefix="BUDGET_",
        extra="ignore"
    )

    max_save_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts for a budget save before giving up"
    )
    save_backoff_seconds: float = Field(
        default=0.1,
        ge=0.0,
        description="Backoff base; attempt N waits base * N seconds"
    )
    quick_payment_category_name: str = Field(
        default="Quick Payment",
        description="Name of the system category used for instant payments"
    )
    max_payment_amount: float = Field(
        default=1000000.0,
        description="Maximum reasonable payment amount (for sanity checking)"
    )
    smart_history_days: int = Field(
        default=84,
        ge=7,
        description="How far back smart budget creation looks"
    )
    smart_min_budgets: int = Field(
        default=3,
        ge=1,
        description="Historical budgets required for smart creation"
    )


class AnalyticsSettings(BaseSettings):
    """Spending analytics defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ANALYTICS_",
        extra="ignore"
    )

    pattern_window_days: int = Field(
        default=90,
        ge=7,
        description="Trailing window used for pattern extraction"
    )
    insights_window_days: int = Field(
        default=30,
        ge=14,
        description="Trailing window used for spending insights"
    )
    anomaly_limit: int = Field(
        default=10,
        ge=1,
        description="Maximum anomalies returned"
    )
    min_points: int = Field(
        default=5,
        ge=2,
        description="Data points a category needs for anomalies and forecasts"
    )
    forecast_seed: Optional[int] = Field(
        default=None,
        description="Seed for forecast noise; unset means nondeterministic"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    categories_sheet_name: str = Field(default="Categories")
    transactions_sheet_name: str = Field(default="Transactions")
    schedules_sheet_name: str = Field(default="PaymentSchedules")
    budgets_sheet_name: str = Field(default="WeeklyBudgets")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Which entity store adapter to wire up"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def reconciliation(self) -> ReconciliationSettings:
        return ReconciliationSettings()

    @property
    def analytics(self) -> AnalyticsSettings:
        return AnalyticsSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    `<name>_error` entry for each section that failed.
    Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("reconciliation", "analytics", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
