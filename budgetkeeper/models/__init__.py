"""
Data Models Package

This package contains all Pydantic models used in BudgetKeeper.
All data flowing through the system must conform to these schemas.
"""

from budgetkeeper.models.ledger import (
    QUICK_PAYMENT_CATEGORY_NAME,
    BudgetCategory,
    Category,
    CategorySpending,
    CreationMode,
    EntryRef,
    Frequency,
    Household,
    PaymentEntry,
    PaymentSchedule,
    PaymentStatus,
    RefKind,
    SourceKind,
    Transaction,
    TransactionSource,
    TransactionType,
    WeeklyBudget,
)
from budgetkeeper.models.analytics import (
    AllocationSource,
    AllocationSuggestion,
    Anomaly,
    AnomalyDirection,
    AnomalyReport,
    CategoryCorrelation,
    CategoryForecast,
    CategoryPattern,
    DailySpending,
    Forecast,
    ForecastPoint,
    OptimizedAllocation,
    Recommendation,
    RecommendationReport,
    RecommendationType,
    SpendingAnalysis,
    SpendingInsights,
    SpendingVelocity,
    TrendLabel,
    WeeklyInsight,
)
from budgetkeeper.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from budgetkeeper.models.requests import (
    BudgetPlan,
    CategoryPlan,
    PaymentDraft,
    PaymentUpdate,
)
from budgetkeeper.models.validation import (
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Ledger models
    "QUICK_PAYMENT_CATEGORY_NAME",
    "BudgetCategory",
    "Category",
    "CategorySpending",
    "CreationMode",
    "EntryRef",
    "Frequency",
    "Household",
    "PaymentEntry",
    "PaymentSchedule",
    "PaymentStatus",
    "RefKind",
    "SourceKind",
    "Transaction",
    "TransactionSource",
    "TransactionType",
    "WeeklyBudget",
    # Analytics models
    "AllocationSource",
    "AllocationSuggestion",
    "Anomaly",
    "AnomalyDirection",
    "AnomalyReport",
    "CategoryCorrelation",
    "CategoryForecast",
    "CategoryPattern",
    "DailySpending",
    "Forecast",
    "ForecastPoint",
    "OptimizedAllocation",
    "Recommendation",
    "RecommendationReport",
    "RecommendationType",
    "SpendingAnalysis",
    "SpendingInsights",
    "SpendingVelocity",
    "TrendLabel",
    "WeeklyInsight",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Request models
    "BudgetPlan",
    "CategoryPlan",
    "PaymentDraft",
    "PaymentUpdate",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
