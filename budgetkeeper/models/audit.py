"""
Audit Models for BudgetKeeper

Every state change the reconciliation engine makes is logged for audit.
This provides:
1. Traceability of who paid, reverted, moved or deleted what
2. Enough identifiers to repair partial failures by hand or by a sweep
3. A history of budget creation and sharing changes

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Budget lifecycle
    BUDGET_CREATED = "budget_created"
    BUDGET_AUTO_PROVISIONED = "budget_auto_provisioned"
    BUDGET_REPLACED = "budget_replaced"
    BUDGET_TOTAL_UPDATED = "budget_total_updated"
    CATEGORIES_REPLACED = "categories_replaced"
    CATEGORIES_SYNCED = "categories_synced"
    CATEGORY_DELETED = "category_deleted"
    SHARING_CHANGED = "sharing_changed"

    # Payments
    PAYMENT_ADDED = "payment_added"
    PAYMENT_UPDATED = "payment_updated"
    PAYMENT_STATUS_UPDATED = "payment_status_updated"
    PAYMENT_DELETED = "payment_deleted"

    # Ledger side effects
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_DELETED = "transaction_deleted"

    # Failures
    SAVE_CONFLICT = "save_conflict"
    CONFLICT_EXHAUSTED = "conflict_exhausted"
    PARTIAL_FAILURE = "partial_failure"
    ACCESS_DENIED = "access_denied"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'budget', 'payment', 'transaction')"
    )
    entity_id: Optional[UUID] = None

    # Who did it
    actor_id: Optional[UUID] = Field(
        default=None,
        description="Principal that triggered the event"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one request)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for spreadsheet storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         actor_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.actor_id) if self.actor_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


def _ids(**values: Optional[UUID]) -> dict[str, Optional[str]]:
    return {key: str(value) if value else None for key, value in values.items()}


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.budget_created(budget_id, user_id, "manual")
        event = AuditEventBuilder.payment_status_updated(budget_id, payment_id, ...)
    """

    @staticmethod
    def budget_created(
        budget_id: UUID,
        actor_id: UUID,
        mode: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED,
            entity_type="budget",
            entity_id=budget_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Weekly budget created ({mode})",
            details={"mode": mode},
        )

    @staticmethod
    def budget_auto_provisioned(
        budget_id: UUID,
        actor_id: UUID,
        week_start: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_AUTO_PROVISIONED,
            entity_type="budget",
            entity_id=budget_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Empty budget provisioned for week of {week_start}",
            details={"week_start": week_start},
        )

    @staticmethod
    def budget_changed(
        event_type: AuditEventType,
        budget_id: UUID,
        actor_id: UUID,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="budget",
            entity_id=budget_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def payment_status_updated(
        budget_id: UUID,
        payment_id: UUID,
        actor_id: UUID,
        old_status: str,
        new_status: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_STATUS_UPDATED,
            entity_type="payment",
            entity_id=payment_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Payment status changed: {old_status} -> {new_status}",
            details={
                "budget_id": str(budget_id),
                "old_status": old_status,
                "new_status": new_status,
            },
        )

    @staticmethod
    def transaction_changed(
        created: bool,
        transaction_id: UUID,
        budget_id: UUID,
        payment_id: UUID,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.TRANSACTION_CREATED
            if created
            else AuditEventType.TRANSACTION_DELETED
        )
        verb = "created" if created else "deleted"
        return AuditEvent(
            event_type=event_type,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction {verb} for payment: {amount}",
            details={
                **_ids(budget_id=budget_id, payment_id=payment_id),
                "amount": amount,
            },
        )

    @staticmethod
    def save_conflict(
        budget_id: UUID,
        attempt: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_CONFLICT,
            severity=AuditSeverity.WARNING,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Concurrent write detected on attempt {attempt}",
            details={"attempt": attempt},
        )

    @staticmethod
    def conflict_exhausted(
        budget_id: UUID,
        attempts: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONFLICT_EXHAUSTED,
            severity=AuditSeverity.ERROR,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget save abandoned after {attempts} conflicting attempts",
            details={"attempts": attempts},
        )

    @staticmethod
    def partial_failure(
        budget_id: UUID,
        payment_id: Optional[UUID],
        transaction_id: Optional[UUID],
        step: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTIAL_FAILURE,
            severity=AuditSeverity.ERROR,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Side effect failed after budget was saved: {step}",
            details={
                **_ids(
                    budget_id=budget_id,
                    payment_id=payment_id,
                    transaction_id=transaction_id,
                ),
                "step": step,
            },
            error_message=error_message,
        )

    @staticmethod
    def access_denied(
        budget_id: UUID,
        actor_id: UUID,
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            entity_type="budget",
            entity_id=budget_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Access denied for {operation}",
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
