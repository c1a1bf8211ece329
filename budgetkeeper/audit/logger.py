"""
Audit Logger

DESIGN DECISION: Every state change the engines make is logged.
This provides:
1. Complete traceability of budget and payment changes
2. The identifiers needed to repair a partial failure
3. Debugging capability for concurrent-write conflicts

The audit logger:
- Is async so it can persist without blocking callers on a sync API
- Gracefully handles failures (a broken audit store never fails a request)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from budgetkeeper.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from budgetkeeper.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("budgetkeeper.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_budget_created(
        self,
        budget_id: UUID,
        actor_id: UUID,
        mode: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_created(
            budget_id=budget_id,
            actor_id=actor_id,
            mode=mode,
            correlation_id=correlation_id,
        ))

    async def log_budget_auto_provisioned(
        self,
        budget_id: UUID,
        actor_id: UUID,
        week_start: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_auto_provisioned(
            budget_id=budget_id,
            actor_id=actor_id,
            week_start=week_start,
            correlation_id=correlation_id,
        ))

    async def log_budget_changed(
        self,
        event_type: AuditEventType,
        budget_id: UUID,
        actor_id: UUID,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a budget-level change (total, categories, sharing, deletions)."""
        await self.log(AuditEventBuilder.budget_changed(
            event_type=event_type,
            budget_id=budget_id,
            actor_id=actor_id,
            description=description,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_payment_status_updated(
        self,
        budget_id: UUID,
        payment_id: UUID,
        actor_id: UUID,
        old_status: str,
        new_status: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.payment_status_updated(
            budget_id=budget_id,
            payment_id=payment_id,
            actor_id=actor_id,
            old_status=old_status,
            new_status=new_status,
            correlation_id=correlation_id,
        ))

    async def log_transaction_changed(
        self,
        created: bool,
        transaction_id: UUID,
        budget_id: UUID,
        payment_id: UUID,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a transaction created or deleted as a side effect of a payment."""
        await self.log(AuditEventBuilder.transaction_changed(
            created=created,
            transaction_id=transaction_id,
            budget_id=budget_id,
            payment_id=payment_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_save_conflict(
        self,
        budget_id: UUID,
        attempt: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_conflict(
            budget_id=budget_id,
            attempt=attempt,
            correlation_id=correlation_id,
        ))

    async def log_conflict_exhausted(
        self,
        budget_id: UUID,
        attempts: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.conflict_exhausted(
            budget_id=budget_id,
            attempts=attempts,
            correlation_id=correlation_id,
        ))

    async def log_partial_failure(
        self,
        budget_id: UUID,
        payment_id: Optional[UUID],
        transaction_id: Optional[UUID],
        step: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a side effect that failed after the budget was saved."""
        await self.log(AuditEventBuilder.partial_failure(
            budget_id=budget_id,
            payment_id=payment_id,
            transaction_id=transaction_id,
            step=step,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_access_denied(
        self,
        budget_id: UUID,
        actor_id: UUID,
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.access_denied(
            budget_id=budget_id,
            actor_id=actor_id,
            operation=operation,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a service call and pass it
    through all subsequent operations.
    """
    return uuid4()
