"""
Budget Reconciliation Service

Keeps the three records consistent with each other:
1. Ledger transactions
2. Payment schedules (source of truth for planned payments)
3. Weekly budgets (the projection the user works with)

DESIGN DECISION: Every budget write goes through _save_with_retry.
The requested change is expressed as a `mutate(budget)` callback. The
first attempt applies it to the budget we already loaded; after a
version conflict we reload the budget and apply the same callback to the
fresh copy, so a concurrent writer's changes are never overwritten.

DESIGN DECISION: Ledger and schedule side effects run AFTER the budget
save succeeded. If one of them fails we do not try to undo the save;
we raise PartialFailureError with every identifier needed to repair it
and write the failure to the audit log.

Reads never persist the merge. Only the explicit sync (and creation
paths) rewrite a budget's category list.
"""

from datetime import date
from decimal import Decimal
from functools import wraps
from typing import Callable, Iterable, Optional
from uuid import UUID, uuid4

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from budgetkeeper.access import BudgetAccessPolicy
from budgetkeeper.audit import AuditLogger, create_correlation_id
from budgetkeeper.config import get_settings
from budgetkeeper.config.settings import ReconciliationSettings
from budgetkeeper.errors import (
    BudgetNotFoundError,
    BudgetValidationError,
    CategoryNotFoundError,
    ConflictExhaustedError,
    DependencyFailureError,
    PartialFailureError,
    PaymentNotFoundError,
    UnauthorizedError,
)
from budgetkeeper.models.audit import AuditEventType
from budgetkeeper.models.ledger import (
    BudgetCategory,
    Category,
    CreationMode,
    EntryRef,
    Frequency,
    PaymentEntry,
    PaymentSchedule,
    PaymentStatus,
    SourceKind,
    Transaction,
    TransactionSource,
    TransactionType,
    WeeklyBudget,
)
from budgetkeeper.models.requests import BudgetPlan, PaymentDraft, PaymentUpdate
from budgetkeeper.models.validation import ValidationIssue
from budgetkeeper.reconciliation.creation import (
    HistoryInsights,
    build_from_template,
    build_manual_budget,
    build_smart_budget,
    history_window,
    summarize_history,
)
from budgetkeeper.reconciliation.merge import merge_transactions
from budgetkeeper.reconciliation.results import (
    BudgetCreation,
    DeletionOutcome,
    LinkRepairReport,
    PaymentOutcome,
    SyncReport,
)
from budgetkeeper.reconciliation.sync import rebuild_from_schedules
from budgetkeeper.reconciliation.transitions import (
    Transition,
    apply_field_changes,
    locate_entry,
    mark_entry_paid,
    mark_entry_pending,
    plan_transition,
)
from budgetkeeper.reconciliation.weeks import week_bounds
from budgetkeeper.services.storage import (
    EntityStore,
    RecordNotFoundError,
    StorageError,
    VersionConflictError,
)
from budgetkeeper.validation import PaymentValidator


def translate_storage_errors(func):
    """Surface adapter failures as DependencyFailureError (audited when possible)."""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except StorageError as e:
            audit_logger = getattr(args[0], "_audit_logger", None) if args else None
            if audit_logger:
                await audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"operation": func.__name__},
                    correlation_id=kwargs.get("correlation_id"),
                )
            raise DependencyFailureError(f"Entity store failure: {e}") from e
    return wrapper


class BudgetReconciliationService:
    """
    Budget operations for one requester at a time.

    Every public method takes the requesting user's id first and an
    optional correlation id last (one is created when omitted).
    """

    def __init__(
        self,
        store: EntityStore,
        access: BudgetAccessPolicy,
        validator: Optional[PaymentValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[ReconciliationSettings] = None,
        today: Callable[[], date] = date.today,
    ):
        self._store = store
        self._access = access
        self._settings = settings or get_settings().reconciliation
        self._validator = validator or PaymentValidator(self._settings)
        self._audit_logger = audit_logger
        self._today = today

    # -------------------------------------------------------------------------
    # Loading, access and merge
    # -------------------------------------------------------------------------

    async def _require_budget(
        self,
        user_id: UUID,
        budget_id: UUID,
        operation: str,
        correlation_id: UUID,
    ) -> WeeklyBudget:
        """
        Load a stored (unmerged) budget the requester may access.

        Raises:
            BudgetNotFoundError: If no budget has this id
            UnauthorizedError: If the requester may not access it
        """
        budget = await self._store.get_budget(budget_id)
        if budget is None:
            raise BudgetNotFoundError(budget_id)

        if not await self._access.can_access(budget, user_id):
            if self._audit_logger:
                await self._audit_logger.log_access_denied(
                    budget_id=budget_id,
                    actor_id=user_id,
                    operation=operation,
                    correlation_id=correlation_id,
                )
            raise UnauthorizedError()
        return budget

    async def _category_lookup(self, category_ids: Iterable[UUID]) -> dict[UUID, Category]:
        lookup = {}
        for category_id in set(category_ids):
            category = await self._store.get_category(category_id)
            if category is not None:
                lookup[category_id] = category
        return lookup

    async def _require_category(self, category_id: UUID) -> Category:
        category = await self._store.get_category(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        return category

    async def _quick_payment_category(self) -> Optional[Category]:
        return await self._store.find_system_category(
            self._settings.quick_payment_category_name
        )

    async def _merged_view(self, budget: WeeklyBudget) -> WeeklyBudget:
        """Fold the week's unlinked expense transactions into a copy of the budget."""
        quick_payment = await self._quick_payment_category()
        transactions = await self._store.list_transactions(
            user_ids=[budget.user_id],
            transaction_type=TransactionType.EXPENSE,
            date_from=budget.week_start,
            date_to=budget.week_end,
            exclude_category_ids=[quick_payment.id] if quick_payment else None,
        )
        categories = await self._category_lookup(t.category_id for t in transactions)
        return merge_transactions(budget, transactions, categories)

    # -------------------------------------------------------------------------
    # Concurrency-safe save
    # -------------------------------------------------------------------------

    async def _save_with_retry(
        self,
        budget: WeeklyBudget,
        mutate: Callable[[WeeklyBudget], None],
        correlation_id: UUID,
    ) -> WeeklyBudget:
        """
        Apply `mutate` and compare-and-swap the result.

        On a version conflict the budget is reloaded and `mutate` is applied
        again to the fresh copy, with backoff base * attempt between tries.
        Exceptions raised by `mutate` are not retried.

        Raises:
            BudgetNotFoundError: If the budget disappeared meanwhile
            ConflictExhaustedError: If every attempt lost to another writer
        """
        attempts = self._settings.max_save_attempts
        backoff = self._settings.save_backoff_seconds
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_incrementing(start=backoff, increment=backoff),
            retry=retry_if_exception_type(VersionConflictError),
        )

        current = budget
        try:
            async for attempt in retrying:
                with attempt:
                    number = attempt.retry_state.attempt_number
                    if number > 1:
                        current = await self._store.get_budget(budget.id)
                        if current is None:
                            raise BudgetNotFoundError(budget.id)

                    working = current.model_copy(deep=True)
                    mutate(working)
                    try:
                        return await self._store.save_budget(working)
                    except VersionConflictError:
                        if self._audit_logger:
                            await self._audit_logger.log_save_conflict(
                                budget_id=budget.id,
                                attempt=number,
                                correlation_id=correlation_id,
                            )
                        raise
        except RetryError:
            if self._audit_logger:
                await self._audit_logger.log_conflict_exhausted(
                    budget_id=budget.id,
                    attempts=attempts,
                    correlation_id=correlation_id,
                )
            raise ConflictExhaustedError(budget.id, attempts)
        except RecordNotFoundError:
            raise BudgetNotFoundError(budget.id)

    async def _partial_failure(
        self,
        error: Exception,
        step: str,
        budget_id: UUID,
        payment_id: Optional[UUID],
        transaction_id: Optional[UUID],
        correlation_id: UUID,
    ) -> PartialFailureError:
        if self._audit_logger:
            await self._audit_logger.log_partial_failure(
                budget_id=budget_id,
                payment_id=payment_id,
                transaction_id=transaction_id,
                step=step,
                error_message=str(error),
                correlation_id=correlation_id,
            )
        return PartialFailureError(
            f"Budget {budget_id} was saved but {step} failed: {error}",
            budget_id=budget_id,
            payment_id=payment_id,
            transaction_id=transaction_id,
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @translate_storage_errors
    async def get_or_create_current_week(
        self,
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> WeeklyBudget:
        """
        Return the merged budget for the current week, creating it if needed.

        A new budget has a zero total and, when the Quick Payment system
        category exists, a zero-allocation category for it.
        """
        correlation_id = correlation_id or create_correlation_id()
        today = self._today()

        budget = await self._store.find_budget_for_day(user_id, today)
        if budget is None:
            start, end = week_bounds(today)
            quick_payment = await self._quick_payment_category()
            budget = await self._store.create_budget(WeeklyBudget(
                user_id=user_id,
                week_start=start,
                week_end=end,
                categories=(
                    [BudgetCategory(category_id=quick_payment.id)]
                    if quick_payment else []
                ),
            ))
            if self._audit_logger:
                await self._audit_logger.log_budget_auto_provisioned(
                    budget_id=budget.id,
                    actor_id=user_id,
                    week_start=start.isoformat(),
                    correlation_id=correlation_id,
                )

        return await self._merged_view(budget)

    @translate_storage_errors
    async def get_budget(
        self,
        user_id: UUID,
        budget_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> WeeklyBudget:
        correlation_id = correlation_id or create_correlation_id()
        budget = await self._require_budget(user_id, budget_id, "get_budget", correlation_id)
        return await self._merged_view(budget)

    @translate_storage_errors
    async def get_budgets_in_range(
        self,
        user_id: UUID,
        start: date,
        end: date,
    ) -> list[WeeklyBudget]:
        """
        The requester's budgets whose week starts in, ends in, or spans the range.

        Returns:
            Merged budgets, newest week first
        """
        if start > end:
            raise BudgetValidationError("Range start must not be after range end")

        budgets = await self._store.list_budgets(
            user_ids=[user_id],
            date_from=start,
            date_to=end,
        )
        return [await self._merged_view(b) for b in budgets]

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def _mirror_schedule(
        self,
        budget: WeeklyBudget,
        category_id: UUID,
        entry: PaymentEntry,
        frequency: Frequency = Frequency.ONCE,
    ) -> PaymentSchedule:
        return PaymentSchedule(
            user_id=budget.user_id,
            household_id=budget.household_id if budget.is_shared_with_household else None,
            name=entry.name,
            amount=entry.amount,
            category_id=category_id,
            due_date=entry.scheduled_date,
            frequency=frequency,
            is_recurring=entry.is_recurring,
            notes=entry.notes,
            weekly_budget_id=budget.id,
        )

    @staticmethod
    def _draft_frequency(draft: PaymentDraft) -> Frequency:
        if draft.frequency == Frequency.ONCE and draft.is_recurring:
            return Frequency.MONTHLY
        return draft.frequency

    def _validate_draft(
        self,
        draft: PaymentDraft,
        budget: WeeklyBudget,
        category: Optional[BudgetCategory],
    ) -> None:
        result = self._validator.validate_new_payment(draft, budget, category)
        if result.has_errors:
            raise BudgetValidationError(
                self._validator.summarize(result),
                issues=result.issues,
            )

    async def _smart_base(
        self,
        user_id: UUID,
        week_start: date,
        replacing: Optional[WeeklyBudget],
    ) -> tuple[WeeklyBudget, HistoryInsights]:
        window_start, _ = history_window(self._today(), self._settings.smart_history_days)
        history = [
            b for b in await self._store.list_budgets(user_ids=[user_id], date_from=window_start)
            if replacing is None or b.id != replacing.id
        ]
        if len(history) < self._settings.smart_min_budgets:
            raise BudgetValidationError(
                "Not enough budget history for smart creation",
                issues=[ValidationIssue(
                    field="mode",
                    issue_type="insufficient_history",
                    message=(
                        f"Smart creation needs at least {self._settings.smart_min_budgets} "
                        f"budgets, found {len(history)}"
                    ),
                    severity="error",
                    suggested_fix="Create this budget manually or from a template",
                )],
            )

        category_ids = {c.category_id for b in history for c in b.categories}
        insights = summarize_history(history, await self._category_lookup(category_ids))
        return build_smart_budget(user_id, week_start, insights), insights

    @translate_storage_errors
    async def create_budget(
        self,
        user_id: UUID,
        plan: BudgetPlan,
        correlation_id: Optional[UUID] = None,
    ) -> BudgetCreation:
        """
        Create a budget for the plan's week, replacing any existing one.

        The existing budget for that week is deleted together with the
        schedules linked to it. Every payment in the new budget gets a
        mirror schedule.

        Raises:
            BudgetNotFoundError: If the template does not exist
            UnauthorizedError: If the template is not accessible
            CategoryNotFoundError: If a planned category does not exist
            BudgetValidationError: If a planned payment is invalid, or smart
                mode lacks history
        """
        correlation_id = correlation_id or create_correlation_id()
        start, _ = week_bounds(plan.week_start)

        for category_plan in plan.categories:
            await self._require_category(category_plan.category_id)

        existing = await self._store.find_budget_for_day(user_id, start)

        insights = None
        if plan.mode == CreationMode.TEMPLATE:
            template = await self._require_budget(
                user_id, plan.template_id, "create_from_template", correlation_id
            )
            budget = build_from_template(user_id, start, template)
        elif plan.mode == CreationMode.SMART:
            budget, insights = await self._smart_base(user_id, start, existing)
        else:
            budget = build_manual_budget(
                user_id,
                start,
                plan.total_budget,
                {c.category_id: c.allocation for c in plan.categories},
            )

        # Copied template entries need their own schedules
        schedules: list[PaymentSchedule] = []
        for category, entry in budget.iter_payments():
            schedule = self._mirror_schedule(budget, category.category_id, entry)
            entry.ref = EntryRef.schedule(schedule.id)
            schedules.append(schedule)

        for category_plan in plan.categories:
            category = budget.find_category(category_plan.category_id)
            if category is None:
                category = BudgetCategory(
                    category_id=category_plan.category_id,
                    allocation=category_plan.allocation,
                )
                budget.categories.append(category)

            for draft in category_plan.payments:
                self._validate_draft(draft, budget, category)
                entry = PaymentEntry(
                    name=draft.name,
                    amount=draft.amount,
                    scheduled_date=draft.scheduled_date,
                    notes=draft.notes,
                    is_recurring=draft.is_recurring,
                )
                schedule = self._mirror_schedule(
                    budget, category.category_id, entry, self._draft_frequency(draft)
                )
                entry.ref = EntryRef.schedule(schedule.id)
                category.payments.append(entry)
                schedules.append(schedule)

        if existing is not None:
            for schedule in await self._store.list_schedules(weekly_budget_id=existing.id):
                await self._store.delete_schedule(schedule.id)
            await self._store.delete_budget(existing.id)
            if self._audit_logger:
                await self._audit_logger.log_budget_changed(
                    event_type=AuditEventType.BUDGET_REPLACED,
                    budget_id=existing.id,
                    actor_id=user_id,
                    description=f"Budget for week of {start} replaced by {budget.id}",
                    details={"replacement_id": str(budget.id)},
                    correlation_id=correlation_id,
                )

        for schedule in schedules:
            await self._store.save_schedule(schedule)
        created = await self._store.create_budget(budget)

        if self._audit_logger:
            await self._audit_logger.log_budget_created(
                budget_id=created.id,
                actor_id=user_id,
                mode=plan.mode.value,
                correlation_id=correlation_id,
            )

        return BudgetCreation(
            budget=created,
            schedules=schedules,
            replaced_budget_id=existing.id if existing else None,
            insights=insights,
        )

    # -------------------------------------------------------------------------
    # Budget-level edits
    # -------------------------------------------------------------------------

    @translate_storage_errors
    async def update_total(
        self,
        user_id: UUID,
        budget_id: UUID,
        total_budget: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> WeeklyBudget:
        correlation_id = correlation_id or create_correlation_id()
        if total_budget < 0:
            raise BudgetValidationError("Total budget cannot be negative")

        budget = await self._require_budget(user_id, budget_id, "update_total", correlation_id)
        previous = budget.total_budget

        def mutate(b: WeeklyBudget) -> None:
            b.total_budget = total_budget

        saved = await self._save_with_retry(budget, mutate, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_budget_changed(
                event_type=AuditEventType.BUDGET_TOTAL_UPDATED,
                budget_id=budget_id,
                actor_id=user_id,
                description=f"Total changed from {previous} to {total_budget}",
                details={"old_total": str(previous), "new_total": str(total_budget)},
                correlation_id=correlation_id,
            )
        return await self._merged_view(saved)

    async def _delete_schedules(
        self,
        schedule_ids: Iterable[UUID],
        budget_id: UUID,
        correlation_id: UUID,
    ) -> int:
        deleted = 0
        for schedule_id in schedule_ids:
            try:
                if await self._store.delete_schedule(schedule_id):
                    deleted += 1
            except StorageError as e:
                raise await self._partial_failure(
                    e, "schedule deletion", budget_id, schedule_id, None, correlation_id
                ) from e
        return deleted

    async def _linked_schedule_ids(
        self,
        budget_id: UUID,
        category: BudgetCategory,
    ) -> set[UUID]:
        """Mirror schedules of a budget category: by entry ref and by budget link."""
        ids = {p.schedule_id for p in category.payments if p.schedule_id}
        linked = await self._store.list_schedules(
            weekly_budget_id=budget_id,
            category_id=category.category_id,
        )
        ids.update(s.id for s in linked)
        return ids

    @translate_storage_errors
    async def replace_categories(
        self,
        user_id: UUID,
        budget_id: UUID,
        category_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> WeeklyBudget:
        """
        Replace the budget's category list.

        Retained categories keep their allocation and entries, new ones start
        with zero allocation, and removed ones lose their mirror schedules.
        """
        correlation_id = correlation_id or create_correlation_id()
        budget = await self._require_budget(
            user_id, budget_id, "replace_categories", correlation_id
        )
        for category_id in category_ids:
            await self._require_category(category_id)

        wanted = list(dict.fromkeys(category_ids))
        removed: list[BudgetCategory] = []

        def mutate(b: WeeklyBudget) -> None:
            current = {c.category_id: c for c in b.categories}
            removed[:] = [c for c in b.categories if c.category_id not in wanted]
            b.categories = [
                current.get(category_id) or BudgetCategory(category_id=category_id)
                for category_id in wanted
            ]

        saved = await self._save_with_retry(budget, mutate, correlation_id)

        schedule_ids: set[UUID] = set()
        for category in removed:
            schedule_ids |= await self._linked_schedule_ids(budget_id, category)
        await self._delete_schedules(schedule_ids, budget_id, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_budget_changed(
                event_type=AuditEventType.CATEGORIES_REPLACED,
                budget_id=budget_id,
                actor_id=user_id,
                description=f"Categories replaced ({len(wanted)} kept or added, {len(removed)} removed)",
                details={
                    "category_ids": [str(c) for c in wanted],
                    "removed_category_ids": [str(c.category_id) for c in removed],
                },
                correlation_id=correlation_id,
            )
        return await self._merged_view(saved)

    @translate_storage_errors
    async def delete_category(
        self,
        user_id: UUID,
        budget_id: UUID,
        category_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> WeeklyBudget:
        """
        Remove a budget category and delete its mirror schedules.

        Args:
            category_id: The referenced category id or the budget category's own id
        """
        correlation_id = correlation_id or create_correlation_id()
        budget = await self._require_budget(user_id, budget_id, "delete_category", correlation_id)

        removed: list[BudgetCategory] = []

        def mutate(b: WeeklyBudget) -> None:
            category = b.find_category(category_id)
            if category is None:
                raise CategoryNotFoundError(category_id)
            b.categories.remove(category)
            removed[:] = [category]

        saved = await self._save_with_retry(budget, mutate, correlation_id)

        schedule_ids = await self._linked_schedule_ids(budget_id, removed[0])
        deleted = await self._delete_schedules(schedule_ids, budget_id, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_budget_changed(
                event_type=AuditEventType.CATEGORY_DELETED,
                budget_id=budget_id,
                actor_id=user_id,
                description=f"Category {removed[0].category_id} deleted with {deleted} schedules",
                details={"category_id": str(removed[0].category_id), "schedules_deleted": deleted},
                correlation_id=correlation_id,
            )
        return await self._merged_view(saved)

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    @translate_storage_errors
    async def add_payment_to_category(
        self,
        user_id: UUID,
        budget_id: UUID,
        category_id: UUID,
        draft: PaymentDraft,
        correlation_id: Optional[UUID] = None,
    ) -> PaymentOutcome:
        """
        Add a pending payment to a budget category and create its schedule.

        The schedule is written first; if the budget save fails it is
        deleted again.

        Raises:
            CategoryNotFoundError: If the category does not exist
            BudgetValidationError: If the payment is invalid or would push the
                category past a positive allocation
        """
        correlation_id = correlation_id or create_correlation_id()
        budget = await self._require_budget(
            user_id, budget_id, "add_payment_to_category", correlation_id
        )
        await self._require_category(category_id)
        self._validate_draft(draft, budget, budget.find_category(category_id))

        entry = PaymentEntry(
            name=draft.name,
            amount=draft.amount,
            scheduled_date=draft.scheduled_date,
            notes=draft.notes,
            is_recurring=draft.is_recurring,
        )
        schedule = await self._store.save_schedule(self._mirror_schedule(
            budget, category_id, entry, self._draft_frequency(draft)
        ))
        entry.ref = EntryRef.schedule(schedule.id)

        def mutate(b: WeeklyBudget) -> None:
            category = b.find_category(category_id)
            # Allocation may have changed under a concurrent writer
            self._validate_draft(draft, b, category)
            if category is None:
                category = BudgetCategory(category_id=category_id)
                b.categories.append(category)
            category.payments.append(entry.model_copy(deep=True))

        try:
            saved = await self._save_with_retry(budget, mutate, correlation_id)
        except Exception:
            try:
                await self._store.delete_schedule(schedule.id)
            except StorageError as cleanup_error:
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        error_type="schedule_cleanup_failed",
                        error_message=str(cleanup_error),
                        details={"schedule_id": str(schedule.id)},
                        correlation_id=correlation_id,
                    )
            raise

        if self._audit_logger:
            await self._audit_logger.log_budget_changed(
                event_type=AuditEventType.PAYMENT_ADDED,
                budget_id=budget_id,
                actor_id=user_id,
                description=f"Payment '{entry.name}' ({entry.amount}) added",
                details={"payment_id": str(entry.id), "schedule_id": str(schedule.id)},
                correlation_id=correlation_id,
            )

        return PaymentOutcome(
            budget=await self._merged_view(saved),
            payment=entry,
            schedule=schedule,
        )

    async def update_payment_status(
        self,
        user_id: UUID,
        budget_id: UUID,
        payment_id: UUID,
        status: PaymentStatus,
        paid_by: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> PaymentOutcome:
        """
        Move an entry between pending and paid.

        Paying records a ledger transaction (unless one already exists for
        the entry); reverting deletes it. Both update the mirror schedule.
        """
        return await self._update_payment(
            user_id,
            budget_id,
            payment_id,
            PaymentUpdate(status=status, paid_by=paid_by),
            correlation_id,
        )

    async def update_payment_fields(
        self,
        user_id: UUID,
        budget_id: UUID,
        payment_id: UUID,
        update: PaymentUpdate,
        correlation_id: Optional[UUID] = None,
    ) -> PaymentOutcome:
        """Edit an entry in place, optionally changing its status as well."""
        return await self._update_payment(
            user_id, budget_id, payment_id, update, correlation_id
        )

    async def _existing_transaction_id(self, entry: PaymentEntry) -> Optional[UUID]:
        if entry.transaction_id is not None:
            if await self._store.get_transaction(entry.transaction_id) is not None:
                return entry.transaction_id
        source_ids = [entry.id] + ([entry.schedule_id] if entry.schedule_id else [])
        matches = await self._store.find_by_source(source_ids)
        return matches[0].id if matches else None

    @translate_storage_errors
    async def _update_payment(
        self,
        user_id: UUID,
        budget_id: UUID,
        payment_id: UUID,
        update: PaymentUpdate,
        correlation_id: Optional[UUID],
    ) -> PaymentOutcome:
        correlation_id = correlation_id or create_correlation_id()
        budget = await self._require_budget(user_id, budget_id, "update_payment", correlation_id)

        result = self._validator.validate_update(update, budget)
        if result.has_errors:
            raise BudgetValidationError(self._validator.summarize(result), issues=result.issues)
        if update.category_id is not None:
            await self._require_category(update.category_id)

        _, entry = locate_entry(budget, payment_id)
        entry_id = entry.id

        existing_tx_id = None
        if plan_transition(entry.status, update.status) == Transition.PAY:
            existing_tx_id = await self._existing_transaction_id(entry)
        new_tx_id = existing_tx_id or uuid4()
        payer = update.paid_by or user_id
        today = self._today()

        state: dict = {}

        def mutate(b: WeeklyBudget) -> None:
            category, e = apply_field_changes(b, entry_id, update)
            transition = plan_transition(e.status, update.status)
            state["old_status"] = e.status
            state["removed_tx"] = None
            if transition == Transition.PAY:
                # Zero-amount entries have nothing to record in the ledger
                mark_entry_paid(e, payer, today, new_tx_id if e.amount > 0 else None)
            elif transition == Transition.REVERT:
                state["removed_tx"] = mark_entry_pending(e)
            state["transition"] = transition
            state["category_id"] = category.category_id
            state["entry"] = e.model_copy(deep=True)

        saved = await self._save_with_retry(budget, mutate, correlation_id)

        transition: Transition = state["transition"]
        saved_entry: PaymentEntry = state["entry"]
        category_id: UUID = state["category_id"]
        transaction_id: Optional[UUID] = None
        reference_tx = new_tx_id if transition == Transition.PAY else state["removed_tx"]

        step = "transaction update"
        try:
            if transition == Transition.PAY:
                transaction_id = saved_entry.transaction_id
                if existing_tx_id is None and saved_entry.transaction_id == new_tx_id:
                    step = "transaction creation"
                    await self._store.save_transaction(Transaction(
                        id=new_tx_id,
                        user_id=user_id,
                        household_id=saved.household_id if saved.is_shared_with_household else None,
                        type=TransactionType.EXPENSE,
                        amount=saved_entry.amount,
                        category_id=category_id,
                        description=f"Payment: {saved_entry.name}",
                        transaction_date=today,
                        source=TransactionSource(
                            kind=SourceKind.SCHEDULE if saved_entry.schedule_id else SourceKind.ENTRY,
                            id=saved_entry.schedule_id or saved_entry.id,
                        ),
                    ))
                    if self._audit_logger:
                        await self._audit_logger.log_transaction_changed(
                            created=True,
                            transaction_id=new_tx_id,
                            budget_id=budget_id,
                            payment_id=saved_entry.id,
                            amount=str(saved_entry.amount),
                            correlation_id=correlation_id,
                        )

            elif transition == Transition.REVERT:
                step = "transaction deletion"
                tx_ids = {state["removed_tx"]} - {None}
                source_ids = [saved_entry.id] + (
                    [saved_entry.schedule_id] if saved_entry.schedule_id else []
                )
                tx_ids.update(t.id for t in await self._store.find_by_source(source_ids))
                for tx_id in tx_ids:
                    if await self._store.delete_transaction(tx_id):
                        transaction_id = tx_id
                        if self._audit_logger:
                            await self._audit_logger.log_transaction_changed(
                                created=False,
                                transaction_id=tx_id,
                                budget_id=budget_id,
                                payment_id=saved_entry.id,
                                amount=str(saved_entry.amount),
                                correlation_id=correlation_id,
                            )

            step = "schedule update"
            schedule = await self._mirror_update(saved_entry, category_id, transition, payer, today)
        except StorageError as e:
            raise await self._partial_failure(
                e, step, budget_id, saved_entry.id, transaction_id or reference_tx, correlation_id
            ) from e

        if self._audit_logger:
            if transition != Transition.NONE:
                await self._audit_logger.log_payment_status_updated(
                    budget_id=budget_id,
                    payment_id=saved_entry.id,
                    actor_id=user_id,
                    old_status=state["old_status"].value,
                    new_status=saved_entry.status.value,
                    correlation_id=correlation_id,
                )
            if update.has_field_changes:
                await self._audit_logger.log_budget_changed(
                    event_type=AuditEventType.PAYMENT_UPDATED,
                    budget_id=budget_id,
                    actor_id=user_id,
                    description=f"Payment '{saved_entry.name}' edited",
                    details={
                        "payment_id": str(saved_entry.id),
                        "fields": sorted(update.model_dump(
                            exclude_none=True, exclude={"status", "paid_by"}
                        )),
                    },
                    correlation_id=correlation_id,
                )

        return PaymentOutcome(
            budget=await self._merged_view(saved),
            payment=saved_entry,
            transition=transition,
            transaction_id=transaction_id,
            schedule=schedule,
        )

    async def _mirror_update(
        self,
        entry: PaymentEntry,
        category_id: UUID,
        transition: Transition,
        payer: UUID,
        today: date,
    ) -> Optional[PaymentSchedule]:
        """Copy an entry's fields and status change onto its schedule."""
        if entry.schedule_id is None:
            return None
        schedule = await self._store.get_schedule(entry.schedule_id)
        if schedule is None:
            return None

        schedule.name = entry.name
        schedule.amount = entry.amount
        schedule.due_date = entry.scheduled_date
        schedule.notes = entry.notes
        schedule.category_id = category_id
        if transition == Transition.PAY:
            schedule.mark_paid(payer, today)
        elif transition == Transition.REVERT:
            schedule.mark_pending()
        return await self._store.update_schedule(schedule)

    @translate_storage_errors
    async def delete_payment(
        self,
        user_id: UUID,
        budget_id: UUID,
        payment_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> DeletionOutcome:
        """
        Delete an entry together with its schedule and linked transaction.

        When `payment_id` is not an entry but a raw transaction owned by the
        requester (a merged entry), that transaction is deleted instead.
        """
        correlation_id = correlation_id or create_correlation_id()
        budget = await self._require_budget(user_id, budget_id, "delete_payment", correlation_id)

        found = budget.find_payment(payment_id) or budget.find_payment_by_transaction(payment_id)
        if found is None:
            transaction = await self._store.get_transaction(payment_id)
            if transaction is None or transaction.user_id != user_id:
                raise PaymentNotFoundError(payment_id)
            # Owned by a paid entry elsewhere; revert that entry instead.
            if transaction.source.kind != SourceKind.NONE:
                raise PaymentNotFoundError(payment_id)

            await self._store.delete_transaction(transaction.id)
            if self._audit_logger:
                await self._audit_logger.log_transaction_changed(
                    created=False,
                    transaction_id=transaction.id,
                    budget_id=budget_id,
                    payment_id=payment_id,
                    amount=str(transaction.amount),
                    correlation_id=correlation_id,
                )
            return DeletionOutcome(
                payment_id=payment_id,
                budget=await self._merged_view(budget),
                deleted_transaction=True,
            )

        entry_id = found[1].id
        removed: list[PaymentEntry] = []

        def mutate(b: WeeklyBudget) -> None:
            category, e = locate_entry(b, entry_id)
            category.remove_payment(e.id)
            removed[:] = [e]

        saved = await self._save_with_retry(budget, mutate, correlation_id)
        entry = removed[0]

        deleted_schedule = False
        deleted_transaction = False
        tx_ids = {entry.transaction_id} - {None}
        try:
            source_ids = [entry.id] + ([entry.schedule_id] if entry.schedule_id else [])
            tx_ids.update(t.id for t in await self._store.find_by_source(source_ids))
            for tx_id in tx_ids:
                deleted_transaction = await self._store.delete_transaction(tx_id) or deleted_transaction
            if entry.schedule_id:
                deleted_schedule = await self._store.delete_schedule(entry.schedule_id)
        except StorageError as e:
            raise await self._partial_failure(
                e,
                "payment cascade",
                budget_id,
                entry.id,
                next(iter(tx_ids), None),
                correlation_id,
            ) from e

        if self._audit_logger:
            await self._audit_logger.log_budget_changed(
                event_type=AuditEventType.PAYMENT_DELETED,
                budget_id=budget_id,
                actor_id=user_id,
                description=f"Payment '{entry.name}' deleted",
                details={
                    "payment_id": str(entry.id),
                    "deleted_schedule": deleted_schedule,
                    "deleted_transaction": deleted_transaction,
                },
                correlation_id=correlation_id,
            )

        return DeletionOutcome(
            payment_id=payment_id,
            budget=await self._merged_view(saved),
            deleted_transaction=deleted_transaction,
            deleted_schedule=deleted_schedule,
        )

    # -------------------------------------------------------------------------
    # Sync and link repair
    # -------------------------------------------------------------------------

    async def _sync(
        self,
        budget: WeeklyBudget,
        actor_id: UUID,
        correlation_id: UUID,
    ) -> SyncReport:
        schedules = await self._store.list_schedules(
            user_ids=[budget.user_id],
            due_from=budget.week_start,
            due_to=budget.week_end,
        )
        if not schedules:
            return SyncReport(budget=budget, changed=False)

        known = set(await self._category_lookup(s.category_id for s in schedules))
        tracked = {p.schedule_id for _, p in budget.iter_payments() if p.schedule_id}
        paid_transactions: dict[UUID, UUID] = {}
        for schedule in schedules:
            if schedule.status == PaymentStatus.PAID and schedule.id not in tracked:
                matches = await self._store.find_by_source([schedule.id])
                if matches:
                    paid_transactions[schedule.id] = matches[0].id

        outcome: dict = {}

        def mutate(b: WeeklyBudget) -> None:
            result = rebuild_from_schedules(b, schedules, known, paid_transactions)
            b.categories = result.budget.categories
            outcome["result"] = result

        saved = await self._save_with_retry(budget, mutate, correlation_id)
        result = outcome["result"]

        linked: list[UUID] = []
        for schedule in schedules:
            if schedule.id not in result.unlinked_schedule_ids:
                continue
            schedule.weekly_budget_id = saved.id
            if saved.is_shared_with_household and schedule.household_id is None:
                schedule.household_id = saved.household_id
            try:
                await self._store.update_schedule(schedule)
            except StorageError as e:
                raise await self._partial_failure(
                    e, "schedule linking", saved.id, schedule.id, None, correlation_id
                ) from e
            linked.append(schedule.id)

        if self._audit_logger:
            await self._audit_logger.log_budget_changed(
                event_type=AuditEventType.CATEGORIES_SYNCED,
                budget_id=saved.id,
                actor_id=actor_id,
                description=(
                    f"Rebuilt {len(saved.categories)} categories from schedules; "
                    f"{len(result.skipped_schedule_ids)} skipped"
                ),
                details={
                    "skipped_schedule_ids": [str(s) for s in result.skipped_schedule_ids],
                    "linked_schedule_ids": [str(s) for s in linked],
                },
                correlation_id=correlation_id,
            )

        return SyncReport(
            budget=saved,
            changed=True,
            skipped_schedule_ids=result.skipped_schedule_ids,
            linked_schedule_ids=linked,
        )

    @translate_storage_errors
    async def sync_categories_from_schedule(
        self,
        user_id: UUID,
        budget_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> SyncReport:
        """
        Rebuild the budget's categories from the schedules due in its week.

        Returns:
            SyncReport with the merged budget. When no schedule is due in the
            week the budget is left as it was (changed=False).
        """
        correlation_id = correlation_id or create_correlation_id()
        budget = await self._require_budget(user_id, budget_id, "sync", correlation_id)
        report = await self._sync(budget, user_id, correlation_id)
        report.budget = await self._merged_view(report.budget)
        return report

    @translate_storage_errors
    async def repair_payment_links(
        self,
        user_id: UUID,
        budget_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> LinkRepairReport:
        """
        Point every mirror schedule of the budget's entries back at the budget.

        Unlinked schedules get the budget link (and the household, when the
        budget is shared). Schedules already linked to this budget get the
        household id if they lack one.
        """
        correlation_id = correlation_id or create_correlation_id()
        budget = await self._require_budget(user_id, budget_id, "repair_links", correlation_id)
        shared_household = budget.household_id if budget.is_shared_with_household else None

        report = LinkRepairReport(budget_id=budget_id)
        for _, entry in budget.iter_payments():
            report.entries_inspected += 1
            if entry.schedule_id is None:
                continue
            schedule = await self._store.get_schedule(entry.schedule_id)
            if schedule is None:
                continue

            changed = False
            if schedule.weekly_budget_id is None:
                schedule.weekly_budget_id = budget_id
                report.schedules_linked += 1
                changed = True
            if (
                shared_household
                and schedule.weekly_budget_id == budget_id
                and schedule.household_id is None
            ):
                schedule.household_id = shared_household
                report.households_set += 1
                changed = True
            if changed:
                await self._store.update_schedule(schedule)

        return report

    # -------------------------------------------------------------------------
    # Household sharing
    # -------------------------------------------------------------------------

    @translate_storage_errors
    async def set_household_sharing(
        self,
        user_id: UUID,
        budget_id: UUID,
        shared: bool,
        household_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> WeeklyBudget:
        """
        Share a budget with a household, or stop sharing it.

        Only the owner may change sharing, and only with a household they
        belong to. Turning sharing off also clears the household link.
        """
        correlation_id = correlation_id or create_correlation_id()
        budget = await self._require_budget(user_id, budget_id, "set_sharing", correlation_id)
        if budget.user_id != user_id:
            raise UnauthorizedError("Only the budget owner can change sharing")

        if shared:
            if household_id is None:
                raise BudgetValidationError("A household is required to share a budget")
            if not await self._access.directory.is_member(household_id, user_id):
                raise UnauthorizedError("You are not a member of this household")

        def mutate(b: WeeklyBudget) -> None:
            b.is_shared_with_household = shared
            b.household_id = household_id if shared else None

        saved = await self._save_with_retry(budget, mutate, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_budget_changed(
                event_type=AuditEventType.SHARING_CHANGED,
                budget_id=budget_id,
                actor_id=user_id,
                description="Budget shared" if shared else "Budget no longer shared",
                details={"household_id": str(household_id) if shared else None},
                correlation_id=correlation_id,
            )
        return await self._merged_view(saved)

    @translate_storage_errors
    async def list_household_shared(
        self,
        user_id: UUID,
        household_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> list[WeeklyBudget]:
        """
        Budgets of all household members that are shared with the household.

        A shared budget without categories is synced from its schedules
        before it is returned.

        Raises:
            UnauthorizedError: If the requester is not a member
        """
        correlation_id = correlation_id or create_correlation_id()
        household = await self._access.directory.get_household(household_id)
        if household is None or not household.has_member(user_id):
            raise UnauthorizedError("You are not a member of this household")

        budgets = await self._store.list_budgets(
            user_ids=household.all_member_ids,
            household_id=household_id,
            shared_only=True,
        )

        views = []
        for budget in budgets:
            if not budget.categories:
                budget = (await self._sync(budget, user_id, correlation_id)).budget
            views.append(await self._merged_view(budget))
        return views
