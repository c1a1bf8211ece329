"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a storage backend because:
1. Households can view their budgets and ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions. The budget version check is a read-then-write, so two
  writers racing inside the same second can both pass it. The version
  column still catches every conflict between request-scoped reloads,
  which is what the reconciliation retry loop relies on.
- Limited query capabilities (we filter in Python)

Each record kind lives in its own worksheet. A row carries the id, the
owner, the version (budgets only) and the whole record as JSON, so nested
structures (budget categories and their payment entries) survive intact.
"""

import json
from datetime import date, datetime
from typing import Iterable, Optional, Type, TypeVar
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from budgetkeeper.config import get_settings
from budgetkeeper.config.settings import GoogleSheetsSettings
from budgetkeeper.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budgetkeeper.models.ledger import (
    Category,
    PaymentSchedule,
    PaymentStatus,
    Transaction,
    TransactionType,
    WeeklyBudget,
)
from budgetkeeper.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    EntityStore,
    RecordNotFoundError,
    StorageError,
    VersionConflictError,
)
from budgetkeeper.services.storage.queries import (
    filter_budgets,
    filter_schedules,
    filter_transactions,
)


RecordT = TypeVar("RecordT", bound=BaseModel)

# Column layout shared by every record worksheet
RECORD_COLUMNS = [
    "id",
    "user_id",
    "version",
    "updated_at",
    "record_json",
]

# Column layout of the audit worksheet (see AuditEvent.to_sheets_row)
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "actor_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]

transport_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type(StorageError),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class SheetTable:
    """
    One worksheet holding one record kind.

    Rows follow RECORD_COLUMNS. Row 1 is the header, so data rows start at 2.
    """

    def __init__(self, client: GoogleSheetsClient, title: str, model: Type[RecordT]):
        self._client = client
        self._title = title
        self._model = model

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._title, RECORD_COLUMNS)

    @staticmethod
    def _to_row(record: BaseModel, version: int = 0) -> list:
        user_id = getattr(record, "user_id", None)
        return [
            str(record.id),
            str(user_id) if user_id else "",
            str(version),
            datetime.utcnow().isoformat(),
            record.model_dump_json(),
        ]

    def _from_row(self, row: list) -> RecordT:
        return self._model.model_validate_json(row[4])

    @transport_retry
    def _rows(self) -> list[list]:
        try:
            return self._sheet().get_all_values()[1:]
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to read {self._title}: {e}")

    def all(self) -> list[RecordT]:
        records = []
        for row in self._rows():
            if not row or not row[0] or len(row) < len(RECORD_COLUMNS):
                continue
            records.append(self._from_row(row))
        return records

    def locate(self, record_id: UUID) -> tuple[Optional[int], Optional[list]]:
        """Return (sheet row number, row values) for an id."""
        for idx, row in enumerate(self._rows(), start=2):
            if row and row[0] == str(record_id):
                return idx, row
        return None, None

    def get(self, record_id: UUID) -> Optional[RecordT]:
        _, row = self.locate(record_id)
        return self._from_row(row) if row else None

    @transport_retry
    def append(self, record: BaseModel, version: int = 0) -> None:
        if self.locate(record.id)[0] is not None:
            raise DuplicateError(f"{self._title} already holds {record.id}")
        self._sheet().append_row(self._to_row(record, version), value_input_option="RAW")

    @transport_retry
    def replace(self, row_number: int, record: BaseModel, version: int = 0) -> None:
        end_column = chr(ord("A") + len(RECORD_COLUMNS) - 1)
        self._sheet().update(
            f"A{row_number}:{end_column}{row_number}",
            [self._to_row(record, version)],
            value_input_option="RAW",
        )

    @transport_retry
    def delete(self, record_id: UUID) -> bool:
        row_number, _ = self.locate(record_id)
        if row_number is None:
            return False
        self._sheet().delete_rows(row_number)
        return True


class GoogleSheetsEntityStore(EntityStore):
    """
    Google Sheets implementation of the entity store.

    Budgets carry their version in the `version` column as well as inside
    the JSON payload; the column is what the compare-and-swap reads.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        settings = self._client.settings
        self._categories = SheetTable(self._client, settings.categories_sheet_name, Category)
        self._transactions = SheetTable(self._client, settings.transactions_sheet_name, Transaction)
        self._schedules = SheetTable(self._client, settings.schedules_sheet_name, PaymentSchedule)
        self._budgets = SheetTable(self._client, settings.budgets_sheet_name, WeeklyBudget)

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def save_category(self, category: Category) -> Category:
        row_number, _ = self._categories.locate(category.id)
        if row_number is None:
            self._categories.append(category)
        else:
            self._categories.replace(row_number, category)
        return category

    async def get_category(self, category_id: UUID) -> Optional[Category]:
        return self._categories.get(category_id)

    async def find_system_category(self, name: str) -> Optional[Category]:
        for category in self._categories.all():
            if category.is_system and category.name == name:
                return category
        return None

    async def list_categories(
        self,
        user_id: Optional[UUID] = None,
    ) -> list[Category]:
        return [
            c for c in self._categories.all()
            if user_id is None or c.user_id in (None, user_id)
        ]

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        self._transactions.append(transaction)
        return transaction

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._transactions.delete(transaction_id)

    async def list_transactions(
        self,
        user_ids: Optional[Iterable[UUID]] = None,
        transaction_type: Optional[TransactionType] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        exclude_category_ids: Optional[Iterable[UUID]] = None,
    ) -> list[Transaction]:
        return filter_transactions(
            self._transactions.all(),
            user_ids=user_ids,
            transaction_type=transaction_type,
            date_from=date_from,
            date_to=date_to,
            exclude_category_ids=exclude_category_ids,
        )

    async def find_by_source(self, source_ids: Iterable[UUID]) -> list[Transaction]:
        wanted = set(source_ids)
        return [
            t for t in self._transactions.all()
            if t.source.id is not None and t.source.id in wanted
        ]

    # -------------------------------------------------------------------------
    # Payment schedules
    # -------------------------------------------------------------------------

    async def save_schedule(self, schedule: PaymentSchedule) -> PaymentSchedule:
        self._schedules.append(schedule)
        return schedule

    async def get_schedule(self, schedule_id: UUID) -> Optional[PaymentSchedule]:
        return self._schedules.get(schedule_id)

    async def update_schedule(self, schedule: PaymentSchedule) -> PaymentSchedule:
        row_number, _ = self._schedules.locate(schedule.id)
        if row_number is None:
            raise RecordNotFoundError(f"Schedule not found: {schedule.id}")
        schedule.updated_at = datetime.utcnow()
        self._schedules.replace(row_number, schedule)
        return schedule

    async def delete_schedule(self, schedule_id: UUID) -> bool:
        return self._schedules.delete(schedule_id)

    async def list_schedules(
        self,
        user_ids: Optional[Iterable[UUID]] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
        statuses: Optional[Iterable[PaymentStatus]] = None,
        weekly_budget_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
    ) -> list[PaymentSchedule]:
        return filter_schedules(
            self._schedules.all(),
            user_ids=user_ids,
            due_from=due_from,
            due_to=due_to,
            statuses=statuses,
            weekly_budget_id=weekly_budget_id,
            category_id=category_id,
        )

    # -------------------------------------------------------------------------
    # Weekly budgets
    # -------------------------------------------------------------------------

    async def create_budget(self, budget: WeeklyBudget) -> WeeklyBudget:
        stored = budget.model_copy(deep=True)
        stored.version = 1
        self._budgets.append(stored, version=1)
        return stored

    async def get_budget(self, budget_id: UUID) -> Optional[WeeklyBudget]:
        return self._budgets.get(budget_id)

    async def save_budget(self, budget: WeeklyBudget) -> WeeklyBudget:
        row_number, row = self._budgets.locate(budget.id)
        if row_number is None:
            raise RecordNotFoundError(f"Budget not found: {budget.id}")

        current_version = int(row[2] or 0)
        if current_version != budget.version:
            raise VersionConflictError(budget.id, budget.version, current_version)

        stored = budget.model_copy(deep=True)
        stored.version = current_version + 1
        stored.updated_at = datetime.utcnow()
        self._budgets.replace(row_number, stored, version=stored.version)
        return stored

    async def delete_budget(self, budget_id: UUID) -> bool:
        return self._budgets.delete(budget_id)

    async def find_budget_for_day(
        self,
        user_id: UUID,
        day: date,
    ) -> Optional[WeeklyBudget]:
        for budget in self._budgets.all():
            if budget.user_id == user_id and budget.covers(day):
                return budget
        return None

    async def list_budgets(
        self,
        user_ids: Optional[Iterable[UUID]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        household_id: Optional[UUID] = None,
        shared_only: bool = False,
    ) -> list[WeeklyBudget]:
        return filter_budgets(
            self._budgets.all(),
            user_ids=user_ids,
            date_from=date_from,
            date_to=date_to,
            household_id=household_id,
            shared_only=shared_only,
        )


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            actor_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
        )

    def _events(self) -> list[AuditEvent]:
        events = []
        for row in self._sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue  # Skip malformed rows
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
