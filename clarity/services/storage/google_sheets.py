"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the document store because:
1. Users can view and export their own ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

Layout: one worksheet per collection, one record per row, header in row 1.
Every cell holds a scalar (amounts as decimal strings, dates as ISO).

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- Limited query capabilities (we filter and sort in Python)
- The only multi-record write, the loan transaction, goes through a
  single spreadsheets.batchUpdate call, which Sheets applies atomically
"""

import asyncio
import json
from typing import Any, Optional, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from clarity.config import get_settings
from clarity.config.settings import GoogleSheetsSettings
from clarity.models.audit import AuditEvent, AuditEventType, AuditSeverity
from clarity.models.ledger import (
    Budget,
    Category,
    Expense,
    Income,
    Loan,
    LoanTransactionPlan,
)
from clarity.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


CATEGORY_COLUMNS = ["id", "name"]
EXPENSE_COLUMNS = ["id", "description", "amount", "category_id", "date"]
INCOME_COLUMNS = ["id", "description", "amount", "date"]
BUDGET_COLUMNS = ["id", "category_id", "amount"]
LOAN_COLUMNS = ["id", "name", "lender", "initial_amount", "current_balance", "date"]
SETTINGS_COLUMNS = ["key", "value"]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

CURRENCY_KEY = "currency"

# A missing record will still be missing on the next attempt
read_retry = retry(
    retry=retry_if_not_exception_type(NotFoundError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def record_to_row(record: BaseModel, columns: list[str]) -> list[str]:
    """Flatten a record into cell strings in column order."""
    data = record.model_dump(mode="json")
    return ["" if data.get(col) is None else str(data[col]) for col in columns]


def row_to_record(row: list, columns: list[str], model: type[RecordT]) -> RecordT:
    """Rebuild a record from a row; empty cells become None."""
    data = {}
    for idx, col in enumerate(columns):
        value = row[idx] if idx < len(row) else ""
        data[col] = value if value != "" else None
    return model.model_validate(data)


def _cell(value: str) -> dict:
    return {"userEnteredValue": {"stringValue": value}}


def _append_cells_request(worksheet: gspread.Worksheet, row: list[str]) -> dict:
    return {
        "appendCells": {
            "sheetId": worksheet.id,
            "rows": [{"values": [_cell(v) for v in row]}],
            "fields": "userEnteredValue",
        }
    }


def _update_cell_request(
    worksheet: gspread.Worksheet,
    row_number: int,
    col_number: int,
    value: str,
) -> dict:
    """Request for a single cell; row/col numbers are 1-based like gspread."""
    return {
        "updateCells": {
            "range": {
                "sheetId": worksheet.id,
                "startRowIndex": row_number - 1,
                "endRowIndex": row_number,
                "startColumnIndex": col_number - 1,
                "endColumnIndex": col_number,
            },
            "rows": [{"values": [_cell(value)]}],
            "fields": "userEnteredValue",
        }
    }


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication, creates missing worksheets with their header
    row, and caches worksheet handles.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @read_retry
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

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
        if title in self._worksheets:
            return self._worksheets[title]

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
        self._worksheets[title] = sheet
        return sheet

    def get_categories_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.categories_sheet_name, CATEGORY_COLUMNS)

    def get_expenses_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.expenses_sheet_name, EXPENSE_COLUMNS)

    def get_incomes_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.incomes_sheet_name, INCOME_COLUMNS)

    def get_budgets_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.budgets_sheet_name, BUDGET_COLUMNS)

    def get_loans_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.loans_sheet_name, LOAN_COLUMNS)

    def get_settings_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.settings_sheet_name, SETTINGS_COLUMNS, rows=20)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of the ledger.

    Reads are retried with exponential backoff. Appends and the loan
    commit are not retried: a lost response would otherwise write twice.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._category_lock = asyncio.Lock()

    # -- helpers --------------------------------------------------------

    def _read_records(
        self,
        sheet: gspread.Worksheet,
        columns: list[str],
        model: type[RecordT],
    ) -> list[RecordT]:
        records = []
        for row in sheet.get_all_values()[1:]:  # Skip header
            if not row or not row[0]:
                continue
            try:
                records.append(row_to_record(row, columns, model))
            except ValueError as e:
                # Malformed rows are skipped, not fatal
                logger.warning(
                    "sheet_row_skipped",
                    sheet=sheet.title,
                    record_id=row[0],
                    error=str(e),
                )
        return records

    @staticmethod
    def _find_row_number(sheet: gspread.Worksheet, record_id: str) -> Optional[int]:
        """1-based row number of a record, header being row 1."""
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == record_id:
                return idx
        return None

    def _append(self, sheet: gspread.Worksheet, record: BaseModel, columns: list[str]) -> None:
        sheet.append_row(record_to_row(record, columns), value_input_option="RAW")

    # -- categories -----------------------------------------------------

    @read_retry
    async def list_categories(self) -> list[Category]:
        try:
            sheet = self._client.get_categories_sheet()
            return self._read_records(sheet, CATEGORY_COLUMNS, Category)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list categories: {e}")

    async def add_category(self, category: Category) -> Category:
        try:
            self._append(self._client.get_categories_sheet(), category, CATEGORY_COLUMNS)
            return category
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}")

    async def add_categories(self, categories: list[Category]) -> list[Category]:
        """Append all rows in one batchUpdate."""
        if not categories:
            return []
        try:
            sheet = self._client.get_categories_sheet()
            requests = [
                _append_cells_request(sheet, record_to_row(c, CATEGORY_COLUMNS))
                for c in categories
            ]
            self._client.get_spreadsheet().batch_update({"requests": requests})
            return list(categories)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save categories: {e}")

    async def get_or_create_category(self, name: str) -> Category:
        async with self._category_lock:
            for category in await self.list_categories():
                if category.name == name:
                    return category
            return await self.add_category(Category(name=name))

    # -- expenses and incomes -------------------------------------------

    @read_retry
    async def list_expenses(self) -> list[Expense]:
        try:
            sheet = self._client.get_expenses_sheet()
            expenses = self._read_records(sheet, EXPENSE_COLUMNS, Expense)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")
        expenses.sort(key=lambda e: e.date, reverse=True)
        return expenses

    async def add_expense(self, expense: Expense) -> Expense:
        try:
            self._append(self._client.get_expenses_sheet(), expense, EXPENSE_COLUMNS)
            return expense
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")

    @read_retry
    async def list_incomes(self) -> list[Income]:
        try:
            sheet = self._client.get_incomes_sheet()
            incomes = self._read_records(sheet, INCOME_COLUMNS, Income)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list incomes: {e}")
        incomes.sort(key=lambda i: i.date, reverse=True)
        return incomes

    async def add_income(self, income: Income) -> Income:
        try:
            self._append(self._client.get_incomes_sheet(), income, INCOME_COLUMNS)
            return income
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save income: {e}")

    # -- budgets --------------------------------------------------------

    @read_retry
    async def list_budgets(self) -> list[Budget]:
        try:
            sheet = self._client.get_budgets_sheet()
            return self._read_records(sheet, BUDGET_COLUMNS, Budget)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list budgets: {e}")

    async def add_budget(self, budget: Budget) -> Budget:
        try:
            self._append(self._client.get_budgets_sheet(), budget, BUDGET_COLUMNS)
            return budget
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save budget: {e}")

    @read_retry
    async def update_budget(self, budget: Budget) -> Budget:
        try:
            sheet = self._client.get_budgets_sheet()
            row_number = self._find_row_number(sheet, budget.id)
            if row_number is None:
                raise NotFoundError(f"Budget not found: {budget.id}")
            sheet.update_cell(
                row_number,
                BUDGET_COLUMNS.index("amount") + 1,
                str(budget.amount),
            )
            return budget
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update budget: {e}")

    # -- loans ----------------------------------------------------------

    @read_retry
    async def list_loans(self) -> list[Loan]:
        try:
            sheet = self._client.get_loans_sheet()
            loans = self._read_records(sheet, LOAN_COLUMNS, Loan)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list loans: {e}")
        loans.sort(key=lambda l: l.date, reverse=True)
        return loans

    async def add_loan(self, loan: Loan) -> Loan:
        try:
            self._append(self._client.get_loans_sheet(), loan, LOAN_COLUMNS)
            return loan
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save loan: {e}")

    async def commit_loan_transaction(
        self,
        plan: LoanTransactionPlan,
    ) -> LoanTransactionPlan:
        """
        Write balance, category and expense in one batchUpdate.

        The category lock keeps a concurrent get_or_create_category in
        this process from adding a second "Loan Repayment".
        """
        async with self._category_lock:
            try:
                loans_sheet = self._client.get_loans_sheet()
                row_number = self._find_row_number(loans_sheet, plan.loan.id)
                if row_number is None:
                    raise NotFoundError(f"Loan not found: {plan.loan.id}")

                if plan.new_category:
                    categories = self._read_records(
                        self._client.get_categories_sheet(),
                        CATEGORY_COLUMNS,
                        Category,
                    )
                    for category in categories:
                        if category.name == plan.new_category.name:
                            plan = plan.reuse_category(category)
                            break

                requests = [
                    _update_cell_request(
                        loans_sheet,
                        row_number,
                        LOAN_COLUMNS.index("current_balance") + 1,
                        str(plan.new_balance),
                    )
                ]
                if plan.new_category:
                    requests.append(_append_cells_request(
                        self._client.get_categories_sheet(),
                        record_to_row(plan.new_category, CATEGORY_COLUMNS),
                    ))
                if plan.expense:
                    requests.append(_append_cells_request(
                        self._client.get_expenses_sheet(),
                        record_to_row(plan.expense, EXPENSE_COLUMNS),
                    ))

                self._client.get_spreadsheet().batch_update({"requests": requests})
                return plan
            except StorageError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to update loan: {e}")

    # -- settings -------------------------------------------------------

    @read_retry
    async def get_currency_code(self) -> Optional[str]:
        try:
            sheet = self._client.get_settings_sheet()
            for row in sheet.get_all_values()[1:]:
                if len(row) >= 2 and row[0] == CURRENCY_KEY and row[1]:
                    return row[1]
            return None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read settings: {e}")

    @read_retry
    def _find_setting_row(self, sheet: gspread.Worksheet) -> Optional[int]:
        return self._find_row_number(sheet, CURRENCY_KEY)

    @read_retry
    def _update_setting(self, sheet: gspread.Worksheet, row_number: int, value: str) -> None:
        sheet.update_cell(row_number, 2, value)

    async def save_currency_code(self, code: str) -> bool:
        """First save appends the row (not retried); later saves overwrite it."""
        try:
            sheet = self._client.get_settings_sheet()
            row_number = self._find_setting_row(sheet)
            if row_number is None:
                sheet.append_row([CURRENCY_KEY, code], value_input_option="RAW")
            else:
                self._update_setting(sheet, row_number, code)
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save settings: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        details: dict[str, Any] = json.loads(safe_get(8)) if safe_get(8) else {}
        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=safe_get(1),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=details,
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        events = []
        for row in self._client.get_audit_sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event; failures are reported, never raised."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_append_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    @read_retry
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._read_events()
                if e.correlation_id == correlation_id
            ]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    @read_retry
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
