"""
Tests for storage backends.

The in-memory backend is tested directly. The Google Sheets backend is
tested against MagicMock worksheets; no network calls are made.
"""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

from clarity.ledger import apply_loan_transaction, open_loan
from clarity.models import (
    LOAN_REPAYMENT_CATEGORY,
    AuditEventBuilder,
    Budget,
    Category,
    Expense,
    Loan,
)
from clarity.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    NotFoundError,
    StorageError,
)
from clarity.services.storage.google_sheets import (
    BUDGET_COLUMNS,
    CATEGORY_COLUMNS,
    EXPENSE_COLUMNS,
    LOAN_COLUMNS,
    SETTINGS_COLUMNS,
    record_to_row,
    row_to_record,
)


def make_loan():
    return open_loan("Car", "Bank", Decimal("100"), date(2024, 1, 1))


class TestInMemoryLedgerStorage:

    @pytest.mark.asyncio
    async def test_get_or_create_category_is_idempotent(self):
        storage = InMemoryLedgerStorage()
        first = await storage.get_or_create_category(LOAN_REPAYMENT_CATEGORY)
        second = await storage.get_or_create_category(LOAN_REPAYMENT_CATEGORY)

        assert first.id == second.id
        assert len(await storage.list_categories()) == 1

    @pytest.mark.asyncio
    async def test_expenses_listed_newest_first(self):
        storage = InMemoryLedgerStorage()
        for day in (1, 3, 2):
            await storage.add_expense(Expense(
                description=f"Day {day}",
                amount=Decimal("1"),
                category_id="c1",
                date=date(2024, 5, day),
            ))

        expenses = await storage.list_expenses()
        assert [e.date.day for e in expenses] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_add_categories_all_or_nothing(self):
        storage = InMemoryLedgerStorage()
        existing = await storage.add_category(Category(name="Food"))

        with pytest.raises(DuplicateError):
            await storage.add_categories([Category(name="Rent"), existing])

        assert [c.name for c in await storage.list_categories()] == ["Food"]

    @pytest.mark.asyncio
    async def test_update_missing_budget(self):
        storage = InMemoryLedgerStorage()
        with pytest.raises(NotFoundError):
            await storage.update_budget(Budget(category_id="c1", amount=Decimal("1")))

    @pytest.mark.asyncio
    async def test_commit_repayment(self):
        storage = InMemoryLedgerStorage()
        loan = await storage.add_loan(make_loan())

        plan = apply_loan_transaction(loan, "decrease", Decimal("40"), [])
        committed = await storage.commit_loan_transaction(plan)

        [stored_loan] = await storage.list_loans()
        [expense] = await storage.list_expenses()
        [category] = await storage.list_categories()
        assert stored_loan.current_balance == Decimal("60")
        assert expense.amount == Decimal("40")
        assert category.name == LOAN_REPAYMENT_CATEGORY
        assert expense.category_id == category.id == committed.category.id

    @pytest.mark.asyncio
    async def test_commit_reuses_stored_repayment_category(self):
        """A category created elsewhere since the plan was made is reused."""
        storage = InMemoryLedgerStorage()
        loan = await storage.add_loan(make_loan())
        plan = apply_loan_transaction(loan, "decrease", Decimal("10"), [])
        stored = await storage.get_or_create_category(LOAN_REPAYMENT_CATEGORY)

        committed = await storage.commit_loan_transaction(plan)

        assert not committed.category_created
        assert committed.expense.category_id == stored.id
        assert len(await storage.list_categories()) == 1

    @pytest.mark.asyncio
    async def test_commit_unknown_loan_writes_nothing(self):
        storage = InMemoryLedgerStorage()
        plan = apply_loan_transaction(make_loan(), "decrease", Decimal("10"), [])

        with pytest.raises(NotFoundError):
            await storage.commit_loan_transaction(plan)

        assert await storage.list_expenses() == []
        assert await storage.list_categories() == []

    @pytest.mark.asyncio
    async def test_currency_setting(self):
        storage = InMemoryLedgerStorage()
        assert await storage.get_currency_code() is None
        await storage.save_currency_code("EUR")
        assert await storage.get_currency_code() == "EUR"


class TestInMemoryAuditStorage:

    @pytest.mark.asyncio
    async def test_events_by_correlation_id(self):
        storage = InMemoryAuditStorage()
        cid = uuid4()
        await storage.append_event(AuditEventBuilder.currency_changed("EUR", cid))
        await storage.append_event(AuditEventBuilder.currency_changed("USD"))

        events = await storage.get_events_by_correlation_id(cid)
        assert [e.details["currency"] for e in events] == ["EUR"]

        recent = await storage.get_recent_events(limit=1)
        assert len(recent) == 1


class TestRowConversion:

    def test_record_to_row(self):
        expense = Expense(
            id="e1",
            description="Coffee",
            amount=Decimal("4.50"),
            category_id="c1",
            date=date(2024, 5, 1),
        )
        assert record_to_row(expense, EXPENSE_COLUMNS) == [
            "e1", "Coffee", "4.50", "c1", "2024-05-01"
        ]

    def test_row_to_record(self):
        row = ["e1", "Coffee", "4.50", "c1", "2024-05-01"]
        expense = row_to_record(row, EXPENSE_COLUMNS, Expense)
        assert expense.amount == Decimal("4.50")
        assert expense.date == date(2024, 5, 1)

    def test_empty_balance_cell_reads_as_missing(self):
        row = ["l1", "Car", "Bank", "100", "", "2024-01-01"]
        loan = row_to_record(row, LOAN_COLUMNS, Loan)
        assert loan.current_balance is None
        assert loan.balance == Decimal("100")

    def test_short_row_missing_date_rejected(self):
        row = ["l1", "Car", "Bank", "100"]
        with pytest.raises(ValueError):
            row_to_record(row, LOAN_COLUMNS, Loan)


def make_sheets_storage(sheets: dict):
    """Storage wired to MagicMock worksheets keyed by collection."""
    client = MagicMock()
    spreadsheet = MagicMock()
    client.get_spreadsheet.return_value = spreadsheet
    for name, sheet in sheets.items():
        getattr(client, f"get_{name}_sheet").return_value = sheet
    return GoogleSheetsLedgerStorage(client), client, spreadsheet


def make_sheet(rows, sheet_id=0):
    sheet = MagicMock()
    sheet.id = sheet_id
    sheet.get_all_values.return_value = rows
    return sheet


class TestGoogleSheetsLedgerStorage:

    @pytest.mark.asyncio
    async def test_list_categories_skips_header_and_bad_rows(self):
        sheet = make_sheet([CATEGORY_COLUMNS, ["c1", "Food"], ["c2", ""]])
        storage, _, _ = make_sheets_storage({"categories": sheet})

        categories = await storage.list_categories()

        assert [c.name for c in categories] == ["Food"]

    @pytest.mark.asyncio
    async def test_add_expense_appends_raw_row(self):
        sheet = make_sheet([EXPENSE_COLUMNS])
        storage, _, _ = make_sheets_storage({"expenses": sheet})
        expense = Expense(
            id="e1",
            description="Coffee",
            amount=Decimal("4.50"),
            category_id="c1",
            date=date(2024, 5, 1),
        )

        await storage.add_expense(expense)

        sheet.append_row.assert_called_once_with(
            ["e1", "Coffee", "4.50", "c1", "2024-05-01"],
            value_input_option="RAW",
        )

    @pytest.mark.asyncio
    async def test_get_or_create_category_existing(self):
        sheet = make_sheet([CATEGORY_COLUMNS, ["c9", LOAN_REPAYMENT_CATEGORY]])
        storage, _, _ = make_sheets_storage({"categories": sheet})

        category = await storage.get_or_create_category(LOAN_REPAYMENT_CATEGORY)

        assert category.id == "c9"
        sheet.append_row.assert_not_called()

    @pytest.mark.asyncio
    async def test_commit_repayment_is_one_batch(self):
        loan = Loan(
            id="l1",
            name="Car",
            lender="Bank",
            initial_amount=Decimal("100"),
            current_balance=Decimal("100"),
            date=date(2024, 1, 1),
        )
        loans = make_sheet(
            [LOAN_COLUMNS, ["l1", "Car", "Bank", "100", "100", "2024-01-01"]],
            sheet_id=11,
        )
        categories = make_sheet([CATEGORY_COLUMNS], sheet_id=12)
        expenses = make_sheet([EXPENSE_COLUMNS], sheet_id=13)
        storage, _, spreadsheet = make_sheets_storage({
            "loans": loans,
            "categories": categories,
            "expenses": expenses,
        })
        plan = apply_loan_transaction(loan, "decrease", Decimal("40"), [])

        committed = await storage.commit_loan_transaction(plan)

        assert committed.category_created
        spreadsheet.batch_update.assert_called_once()
        body = spreadsheet.batch_update.call_args[0][0]
        requests = body["requests"]
        assert len(requests) == 3

        update = requests[0]["updateCells"]
        assert update["range"]["sheetId"] == 11
        assert update["range"]["startRowIndex"] == 1
        assert update["range"]["startColumnIndex"] == LOAN_COLUMNS.index("current_balance")
        assert update["rows"][0]["values"][0]["userEnteredValue"]["stringValue"] == "60"

        sheet_ids = [r["appendCells"]["sheetId"] for r in requests[1:]]
        assert sheet_ids == [12, 13]

        # nothing written outside the batch
        loans.update_cell.assert_not_called()
        expenses.append_row.assert_not_called()
        categories.append_row.assert_not_called()

    @pytest.mark.asyncio
    async def test_commit_increase_updates_loan_only(self):
        loan = Loan(
            id="l1",
            name="Car",
            lender="Bank",
            initial_amount=Decimal("100"),
            current_balance=Decimal("100"),
            date=date(2024, 1, 1),
        )
        loans = make_sheet(
            [LOAN_COLUMNS, ["l1", "Car", "Bank", "100", "100", "2024-01-01"]],
            sheet_id=11,
        )
        storage, _, spreadsheet = make_sheets_storage({
            "loans": loans,
            "categories": make_sheet([CATEGORY_COLUMNS]),
        })
        plan = apply_loan_transaction(loan, "increase", Decimal("5"), [])

        await storage.commit_loan_transaction(plan)

        requests = spreadsheet.batch_update.call_args[0][0]["requests"]
        assert len(requests) == 1
        assert "updateCells" in requests[0]

    @pytest.mark.asyncio
    async def test_add_categories_is_one_batch(self):
        sheet = make_sheet([CATEGORY_COLUMNS], sheet_id=3)
        storage, _, spreadsheet = make_sheets_storage({"categories": sheet})
        categories = [Category(name="Food"), Category(name="Rent")]

        await storage.add_categories(categories)

        spreadsheet.batch_update.assert_called_once()
        requests = spreadsheet.batch_update.call_args.args[0]["requests"]
        assert [r["appendCells"]["sheetId"] for r in requests] == [3, 3]
        sheet.append_row.assert_not_called()

    @pytest.mark.asyncio
    async def test_add_categories_failure_raises(self):
        storage, _, spreadsheet = make_sheets_storage({
            "categories": make_sheet([CATEGORY_COLUMNS]),
        })
        spreadsheet.batch_update.side_effect = RuntimeError("quota")

        with pytest.raises(StorageError):
            await storage.add_categories([Category(name="Food")])

        spreadsheet.batch_update.assert_called_once()

    @pytest.mark.asyncio
    async def test_missing_budget_read_once(self):
        sheet = make_sheet([BUDGET_COLUMNS])
        storage, _, _ = make_sheets_storage({"budgets": sheet})

        with pytest.raises(NotFoundError):
            await storage.update_budget(Budget(category_id="c1", amount=Decimal("1")))

        assert sheet.get_all_values.call_count == 1
        sheet.update_cell.assert_not_called()

    @pytest.mark.asyncio
    async def test_first_currency_save_appended_once(self):
        sheet = make_sheet([SETTINGS_COLUMNS])
        sheet.append_row.side_effect = RuntimeError("timeout")
        storage, _, _ = make_sheets_storage({"settings": sheet})

        with pytest.raises(StorageError):
            await storage.save_currency_code("EUR")

        assert sheet.append_row.call_count == 1

    @pytest.mark.asyncio
    async def test_currency_save_overwrites_existing_row(self):
        sheet = make_sheet([SETTINGS_COLUMNS, ["currency", "USD"]])
        storage, _, _ = make_sheets_storage({"settings": sheet})

        assert await storage.save_currency_code("EUR") is True

        sheet.update_cell.assert_called_once_with(2, 2, "EUR")
        sheet.append_row.assert_not_called()

    @pytest.mark.asyncio
    async def test_commit_unknown_loan(self):
        loans = make_sheet([LOAN_COLUMNS])
        storage, _, spreadsheet = make_sheets_storage({
            "loans": loans,
            "categories": make_sheet([CATEGORY_COLUMNS]),
        })
        plan = apply_loan_transaction(make_loan(), "decrease", Decimal("10"), [])

        with pytest.raises(NotFoundError):
            await storage.commit_loan_transaction(plan)

        spreadsheet.batch_update.assert_not_called()


class TestGoogleSheetsAuditStorage:

    @pytest.mark.asyncio
    async def test_append_event_writes_row(self):
        client = MagicMock()
        sheet = MagicMock()
        client.get_audit_sheet.return_value = sheet
        storage = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.currency_changed("EUR")

        assert await storage.append_event(event) is True
        sheet.append_row.assert_called_once()
        assert sheet.append_row.call_args[0][0] == event.to_sheets_row()

    @pytest.mark.asyncio
    async def test_append_event_failure_does_not_raise(self):
        client = MagicMock()
        client.get_audit_sheet.side_effect = RuntimeError("quota")
        storage = GoogleSheetsAuditStorage(client)

        assert await storage.append_event(AuditEventBuilder.currency_changed("EUR")) is False
