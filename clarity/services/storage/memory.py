"""
In-Memory Storage Implementation

Used by the test suite and when no spreadsheet is configured. Holds the
same flat records the Sheets backend does, keyed by id, so the session
cannot tell the difference.
"""

import asyncio
from typing import Optional
from uuid import UUID

from clarity.models.audit import AuditEvent
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
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dict-backed ledger for one user."""

    def __init__(self):
        self.categories: dict[str, Category] = {}
        self.expenses: dict[str, Expense] = {}
        self.incomes: dict[str, Income] = {}
        self.budgets: dict[str, Budget] = {}
        self.loans: dict[str, Loan] = {}
        self.settings: dict[str, str] = {}
        self._category_lock = asyncio.Lock()

    @staticmethod
    def _insert(table: dict, record):
        if record.id in table:
            raise DuplicateError(f"Record already exists: {record.id}")
        table[record.id] = record.model_copy()
        return record

    async def list_categories(self) -> list[Category]:
        return [c.model_copy() for c in self.categories.values()]

    async def add_category(self, category: Category) -> Category:
        return self._insert(self.categories, category)

    async def add_categories(self, categories: list[Category]) -> list[Category]:
        ids = [c.id for c in categories]
        if len(set(ids)) != len(ids) or any(i in self.categories for i in ids):
            raise DuplicateError("Category already exists")
        for category in categories:
            self.categories[category.id] = category.model_copy()
        return list(categories)

    async def get_or_create_category(self, name: str) -> Category:
        async with self._category_lock:
            for category in self.categories.values():
                if category.name == name:
                    return category.model_copy()
            return self._insert(self.categories, Category(name=name))

    async def list_expenses(self) -> list[Expense]:
        expenses = [e.model_copy() for e in self.expenses.values()]
        return sorted(expenses, key=lambda e: e.date, reverse=True)

    async def add_expense(self, expense: Expense) -> Expense:
        return self._insert(self.expenses, expense)

    async def list_incomes(self) -> list[Income]:
        incomes = [i.model_copy() for i in self.incomes.values()]
        return sorted(incomes, key=lambda i: i.date, reverse=True)

    async def add_income(self, income: Income) -> Income:
        return self._insert(self.incomes, income)

    async def list_budgets(self) -> list[Budget]:
        return [b.model_copy() for b in self.budgets.values()]

    async def add_budget(self, budget: Budget) -> Budget:
        return self._insert(self.budgets, budget)

    async def update_budget(self, budget: Budget) -> Budget:
        if budget.id not in self.budgets:
            raise NotFoundError(f"Budget not found: {budget.id}")
        self.budgets[budget.id] = budget.model_copy()
        return budget

    async def list_loans(self) -> list[Loan]:
        loans = [l.model_copy() for l in self.loans.values()]
        return sorted(loans, key=lambda l: l.date, reverse=True)

    async def add_loan(self, loan: Loan) -> Loan:
        return self._insert(self.loans, loan)

    async def commit_loan_transaction(
        self,
        plan: LoanTransactionPlan,
    ) -> LoanTransactionPlan:
        async with self._category_lock:
            if plan.loan.id not in self.loans:
                raise NotFoundError(f"Loan not found: {plan.loan.id}")

            if plan.new_category:
                for category in self.categories.values():
                    if category.name == plan.new_category.name:
                        plan = plan.reuse_category(category.model_copy())
                        break

            # Check everything before touching anything
            if plan.new_category and plan.new_category.id in self.categories:
                raise DuplicateError(f"Category already exists: {plan.new_category.id}")
            if plan.expense and plan.expense.id in self.expenses:
                raise DuplicateError(f"Expense already exists: {plan.expense.id}")

            self.loans[plan.loan.id] = plan.loan.model_copy()
            if plan.new_category:
                self.categories[plan.new_category.id] = plan.new_category.model_copy()
            if plan.expense:
                self.expenses[plan.expense.id] = plan.expense.model_copy()
            return plan

    async def get_currency_code(self) -> Optional[str]:
        return self.settings.get("currency")

    async def save_currency_code(self, code: str) -> bool:
        self.settings["currency"] = code
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self.events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
