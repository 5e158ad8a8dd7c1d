"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real document database later
2. Use in-memory storage for testing
3. Keep ledger rules decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Records are created and read; only Budget.amount and
Loan.current_balance are ever updated.
"""

from abc import ABC, abstractmethod
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


class LedgerStorageInterface(ABC):
    """
    Abstract interface for one user's ledger.

    Any storage implementation must implement these methods.
    List methods return records newest first where records carry a date.
    """

    # Categories

    @abstractmethod
    async def list_categories(self) -> list[Category]:
        pass

    @abstractmethod
    async def add_category(self, category: Category) -> Category:
        pass

    @abstractmethod
    async def add_categories(self, categories: list[Category]) -> list[Category]:
        """Insert several categories as one unit: all are stored or none."""
        pass

    @abstractmethod
    async def get_or_create_category(self, name: str) -> Category:
        """
        Return the category with this exact name, creating it if needed.

        Must be idempotent: two calls with the same name yield one record.
        """
        pass

    # Expenses and incomes

    @abstractmethod
    async def list_expenses(self) -> list[Expense]:
        pass

    @abstractmethod
    async def add_expense(self, expense: Expense) -> Expense:
        pass

    @abstractmethod
    async def list_incomes(self) -> list[Income]:
        pass

    @abstractmethod
    async def add_income(self, income: Income) -> Income:
        pass

    # Budgets

    @abstractmethod
    async def list_budgets(self) -> list[Budget]:
        pass

    @abstractmethod
    async def add_budget(self, budget: Budget) -> Budget:
        pass

    @abstractmethod
    async def update_budget(self, budget: Budget) -> Budget:
        """
        Replace the amount of an existing budget.

        Raises:
            NotFoundError: If the budget doesn't exist
        """
        pass

    # Loans

    @abstractmethod
    async def list_loans(self) -> list[Loan]:
        pass

    @abstractmethod
    async def add_loan(self, loan: Loan) -> Loan:
        pass

    @abstractmethod
    async def commit_loan_transaction(
        self,
        plan: LoanTransactionPlan,
    ) -> LoanTransactionPlan:
        """
        Persist a loan transaction as one unit.

        Writes the loan's new current_balance, the plan's new category
        (if it creates one) and the repayment expense (if any). Either
        everything is written or nothing is.

        If the plan creates "Loan Repayment" but the store already has a
        category of that name, the existing one is reused and the expense
        is re-pointed at it.

        Returns:
            The plan as committed

        Raises:
            NotFoundError: If the loan doesn't exist
            StorageError: If the commit fails (nothing was written)
        """
        pass

    # Settings

    @abstractmethod
    async def get_currency_code(self) -> Optional[str]:
        """Stored display currency code, or None if never set."""
        pass

    @abstractmethod
    async def save_currency_code(self, code: str) -> bool:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events of one user action, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
