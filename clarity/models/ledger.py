"""
Core Ledger Models for Clarity Budgets

These models define the schemas for every record the ledger keeps.
They are designed to:
1. Enforce positive amounts and required fields at runtime
2. Round-trip as flat rows (one scalar per column) for storage
3. Keep money in Decimal so totals add up exactly

DESIGN DECISION: Derived numbers (totals, progress) have their own
read-only view models here, but are never persisted.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


LOAN_REPAYMENT_CATEGORY = "Loan Repayment"
UNCATEGORIZED = "Uncategorized"
UNKNOWN_CATEGORY = "Unknown"


def new_id() -> str:
    """Generate a record id in the style of a document-store key."""
    return uuid4().hex


# =============================================================================
# ENUMS
# =============================================================================

class LoanTransactionType(str, Enum):
    """Direction of a loan balance change."""
    INCREASE = "increase"  # Borrowed more
    DECREASE = "decrease"  # Repaid, also logged as an expense


# =============================================================================
# ENTITIES
# =============================================================================

class Category(BaseModel):
    """A user-defined spending category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)

    @property
    def is_system(self) -> bool:
        return self.name == LOAN_REPAYMENT_CATEGORY


class Expense(BaseModel):
    """
    Money going out.

    category_id should reference a live Category; aggregation
    tolerates dangling references.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    category_id: str = Field(..., min_length=1)
    date: date


class Income(BaseModel):
    """Money coming in."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    date: date


class Budget(BaseModel):
    """
    Spending allowance for one category.

    At most one Budget exists per category_id; see ledger.budgets.
    """

    id: str = Field(default_factory=new_id)
    category_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)


class Loan(BaseModel):
    """
    Money owed to a lender.

    initial_amount is fixed at creation. current_balance is only changed
    by ledger.loans.apply_loan_transaction and never goes below zero.
    Records written by older clients may lack current_balance.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    lender: str = Field(..., min_length=1, max_length=200)
    initial_amount: Decimal = Field(..., gt=0)
    current_balance: Optional[Decimal] = Field(default=None, ge=0)
    date: date

    @property
    def balance(self) -> Decimal:
        """Outstanding balance, falling back to the initial amount."""
        if self.current_balance is None:
            return self.initial_amount
        return self.current_balance


class Currency(BaseModel):
    """Display currency. Affects formatting only."""
    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=3, max_length=3)
    symbol: str
    name: str


CURRENCIES: tuple[Currency, ...] = (
    Currency(code="USD", symbol="$", name="US Dollar"),
    Currency(code="EUR", symbol="€", name="Euro"),
    Currency(code="GBP", symbol="£", name="British Pound"),
    Currency(code="JPY", symbol="¥", name="Japanese Yen"),
    Currency(code="INR", symbol="₹", name="Indian Rupee"),
    Currency(code="CAD", symbol="$", name="Canadian Dollar"),
    Currency(code="AUD", symbol="$", name="Australian Dollar"),
)

DEFAULT_CATEGORY_NAMES: tuple[str, ...] = (
    "Groceries",
    "Dining Out",
    "Transport",
    "Entertainment",
    "Utilities",
    "Shopping",
    "Health",
)


class UnknownCurrencyError(ValueError):
    """Currency code is not in the supported list."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Unsupported currency: {code}")


def get_currency(code: str) -> Currency:
    """Look up a supported currency by its ISO code (case-insensitive)."""
    wanted = (code or "").strip().upper()
    for currency in CURRENCIES:
        if currency.code == wanted:
            return currency
    raise UnknownCurrencyError(code)


# =============================================================================
# DERIVED VIEWS (never persisted)
# =============================================================================

class LedgerTotals(BaseModel):
    """Income versus spending."""

    total_income: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    remaining_balance: Decimal = Decimal("0")


class BudgetProgress(BaseModel):
    """How much of a budget has been used."""

    budget: Budget
    category_name: str
    spent: Decimal
    progress_percent: Decimal = Field(
        ...,
        description="spent / budget.amount * 100; 0 for a zero budget"
    )
    category_missing: bool = Field(
        default=False,
        description="The budget's category no longer exists"
    )

    @property
    def remaining(self) -> Decimal:
        return self.budget.amount - self.spent

    @property
    def is_over_budget(self) -> bool:
        return self.spent > self.budget.amount


# =============================================================================
# LEDGER OPERATION RESULTS
# =============================================================================

class BudgetUpsert(BaseModel):
    """Outcome of setting a budget for a category."""

    budget: Budget
    created: bool
    budgets: list[Budget]


class LoanTransactionPlan(BaseModel):
    """
    Everything a loan transaction writes, computed before any write.

    Storage commits loan, new_category and expense as one unit.
    """

    loan: Loan
    transaction_type: LoanTransactionType
    amount: Decimal
    previous_balance: Decimal
    category: Optional[Category] = None
    category_created: bool = False
    expense: Optional[Expense] = None

    @property
    def new_balance(self) -> Decimal:
        return self.loan.balance

    @property
    def new_category(self) -> Optional[Category]:
        return self.category if self.category_created else None

    def reuse_category(self, category: Category) -> "LoanTransactionPlan":
        """Point the plan at an already stored category instead of creating one."""
        expense = None
        if self.expense is not None:
            expense = self.expense.model_copy(update={"category_id": category.id})
        return self.model_copy(update={
            "category": category,
            "category_created": False,
            "expense": expense,
        })
