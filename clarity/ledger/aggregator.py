"""
Ledger Aggregator

Pure functions that derive every number the dashboard shows from the
current collections.

DESIGN DECISION: Nothing here is cached or stored. Personal ledgers are
small, so recomputing from the full dataset on every read is cheap and
removes any chance of a stale total.

Missing categories:
- spending for an unknown category_id is bucketed under "Uncategorized"
- a budget whose category is gone is labelled "Unknown" and flagged
"""

from decimal import Decimal
from typing import Iterable

from clarity.models.ledger import (
    UNCATEGORIZED,
    UNKNOWN_CATEGORY,
    Budget,
    BudgetProgress,
    Category,
    Currency,
    Expense,
    Income,
    LedgerTotals,
    Loan,
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def build_category_map(categories: Iterable[Category]) -> dict[str, Category]:
    """Index categories by id."""
    return {category.id: category for category in categories}


def compute_totals(
    incomes: Iterable[Income],
    expenses: Iterable[Expense],
) -> LedgerTotals:
    """Total income, total spent, and what is left."""
    total_income = sum((income.amount for income in incomes), ZERO)
    total_spent = sum((expense.amount for expense in expenses), ZERO)
    return LedgerTotals(
        total_income=total_income,
        total_spent=total_spent,
        remaining_balance=total_income - total_spent,
    )


def compute_total_loan_balance(loans: Iterable[Loan]) -> Decimal:
    """Sum of outstanding balances across all loans."""
    return sum((loan.balance for loan in loans), ZERO)


def compute_spending_by_category(
    expenses: Iterable[Expense],
    categories: Iterable[Category],
) -> dict[str, Decimal]:
    """Map category name -> summed expense amount."""
    category_map = build_category_map(categories)
    spending: dict[str, Decimal] = {}

    for expense in expenses:
        category = category_map.get(expense.category_id)
        name = category.name if category else UNCATEGORIZED
        spending[name] = spending.get(name, ZERO) + expense.amount

    return spending


def compute_budget_progress(
    budgets: Iterable[Budget],
    expenses: Iterable[Expense],
    categories: Iterable[Category],
) -> list[BudgetProgress]:
    """
    Spent versus allotted for each budget, in budget order.

    A zero-amount budget reports 0% rather than dividing by zero.
    """
    category_map = build_category_map(categories)
    expenses = list(expenses)
    progress = []

    for budget in budgets:
        spent = sum(
            (e.amount for e in expenses if e.category_id == budget.category_id),
            ZERO,
        )
        if budget.amount > 0:
            percent = spent / budget.amount * HUNDRED
        else:
            percent = ZERO

        category = category_map.get(budget.category_id)
        progress.append(BudgetProgress(
            budget=budget,
            category_name=category.name if category else UNKNOWN_CATEGORY,
            spent=spent,
            progress_percent=percent,
            category_missing=category is None,
        ))

    return progress


def format_money(amount: Decimal, currency: Currency) -> str:
    """Format an amount as <symbol><amount with 2 decimals>."""
    return f"{currency.symbol}{amount:,.2f}"


def summarize_spending_habits(
    totals: LedgerTotals,
    spending_by_category: dict[str, Decimal],
    currency: Currency,
) -> str:
    """
    Free-text summary of the ledger for the saving-tips prompt.

    Contains totals and one line per category; no record-level data.
    """
    breakdown = "\n".join(
        f"{name}: {currency.symbol}{amount:.2f}"
        for name, amount in spending_by_category.items()
    )
    return (
        f"Currency: {currency.name} ({currency.code})\n"
        f"Total Income: {currency.symbol}{totals.total_income:.2f}\n"
        f"Total Spending: {currency.symbol}{totals.total_spent:.2f}\n"
        f"\n"
        f"Spending Breakdown:\n{breakdown}"
    )
