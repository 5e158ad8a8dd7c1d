"""Ledger rules: aggregation, budget upsert and loan bookkeeping."""

from clarity.ledger.aggregator import (
    build_category_map,
    compute_budget_progress,
    compute_spending_by_category,
    compute_total_loan_balance,
    compute_totals,
    format_money,
    summarize_spending_habits,
)
from clarity.ledger.budgets import find_budget, upsert_budget
from clarity.ledger.errors import (
    InvalidAmountError,
    LedgerError,
    LoanNotFoundError,
)
from clarity.ledger.loans import (
    apply_loan_transaction,
    find_category_by_name,
    open_loan,
)

__all__ = [
    # Aggregation
    "build_category_map",
    "compute_budget_progress",
    "compute_spending_by_category",
    "compute_total_loan_balance",
    "compute_totals",
    "format_money",
    "summarize_spending_habits",
    # Budgets
    "find_budget",
    "upsert_budget",
    # Loans
    "apply_loan_transaction",
    "find_category_by_name",
    "open_loan",
    # Exceptions
    "InvalidAmountError",
    "LedgerError",
    "LoanNotFoundError",
]
