"""
Data Models Package

This package contains all Pydantic models used in Clarity Budgets.
All data flowing through the system must conform to these schemas.
"""

from clarity.models.ledger import (
    CURRENCIES,
    DEFAULT_CATEGORY_NAMES,
    LOAN_REPAYMENT_CATEGORY,
    UNCATEGORIZED,
    UNKNOWN_CATEGORY,
    Budget,
    BudgetProgress,
    BudgetUpsert,
    Category,
    Currency,
    Expense,
    Income,
    LedgerTotals,
    Loan,
    LoanTransactionPlan,
    LoanTransactionType,
    UnknownCurrencyError,
    get_currency,
    new_id,
)
from clarity.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CURRENCIES",
    "DEFAULT_CATEGORY_NAMES",
    "LOAN_REPAYMENT_CATEGORY",
    "UNCATEGORIZED",
    "UNKNOWN_CATEGORY",
    "Budget",
    "BudgetProgress",
    "BudgetUpsert",
    "Category",
    "Currency",
    "Expense",
    "Income",
    "LedgerTotals",
    "Loan",
    "LoanTransactionPlan",
    "LoanTransactionType",
    "UnknownCurrencyError",
    "get_currency",
    "new_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
