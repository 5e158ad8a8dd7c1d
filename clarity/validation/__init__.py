"""Form validation package."""

from clarity.validation.validator import (
    BudgetForm,
    CategorizeForm,
    ExpenseForm,
    FormValidationError,
    IncomeForm,
    LedgerForm,
    LoanForm,
    LoanTransactionForm,
    ValidationIssue,
    validate_form,
)

__all__ = [
    "BudgetForm",
    "CategorizeForm",
    "ExpenseForm",
    "FormValidationError",
    "IncomeForm",
    "LedgerForm",
    "LoanForm",
    "LoanTransactionForm",
    "ValidationIssue",
    "validate_form",
]
