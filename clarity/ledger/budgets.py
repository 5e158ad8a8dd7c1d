"""
Budget Upsert

Keeps the one-budget-per-category invariant: setting a budget for a
category that already has one replaces its amount, same id.
"""

from decimal import Decimal
from typing import Iterable, Optional

from clarity.ledger.errors import InvalidAmountError
from clarity.models.ledger import Budget, BudgetUpsert


def find_budget(budgets: Iterable[Budget], category_id: str) -> Optional[Budget]:
    """Return the budget for category_id, or None."""
    for budget in budgets:
        if budget.category_id == category_id:
            return budget
    return None


def upsert_budget(
    budgets: Iterable[Budget],
    category_id: str,
    amount: Decimal,
) -> BudgetUpsert:
    """
    Set the budget for a category.

    Returns the affected budget, whether it was created, and the full
    new budget list. The input list is not modified.
    """
    if not category_id:
        raise ValueError("Category is required.")
    if amount <= 0:
        raise InvalidAmountError("Amount must be positive.")

    budgets = list(budgets)
    existing = find_budget(budgets, category_id)

    if existing is None:
        budget = Budget(category_id=category_id, amount=amount)
        return BudgetUpsert(budget=budget, created=True, budgets=budgets + [budget])

    budget = existing.model_copy(update={"amount": amount})
    updated = [budget if b.id == existing.id else b for b in budgets]
    return BudgetUpsert(budget=budget, created=False, budgets=updated)
