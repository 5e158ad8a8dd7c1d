"""
Loan Ledger Updater

Applies a borrow/repay transaction to a loan. Repayments also produce an
expense in the reserved "Loan Repayment" category so that paying down
debt shows up in spending.

The result is a plan: nothing is written here. Storage commits the
plan's loan, category and expense together or not at all.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from clarity.ledger.errors import InvalidAmountError
from clarity.models.ledger import (
    LOAN_REPAYMENT_CATEGORY,
    Category,
    Expense,
    Loan,
    LoanTransactionPlan,
    LoanTransactionType,
)


def find_category_by_name(
    categories: Iterable[Category],
    name: str,
) -> Optional[Category]:
    """Exact-name lookup."""
    for category in categories:
        if category.name == name:
            return category
    return None


def repayment_description(loan: Loan) -> str:
    return f'Payment for "{loan.name}"'


def apply_loan_transaction(
    loan: Loan,
    transaction_type: LoanTransactionType,
    amount: Decimal,
    categories: Iterable[Category],
    today: Optional[date] = None,
) -> LoanTransactionPlan:
    """
    Compute the effect of a loan transaction.

    Args:
        loan: The loan being changed (not modified)
        transaction_type: increase (borrow more) or decrease (repay)
        amount: Positive transaction amount
        categories: Current categories, used to find "Loan Repayment"
        today: Date for the repayment expense (defaults to date.today())

    Returns:
        A LoanTransactionPlan with the updated loan copy and, for
        repayments, the repayment category and new expense

    Raises:
        InvalidAmountError: amount is not positive, or the balance would
            go below zero
    """
    transaction_type = LoanTransactionType(transaction_type)
    if amount <= 0:
        raise InvalidAmountError("Amount must be a positive number.")

    previous_balance = loan.balance
    if transaction_type == LoanTransactionType.INCREASE:
        new_balance = previous_balance + amount
    else:
        new_balance = previous_balance - amount

    if new_balance < 0:
        raise InvalidAmountError("Balance cannot be negative.")

    updated_loan = loan.model_copy(update={"current_balance": new_balance})

    if transaction_type == LoanTransactionType.INCREASE:
        return LoanTransactionPlan(
            loan=updated_loan,
            transaction_type=transaction_type,
            amount=amount,
            previous_balance=previous_balance,
        )

    category = find_category_by_name(categories, LOAN_REPAYMENT_CATEGORY)
    category_created = category is None
    if category_created:
        category = Category(name=LOAN_REPAYMENT_CATEGORY)

    expense = Expense(
        description=repayment_description(loan),
        amount=amount,
        category_id=category.id,
        date=today or date.today(),
    )

    return LoanTransactionPlan(
        loan=updated_loan,
        transaction_type=transaction_type,
        amount=amount,
        previous_balance=previous_balance,
        category=category,
        category_created=category_created,
        expense=expense,
    )


def open_loan(
    name: str,
    lender: str,
    amount: Decimal,
    start_date: date,
) -> Loan:
    """A new loan starts with its full amount outstanding."""
    if amount <= 0:
        raise InvalidAmountError("Initial amount must be positive.")
    return Loan(
        name=name,
        lender=lender,
        initial_amount=amount,
        current_balance=amount,
        date=start_date,
    )
