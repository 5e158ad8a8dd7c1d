"""Tests for the ledger rules: aggregation, budgets and loans."""

import pytest
from datetime import date
from decimal import Decimal

from clarity.ledger import (
    InvalidAmountError,
    apply_loan_transaction,
    compute_budget_progress,
    compute_spending_by_category,
    compute_total_loan_balance,
    compute_totals,
    format_money,
    open_loan,
    summarize_spending_habits,
    upsert_budget,
)
from clarity.models import (
    LOAN_REPAYMENT_CATEGORY,
    Budget,
    Category,
    Expense,
    Income,
    Loan,
    LoanTransactionType,
    get_currency,
)


def make_expense(amount, category_id, day=1):
    return Expense(
        description="Test",
        amount=Decimal(amount),
        category_id=category_id,
        date=date(2024, 5, day),
    )


def make_loan(initial="100", balance=None):
    return Loan(
        name="Car",
        lender="Bank",
        initial_amount=Decimal(initial),
        current_balance=Decimal(balance) if balance is not None else None,
        date=date(2024, 1, 1),
    )


class TestAggregator:
    """Tests for totals and per-category views."""

    def test_totals(self):
        incomes = [
            Income(description="Salary", amount=Decimal("1000.10"), date=date(2024, 5, 1)),
            Income(description="Gift", amount=Decimal("0.20"), date=date(2024, 5, 2)),
        ]
        expenses = [make_expense("300.10", "c1"), make_expense("0.10", "c2")]

        totals = compute_totals(incomes, expenses)

        assert totals.total_income == Decimal("1000.30")
        assert totals.total_spent == Decimal("300.20")
        assert totals.remaining_balance == Decimal("700.10")
        assert totals.total_income - totals.total_spent == totals.remaining_balance

    def test_totals_of_empty_ledger(self):
        totals = compute_totals([], [])
        assert totals.remaining_balance == Decimal("0")

    def test_spending_by_category_with_missing_category(self):
        """Expenses whose category is gone are grouped as Uncategorized."""
        categories = [Category(id="c1", name="Food")]
        expenses = [make_expense("30", "c1"), make_expense("20", "c2")]

        spending = compute_spending_by_category(expenses, categories)

        assert spending == {"Food": Decimal("30"), "Uncategorized": Decimal("20")}

    def test_total_loan_balance(self):
        loans = [make_loan("100", "60"), make_loan("50")]
        assert compute_total_loan_balance(loans) == Decimal("110")

    def test_budget_progress(self):
        categories = [Category(id="c1", name="Food")]
        budgets = [Budget(category_id="c1", amount=Decimal("200"))]
        expenses = [make_expense("50", "c1"), make_expense("25", "c1"), make_expense("999", "c2")]

        [progress] = compute_budget_progress(budgets, expenses, categories)

        assert progress.category_name == "Food"
        assert progress.spent == Decimal("75")
        assert progress.progress_percent == Decimal("37.5")
        assert not progress.category_missing

    def test_zero_budget_progress_is_zero(self):
        """A zero budget never divides by zero."""
        budget = Budget.model_construct(id="b1", category_id="c1", amount=Decimal("0"))
        [progress] = compute_budget_progress(
            [budget],
            [make_expense("10", "c1")],
            [Category(id="c1", name="Food")],
        )
        assert progress.progress_percent == Decimal("0")

    def test_budget_for_deleted_category(self):
        budgets = [Budget(category_id="gone", amount=Decimal("100"))]
        [progress] = compute_budget_progress(budgets, [], [])
        assert progress.category_name == "Unknown"
        assert progress.category_missing

    def test_format_money(self):
        assert format_money(Decimal("1234.5"), get_currency("GBP")) == "£1,234.50"

    def test_spending_summary(self):
        totals = compute_totals(
            [Income(description="Salary", amount=Decimal("1000"), date=date(2024, 5, 1))],
            [make_expense("30", "c1")],
        )
        summary = summarize_spending_habits(
            totals, {"Food": Decimal("30")}, get_currency("USD")
        )

        assert "Currency: US Dollar (USD)" in summary
        assert "Total Income: $1000.00" in summary
        assert "Total Spending: $30.00" in summary
        assert "Food: $30.00" in summary


class TestBudgetUpsert:
    """Tests for one-budget-per-category."""

    def test_creates_budget(self):
        result = upsert_budget([], "c1", Decimal("100"))
        assert result.created
        assert len(result.budgets) == 1
        assert result.budget.amount == Decimal("100")

    def test_second_set_updates_in_place(self):
        first = upsert_budget([], "c1", Decimal("100"))
        second = upsert_budget(first.budgets, "c1", Decimal("250"))

        assert not second.created
        assert len(second.budgets) == 1
        assert second.budget.id == first.budget.id
        assert second.budgets[0].amount == Decimal("250")

    def test_input_list_not_modified(self):
        budgets = [Budget(category_id="c1", amount=Decimal("100"))]
        upsert_budget(budgets, "c1", Decimal("300"))
        assert budgets[0].amount == Decimal("100")

    def test_other_categories_untouched(self):
        budgets = [Budget(category_id="c1", amount=Decimal("100"))]
        result = upsert_budget(budgets, "c2", Decimal("50"))
        assert result.created
        assert [b.category_id for b in result.budgets] == ["c1", "c2"]

    def test_rejects_non_positive_amount(self):
        with pytest.raises(InvalidAmountError):
            upsert_budget([], "c1", Decimal("0"))

    def test_rejects_missing_category(self):
        with pytest.raises(ValueError):
            upsert_budget([], "", Decimal("10"))


class TestLoanTransactions:
    """Tests for borrow/repay bookkeeping."""

    def test_repayment_creates_expense_and_category(self):
        loan = make_loan("100")
        plan = apply_loan_transaction(
            loan, LoanTransactionType.DECREASE, Decimal("40"), [], today=date(2024, 5, 3)
        )

        assert plan.new_balance == Decimal("60")
        assert plan.previous_balance == Decimal("100")
        assert plan.category_created
        assert plan.category.name == LOAN_REPAYMENT_CATEGORY
        assert plan.expense.amount == Decimal("40")
        assert plan.expense.category_id == plan.category.id
        assert plan.expense.description == 'Payment for "Car"'
        assert plan.expense.date == date(2024, 5, 3)
        # original untouched
        assert loan.balance == Decimal("100")

    def test_repayment_reuses_existing_category(self):
        existing = Category(name=LOAN_REPAYMENT_CATEGORY)
        plan = apply_loan_transaction(
            make_loan("100"), "decrease", Decimal("10"), [existing]
        )
        assert not plan.category_created
        assert plan.new_category is None
        assert plan.expense.category_id == existing.id

    def test_full_repayment_allowed(self):
        plan = apply_loan_transaction(make_loan("100", "40"), "decrease", Decimal("40"), [])
        assert plan.new_balance == Decimal("0")

    def test_over_repayment_rejected(self):
        with pytest.raises(InvalidAmountError, match="Balance cannot be negative"):
            apply_loan_transaction(make_loan("100", "30"), "decrease", Decimal("40"), [])

    def test_increase_has_no_expense(self):
        plan = apply_loan_transaction(make_loan("100", "0"), "increase", Decimal("25"), [])
        assert plan.new_balance == Decimal("25")
        assert plan.expense is None
        assert plan.category is None

    def test_rejects_non_positive_amount(self):
        with pytest.raises(InvalidAmountError):
            apply_loan_transaction(make_loan("100"), "increase", Decimal("0"), [])

    def test_open_loan_starts_at_full_balance(self):
        loan = open_loan("Car", "Bank", Decimal("5000"), date(2024, 1, 1))
        assert loan.current_balance == Decimal("5000")
        assert loan.initial_amount == Decimal("5000")
