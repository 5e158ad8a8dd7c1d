"""
Main Orchestrator for Clarity Budgets

This module ties together all the components and defines the
end-to-end flows for one user's ledger:
1. Record entry (form -> validate -> persist -> update session state)
2. Loan transactions (form -> plan -> atomic commit -> patch state)
3. AI assistance (categorize a description, generate saving tips)

DESIGN DECISION: The session enforces the boundaries:
- Nothing reaches storage without passing its form schema
- In-memory state changes only AFTER storage accepted the write
- Every write and every failure is audited

Derived numbers (totals, progress, spending) are recomputed from the
collections on every access and never stored.
"""

from decimal import Decimal
from typing import Any, Mapping, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from clarity.agents import (
    AIServiceError,
    CategorizationAgent,
    CategorizeRequest,
    SavingTipsAgent,
    TipsRequest,
    TipsResponse,
)
from clarity.audit import AuditLogger, configure_logging, create_correlation_id
from clarity.config import get_settings
from clarity.config.settings import AppSettings
from clarity.ledger import (
    InvalidAmountError,
    LoanNotFoundError,
    apply_loan_transaction,
    build_category_map,
    compute_budget_progress,
    compute_spending_by_category,
    compute_total_loan_balance,
    compute_totals,
    open_loan,
    summarize_spending_habits,
    upsert_budget,
)
from clarity.models.ledger import (
    DEFAULT_CATEGORY_NAMES,
    Budget,
    BudgetProgress,
    Category,
    Currency,
    Expense,
    Income,
    LedgerTotals,
    Loan,
    LoanTransactionPlan,
    UnknownCurrencyError,
    get_currency,
)
from clarity.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    StorageError,
)
from clarity.validation import (
    BudgetForm,
    CategorizeForm,
    ExpenseForm,
    FormValidationError,
    IncomeForm,
    LoanForm,
    LoanTransactionForm,
    ValidationIssue,
    validate_form,
)


logger = structlog.get_logger(__name__)


class CategorySuggestion(BaseModel):
    """
    Result of auto-categorization.

    resolved is False when the model named a category the user doesn't
    have; category is then None and the user picks one by hand.
    """

    suggested_name: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    category: Optional[Category] = None
    resolved: bool = False


class LedgerSession:
    """
    One user's ledger, loaded into memory.

    Flow for every write:
    1. Validate -> FormValidationError (audited, nothing changes)
    2. Apply ledger rules -> LedgerError (audited, nothing changes)
    3. Persist -> StorageError (audited, nothing changes)
    4. Update in-memory collections, audit success

    Errors are always re-raised for the UI to show.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        categorizer: Optional[CategorizationAgent] = None,
        tips_agent: Optional[SavingTipsAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._categorizer = categorizer
        self._tips_agent = tips_agent
        self._audit_logger = audit_logger or AuditLogger()
        self._app_settings = app_settings or get_settings().app

        self._categories: list[Category] = []
        self._expenses: list[Expense] = []
        self._incomes: list[Income] = []
        self._budgets: list[Budget] = []
        self._loans: list[Loan] = []
        self._currency: Currency = get_currency(self._app_settings.default_currency)
        self._loaded = False

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load(self) -> None:
        """
        Fetch the whole ledger from storage.

        Seeds the starter categories into an empty ledger when enabled.
        """
        correlation_id = create_correlation_id()

        try:
            code = await self._storage.get_currency_code()
            categories = await self._storage.list_categories()
            if not categories and self._app_settings.seed_default_categories:
                categories = await self._seed_categories(correlation_id)
            expenses = await self._storage.list_expenses()
            incomes = await self._storage.list_incomes()
            budgets = await self._storage.list_budgets()
            loans = await self._storage.list_loans()
        except StorageError as e:
            await self._audit_logger.log_error(
                error_type="load_failed",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        if code:
            try:
                self._currency = get_currency(code)
            except UnknownCurrencyError:
                logger.warning("stored_currency_unknown", code=code)

        self._categories = categories
        self._expenses = expenses
        self._incomes = incomes
        self._budgets = budgets
        self._loans = loans
        self._loaded = True

        logger.info(
            "ledger_loaded",
            categories=len(categories),
            expenses=len(expenses),
            incomes=len(incomes),
            budgets=len(budgets),
            loans=len(loans),
            currency=self._currency.code,
        )

    async def _seed_categories(self, correlation_id: UUID) -> list[Category]:
        """Store the starter categories as one unit, so a failure leaves none."""
        seeded = await self._storage.add_categories(
            [Category(name=name) for name in DEFAULT_CATEGORY_NAMES]
        )
        for category in seeded:
            await self._audit_logger.log_category_created(
                category_id=category.id,
                name=category.name,
                correlation_id=correlation_id,
            )
        return seeded

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    # =========================================================================
    # COLLECTIONS & VIEWS
    # =========================================================================

    @property
    def categories(self) -> list[Category]:
        return list(self._categories)

    @property
    def expenses(self) -> list[Expense]:
        return list(self._expenses)

    @property
    def incomes(self) -> list[Income]:
        return list(self._incomes)

    @property
    def budgets(self) -> list[Budget]:
        return list(self._budgets)

    @property
    def loans(self) -> list[Loan]:
        return list(self._loans)

    @property
    def currency(self) -> Currency:
        return self._currency

    @property
    def category_map(self) -> dict[str, Category]:
        return build_category_map(self._categories)

    @property
    def totals(self) -> LedgerTotals:
        return compute_totals(self._incomes, self._expenses)

    @property
    def total_loan_balance(self) -> Decimal:
        return compute_total_loan_balance(self._loans)

    @property
    def spending_by_category(self) -> dict[str, Decimal]:
        return compute_spending_by_category(self._expenses, self._categories)

    @property
    def budget_progress(self) -> list[BudgetProgress]:
        return compute_budget_progress(self._budgets, self._expenses, self._categories)

    def get_loan(self, loan_id: str) -> Loan:
        for loan in self._loans:
            if loan.id == loan_id:
                return loan
        raise LoanNotFoundError(loan_id)

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _validate(self, form_cls, data: Mapping[str, Any], correlation_id: UUID):
        try:
            return validate_form(form_cls, data)
        except FormValidationError as e:
            await self._audit_logger.log_validation_failed(
                form=e.form,
                issues=e.as_dicts(),
                correlation_id=correlation_id,
            )
            raise

    async def _require_category(self, form, correlation_id: UUID) -> None:
        """Reject a form whose category_id names no existing category."""
        if form.category_id in self.category_map:
            return
        error = FormValidationError(type(form).__name__, [ValidationIssue(
            field="category_id",
            issue_type="unknown_category",
            message="Category not found. Pick one of your categories.",
        )])
        await self._audit_logger.log_validation_failed(
            form=error.form,
            issues=error.as_dicts(),
            correlation_id=correlation_id,
        )
        raise error

    async def _save_failed(self, entity_type: str, error: Exception, correlation_id: UUID) -> None:
        await self._audit_logger.log_save_failed(
            entity_type=entity_type,
            error_message=str(error),
            correlation_id=correlation_id,
        )

    # =========================================================================
    # RECORD ENTRY
    # =========================================================================

    async def add_expense(self, data: Mapping[str, Any]) -> Expense:
        """Validate, persist and prepend an expense."""
        correlation_id = create_correlation_id()
        form = await self._validate(ExpenseForm, data, correlation_id)
        await self._require_category(form, correlation_id)

        expense = Expense(
            description=form.description,
            amount=form.amount,
            category_id=form.category_id,
            date=form.date,
        )
        try:
            await self._storage.add_expense(expense)
        except StorageError as e:
            await self._save_failed("expense", e, correlation_id)
            raise

        self._expenses.insert(0, expense)
        await self._audit_logger.log_expense_added(
            expense_id=expense.id,
            description=expense.description,
            amount=str(expense.amount),
            correlation_id=correlation_id,
        )
        return expense

    async def add_income(self, data: Mapping[str, Any]) -> Income:
        """Validate, persist and prepend an income."""
        correlation_id = create_correlation_id()
        form = await self._validate(IncomeForm, data, correlation_id)

        income = Income(
            description=form.description,
            amount=form.amount,
            date=form.date,
        )
        try:
            await self._storage.add_income(income)
        except StorageError as e:
            await self._save_failed("income", e, correlation_id)
            raise

        self._incomes.insert(0, income)
        await self._audit_logger.log_income_added(
            income_id=income.id,
            description=income.description,
            amount=str(income.amount),
            correlation_id=correlation_id,
        )
        return income

    async def set_budget(self, data: Mapping[str, Any]) -> Budget:
        """
        Create or replace the budget for a category.

        A category never ends up with two budgets: setting it again
        updates the existing record in place.
        """
        correlation_id = create_correlation_id()
        form = await self._validate(BudgetForm, data, correlation_id)
        await self._require_category(form, correlation_id)

        result = upsert_budget(self._budgets, form.category_id, form.amount)
        try:
            if result.created:
                await self._storage.add_budget(result.budget)
            else:
                await self._storage.update_budget(result.budget)
        except StorageError as e:
            await self._save_failed("budget", e, correlation_id)
            raise

        self._budgets = result.budgets
        await self._audit_logger.log_budget_set(
            budget_id=result.budget.id,
            category_id=result.budget.category_id,
            amount=str(result.budget.amount),
            created=result.created,
            correlation_id=correlation_id,
        )
        return result.budget

    async def add_loan(self, data: Mapping[str, Any]) -> Loan:
        """Validate and persist a new loan with its full amount outstanding."""
        correlation_id = create_correlation_id()
        form = await self._validate(LoanForm, data, correlation_id)

        loan = open_loan(form.name, form.lender, form.amount, form.date)
        try:
            await self._storage.add_loan(loan)
        except StorageError as e:
            await self._save_failed("loan", e, correlation_id)
            raise

        self._loans.insert(0, loan)
        await self._audit_logger.log_loan_added(
            loan_id=loan.id,
            name=loan.name,
            amount=str(loan.initial_amount),
            correlation_id=correlation_id,
        )
        return loan

    # =========================================================================
    # LOAN TRANSACTIONS
    # =========================================================================

    async def update_loan(self, loan_id: str, data: Mapping[str, Any]) -> LoanTransactionPlan:
        """
        Borrow more against a loan, or repay part of it.

        A repayment also records an expense in "Loan Repayment",
        creating that category on first use. Storage commits the loan,
        category and expense together.

        Raises:
            FormValidationError: Bad amount or type
            LoanNotFoundError: No such loan in this session
            InvalidAmountError: Repayment exceeds the balance
            StorageError: The commit failed; nothing was written
        """
        correlation_id = create_correlation_id()
        form = await self._validate(LoanTransactionForm, data, correlation_id)

        try:
            loan = self.get_loan(loan_id)
            plan = apply_loan_transaction(
                loan,
                form.type,
                form.amount,
                self._categories,
            )
        except (LoanNotFoundError, InvalidAmountError) as e:
            await self._audit_logger.log_loan_update_rejected(
                loan_id=loan_id,
                reason=str(e),
                details={"type": form.type.value, "amount": str(form.amount)},
                correlation_id=correlation_id,
            )
            raise

        try:
            committed = await self._storage.commit_loan_transaction(plan)
        except StorageError as e:
            await self._save_failed("loan_transaction", e, correlation_id)
            raise

        self._loans = [
            committed.loan if l.id == committed.loan.id else l
            for l in self._loans
        ]
        if committed.category and committed.category.id not in self.category_map:
            self._categories.append(committed.category)
            if committed.category_created:
                await self._audit_logger.log_category_created(
                    category_id=committed.category.id,
                    name=committed.category.name,
                    correlation_id=correlation_id,
                )
        if committed.expense:
            self._expenses.insert(0, committed.expense)

        await self._audit_logger.log_loan_updated(
            loan_id=committed.loan.id,
            transaction_type=committed.transaction_type.value,
            amount=str(committed.amount),
            previous_balance=str(committed.previous_balance),
            new_balance=str(committed.new_balance),
            expense_id=committed.expense.id if committed.expense else None,
            correlation_id=correlation_id,
        )
        return committed

    # =========================================================================
    # SETTINGS
    # =========================================================================

    async def set_currency(self, code: str) -> Currency:
        """Change the display currency. Amounts are never converted."""
        correlation_id = create_correlation_id()

        try:
            currency = get_currency(code)
        except UnknownCurrencyError as e:
            await self._audit_logger.log_validation_failed(
                form="CurrencyForm",
                issues=[ValidationIssue(
                    field="currency",
                    issue_type="unknown_currency",
                    message=str(e),
                ).model_dump()],
                correlation_id=correlation_id,
            )
            raise

        try:
            await self._storage.save_currency_code(currency.code)
        except StorageError as e:
            await self._save_failed("settings", e, correlation_id)
            raise

        self._currency = currency
        await self._audit_logger.log_currency_changed(
            code=currency.code,
            correlation_id=correlation_id,
        )
        return currency

    # =========================================================================
    # AI ASSISTANCE
    # =========================================================================

    def _get_categorizer(self) -> CategorizationAgent:
        if self._categorizer is None:
            self._categorizer = CategorizationAgent()
        return self._categorizer

    def _get_tips_agent(self) -> SavingTipsAgent:
        if self._tips_agent is None:
            self._tips_agent = SavingTipsAgent()
        return self._tips_agent

    async def auto_categorize(self, description: str) -> CategorySuggestion:
        """
        Suggest one of the user's categories for an expense description.

        Matching is case-insensitive. A name that matches nothing comes
        back unresolved rather than as an error.
        """
        correlation_id = create_correlation_id()
        form = await self._validate(
            CategorizeForm, {"description": description}, correlation_id
        )

        request = CategorizeRequest(
            description=form.description,
            categories=[c.name for c in self._categories],
        )
        try:
            response = await self._get_categorizer().suggest_category(request)
        except AIServiceError as e:
            await self._audit_logger.log_external_service_error(
                service="gemini_categorize",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        wanted = response.category.strip().lower()
        match = next(
            (c for c in self._categories if c.name.lower() == wanted),
            None,
        )
        suggestion = CategorySuggestion(
            suggested_name=response.category,
            confidence=response.confidence,
            category=match,
            resolved=match is not None,
        )

        await self._audit_logger.log_category_suggested(
            description=form.description,
            category=response.category,
            confidence=response.confidence,
            resolved=suggestion.resolved,
            correlation_id=correlation_id,
        )
        return suggestion

    def spending_summary(self) -> str:
        """The text the saving-tips prompt sees."""
        return summarize_spending_habits(
            self.totals,
            self.spending_by_category,
            self._currency,
        )

    async def generate_saving_tips(self) -> TipsResponse:
        """Ask for saving tips based on totals and per-category spending."""
        correlation_id = create_correlation_id()
        summary = self.spending_summary()

        try:
            response = await self._get_tips_agent().generate_tips(
                TipsRequest(spending_habits=summary)
            )
        except AIServiceError as e:
            await self._audit_logger.log_external_service_error(
                service="gemini_saving_tips",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_saving_tips_generated(
            summary_length=len(summary),
            correlation_id=correlation_id,
        )
        return response


def create_app_components(
    use_storage: bool = True,
) -> tuple[LedgerSession, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to keep the ledger in memory.

    Returns:
        (session, sheets_client)
    """
    app_settings = get_settings().app
    configure_logging(app_settings.log_level)

    sheets_client = None
    storage: LedgerStorageInterface = InMemoryLedgerStorage()
    audit_logger = AuditLogger()  # Local-only logging

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            storage = InMemoryLedgerStorage()
            audit_logger = AuditLogger()

    session = LedgerSession(
        storage=storage,
        audit_logger=audit_logger,
        app_settings=app_settings,
    )
    return session, sheets_client
