"""
Streamlit Frontend for Clarity Budgets

The screens a user works with day to day: record money in and out,
set budgets, track loans, and ask for saving tips.

DESIGN PRINCIPLES:
1. Every number on screen is derived from the stored records
2. Form problems are shown next to the field that caused them
3. Service failures show an error and leave the page as it was
4. The AI only suggests; the user picks the category and saves
"""

import asyncio
from datetime import date

import streamlit as st

from clarity.agents import AIServiceError
from clarity.config import validate_all_settings
from clarity.ledger import LedgerError, format_money
from clarity.models import CURRENCIES, LoanTransactionType
from clarity.orchestrator import LedgerSession, create_app_components
from clarity.services.storage import StorageError
from clarity.validation import FormValidationError


# Page configuration
st.set_page_config(
    page_title="Clarity Budgets",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_session() -> LedgerSession:
    """Create and load the ledger session (cached)."""
    try:
        session, _ = create_app_components(use_storage=True)
        run_async(session.load())
    except StorageError as e:
        st.error(f"Could not load your data: {e}")
        session, _ = create_app_components(use_storage=False)
        run_async(session.load())
    return session


def submit(action, success_message: str):
    """
    Run a session write and report the outcome.

    Returns the result, or None when the write was refused.
    """
    try:
        result = run_async(action)
    except FormValidationError as e:
        for issue in e.issues:
            st.error(f"**{issue.field.replace('_', ' ').title()}:** {issue.message}")
        return None
    except LedgerError as e:
        st.error(str(e))
        return None
    except StorageError as e:
        st.error(f"Could not save: {e}")
        return None
    st.success(success_message)
    return result


def main():
    """Main application entry point."""
    session = get_session()

    st.sidebar.title("💰 Clarity Budgets")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "📊 Dashboard",
            "➕ Add Transaction",
            "🎯 Budgets",
            "🏦 Loans",
            "💡 Saving Tips",
            "⚙️ Settings",
        ],
        index=0,
    )

    if page == "📊 Dashboard":
        render_dashboard_page(session)
    elif page == "➕ Add Transaction":
        render_transaction_page(session)
    elif page == "🎯 Budgets":
        render_budgets_page(session)
    elif page == "🏦 Loans":
        render_loans_page(session)
    elif page == "💡 Saving Tips":
        render_tips_page(session)
    elif page == "⚙️ Settings":
        render_settings_page(session)


def render_dashboard_page(session: LedgerSession):
    st.title("📊 Dashboard")
    currency = session.currency
    totals = session.totals

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Income", format_money(totals.total_income, currency))
    col2.metric("Total Spent", format_money(totals.total_spent, currency))
    col3.metric("Remaining", format_money(totals.remaining_balance, currency))
    col4.metric("Loan Balance", format_money(session.total_loan_balance, currency))

    st.markdown("---")
    st.markdown("### Budgets")
    progress = session.budget_progress
    if not progress:
        st.info("No budgets yet. Set one on the Budgets page.")
    for item in progress:
        label = item.category_name
        if item.category_missing:
            label += " (deleted category)"
        st.markdown(
            f"**{label}**: {format_money(item.spent, currency)} of "
            f"{format_money(item.budget.amount, currency)}"
        )
        st.progress(min(float(item.progress_percent), 100.0) / 100)
        if item.is_over_budget:
            st.warning(f"Over budget by {format_money(-item.remaining, currency)}")

    st.markdown("---")
    st.markdown("### Spending by Category")
    spending = session.spending_by_category
    if spending:
        st.bar_chart({name: float(amount) for name, amount in spending.items()})
    else:
        st.info("No expenses recorded yet.")


def render_transaction_page(session: LedgerSession):
    st.title("➕ Add Transaction")
    expense_tab, income_tab = st.tabs(["Expense", "Income"])

    categories = session.categories
    category_ids = [c.id for c in categories]
    names = session.category_map

    with expense_tab:
        description = st.text_input("Description", key="expense_description")

        if st.button("✨ Auto-categorize"):
            try:
                suggestion = run_async(session.auto_categorize(description))
            except FormValidationError as e:
                st.error(e.issues[0].message)
            except AIServiceError:
                st.error("AI error. Please pick a category yourself.")
            else:
                if suggestion.resolved:
                    st.session_state.expense_category = suggestion.category.id
                    st.success(
                        f"Suggested: {suggestion.category.name} "
                        f"({suggestion.confidence:.0%} confident)"
                    )
                else:
                    st.warning(
                        f'AI suggested "{suggestion.suggested_name}", which is not one '
                        "of your categories. Please pick one."
                    )

        with st.form("expense_form", clear_on_submit=True):
            amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
            category_id = st.selectbox(
                "Category",
                options=category_ids,
                format_func=lambda cid: names[cid].name,
                key="expense_category",
            )
            spent_on = st.date_input("Date", value=date.today())
            if st.form_submit_button("Add Expense", type="primary"):
                submit(
                    session.add_expense({
                        "description": description,
                        "amount": f"{amount:.2f}",
                        "category_id": category_id or "",
                        "date": spent_on,
                    }),
                    "Expense added.",
                )

    with income_tab:
        with st.form("income_form", clear_on_submit=True):
            description = st.text_input("Description")
            amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
            received_on = st.date_input("Date", value=date.today())
            if st.form_submit_button("Add Income", type="primary"):
                submit(
                    session.add_income({
                        "description": description,
                        "amount": f"{amount:.2f}",
                        "date": received_on,
                    }),
                    "Income added.",
                )


def render_budgets_page(session: LedgerSession):
    st.title("🎯 Budgets")
    names = session.category_map

    with st.form("budget_form"):
        category_id = st.selectbox(
            "Category",
            options=list(names),
            format_func=lambda cid: names[cid].name,
        )
        amount = st.number_input("Monthly amount", min_value=0.0, step=1.0, format="%.2f")
        if st.form_submit_button("Set Budget", type="primary"):
            submit(
                session.set_budget({"category_id": category_id or "", "amount": f"{amount:.2f}"}),
                "Budget saved.",
            )

    st.markdown("---")
    for item in session.budget_progress:
        st.markdown(
            f"**{item.category_name}**: {format_money(item.budget.amount, session.currency)} "
            f"({item.progress_percent:.0f}% used)"
        )


def render_loans_page(session: LedgerSession):
    st.title("🏦 Loans")
    currency = session.currency

    with st.expander("Add a loan"):
        with st.form("loan_form", clear_on_submit=True):
            name = st.text_input("Name", placeholder="e.g. Car loan")
            lender = st.text_input("Lender")
            amount = st.number_input("Amount borrowed", min_value=0.0, step=0.01, format="%.2f")
            started_on = st.date_input("Start date", value=date.today())
            if st.form_submit_button("Add Loan", type="primary"):
                submit(
                    session.add_loan({
                        "name": name,
                        "lender": lender,
                        "amount": f"{amount:.2f}",
                        "date": started_on,
                    }),
                    "Loan added.",
                )

    st.metric("Total outstanding", format_money(session.total_loan_balance, currency))

    for loan in session.loans:
        st.markdown("---")
        st.markdown(
            f"### {loan.name}\n"
            f"Lender: {loan.lender} · Started {loan.date.isoformat()}\n\n"
            f"Balance: **{format_money(loan.balance, currency)}** of "
            f"{format_money(loan.initial_amount, currency)}"
        )
        with st.form(f"loan_tx_{loan.id}", clear_on_submit=True):
            tx_type = st.radio(
                "Transaction",
                options=[LoanTransactionType.DECREASE, LoanTransactionType.INCREASE],
                format_func=lambda t: "Repay" if t == LoanTransactionType.DECREASE else "Borrow more",
                horizontal=True,
            )
            amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
            if st.form_submit_button("Update Balance"):
                submit(
                    session.update_loan(loan.id, {"type": tx_type, "amount": f"{amount:.2f}"}),
                    "Loan updated.",
                )


def render_tips_page(session: LedgerSession):
    st.title("💡 Saving Tips")
    st.markdown("Get suggestions based on your income and spending by category.")

    with st.expander("What the AI sees"):
        st.text(session.spending_summary())

    if st.button("Get Saving Tips", type="primary"):
        with st.spinner("Thinking..."):
            try:
                response = run_async(session.generate_saving_tips())
            except AIServiceError:
                st.error("AI error. Please try again later.")
            else:
                st.markdown(response.saving_tips)


def render_settings_page(session: LedgerSession):
    st.title("⚙️ Settings")

    st.markdown("### Currency")
    codes = [c.code for c in CURRENCIES]
    labels = {c.code: f"{c.symbol} {c.name} ({c.code})" for c in CURRENCIES}
    selected = st.selectbox(
        "Display currency",
        options=codes,
        index=codes.index(session.currency.code),
        format_func=labels.get,
    )
    if selected != session.currency.code and st.button("Save Currency"):
        submit(session.set_currency(selected), f"Currency set to {selected}.")

    st.markdown("### Connection Status")
    status = validate_all_settings()

    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (AI)", "gemini"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown(
        "To configure the application, create a `.env` file with your "
        "Google Sheets and Gemini settings. See `.env.example` for the variables."
    )


if __name__ == "__main__":
    main()
