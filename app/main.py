"""
Streamlit Frontend for Couple Ledger

Thin pages over the FinanceWorkspace: sign in, dashboard, transactions,
receipt scanning, budgets, goals and partner linking.

Every form calls one workspace method. Errors are shown as a message and
the page keeps the data it had.
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Optional

import streamlit as st

from couple_ledger.agents import ReceiptAnalysisError, ReceiptImageError
from couple_ledger.analytics import (
    budget_progress,
    days_remaining,
    goal_progress,
    progress_tier,
)
from couple_ledger.config import get_settings, validate_all_settings
from couple_ledger.models import (
    BudgetPeriod,
    RecurringInterval,
    TransactionType,
)
from couple_ledger.orchestrator import AppComponents, FinanceWorkspace, create_app_components
from couple_ledger.services.auth import AuthError
from couple_ledger.validation import TransactionRejectedError


# Page configuration
st.set_page_config(
    page_title="Couple Ledger",
    page_icon="💑",
    layout="wide",
    initial_sidebar_state="expanded",
)

TIER_COLORS = {"low": "🟢", "medium": "🟡", "high": "🔴"}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def money(amount) -> str:
    symbol = get_settings().app.currency_symbol
    return f"{symbol}{Decimal(amount):,.2f}"


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def get_workspace(components: AppComponents) -> Optional[FinanceWorkspace]:
    user = components.auth.current_user
    if user is None:
        st.session_state.pop("workspace", None)
        return None

    workspace = st.session_state.get("workspace")
    if workspace is None or workspace.user.uid != user.uid:
        workspace = components.workspace_for(user)
        run_async(workspace.load_all())
        st.session_state.workspace = workspace
    return workspace


def main():
    """Main application entry point."""
    components = get_components()
    workspace = get_workspace(components)

    if workspace is None:
        render_sign_in_page(components)
        return

    st.sidebar.title("💑 Couple Ledger")
    st.sidebar.caption(f"Signed in as {workspace.user.label}")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Dashboard", "💸 Transactions", "🧾 Scan Receipt", "🎯 Budgets", "🏆 Goals", "⚙️ Settings"],
        index=0,
    )

    if st.sidebar.button("Sign out"):
        run_async(components.audit_logger.log_signed_out(workspace.user.uid))
        run_async(components.auth.sign_out())
        st.session_state.pop("workspace", None)
        st.rerun()

    if page == "📊 Dashboard":
        render_dashboard(workspace)
    elif page == "💸 Transactions":
        render_transactions_page(workspace)
    elif page == "🧾 Scan Receipt":
        render_receipt_page(workspace)
    elif page == "🎯 Budgets":
        render_budgets_page(workspace)
    elif page == "🏆 Goals":
        render_goals_page(workspace)
    elif page == "⚙️ Settings":
        render_settings_page(components, workspace)


def render_sign_in_page(components: AppComponents):
    st.title("💑 Couple Ledger")
    st.markdown("Track shared finances together.")

    sign_in_tab, sign_up_tab, reset_tab = st.tabs(["Sign in", "Create account", "Reset password"])

    with sign_in_tab:
        with st.form("sign_in"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            if st.form_submit_button("Sign in", type="primary"):
                try:
                    run_async(components.sign_in(email, password))
                    st.rerun()
                except AuthError as e:
                    st.error(f"Could not sign in: {e}")

    with sign_up_tab:
        with st.form("sign_up"):
            name = st.text_input("Your name")
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            if st.form_submit_button("Create account", type="primary"):
                try:
                    run_async(components.sign_up(email, password, name or None))
                    st.rerun()
                except AuthError as e:
                    st.error(f"Could not create account: {e}")

    with reset_tab:
        with st.form("reset"):
            email = st.text_input("Email")
            if st.form_submit_button("Send reset link"):
                try:
                    run_async(components.auth.reset_password(email))
                    st.success("Check your inbox for a reset link.")
                except AuthError as e:
                    st.error(f"Could not send reset link: {e}")


def render_dashboard(workspace: FinanceWorkspace):
    st.title("📊 Dashboard")

    year = date.today().year
    stats = workspace.stats(year=year)

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Income", money(stats.total_income))
    col2.metric("Expenses", money(stats.total_expenses))
    col3.metric("Balance", money(stats.balance))
    col4.metric("Savings rate", f"{stats.savings_rate:.1f}%")

    st.subheader("Spending by category")
    if stats.expenses_by_category:
        st.bar_chart({k: float(v) for k, v in stats.expenses_by_category.items()})
    else:
        st.info("No expenses yet.")

    st.subheader(f"Monthly overview {year}")
    st.table([
        {
            "Month": row.month,
            "Income": money(row.income),
            "Expenses": money(row.expenses),
            "Balance": money(row.balance),
        }
        for row in stats.monthly_data
    ])


def transaction_form(workspace: FinanceWorkspace, draft: Optional[dict] = None, key: str = "tx"):
    """Form for a new transaction, optionally prefilled from a draft."""
    draft = draft or {}
    with st.form(key):
        col1, col2 = st.columns(2)
        with col1:
            tx_type = st.selectbox(
                "Type",
                options=list(TransactionType),
                index=list(TransactionType).index(draft.get("type", TransactionType.EXPENSE)),
                format_func=lambda t: t.value.title(),
            )
            amount = st.number_input(
                "Amount *",
                value=float(draft.get("amount", 0.0)),
                min_value=0.0,
                step=0.01,
                format="%.2f",
            )
            description = st.text_input("Description *", value=draft.get("description", ""))
        with col2:
            names = [c.name for c in workspace.categories if c.type == tx_type] or ["Other"]
            default = draft.get("category")
            category = st.selectbox(
                "Category *",
                options=names,
                index=names.index(default) if default in names else 0,
            )
            tx_date = st.date_input("Date", value=draft.get("date", date.today()))
            is_shared = st.checkbox("Shared expense")
        tags = st.text_input("Tags (comma separated)")
        is_recurring = st.checkbox("Recurring")
        interval = st.selectbox(
            "Repeats",
            options=[None] + list(RecurringInterval),
            format_func=lambda i: "-" if i is None else i.value.title(),
        )
        notes = st.text_area("Notes", value=draft.get("notes", ""))

        if st.form_submit_button("💾 Save", type="primary"):
            data = {
                "type": tx_type,
                "amount": Decimal(str(amount)),
                "description": description,
                "category": category,
                "date": tx_date,
                "tags": [t for t in tags.split(",") if t.strip()],
                "is_recurring": is_recurring,
                "recurring_interval": interval,
                "notes": notes or None,
                "items": draft.get("items", []),
            }
            try:
                run_async(workspace.add_transaction(data, is_shared=is_shared))
                st.success("Transaction saved.")
                return True
            except TransactionRejectedError as e:
                st.error(workspace.validation_summary(e.result))
            except ValueError as e:
                st.error(f"Invalid transaction: {e}")
            except Exception as e:
                st.error(f"Failed to save: {e}")
    return False


def render_transactions_page(workspace: FinanceWorkspace):
    st.title("💸 Transactions")

    with st.expander("➕ Add transaction"):
        transaction_form(workspace)

    with st.expander("🎙️ From a sentence"):
        text = st.text_input("e.g. spent 45 dollars on groceries")
        if text:
            draft = workspace.transcript_to_draft(text)
            if draft is None:
                st.warning("Could not understand the transaction. Please try again with a clearer statement.")
            else:
                transaction_form(workspace, draft, key="voice_tx")

    st.subheader("Filters")
    col1, col2, col3, col4 = st.columns(4)
    years = ["All Time"] + sorted({str(t.date.year) for t in workspace.transactions}, reverse=True)
    workspace.set_filters(
        year=col1.selectbox("Year", years),
        month=col2.selectbox("Month", ["All"] + [str(m) for m in range(1, 13)]),
        type=col3.selectbox("Type", ["all", "income", "expense"]),
        category=col4.selectbox("Category", ["All"] + sorted({c.name for c in workspace.categories})),
    )

    for tx in workspace.filtered_transactions():
        sign = "+" if tx.is_income else "-"
        col1, col2 = st.columns([5, 1])
        col1.markdown(
            f"**{tx.description}** · {tx.category} · {tx.date:%d %b %Y} · "
            f"{sign}{money(tx.amount)} · _{tx.owner_name or ''}_"
        )
        if col2.button("🗑️", key=f"del_{tx.id}"):
            try:
                run_async(workspace.delete_transaction(tx.id))
                st.rerun()
            except Exception as e:
                st.error(f"Failed to delete: {e}")


def render_receipt_page(workspace: FinanceWorkspace):
    st.title("🧾 Scan Receipt")

    formats = get_settings().app.supported_formats_list
    uploaded_file = st.file_uploader("Choose a receipt photo", type=formats)

    if uploaded_file and st.button("🔍 Scan", type="primary"):
        with st.spinner("Reading your receipt..."):
            try:
                receipt = run_async(workspace.scan_receipt(uploaded_file.read()))
                st.session_state.receipt_draft = workspace.receipt_to_draft(receipt)
            except (ReceiptImageError, ReceiptAnalysisError) as e:
                st.error(str(e))

    draft = st.session_state.get("receipt_draft")
    if draft:
        st.markdown("### Review before saving")
        for item in draft.get("items", []):
            st.markdown(f"- {item['name']} × {item['quantity']} @ {money(item['price'])}")
        if transaction_form(workspace, draft, key="receipt_tx"):
            st.session_state.receipt_draft = None


def render_budgets_page(workspace: FinanceWorkspace):
    st.title("🎯 Budgets")

    totals = workspace.budget_summary()
    col1, col2, col3 = st.columns(3)
    col1.metric("Budgeted", money(totals["amount"]))
    col2.metric("Spent", money(totals["spent"]))
    col3.metric("Remaining", money(totals["remaining"]))

    with st.expander("➕ New budget"):
        with st.form("budget"):
            expense_categories = [c for c in workspace.categories if c.type == TransactionType.EXPENSE]
            category = st.selectbox("Category", expense_categories, format_func=lambda c: c.name)
            amount = st.number_input("Amount", min_value=0.0, step=100.0)
            period = st.selectbox("Period", list(BudgetPeriod), format_func=lambda p: p.value.title())
            start = st.date_input("Start", value=date.today().replace(day=1))
            end = st.date_input("End", value=date.today())
            if st.form_submit_button("Create", type="primary") and category:
                try:
                    run_async(workspace.add_budget({
                        "category_id": category.id,
                        "category": category.name,
                        "amount": Decimal(str(amount)),
                        "period": period,
                        "start_date": start,
                        "end_date": end,
                    }))
                    st.rerun()
                except Exception as e:
                    st.error(f"Failed to create budget: {e}")

    for budget in workspace.budgets:
        pct = budget_progress(budget.spent, budget.amount)
        st.markdown(
            f"**{budget.category}** {TIER_COLORS[progress_tier(pct).value]} "
            f"{money(budget.spent)} of {money(budget.amount)} · {money(budget.remaining)} left"
        )
        st.progress(pct / 100)
        with st.expander("✏️ Edit", expanded=False):
            with st.form(f"edit_budget_{budget.id}"):
                amount = st.number_input(
                    "Amount", min_value=0.0, step=100.0, value=float(budget.amount)
                )
                spent = st.number_input(
                    "Spent so far", min_value=0.0, step=10.0, value=float(budget.spent)
                )
                end = st.date_input("End", value=budget.end_date)
                if st.form_submit_button("Save"):
                    try:
                        changes = {}
                        if Decimal(str(amount)) != budget.amount:
                            changes["amount"] = Decimal(str(amount))
                        if end != budget.end_date:
                            changes["end_date"] = end
                        if changes:
                            run_async(workspace.update_budget(budget.id, changes))
                        spent = Decimal(str(spent))
                        if spent != budget.spent:
                            run_async(workspace.record_budget_spending(budget.id, spent))
                        st.rerun()
                    except Exception as e:
                        st.error(f"Failed to update budget: {e}")

        col1, col2 = st.columns(2)
        rollover = col1.toggle("Rollover", value=budget.rollover, key=f"roll_{budget.id}")
        if rollover != budget.rollover:
            try:
                run_async(workspace.toggle_rollover(budget.id))
                st.rerun()
            except Exception as e:
                st.error(f"Failed to update rollover: {e}")
        if col2.button("🗑️ Delete", key=f"delb_{budget.id}"):
            try:
                run_async(workspace.delete_budget(budget.id))
                st.rerun()
            except Exception as e:
                st.error(f"Failed to delete: {e}")


def render_goals_page(workspace: FinanceWorkspace):
    st.title("🏆 Goals")

    with st.expander("➕ New goal"):
        with st.form("goal"):
            name = st.text_input("Name")
            target = st.number_input("Target amount", min_value=0.0, step=100.0)
            target_date = st.date_input("Target date (optional)", value=None)
            icon = st.text_input("Icon", value="🎯")
            if st.form_submit_button("Create", type="primary"):
                try:
                    run_async(workspace.add_goal({
                        "name": name,
                        "target_amount": Decimal(str(target)),
                        "target_date": target_date,
                        "icon_emoji": icon,
                    }))
                    st.rerun()
                except Exception as e:
                    st.error(f"Failed to create goal: {e}")

    for goal in workspace.goals:
        pct = goal_progress(goal.current_amount, goal.target_amount)
        remaining = days_remaining(goal.target_date)
        status = "✅ Completed" if goal.is_completed else (
            f"{remaining} days left" if remaining is not None else "No deadline"
        )
        st.markdown(
            f"**{goal.icon_emoji or ''} {goal.name}** · {money(goal.current_amount)} "
            f"of {money(goal.target_amount)} · {status}"
        )
        st.progress(pct / 100)
        col1, col2 = st.columns([3, 1])
        amount = col1.number_input("Add", min_value=0.0, step=10.0, key=f"add_{goal.id}")
        if col2.button("Contribute", key=f"contrib_{goal.id}"):
            try:
                run_async(workspace.contribute_to_goal(goal.id, Decimal(str(amount))))
                st.rerun()
            except ValueError as e:
                st.error(str(e))


def render_settings_page(components: AppComponents, workspace: FinanceWorkspace):
    st.title("⚙️ Settings")

    st.subheader("Partner")
    if workspace.user.group_id:
        st.success("You are linked with your partner.")
    else:
        partner_uid = st.text_input("Partner's user ID")
        st.caption(f"Your user ID: `{workspace.user.uid}`")
        if st.button("🔗 Link partner") and partner_uid:
            try:
                run_async(workspace.link_partner(partner_uid.strip()))
                run_async(components.auth.refresh())
                st.rerun()
            except Exception as e:
                st.error(f"Could not link: {e}")

    st.subheader("Services")
    status = validate_all_settings()
    for name in ("firebase", "google_sheets", "gemini", "app"):
        icon = "✅" if status.get(name) else "❌"
        st.markdown(f"{icon} {name.replace('_', ' ').title()}")
    if get_settings().gemini.mock_mode:
        st.info("Receipt scanning is in demo mode (no Gemini API key).")


if __name__ == "__main__":
    main()
