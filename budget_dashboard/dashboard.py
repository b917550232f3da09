"""Streamlit app for the budget dashboard.

The app signs in against the budget REST API, then offers pages for the
savings graph, the current budget, recent transactions, categories, the
user profile and the assistant tools (budget chat, subcategory ideas,
receipt scanning and bank import).

To run the dashboard from the command line::

    streamlit run budget_dashboard/dashboard.py
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Iterable, Optional, TypeVar

import pandas as pd
import streamlit as st

if __package__:
    from . import budgets as bd
    from . import chart_data as cd
    from . import visualization as viz
    from .api import ApiClient
    from .assistant import AssistantClient
    from .bank_sync import AggregatorClient, attach_category_ids, import_transactions
    from .colors import income_colors
    from .config import DEV_USER_ID
    from .errors import AuthenticationError, BudgetDashboardError
    from .logger import get_logger
    from .models import DEFAULT_COLOR, Budget, Category, TransactionGroup
    from .query_cache import QueryCache
    from .resources import BudgetService, CategoryService, TransactionGroupService, UserService
    from .token_store import MemoryTokenStore
else:
    # Allow ``streamlit run budget_dashboard/dashboard.py`` without an install.
    CURRENT_DIR = os.path.dirname(os.path.abspath(__file__))
    PARENT_DIR = os.path.dirname(CURRENT_DIR)
    if PARENT_DIR not in sys.path:
        sys.path.insert(0, PARENT_DIR)
    from budget_dashboard import budgets as bd  # type: ignore
    from budget_dashboard import chart_data as cd  # type: ignore
    from budget_dashboard import visualization as viz  # type: ignore
    from budget_dashboard.api import ApiClient  # type: ignore
    from budget_dashboard.assistant import AssistantClient  # type: ignore
    from budget_dashboard.bank_sync import AggregatorClient, attach_category_ids, import_transactions  # type: ignore
    from budget_dashboard.colors import income_colors  # type: ignore
    from budget_dashboard.config import DEV_USER_ID  # type: ignore
    from budget_dashboard.errors import AuthenticationError, BudgetDashboardError  # type: ignore
    from budget_dashboard.logger import get_logger  # type: ignore
    from budget_dashboard.models import DEFAULT_COLOR, Budget, Category, TransactionGroup  # type: ignore
    from budget_dashboard.query_cache import QueryCache  # type: ignore
    from budget_dashboard.resources import (  # type: ignore
        BudgetService,
        CategoryService,
        TransactionGroupService,
        UserService,
    )
    from budget_dashboard.token_store import MemoryTokenStore  # type: ignore

log = get_logger(__name__)

R = TypeVar("R")

PAGES = ["Savings", "Current budget", "Transactions", "Categories", "Profile", "Assistant"]
RECENT_DAYS = 90


@dataclass
class Services:
    client: ApiClient
    cache: QueryCache
    categories: CategoryService
    budgets: BudgetService
    transaction_groups: TransactionGroupService
    users: UserService

    @classmethod
    def create(cls, client: Optional[ApiClient] = None) -> "Services":
        # Each browser session signs in on its own; tokens are never shared.
        client = client or ApiClient(token_store=MemoryTokenStore())
        cache = QueryCache()
        return cls(
            client=client,
            cache=cache,
            categories=CategoryService(client, cache),
            budgets=BudgetService(client, cache),
            transaction_groups=TransactionGroupService(client, cache),
            users=UserService(client, cache),
        )


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------


def session_object(key: str, factory: Callable[[], R]) -> R:
    """Build ``factory()`` once per browser session and reuse it."""
    if key not in st.session_state:
        st.session_state[key] = factory()
    return st.session_state[key]


def get_services() -> Services:
    """Services shared by every page of one browser session."""
    return session_object("services", Services.create)


def _rerun() -> None:
    if hasattr(st, "rerun"):
        st.rerun()
    else:  # pragma: no cover - older Streamlit
        st.experimental_rerun()


def report_error(exc: BudgetDashboardError, services: Services) -> None:
    """Toast the error; authentication failures also sign the user out."""
    log.warning("Request failed", extra={"error": str(exc), "type": type(exc).__name__})
    st.toast(str(exc), icon="⚠️")
    if isinstance(exc, AuthenticationError):
        services.client.logout()
        services.cache.clear()


def guarded(services: Services, call: Callable[[], R], default: Any = None) -> Any:
    """Run ``call`` and report package errors instead of raising them."""
    try:
        return call()
    except BudgetDashboardError as exc:
        report_error(exc, services)
        return default


def delete_record(services: Services, service: Any, item_id: str, label: str) -> bool:
    """Delete one record through ``service`` and toast the outcome."""
    deleted = guarded(services, lambda: service.delete(item_id) or True, default=False)
    if deleted:
        st.toast(f"Deleted {label}.")
    return deleted


def transactions_table(groups: Iterable[TransactionGroup]) -> pd.DataFrame:
    """One display row per transaction, newest first."""
    columns = ["Date", "Group", "Name", "Category", "Amount", "Source"]
    rows = [
        {
            "Date": group.date,
            "Group": group.name,
            "Name": txn.name,
            "Category": txn.category.name if txn.category else "Uncategorized",
            "Amount": txn.signed_amount,
            "Source": group.source or "",
        }
        for group in groups
        for txn in group.transactions
    ]
    if not rows:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(rows, columns=columns).sort_values("Date", ascending=False, kind="stable").reset_index(drop=True)


def chart_window(today: date, months_back: int = 6, months_ahead: int = 6) -> tuple:
    """Default date range for the savings charts."""
    start = (pd.Timestamp(today) - pd.DateOffset(months=months_back)).date()
    end = (pd.Timestamp(today) + pd.DateOffset(months=months_ahead)).date()
    return start, end


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


def render_login(services: Services) -> None:
    st.sidebar.header("Sign in")
    with st.sidebar.form("login"):
        username = st.text_input("Username")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Log in")
    if submitted:
        if guarded(services, lambda: services.client.login(username, password)) is not None:
            _rerun()


def render_savings_page(services: Services, today: date) -> None:
    st.header("Savings")
    groups = guarded(services, services.transaction_groups.list_between, default=[])
    budgets = guarded(services, services.budgets.list, default=[])
    data = cd.compute_chart_data(groups, budgets, today=today)
    if data.is_empty:
        st.info("No transactions yet.")

    default_start, default_end = chart_window(today)
    start, end = st.slider(
        "Date range",
        min_value=default_start - timedelta(days=365),
        max_value=default_end,
        value=(default_start, default_end),
    )

    st.plotly_chart(viz.create_savings_chart(cd.slice_date_range(data.savings_data, start, end)), use_container_width=True)
    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(
            viz.create_stacked_area_chart(
                data.cumulative_expense_data, data.cumulative_expense_end_index, title="Cumulative spending"
            ),
            use_container_width=True,
        )
        st.plotly_chart(
            viz.create_stacked_bar_chart(cd.slice_date_range(data.expense_data, start, end), title="Monthly spending"),
            use_container_width=True,
        )
    with col2:
        st.plotly_chart(
            viz.create_stacked_area_chart(
                data.cumulative_income_data,
                data.cumulative_income_end_index,
                palette=income_colors,
                title="Cumulative income",
            ),
            use_container_width=True,
        )
        st.plotly_chart(
            viz.create_stacked_bar_chart(
                cd.slice_date_range(data.income_data, start, end), palette=income_colors, title="Monthly income"
            ),
            use_container_width=True,
        )


def render_budget_page(services: Services, today: date) -> None:
    st.header("Current budget")
    budget: Optional[Budget] = guarded(services, lambda: services.budgets.current(today))
    if budget is None:
        st.info("No budget covers this month yet. Use the assistant page to draft one.")
        return
    st.subheader(budget.name)
    st.caption(f"{budget.start_date:%b %d, %Y} - {budget.end_date:%b %d, %Y}")
    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(viz.create_allocation_pie_chart(bd.allocation_breakdown(budget)), use_container_width=True)
    with col2:
        usage = bd.budget_usage(budget)
        st.plotly_chart(viz.create_budget_usage_chart(usage), use_container_width=True)
    st.dataframe(bd.budget_usage(budget, include_income=True), use_container_width=True)
    if budget.id and st.button("Delete budget"):
        delete_record(services, services.budgets, budget.id, budget.name)


def render_transactions_page(services: Services, today: date) -> None:
    st.header("Recent transactions")
    search = st.text_input("Search")
    groups = guarded(
        services,
        lambda: services.transaction_groups.list_between(
            date_after=today - timedelta(days=RECENT_DAYS),
            date_before=today,
            search=search or None,
        ),
        default=[],
    )
    table = transactions_table(groups)
    if table.empty:
        st.info("No transactions in the last 90 days.")
        return
    st.metric("Net", f"${bd.net_total(groups):,.2f}")
    st.dataframe(table, use_container_width=True)

    labels = {group.id: f"{group.date:%Y-%m-%d} {group.name}" for group in groups if group.id}
    if labels:
        group_id = st.selectbox("Transaction group", list(labels), format_func=labels.get)
        if st.button("Delete transaction group"):
            delete_record(services, services.transaction_groups, group_id, labels[group_id])


def render_categories_page(services: Services, today: date) -> None:
    st.header("Categories")
    categories = guarded(services, services.categories.list, default=[])
    if categories:
        st.dataframe(
            pd.DataFrame(
                [{"Name": c.name, "Income": c.is_income_type, "Colour": c.color} for c in categories]
            ),
            use_container_width=True,
        )

    with st.form("new_category"):
        name = st.text_input("Name")
        is_income = st.checkbox("Income category")
        color = st.color_picker("Colour", value=DEFAULT_COLOR)
        submitted = st.form_submit_button("Add category")
    if submitted and name:
        record = Category(name=name, is_income_type=is_income, color=color)
        if guarded(services, lambda: services.categories.create(record)) is not None:
            st.toast(f"Added {name}.")

    by_id = {c.id: c for c in categories if c.id}
    if not by_id:
        return
    st.subheader("Edit a category")
    category_id = st.selectbox("Category", list(by_id), format_func=lambda key: by_id[key].name)
    category = by_id[category_id]
    new_name = st.text_input("New name", value=category.name)
    new_color = st.color_picker("New colour", value=category.color)
    if st.button("Save category"):
        edited = category.model_copy(update={"name": new_name, "color": new_color})
        if guarded(services, lambda: services.categories.update(edited)) is not None:
            st.toast(f"Saved {new_name}.")
    if st.button("Delete category"):
        delete_record(services, services.categories, category_id, category.name)


def render_profile_page(services: Services, today: date) -> None:
    st.header("Profile")
    user = guarded(services, services.users.get)
    if user is None:
        return
    with st.form("profile"):
        first_name = st.text_input("First name", value=user.first_name)
        last_name = st.text_input("Last name", value=user.last_name)
        email = st.text_input("Email", value=user.email)
        saved = st.form_submit_button("Save profile")
    if saved:
        edited = user.model_copy(update={"first_name": first_name, "last_name": last_name, "email": email})
        if guarded(services, lambda: services.users.update(edited)) is not None:
            st.toast("Profile saved.")

    with st.form("password"):
        old_password = st.text_input("Current password", type="password")
        new_password = st.text_input("New password", type="password")
        confirm = st.text_input("Confirm new password", type="password")
        changed = st.form_submit_button("Change password")
    if changed:
        message = guarded(services, lambda: services.users.change_password(old_password, new_password, confirm))
        if message is not None:
            st.toast(message)


def render_budget_chat(services: Services, assistant: AssistantClient, by_name: dict, today: date) -> None:
    st.subheader("Budget chat")
    prompt = st.text_area("Describe your income, fixed costs and the categories to plan for")
    if st.button("Suggest a budget") and prompt:
        suggestion = guarded(services, lambda: assistant.suggest_budget(prompt))
        if suggestion is not None:
            st.session_state["suggestion"] = suggestion
    suggestion = st.session_state.get("suggestion")
    if suggestion is None:
        return
    st.write(suggestion.response_text)
    suggested = suggestion.as_dict()
    net_income = st.number_input("Net monthly income", min_value=0.0, value=float(sum(suggested.values())), step=10.0)
    allocations = bd.scale_suggestions(suggested, net_income)
    st.dataframe(pd.DataFrame(list(allocations.items()), columns=["Category", "Budget"]))
    if st.button("Create budget from suggestion"):
        budget = bd.new_budget_template(today, name=f"{today:%B %Y}")
        budget.budget_items = bd.items_from_allocations(allocations, by_name)
        errors = bd.validate_budget(budget)
        if errors:
            for message in errors.values():
                st.toast(message, icon="⚠️")
        elif guarded(services, lambda: services.budgets.create(budget)) is not None:
            st.toast("Budget created.")


def render_subcategory_ideas(services: Services, assistant: AssistantClient, by_name: dict) -> None:
    st.subheader("Subcategory ideas")
    if not by_name:
        st.info("Add a category first.")
        return
    name = st.selectbox("Category to split", list(by_name))
    if st.button("Suggest subcategories"):
        ideas = guarded(services, lambda: assistant.generate_subcategories(name), default=[])
        if ideas:
            st.dataframe(pd.DataFrame([idea.model_dump() for idea in ideas]), use_container_width=True)


def render_receipt_scan(services: Services, assistant: AssistantClient, categories: list) -> None:
    st.subheader("Scan a receipt")
    upload = st.file_uploader("Receipt image", type=["png", "jpg", "jpeg", "webp"])
    if upload is not None and st.button("Read receipt"):
        names = [c.name for c in categories]
        receipt = guarded(services, lambda: assistant.extract_receipt(upload.getvalue(), upload.type, names))
        if receipt is not None:
            group = receipt.to_transaction_group(categories)
            st.dataframe(transactions_table([group]))
            if guarded(services, lambda: services.transaction_groups.create(group)) is not None:
                st.toast("Receipt saved.")


def render_bank_import(services: Services, assistant: AssistantClient, categories: list) -> None:
    st.subheader("Bank import")
    aggregator: Optional[AggregatorClient] = guarded(services, lambda: session_object("aggregator", AggregatorClient))
    if aggregator is None:
        return
    user_id = services.client.current_user_id() or DEV_USER_ID

    if st.button("Create link token"):
        link = guarded(services, lambda: aggregator.create_link_token(user_id))
        if link is not None:
            st.session_state["link_token"] = link.get("link_token")
    link_token = st.session_state.get("link_token")
    if link_token:
        st.caption(
            "Open Plaid Link with this token in your browser. "
            "Link runs outside the dashboard; paste the public token it returns below."
        )
        st.code(link_token)

    public_token = st.text_input("Public token from Plaid Link")
    if public_token and st.button("Link account"):
        if guarded(services, lambda: aggregator.exchange_public_token(public_token, user_id)) is not None:
            st.session_state.pop("link_token", None)
            st.toast("Account linked.")
    if st.button("Import transactions"):
        names = [c.name for c in categories]
        groups = guarded(
            services,
            lambda: import_transactions(aggregator, names, user_id, mapper=assistant.map_categories),
            default=[],
        )
        groups = attach_category_ids(groups, categories)
        if groups and guarded(services, lambda: services.transaction_groups.create(groups)) is not None:
            st.toast(f"Imported {len(groups)} transactions.")


def render_assistant_page(services: Services, today: date) -> None:
    st.header("Assistant")
    assistant: AssistantClient = session_object("assistant", AssistantClient)
    categories = guarded(services, services.categories.list, default=[])
    by_name = {c.name: c.id for c in categories if c.id}

    render_budget_chat(services, assistant, by_name, today)
    render_subcategory_ideas(services, assistant, by_name)
    render_receipt_scan(services, assistant, categories)
    render_bank_import(services, assistant, categories)


def main() -> None:
    """Entry point for the Streamlit app."""
    st.set_page_config(page_title="Budget Dashboard", layout="wide", initial_sidebar_state="expanded")
    st.title("Budget Dashboard")
    services = get_services()

    if not services.client.is_authenticated:
        render_login(services)
        st.info("Please sign in to continue.")
        st.stop()

    page = st.sidebar.radio("Page", PAGES)
    if st.sidebar.button("Log out"):
        services.client.logout()
        services.cache.clear()
        _rerun()

    today = date.today()
    renderers = {
        "Savings": render_savings_page,
        "Current budget": render_budget_page,
        "Transactions": render_transactions_page,
        "Categories": render_categories_page,
        "Profile": render_profile_page,
        "Assistant": render_assistant_page,
    }
    renderers[page](services, today)


if __name__ == "__main__":
    main()
