"""Derived series for the spending and savings charts.

This module turns transaction groups and budgets into the DataFrames the
chart helpers in :mod:`visualization` consume.  The functions are pure and
independent of Streamlit so they can be unit tested directly.

Flat transaction frames use the columns ``date``, ``amount`` and
``category``.  Period-grouped ("long") frames use ``date``, ``category``
and ``value``.  Cumulative ("wide") frames are indexed by week start with
one column per category.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional, Tuple

import pandas as pd

from .budgets import find_active_budget
from .config import PROJECTION_MONTHS
from .logger import get_logger
from .models import Budget, TransactionGroup

log = get_logger(__name__)

TRANSACTION_COLUMNS = ["date", "amount", "category"]
GROUPED_COLUMNS = ["date", "category", "value"]

# Period aliases: month buckets start on the 1st, week buckets on Sunday.
PERIOD_ALIASES = {"M": "M", "W": "W-SAT"}


def _empty_transactions() -> pd.DataFrame:
    return pd.DataFrame({
        "date": pd.Series(dtype="datetime64[ns]"),
        "amount": pd.Series(dtype=float),
        "category": pd.Series(dtype=object),
    })


def _empty_grouped() -> pd.DataFrame:
    return pd.DataFrame({
        "date": pd.Series(dtype="datetime64[ns]"),
        "category": pd.Series(dtype=object),
        "value": pd.Series(dtype=float),
    })


def _truncate(dates: pd.Series, freq: str) -> pd.Series:
    return dates.dt.to_period(PERIOD_ALIASES[freq]).dt.start_time


# ---------------------------------------------------------------------------
# Stream extraction
# ---------------------------------------------------------------------------


def flatten_transactions(groups: Iterable[TransactionGroup], expenses: bool = True) -> pd.DataFrame:
    """One row per transaction of the requested stream, sorted by date.

    A transaction belongs to the income stream when its category is flagged
    as income, otherwise to the expense stream.  Expense amounts are negated
    and every row takes its group's date.
    """
    rows = []
    for group in groups:
        for txn in group.transactions:
            is_income = bool(txn.category is not None and txn.category.is_income_type)
            if is_income == expenses:
                continue
            rows.append({
                "date": pd.Timestamp(group.date),
                "amount": -txn.amount if expenses else txn.amount,
                "category": txn.category.name if txn.category is not None else "Uncategorized",
            })
    if not rows:
        return _empty_transactions()
    frame = pd.DataFrame(rows, columns=TRANSACTION_COLUMNS)
    return frame.sort_values("date", kind="stable").reset_index(drop=True)


def project_budget(
    budget: Optional[Budget],
    expenses: bool,
    end_date: date | pd.Timestamp,
    months: int = PROJECTION_MONTHS,
) -> pd.DataFrame:
    """Repeat the budget's allocations for ``months`` future months.

    The projection starts on the first day of the month after ``end_date``
    and carries one row per matching budget item per month.  Expense
    allocations are negated to line up with :func:`flatten_transactions`.
    """
    if budget is None or months <= 0:
        return _empty_transactions()
    items = [item for item in budget.budget_items if item.is_income != expenses]
    if not items:
        return _empty_transactions()

    start = (pd.Timestamp(end_date).to_period("M") + 1).to_timestamp()
    month_starts = pd.date_range(start, periods=months, freq="MS")
    rows = [
        {
            "date": month_start,
            "amount": -item.allocation if expenses else item.allocation,
            "category": item.category.name if item.category is not None else "Uncategorized",
        }
        for month_start in month_starts
        for item in items
    ]
    return pd.DataFrame(rows, columns=TRANSACTION_COLUMNS)


# ---------------------------------------------------------------------------
# Aggregations
# ---------------------------------------------------------------------------


def group_by_period(frame: pd.DataFrame, freq: str = "M") -> pd.DataFrame:
    """Sum amounts per period and category.

    Parameters
    ----------
    frame : pandas.DataFrame
        Flat transactions with ``date``, ``amount`` and ``category``.
    freq : str
        ``"M"`` for calendar months or ``"W"`` for Sunday-based weeks.

    Returns
    -------
    pandas.DataFrame
        Long frame with ``date`` (period start), ``category`` and ``value``,
        sorted by date.  Categories keep their first-seen order within a
        period.
    """
    if freq not in PERIOD_ALIASES:
        raise ValueError(f"Unsupported period '{freq}', expected one of {sorted(PERIOD_ALIASES)}")
    if frame.empty:
        return _empty_grouped()
    keyed = frame.assign(date=_truncate(pd.to_datetime(frame["date"]), freq))
    grouped = (
        keyed.groupby(["date", "category"], sort=False)["amount"]
        .sum()
        .reset_index()
        .rename(columns={"amount": "value"})
    )
    return grouped.sort_values("date", kind="stable").reset_index(drop=True)[GROUPED_COLUMNS]


def merge_cumulative(
    historical: pd.DataFrame,
    projection: pd.DataFrame,
    multiply_factor: float,
    today: Optional[date] = None,
) -> Tuple[pd.DataFrame, int]:
    """Weekly running totals per category over history plus projection.

    Every row carries every category seen in either input; a category with
    no activity in a week keeps its previous total.  The returned index is
    the last week that starts strictly before the final historical date,
    which charts use to split actual from projected values.  With no
    history the split is placed at ``today``.
    """
    if historical.empty:
        end_date = pd.Timestamp(today or date.today())
    else:
        end_date = pd.Timestamp(historical["date"].iloc[-1])

    parts = [df for df in (historical, projection) if not df.empty]
    if not parts:
        return pd.DataFrame(index=pd.DatetimeIndex([], name="date")), -1
    combined = pd.concat(parts, ignore_index=True)
    categories: List[str] = list(pd.unique(combined["category"]))

    weekly = group_by_period(combined, "W")
    wide = (
        weekly.pivot_table(index="date", columns="category", values="value", aggfunc="sum", fill_value=0.0)
        .reindex(columns=categories, fill_value=0.0)
        .sort_index()
    )
    cumulative = (wide * multiply_factor).cumsum()
    cumulative.columns.name = None
    cumulative.index.name = "date"

    boundary = int(cumulative.index.searchsorted(end_date, side="left")) - 1
    return cumulative, boundary


def savings_series(income: pd.DataFrame, expenses: pd.DataFrame) -> pd.DataFrame:
    """Cumulative income minus expenses, one point per transaction date.

    ``expenses`` is expected in the negated form produced by
    :func:`flatten_transactions`.
    """
    parts = [df for df in (income, expenses) if not df.empty]
    if not parts:
        return pd.DataFrame({"date": pd.Series(dtype="datetime64[ns]"), "value": pd.Series(dtype=float)})
    combined = pd.concat(parts, ignore_index=True)
    per_date = combined.groupby("date", sort=True)["amount"].sum()
    return pd.DataFrame({"date": per_date.index, "value": per_date.cumsum().to_numpy()})


def slice_date_range(
    frame: pd.DataFrame,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> pd.DataFrame:
    """Restrict a long frame (``date`` column) or wide frame (date index) to a window."""
    if frame.empty:
        return frame
    dates = pd.Series(frame["date"] if "date" in frame.columns else frame.index, index=frame.index)
    mask = pd.Series(True, index=frame.index)
    if start is not None:
        mask &= dates >= pd.Timestamp(start)
    if end is not None:
        mask &= dates <= pd.Timestamp(end)
    return frame[mask.to_numpy()]


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


@dataclass
class ChartData:
    expense_data: pd.DataFrame = field(default_factory=_empty_grouped)
    income_data: pd.DataFrame = field(default_factory=_empty_grouped)
    cumulative_expense_data: pd.DataFrame = field(default_factory=pd.DataFrame)
    cumulative_expense_end_index: int = -1
    cumulative_income_data: pd.DataFrame = field(default_factory=pd.DataFrame)
    cumulative_income_end_index: int = -1
    savings_data: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def is_empty(self) -> bool:
        return self.expense_data.empty and self.income_data.empty


def compute_chart_data(
    groups: Iterable[TransactionGroup],
    budgets: Iterable[Budget],
    today: Optional[date] = None,
    months: int = PROJECTION_MONTHS,
) -> ChartData:
    """Build every series shown on the savings page.

    Monthly expense values are reported as positive spend; cumulative
    expense totals run upward from zero as well (factor ``-1`` undoes the
    stream negation).  Projections come from the budget active on ``today``.
    """
    today = today or date.today()
    groups = list(groups)
    expense_rows = flatten_transactions(groups, expenses=True)
    income_rows = flatten_transactions(groups, expenses=False)
    budget = find_active_budget(budgets, today)

    expense_end = expense_rows["date"].iloc[-1] if not expense_rows.empty else pd.Timestamp(today)
    expense_projection = project_budget(budget, True, expense_end, months)
    cumulative_expense, expense_end_index = merge_cumulative(expense_rows, expense_projection, -1, today)

    grouped_expense = group_by_period(expense_rows, "M")
    grouped_expense["value"] = -grouped_expense["value"]
    grouped_income = group_by_period(income_rows, "M")

    income_end = income_rows["date"].iloc[-1] if not income_rows.empty else pd.Timestamp(today)
    income_projection = project_budget(budget, False, income_end, months)
    cumulative_income, income_end_index = merge_cumulative(income_rows, income_projection, 1, today)

    log.debug(
        "Computed chart data",
        extra={
            "expense_rows": len(expense_rows),
            "income_rows": len(income_rows),
            "active_budget": budget.id if budget is not None else None,
        },
    )
    return ChartData(
        expense_data=grouped_expense,
        income_data=grouped_income,
        cumulative_expense_data=cumulative_expense,
        cumulative_expense_end_index=expense_end_index,
        cumulative_income_data=cumulative_income,
        cumulative_income_end_index=income_end_index,
        savings_data=savings_series(income_rows, expense_rows),
    )
