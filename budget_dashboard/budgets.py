"""Budget calculation utilities.

Pure helpers for validating budgets before they are submitted, picking the
budget that covers a given day, and summarising allocation usage into
DataFrames for the budget pages.
"""

from __future__ import annotations

from calendar import monthrange
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .models import Budget, BudgetItem, TransactionGroup, round_amount


def month_bounds(day: date) -> Tuple[date, date]:
    """Return the first and last day of the month containing ``day``."""
    last = monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def new_budget_template(today: Optional[date] = None, name: str = "") -> Budget:
    """An empty budget spanning the current month."""
    start, end = month_bounds(today or date.today())
    return Budget(name=name, start_date=start, end_date=end, budget_items=[])


def validate_budget(budget: Budget) -> Dict[str, str]:
    """Collect form-level problems keyed by field path.

    Allocation sign and date ordering are enforced by the model itself; this
    covers what a partially filled form can still get wrong.
    """
    errors: Dict[str, str] = {}
    if not budget.name.strip():
        errors["name"] = "Name is required."
    seen: Dict[str, int] = {}
    for index, item in enumerate(budget.budget_items):
        category_id = item.category_id
        if not category_id:
            errors[f"items[{index}].category"] = "Category is required."
            continue
        if category_id in seen:
            errors[f"items[{index}].category"] = "Category is already allocated in this budget."
        seen.setdefault(category_id, index)
    return errors


def find_active_budget(budgets: Iterable[Budget], today: Optional[date] = None) -> Optional[Budget]:
    """First budget whose date range covers ``today``."""
    today = today or date.today()
    for budget in budgets:
        if budget.is_active(today):
            return budget
    return None


def allocation_breakdown(budget: Optional[Budget]) -> pd.DataFrame:
    """Share of the total allocation held by each item, in percent (1 dp)."""
    columns = ["Category", "Allocation", "Percent", "Color", "Is Income"]
    if budget is None or not budget.budget_items or not budget.total_allocation:
        return pd.DataFrame(columns=columns)
    total = budget.total_allocation
    rows = []
    for item in budget.budget_items:
        rows.append({
            "Category": item.category.name if item.category else (item.category_uuid or "Unknown"),
            "Allocation": item.allocation,
            "Percent": round(item.allocation / total * 100, 1),
            "Color": item.category.color if item.category else None,
            "Is Income": item.is_income,
        })
    return pd.DataFrame(rows, columns=columns)


def budget_usage(budget: Optional[Budget], include_income: bool = False) -> pd.DataFrame:
    """Used vs allocated amount for each item of ``budget``.

    Expense items only unless ``include_income`` is set.  ``Usage`` is the
    used fraction of the allocation (``NaN`` for zero allocations).
    """
    columns = ["Category", "Allocation", "Used", "Remaining", "Usage", "Over Budget", "Color"]
    if budget is None:
        return pd.DataFrame(columns=columns)
    items: Sequence[BudgetItem] = [
        item for item in budget.budget_items if include_income or not item.is_income
    ]
    if not items:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame({
        "Category": [i.category.name if i.category else (i.category_uuid or "Unknown") for i in items],
        "Allocation": [i.allocation for i in items],
        "Used": [i.allocation_used for i in items],
        "Color": [i.category.color if i.category else None for i in items],
    })
    df["Remaining"] = (df["Allocation"] - df["Used"]).round(2)
    df["Usage"] = df["Used"] / df["Allocation"].where(df["Allocation"] > 0)
    df["Over Budget"] = df["Used"] > df["Allocation"]
    return df[columns]


def net_total(groups: Iterable[TransactionGroup]) -> float:
    """Signed sum of all transactions: income minus expenses."""
    return round_amount(sum(t.signed_amount for g in groups for t in g.transactions))


def scale_suggestions(suggestions: Dict[str, float], net_income: float) -> Dict[str, float]:
    """Rescale suggested allocations so they add up to ``net_income``.

    Suggestions are rounded to whole tens; any rounding remainder lands on the
    largest allocation.  Non-positive totals produce zero allocations.
    """
    if not suggestions:
        return {}
    total = sum(max(v, 0.0) for v in suggestions.values())
    if total <= 0 or net_income <= 0:
        return {name: 0.0 for name in suggestions}
    scaled = {name: round(max(v, 0.0) / total * net_income, -1) for name, v in suggestions.items()}
    remainder = round_amount(net_income - sum(scaled.values()))
    if remainder:
        largest = max(scaled, key=lambda k: scaled[k])
        scaled[largest] = round_amount(scaled[largest] + remainder)
    return scaled


def items_from_allocations(
    allocations: Dict[str, float], categories_by_name: Dict[str, str]
) -> List[BudgetItem]:
    """Build write-side budget items from ``{category name: amount}``.

    Names without a known category id are skipped.
    """
    items: List[BudgetItem] = []
    for name, amount in allocations.items():
        category_id = categories_by_name.get(name)
        if category_id is None:
            continue
        items.append(BudgetItem(allocation=max(amount, 0.0), category_uuid=category_id))
    return items
