"""Mapping from the bank aggregator's categories to the app defaults.

Used when the generative mapping is unavailable: every aggregator primary
category folds into one of the default app categories, with ``Other`` as
the catch-all.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, Optional


class AggregatorCategory(str, Enum):
    INCOME = "INCOME"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    LOAN_PAYMENTS = "LOAN_PAYMENTS"
    BANK_FEES = "BANK_FEES"
    ENTERTAINMENT = "ENTERTAINMENT"
    FOOD_AND_DRINK = "FOOD_AND_DRINK"
    GENERAL_MERCHANDISE = "GENERAL_MERCHANDISE"
    HOME_IMPROVEMENT = "HOME_IMPROVEMENT"
    MEDICAL = "MEDICAL"
    PERSONAL_CARE = "PERSONAL_CARE"
    GENERAL_SERVICES = "GENERAL_SERVICES"
    GOVERNMENT_AND_NON_PROFIT = "GOVERNMENT_AND_NON_PROFIT"
    TRANSPORTATION = "TRANSPORTATION"
    TRAVEL = "TRAVEL"
    RENT_AND_UTILITIES = "RENT_AND_UTILITIES"
    OTHER = "OTHER"


class AppCategory(str, Enum):
    FOOD = "Food"
    INCOME = "Income"
    UTILITIES = "Utilities"
    SHOPPING = "Shopping"
    TRANSPORTATION = "Transportation"
    ENTERTAINMENT = "Entertainment"
    OTHER = "Other"


PRIMARY_CATEGORY_MAP: Dict[AggregatorCategory, AppCategory] = {
    AggregatorCategory.INCOME: AppCategory.INCOME,
    AggregatorCategory.TRANSFER_IN: AppCategory.INCOME,
    AggregatorCategory.FOOD_AND_DRINK: AppCategory.FOOD,
    AggregatorCategory.RENT_AND_UTILITIES: AppCategory.UTILITIES,
    AggregatorCategory.BANK_FEES: AppCategory.UTILITIES,
    AggregatorCategory.GENERAL_MERCHANDISE: AppCategory.SHOPPING,
    AggregatorCategory.HOME_IMPROVEMENT: AppCategory.SHOPPING,
    AggregatorCategory.TRANSPORTATION: AppCategory.TRANSPORTATION,
    AggregatorCategory.TRAVEL: AppCategory.TRANSPORTATION,
    AggregatorCategory.ENTERTAINMENT: AppCategory.ENTERTAINMENT,
}


def map_primary_category(value: Optional[str]) -> AppCategory:
    """Map an aggregator primary category; unknown values become ``Other``."""
    if not value:
        return AppCategory.OTHER
    try:
        source = AggregatorCategory(value.upper())
    except ValueError:
        return AppCategory.OTHER
    return PRIMARY_CATEGORY_MAP.get(source, AppCategory.OTHER)


def primary_from_detailed(detailed: Optional[str]) -> Optional[str]:
    """``FOOD_AND_DRINK_GROCERIES`` -> ``FOOD_AND_DRINK``.

    Detailed categories are prefixed with their primary category; the longest
    matching prefix wins so ``TRANSFER_IN_DEPOSIT`` is not read as ``TRANSFER``.
    """
    if not detailed:
        return None
    upper = detailed.upper()
    matches = [c.value for c in AggregatorCategory if upper == c.value or upper.startswith(c.value + "_")]
    return max(matches, key=len) if matches else None


def fallback_mapping(source_categories: Iterable[str], destination_categories: Iterable[str]) -> Dict[str, str]:
    """Deterministic source -> destination mapping without the assistant.

    A source maps to the destination whose name matches the static app
    category (case-insensitive), otherwise to ``"other"``.
    """
    destinations = {name.lower(): name for name in destination_categories}
    mapping: Dict[str, str] = {}
    for source in source_categories:
        target = map_primary_category(primary_from_detailed(source)).value
        mapping[source] = destinations.get(target.lower(), "other")
    return mapping
