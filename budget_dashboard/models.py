"""Records exchanged with the budget REST API.

Read models carry nested :class:`Category` objects as returned by the
server; write payloads reference categories by ``category_uuid``.  Both
shapes are accepted by the same models so a record fetched from the API
can be edited and sent back.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_COLOR = "#0062FF"

T = TypeVar("T")


def round_amount(value: float) -> float:
    """Round a currency amount to 2 decimal places."""
    return round(float(value), 2)


class Category(BaseModel):
    """A user-defined income/expense label with a display colour."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: str
    description: str = ""
    is_income_type: bool = False
    color: str = DEFAULT_COLOR
    legacy: bool = False

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(exclude={"legacy"})
        if payload.get("id") is None:
            payload.pop("id")
        return payload


class Transaction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    group_id: Optional[str] = None
    name: str
    description: str = ""
    amount: float
    category: Optional[Category] = None
    category_uuid: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def _round_amount(cls, value: float) -> float:
        return round_amount(value)

    @property
    def category_id(self) -> Optional[str]:
        if self.category is not None and self.category.id:
            return self.category.id
        return self.category_uuid

    @property
    def signed_amount(self) -> float:
        """Contribution to a running balance: income adds, expenses subtract."""
        if self.category is not None and self.category.is_income_type:
            return self.amount
        return -self.amount

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "amount": self.amount,
            "category_uuid": self.category_id,
        }
        if self.id:
            payload["id"] = self.id
        return payload


class TransactionGroup(BaseModel):
    """A dated bundle of transactions, e.g. a single receipt."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: str
    description: str = ""
    source: Optional[str] = None
    date: dt.date
    transactions: List[Transaction] = Field(default_factory=list)

    @property
    def total(self) -> float:
        return round_amount(sum(t.amount for t in self.transactions))

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "source": self.source,
            "date": self.date.isoformat(),
            "transactions": [t.to_payload() for t in self.transactions],
        }
        if self.id:
            payload["id"] = self.id
        return payload


class BudgetItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    budget_id: Optional[str] = None
    allocation: float = 0.0
    allocation_used: float = 0.0
    category: Optional[Category] = None
    category_uuid: Optional[str] = None

    @field_validator("allocation")
    @classmethod
    def _check_allocation(cls, value: float) -> float:
        if value < 0:
            raise ValueError("Allocation must be greater than or equal to 0.")
        return round_amount(value)

    @field_validator("allocation_used")
    @classmethod
    def _round_used(cls, value: float) -> float:
        return round_amount(value)

    @property
    def category_id(self) -> Optional[str]:
        if self.category is not None and self.category.id:
            return self.category.id
        return self.category_uuid

    @property
    def is_income(self) -> bool:
        return bool(self.category is not None and self.category.is_income_type)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "allocation": self.allocation,
            "category_uuid": self.category_id,
        }
        if self.id:
            payload["id"] = self.id
        return payload


class Budget(BaseModel):
    """A date range with per-category allocations."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: str
    description: str = ""
    start_date: dt.date
    end_date: dt.date
    budget_items: List[BudgetItem] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_range(self) -> "Budget":
        if self.end_date < self.start_date:
            raise ValueError("End date must not precede the start date.")
        return self

    @property
    def total_allocation(self) -> float:
        return round_amount(sum(item.allocation for item in self.budget_items))

    def is_active(self, on: dt.date) -> bool:
        return self.start_date <= on <= self.end_date

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "budget_items": [item.to_payload() for item in self.budget_items],
        }
        if self.id:
            payload["id"] = self.id
        return payload


class User(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[int, str]] = None
    username: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"})


class TokenPair(BaseModel):
    access: str
    refresh: Optional[str] = None


class Page(BaseModel, Generic[T]):
    """A paginated list response."""

    count: int = 0
    next: Optional[str] = None
    previous: Optional[str] = None
    results: List[T] = Field(default_factory=list)


def parse_list(model: type, data: Any) -> Any:
    """Parse a list response that may or may not be paginated.

    ``no_page`` requests return a bare JSON array, everything else a
    :class:`Page` envelope.
    """
    if isinstance(data, list):
        return [model.model_validate(item) for item in data]
    return Page[model].model_validate(data)
