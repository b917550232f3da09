"""Generative AI helpers: budget chat, category mapping and receipt reading.

Every call posts a system instruction plus a JSON response schema to the
``generateContent`` endpoint and validates the JSON reply with pydantic.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests
from pydantic import BaseModel, Field, ValidationError

from .config import GOOGLE_AI_MODEL, GOOGLE_AI_STUDIO_KEY, GOOGLE_AI_URL, HTTP_TIMEOUT
from .errors import AssistantError
from .logger import get_logger
from .models import Category, Transaction, TransactionGroup

log = get_logger(__name__)

OTHER_CATEGORY = "other"
UNKNOWN_CATEGORY = "Unknown"
TAX_CATEGORY = "Tax"

GENERATION_CONFIG: Dict[str, Any] = {
    "temperature": 1,
    "topP": 0.95,
    "topK": 40,
    "maxOutputTokens": 8192,
    "responseMimeType": "application/json",
}


# ---------------------------------------------------------------------------
# Reply models
# ---------------------------------------------------------------------------


class BudgetAllocation(BaseModel):
    category_name: str
    budget: int


class BudgetSuggestion(BaseModel):
    response_text: str
    budget_array: List[BudgetAllocation] = Field(default_factory=list)

    def as_dict(self) -> Dict[str, float]:
        return {item.category_name: float(item.budget) for item in self.budget_array}


class ReceiptItem(BaseModel):
    name: str
    description: str = ""
    price: float
    category: str = UNKNOWN_CATEGORY


class Receipt(BaseModel):
    store_name: str
    address: Optional[str] = None
    date_time: datetime
    payment_type: Optional[str] = None
    items: List[ReceiptItem] = Field(default_factory=list)
    tax: float = 0.0

    def to_transaction_group(self, categories: Sequence[Category] = ()) -> TransactionGroup:
        """One transaction per item plus a sales tax line when tax is non-zero.

        Item categories are matched to ``categories`` by name so the group
        can be posted as is; unmatched items keep a name-only category.
        """
        by_name = {c.name.lower(): c for c in categories}

        def resolve(name: str) -> Category:
            return by_name.get(name.lower()) or Category(name=name)

        transactions = [
            Transaction(
                name=item.name,
                description=item.description,
                amount=item.price,
                category=resolve(item.category),
            )
            for item in self.items
        ]
        if self.tax:
            transactions.append(Transaction(
                name="Sales Tax",
                description="Sales Tax",
                amount=self.tax,
                category=resolve(TAX_CATEGORY),
            ))
        return TransactionGroup(
            name=self.store_name,
            description=self.address or "",
            source=self.payment_type,
            date=self.date_time.date(),
            transactions=transactions,
        )


class Subcategory(BaseModel):
    subcategory: str
    examples: str


# ---------------------------------------------------------------------------
# Prompts and schemas
# ---------------------------------------------------------------------------

BUDGET_INSTRUCTION = """
You are an expert financial planner with extensive knowledge in personal budgeting for young adults in Canada.
Your task is to use your financial and mathematical skills to provide a user with a monthly budget.

Format your response in the provided JSON schema and briefly justify each allocation in "response_text".

"response_text" is the message shown to the user in a chat interface.
"budget_array" holds one object per expense category the user asked about: "category_name" is the
category and "budget" the monthly amount, rounded to the nearest 10 dollars. Only use the categories the
user provided.

STEP 1: DETERMINE NET INCOME

After-tax Income
Monthly Housing Expenses
Monthly Food Expenses
Monthly Transportation Expenses

+5600
-1850
-320
-150
-----
3280 <- net income

STEP 2: ASSIGN BUDGET ALLOCATIONS

Charity
Emergency Fund
Health/Fitness
Investments
Personal Spending

+160
+1100
+220
+950
+850
-----
3280 == net income

If the user does not declare any income, assume an allowance of $1000 per month.
"""

BUDGET_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "response_text": {"type": "STRING"},
        "budget_array": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "category_name": {"type": "STRING"},
                    "budget": {"type": "INTEGER"},
                },
                "required": ["category_name", "budget"],
            },
        },
    },
    "required": ["response_text", "budget_array"],
}

SUBCATEGORY_INSTRUCTION = """
You are an assistant budget creator. You will receive a category as input.
Generate a JSON array of objects, one per subcategory within that category. Each object has
"subcategory" (the subcategory name) and "examples" (typical expenses in it).
Do NOT generate more than 5 subcategories.
"""

SUBCATEGORY_SCHEMA: Dict[str, Any] = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "subcategory": {"type": "STRING"},
            "examples": {"type": "STRING"},
        },
        "required": ["subcategory", "examples"],
    },
}


def _bullets(values: Sequence[str]) -> str:
    return "\n".join(f"- {value}" for value in values)


def mapping_instruction(sources: Sequence[str], destinations: Sequence[str]) -> str:
    return f"""
You are an expert in personal finance category mapping. Map each category in the source list to the
most appropriate category in the destination list.

Source categories:
{_bullets(sources)}

Destination categories:
{_bullets(destinations)}

Map by meaning rather than keywords. If a source category does not clearly fit any destination, use
"{OTHER_CATEGORY}". Output a JSON object whose keys are the source categories exactly as listed and whose
values are the chosen destination categories.
"""


def mapping_schema(sources: Sequence[str], destinations: Sequence[str]) -> Dict[str, Any]:
    """Object schema with one required key per source restricted to ``destinations``."""
    return {
        "type": "OBJECT",
        "properties": {
            source: {
                "type": "STRING",
                "description": f"Mapping for source category '{source}'.",
                "enum": list(destinations),
            }
            for source in sources
        },
        "required": list(sources),
    }


def receipt_categories(categories: Sequence[str]) -> List[str]:
    return [*categories, UNKNOWN_CATEGORY]


def receipt_instruction(categories: Sequence[str]) -> str:
    allowed = ", ".join(receipt_categories(categories))
    return f"""
You are an expert at extracting information from purchase receipts and structuring it as JSON for
financial tracking. From the receipt provided, extract:

* store_name: the name of the store.
* address: the store's address, if shown.
* date_time: the date and time of the transaction in ISO 8601 format (YYYY-MM-DDTHH:MM:SS).
* payment_type: the payment method (e.g. "DEBIT", "CREDIT", "CASH"), if shown.
* items: one object per purchased item with name (as printed), description (your best guess at the
  full item name), price (final price) and category, chosen from [{allowed}]. Use "{UNKNOWN_CATEGORY}" when
  unsure and never invent categories.
* tax: the total tax amount, 0 when there is none.
"""


def receipt_schema(categories: Sequence[str]) -> Dict[str, Any]:
    return {
        "type": "OBJECT",
        "properties": {
            "store_name": {"type": "STRING"},
            "address": {"type": "STRING", "nullable": True},
            "date_time": {"type": "STRING"},
            "payment_type": {"type": "STRING", "nullable": True},
            "items": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "name": {"type": "STRING"},
                        "description": {"type": "STRING"},
                        "price": {"type": "NUMBER"},
                        "category": {"type": "STRING", "enum": receipt_categories(categories)},
                    },
                    "required": ["name", "price", "category", "description"],
                },
            },
            "tax": {"type": "NUMBER"},
        },
        "required": ["store_name", "date_time", "items", "tax"],
    }


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AssistantClient:
    """Calls a Gemini-compatible ``generateContent`` endpoint."""

    def __init__(
        self,
        api_key: str = GOOGLE_AI_STUDIO_KEY,
        model: str = GOOGLE_AI_MODEL,
        base_url: str = GOOGLE_AI_URL,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.session = session or requests.Session()
        self.timeout = timeout

    def generate(self, instruction: str, parts: List[Dict[str, Any]], schema: Dict[str, Any]) -> Any:
        """Send one user turn and return the decoded JSON reply."""
        if not self.api_key:
            raise AssistantError("GOOGLE_AI_STUDIO_KEY is not defined")
        body = {
            "systemInstruction": {"parts": [{"text": instruction}]},
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {**GENERATION_CONFIG, "responseSchema": schema},
        }
        url = f"{self.base_url}models/{self.model}:generateContent"
        try:
            response = self.session.post(url, params={"key": self.api_key}, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise AssistantError(f"Request failed: {exc}") from exc
        if not response.ok:
            raise AssistantError(f"Model request failed ({response.status_code}): {response.text}")
        try:
            text = response.json()["candidates"][0]["content"]["parts"][0]["text"]
            return json.loads(text)
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AssistantError(f"Unexpected model reply: {exc}") from exc

    def suggest_budget(self, user_text: str) -> BudgetSuggestion:
        data = self.generate(BUDGET_INSTRUCTION, [{"text": user_text}], BUDGET_SCHEMA)
        return _validate(BudgetSuggestion, data)

    def map_categories(self, sources: Sequence[str], destinations: Sequence[str]) -> Dict[str, str]:
        """Map every source category onto a destination category or ``"other"``.

        Values outside the allowed set are replaced by ``"other"`` and
        sources missing from the reply default to it as well.
        """
        allowed = list(destinations)
        if OTHER_CATEGORY not in allowed:
            allowed.append(OTHER_CATEGORY)
        if not sources:
            return {}
        data = self.generate(
            mapping_instruction(sources, allowed),
            [{"text": "Process the provided categories."}],
            mapping_schema(sources, allowed),
        )
        if not isinstance(data, dict):
            raise AssistantError("Category mapping reply is not an object")
        return {
            source: data[source] if data.get(source) in allowed else OTHER_CATEGORY
            for source in sources
        }

    def extract_receipt(self, image: bytes, mime_type: str, categories: Sequence[str]) -> Receipt:
        parts = [
            {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(image).decode("ascii")}},
            {"text": "Process this receipt"},
        ]
        data = self.generate(receipt_instruction(categories), parts, receipt_schema(categories))
        receipt = _validate(Receipt, data)
        log.info("Receipt processed", extra={"store": receipt.store_name, "items": len(receipt.items)})
        return receipt

    def generate_subcategories(self, category: str) -> List[Subcategory]:
        data = self.generate(
            SUBCATEGORY_INSTRUCTION,
            [{"text": f"Generate subcategories for the following category: {category}"}],
            SUBCATEGORY_SCHEMA,
        )
        if not isinstance(data, list):
            raise AssistantError("Subcategory reply is not a list")
        return [_validate(Subcategory, item) for item in data]


def _validate(model: type, data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise AssistantError(f"Invalid {model.__name__} reply: {exc}") from exc


def error_envelope(exc: Exception) -> Tuple[Dict[str, str], int]:
    """Body and status reported to the caller when a request fails."""
    details = str(exc) if str(exc) else "Unknown error"
    log.error("Error processing request", extra={"error": details})
    return {"error": "Failed to process request", "details": details}, 500
