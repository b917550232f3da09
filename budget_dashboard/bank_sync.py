"""Bank account linking and transaction import through Plaid.

The aggregator issues a link token for the front end, exchanges the public
token produced by the link flow for a long-lived access token, and exposes
a cursor-paginated ``/transactions/sync`` endpoint.  Access tokens are kept
server-side, keyed by user id, and never returned to the caller.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests

from .category_mapping import fallback_mapping
from .config import (
    DEV_USER_ID,
    HTTP_TIMEOUT,
    PLAID_CLIENT_ID,
    PLAID_CLIENT_NAME,
    PLAID_MAX_POLLS,
    PLAID_POLL_DELAY,
    PLAID_REDIRECT_URI,
    PLAID_SECRET,
    get_plaid_base_url,
)
from .errors import AssistantError, BankSyncError
from .logger import get_logger
from .models import Category, Transaction, TransactionGroup

log = get_logger(__name__)

PLAID_VERSION = "2020-09-14"
SOURCE_NAME = "plaid"
UNMAPPED_CATEGORY = "other"

CategoryMapper = Callable[[List[str], List[str]], Dict[str, str]]


@dataclass
class LinkedItem:
    access_token: str
    item_id: str


class AccessTokenStore:
    """In-memory access tokens keyed by user id."""

    def __init__(self) -> None:
        self._items: Dict[str, LinkedItem] = {}

    def set(self, user_id: str, access_token: str, item_id: str) -> None:
        self._items[user_id] = LinkedItem(access_token, item_id)

    def get(self, user_id: str) -> Optional[LinkedItem]:
        return self._items.get(user_id)

    def remove(self, user_id: str) -> None:
        self._items.pop(user_id, None)


@dataclass
class SyncResult:
    added: List[Dict[str, Any]] = field(default_factory=list)
    modified: List[Dict[str, Any]] = field(default_factory=list)
    removed: List[Dict[str, Any]] = field(default_factory=list)
    cursor: Optional[str] = None


class AggregatorClient:
    """Minimal Plaid REST client covering link, exchange and sync."""

    def __init__(
        self,
        client_id: str = PLAID_CLIENT_ID,
        secret: str = PLAID_SECRET,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        token_store: Optional[AccessTokenStore] = None,
        poll_delay: float = PLAID_POLL_DELAY,
        max_polls: int = PLAID_MAX_POLLS,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self.client_id = client_id
        self.secret = secret
        if base_url is None:
            try:
                base_url = get_plaid_base_url()
            except ValueError as exc:
                raise BankSyncError(str(exc)) from exc
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.token_store = token_store if token_store is not None else AccessTokenStore()
        self.poll_delay = poll_delay
        self.max_polls = max_polls
        self.timeout = timeout
        self._sleep = sleep

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"client_id": self.client_id, "secret": self.secret, **body}
        try:
            response = self.session.post(
                f"{self.base_url}{path}",
                json=payload,
                headers={"Content-Type": "application/json", "Plaid-Version": PLAID_VERSION},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise BankSyncError(f"Plaid request {path} failed: {exc}") from exc
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.ok:
            message = data.get("error_message") if isinstance(data, dict) else None
            raise BankSyncError(f"Plaid request {path} failed ({response.status_code}): {message or response.text}")
        return data

    def create_link_token(self, user_id: str = DEV_USER_ID) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "user": {"client_user_id": user_id},
            "client_name": PLAID_CLIENT_NAME,
            "products": ["auth"],
            "required_if_supported_products": ["transactions", "investments"],
            "country_codes": ["CA"],
            "language": "en",
        }
        if PLAID_REDIRECT_URI:
            body["redirect_uri"] = PLAID_REDIRECT_URI
        return self._post("/link/token/create", body)

    def exchange_public_token(self, public_token: str, user_id: str = DEV_USER_ID) -> str:
        """Store the access token for ``user_id`` and return the item id."""
        data = self._post("/item/public_token/exchange", {"public_token": public_token})
        try:
            access_token, item_id = data["access_token"], data["item_id"]
        except KeyError as exc:
            raise BankSyncError(f"Public token exchange response missing {exc}") from exc
        self.token_store.set(user_id, access_token, item_id)
        log.info("Access token set", extra={"user_id": user_id, "item_id": item_id})
        return item_id

    def sync_transactions(self, user_id: str = DEV_USER_ID, cursor: Optional[str] = None) -> SyncResult:
        """Pull every page of transaction updates since ``cursor``.

        An empty ``next_cursor`` means the item is not ready yet; the
        request is retried after ``poll_delay`` seconds, at most
        ``max_polls`` times.
        """
        item = self.token_store.get(user_id)
        if item is None:
            raise BankSyncError(f"Access token not found for user {user_id}")

        result = SyncResult(cursor=cursor)
        has_more = True
        polls = 0
        while has_more:
            body: Dict[str, Any] = {"access_token": item.access_token}
            if result.cursor:
                body["cursor"] = result.cursor
            data = self._post("/transactions/sync", body)

            next_cursor = data.get("next_cursor") or ""
            if not next_cursor:
                polls += 1
                if polls >= self.max_polls:
                    raise BankSyncError("Timed out waiting for Plaid transactions")
                self._sleep(self.poll_delay)
                continue

            result.added.extend(data.get("added", []))
            result.modified.extend(data.get("modified", []))
            result.removed.extend(data.get("removed", []))
            result.cursor = next_cursor
            has_more = bool(data.get("has_more"))
        log.info(
            "Synced transactions",
            extra={"user_id": user_id, "added": len(result.added), "modified": len(result.modified)},
        )
        return result


def detailed_category(txn: Dict[str, Any]) -> str:
    pfc = txn.get("personal_finance_category") or {}
    return pfc.get("detailed") or UNMAPPED_CATEGORY


def to_transaction_groups(added: Iterable[Dict[str, Any]], mapping: Dict[str, str]) -> List[TransactionGroup]:
    """One single-transaction group per aggregator transaction.

    Categories are set by name only; see :func:`attach_category_ids`.
    Amounts are stored unsigned since the category decides the direction.
    """
    groups: List[TransactionGroup] = []
    for txn in added:
        name = txn.get("name") or txn.get("merchant_name") or "Unknown"
        category_name = mapping.get(detailed_category(txn), UNMAPPED_CATEGORY)
        groups.append(TransactionGroup(
            name=name,
            description=name,
            source=SOURCE_NAME,
            date=date.fromisoformat(txn["date"]),
            transactions=[Transaction(
                name=name,
                description=name,
                amount=abs(float(txn.get("amount", 0.0))),
                category=Category(name=category_name),
            )],
        ))
    return groups


def attach_category_ids(groups: Iterable[TransactionGroup], categories: Iterable[Category]) -> List[TransactionGroup]:
    """Resolve category names to the user's category ids (case-insensitive).

    Transactions whose category name is unknown keep no id and will be
    rejected by the API, so callers should include an ``other`` category.
    """
    by_name = {c.name.lower(): c for c in categories}
    resolved: List[TransactionGroup] = []
    for group in groups:
        transactions = []
        for txn in group.transactions:
            match = by_name.get(txn.category.name.lower()) if txn.category else None
            if match is not None:
                txn = txn.model_copy(update={"category": match, "category_uuid": match.id})
            transactions.append(txn)
        resolved.append(group.model_copy(update={"transactions": transactions}))
    return resolved


def import_transactions(
    client: AggregatorClient,
    destination_categories: List[str],
    user_id: str = DEV_USER_ID,
    mapper: Optional[CategoryMapper] = None,
) -> List[TransactionGroup]:
    """Sync and convert new transactions, mapping categories onto ours.

    ``mapper`` is normally :meth:`AssistantClient.map_categories`; when it
    is absent or fails the static mapping is used instead.
    """
    result = client.sync_transactions(user_id)
    sources = sorted({detailed_category(txn) for txn in result.added})
    mapping: Dict[str, str] = {}
    if sources:
        if mapper is not None:
            try:
                mapping = mapper(sources, destination_categories)
            except AssistantError as exc:
                log.warning("Category mapping failed, using static mapping", extra={"error": str(exc)})
        if not mapping:
            mapping = fallback_mapping(sources, destination_categories)
    return to_transaction_groups(result.added, mapping)
