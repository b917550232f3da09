"""CRUD services for the budget REST resources.

One service per entity type.  Reads go through a shared
:class:`~budget_dashboard.query_cache.QueryCache`; every successful
mutation invalidates the resources whose responses embed the changed
entity (categories are nested in budgets and transaction groups, and
transaction changes alter budget usage).
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .api import ApiClient
from .budgets import month_bounds
from .errors import ApiError, AuthenticationError, ResourceError
from .logger import get_logger
from .models import Budget, Category, Page, TransactionGroup, User, parse_list
from .query_cache import QueryCache, make_key

log = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)
R = TypeVar("R")

ListResult = Union[List[Any], Page]


def encode_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """Render query parameters the way the API expects them.

    Booleans become ``"true"``/``"false"``, dates ISO strings; ``None``
    values are dropped and lists are sent as repeated keys.
    """
    encoded: Dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        elif isinstance(value, date):
            encoded[key] = value.isoformat()
        elif isinstance(value, (list, tuple)):
            encoded[key] = [encode_params({key: v})[key] for v in value if v is not None]
        else:
            encoded[key] = value
    return encoded


class ResourceService(Generic[M]):
    """List/get/create/update/delete for one REST collection."""

    resource: str = ""
    endpoint: str = ""
    label: str = ""
    model: Type[M]
    update_method: str = "PUT"
    invalidates: Tuple[str, ...] = ()

    def __init__(self, client: ApiClient, cache: Optional[QueryCache] = None) -> None:
        self.client = client
        self.cache = cache if cache is not None else QueryCache()
        self.last_mutation_error: Optional[ResourceError] = None

    # -- Queries ------------------------------------------------------------

    def _query(self, what: str, call: Callable[[], R]) -> R:
        try:
            return call()
        except AuthenticationError:
            raise
        except (ApiError, ValidationError) as exc:
            log.error("Query failed", extra={"resource": self.resource, "error": str(exc)})
            raise ResourceError(f"Error fetching {what}: {exc}") from exc

    def list(self, params: Optional[Dict[str, Any]] = None, no_page: bool = True) -> ListResult:
        """Fetch the collection.

        With ``no_page`` the API returns every record as a plain list;
        otherwise a :class:`~budget_dashboard.models.Page` is returned and
        ``page``/``page_size`` select the slice.
        """
        query = {k: v for k, v in (params or {}).items() if k != "no_page"}
        if no_page:
            query["no_page"] = True

        def fetch() -> ListResult:
            data = self.client.request_json(self.endpoint, "GET", params=encode_params(query))
            return parse_list(self.model, data if data is not None else [])

        return self.cache.get_or_fetch(
            make_key(self.resource, query),
            lambda: self._query(self.label, fetch),
        )

    def get(self, item_id: str) -> M:
        def fetch() -> M:
            data = self.client.request_json(f"{self.endpoint}{item_id}/", "GET")
            return self.model.model_validate(data)

        return self.cache.get_or_fetch(
            (self.resource, item_id),
            lambda: self._query(f"{self.label}/{item_id}", fetch),
        )

    # -- Mutations ----------------------------------------------------------

    def _mutate(self, action: str, call: Callable[[], R]) -> R:
        try:
            result = call()
        except AuthenticationError:
            raise
        except (ApiError, ValidationError) as exc:
            error = ResourceError(f"An error occurred during the {self.label} {action}: {exc}")
            self.last_mutation_error = error
            log.error("Mutation failed", extra={"resource": self.resource, "action": action, "error": str(exc)})
            raise error from exc
        self.last_mutation_error = None
        self.cache.invalidate(*self.invalidates)
        return result

    def create(self, records: Union[M, Sequence[M]]) -> Union[M, List[M]]:
        """POST one record or a list of records (bulk create)."""
        if isinstance(records, BaseModel):
            payload: Any = records.to_payload()
        else:
            payload = [record.to_payload() for record in records]

        def call() -> Union[M, List[M]]:
            data = self.client.request_json(self.endpoint, "POST", payload)
            if isinstance(data, list):
                return [self.model.model_validate(item) for item in data]
            return self.model.model_validate(data)

        return self._mutate("addition", call)

    def update(self, record: M) -> M:
        record_id = getattr(record, "id", None)
        if not record_id:
            raise ResourceError(f"Cannot edit {self.label} without an id")

        def call() -> M:
            data = self.client.request_json(
                f"{self.endpoint}{record_id}/", self.update_method, record.to_payload()
            )
            return self.model.model_validate(data)

        return self._mutate("edit", call)

    def delete(self, item_id: str) -> None:
        self._mutate(
            "deletion",
            lambda: self.client.request_json(f"{self.endpoint}{item_id}/", "DELETE"),
        )


class CategoryService(ResourceService[Category]):
    resource = "categories"
    endpoint = "categories/"
    label = "category"
    model = Category
    update_method = "PATCH"
    invalidates = ("transaction-groups", "categories", "budgets", "currentBudget")


class BudgetService(ResourceService[Budget]):
    resource = "budgets"
    endpoint = "budgets/"
    label = "budget"
    model = Budget
    invalidates = ("budgets", "currentBudget")

    def current(self, today: Optional[date] = None) -> Optional[Budget]:
        """The budget starting in the current month, if any."""
        start, end = month_bounds(today or date.today())
        params = {"start_date_after": start, "start_date_before": end}

        def fetch() -> Optional[Budget]:
            data = self.client.request_json(self.endpoint, "GET", params=encode_params(params))
            page = parse_list(Budget, data if data is not None else [])
            results = page if isinstance(page, list) else page.results
            return results[0] if results else None

        return self.cache.get_or_fetch(
            ("currentBudget", start.isoformat()),
            lambda: self._query("current budget", fetch),
        )


class TransactionGroupService(ResourceService[TransactionGroup]):
    resource = "transaction-groups"
    endpoint = "transaction-groups/"
    label = "transaction group"
    model = TransactionGroup
    invalidates = ("transaction-groups", "budgets", "currentBudget")

    def list_between(
        self,
        date_after: Optional[date] = None,
        date_before: Optional[date] = None,
        category_uuid: Optional[str] = None,
        category_type_is_income: Optional[bool] = None,
        search: Optional[str] = None,
        ordering: Optional[str] = "-date",
    ) -> List[TransactionGroup]:
        """Unpaginated groups matching the usual filters."""
        return self.list({
            "date_after": date_after,
            "date_before": date_before,
            "category_uuid": category_uuid,
            "category_type_is_income": category_type_is_income,
            "search": search,
            "ordering": ordering,
        })


class UserService:
    """Profile of the user the access token belongs to."""

    resource = "users"

    def __init__(self, client: ApiClient, cache: Optional[QueryCache] = None) -> None:
        self.client = client
        self.cache = cache if cache is not None else QueryCache()
        self.last_mutation_error: Optional[ResourceError] = None

    def _user_id(self) -> str:
        user_id = self.client.current_user_id()
        if user_id is None:
            raise AuthenticationError("Not logged in.")
        return user_id

    def get(self) -> User:
        user_id = self._user_id()

        def fetch() -> User:
            try:
                return User.model_validate(self.client.request_json(f"users/{user_id}/", "GET"))
            except AuthenticationError:
                raise
            except (ApiError, ValidationError) as exc:
                raise ResourceError(f"Error fetching user: {exc}") from exc

        return self.cache.get_or_fetch((self.resource, user_id), fetch)

    def update(self, user: User) -> User:
        user_id = self._user_id()
        try:
            data = self.client.request_json(f"users/{user_id}/", "PUT", user.to_payload())
            updated = User.model_validate(data)
        except AuthenticationError:
            raise
        except (ApiError, ValidationError) as exc:
            self.last_mutation_error = ResourceError(f"Error editing user: {exc}")
            raise self.last_mutation_error from exc
        self.last_mutation_error = None
        self.cache.set((self.resource, user_id), updated)
        return updated

    def change_password(self, old_password: str, new_password: str, confirm_new_password: Optional[str] = None) -> str:
        """Returns the server's confirmation message."""
        payload = {
            "old_password": old_password,
            "new_password": new_password,
            "confirm_new_password": confirm_new_password if confirm_new_password is not None else new_password,
        }
        try:
            data = self.client.request_json("users/password/update/", "PATCH", payload)
        except AuthenticationError:
            raise
        except ApiError as exc:
            detail = exc.body.get("detail") if isinstance(exc.body, dict) else None
            raise ResourceError(detail or "Failed to change password.") from exc
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return "Password changed successfully."
