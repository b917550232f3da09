"""Query result cache with key-prefix invalidation.

Keys are tuples whose first element names the resource (``"categories"``,
``"budgets"``, ...).  Mutations invalidate every cached query of the
resources they touch so the next read goes back to the API.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Hashable, Tuple

from .logger import get_logger

log = get_logger(__name__)

CacheKey = Tuple[Hashable, ...]


def make_key(resource: str, params: Dict[str, Any] | None = None) -> CacheKey:
    """Build a hashable key from a resource name and query parameters."""
    items = tuple(sorted((k, _freeze(v)) for k, v in (params or {}).items() if v is not None))
    return (resource, items)


def _freeze(value: Any) -> Hashable:
    if isinstance(value, (list, tuple, set)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, dict):
        return tuple(sorted((k, _freeze(v)) for k, v in value.items()))
    return value


class QueryCache:
    def __init__(self) -> None:
        self._entries: Dict[CacheKey, Any] = {}

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get_or_fetch(self, key: CacheKey, fetch: Callable[[], Any]) -> Any:
        """Return the cached value for ``key`` or run ``fetch`` and cache it.

        Exceptions from ``fetch`` propagate and nothing is cached.
        """
        if key in self._entries:
            return self._entries[key]
        value = fetch()
        self._entries[key] = value
        return value

    def set(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = value

    def invalidate(self, *resources: str) -> int:
        """Drop every entry whose key starts with one of ``resources``."""
        stale = [key for key in self._entries if key and key[0] in resources]
        for key in stale:
            del self._entries[key]
        if stale:
            log.info("Invalidated cached queries", extra={"resources": ",".join(resources), "count": len(stale)})
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
