"""Persistent storage for the access/refresh token pair."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .config import TOKEN_PATH
from .models import TokenPair


class TokenStore:
    """Keeps the current token pair in memory and mirrors it to a JSON file.

    A missing or unreadable file behaves as "logged out".
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or TOKEN_PATH
        self._tokens: Optional[TokenPair] = self._read()

    def _read(self) -> Optional[TokenPair]:
        if not self.path.exists():
            return None
        try:
            with self.path.open('r', encoding='utf-8') as handle:
                data = json.load(handle)
        except (json.JSONDecodeError, OSError):
            return None
        if not isinstance(data, dict):
            return None
        try:
            return TokenPair.model_validate(data)
        except ValidationError:
            return None

    @property
    def tokens(self) -> Optional[TokenPair]:
        return self._tokens

    def save(self, tokens: Optional[TokenPair]) -> None:
        """Store ``tokens``; ``None`` clears the store."""
        if tokens is None:
            self.clear()
            return
        self._tokens = tokens
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open('w', encoding='utf-8') as handle:
            json.dump(tokens.model_dump(), handle, indent=2, sort_keys=True)

    def clear(self) -> None:
        self._tokens = None
        self.path.unlink(missing_ok=True)


class MemoryTokenStore(TokenStore):
    """Session-only store (nothing written to disk)."""

    def __init__(self, tokens: Optional[TokenPair] = None) -> None:
        self.path = Path()
        self._tokens = tokens

    def save(self, tokens: Optional[TokenPair]) -> None:
        self._tokens = tokens

    def clear(self) -> None:
        self._tokens = None
