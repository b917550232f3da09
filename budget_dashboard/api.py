"""HTTP client for the budget REST API.

Requests carry the stored access token as a bearer credential.  When the
API answers 401 the client trades the refresh token for a new access token
once and resends the request; if that is impossible the stored tokens are
cleared so the UI can send the user back to the login form.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests
from jose import JWTError, jwt
from pydantic import ValidationError

from .config import API_URL, HTTP_TIMEOUT, JWT_OBTAIN_PAIR_ENDPOINT, JWT_REFRESH_ENDPOINT
from .errors import ApiError, AuthenticationError
from .logger import get_logger
from .models import TokenPair
from .token_store import MemoryTokenStore, TokenStore

log = get_logger(__name__)


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.reason or response.text


class ApiClient:
    """Thin wrapper around :class:`requests.Session` with token rotation.

    Tokens live in memory unless a file-backed :class:`TokenStore` is passed.
    """

    def __init__(
        self,
        base_url: str = API_URL,
        token_store: Optional[TokenStore] = None,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.token_store = token_store if token_store is not None else MemoryTokenStore()
        self.session = session or requests.Session()
        self.timeout = timeout

    # -- Tokens -------------------------------------------------------------

    @property
    def tokens(self) -> Optional[TokenPair]:
        return self.token_store.tokens

    @property
    def is_authenticated(self) -> bool:
        return self.tokens is not None

    def current_user_id(self) -> Optional[str]:
        """``user_id`` claim of the access token (signature not verified)."""
        tokens = self.tokens
        if tokens is None:
            return None
        try:
            claims = jwt.get_unverified_claims(tokens.access)
        except JWTError:
            return None
        user_id = claims.get("user_id")
        return str(user_id) if user_id is not None else None

    def login(self, username: str, password: str) -> TokenPair:
        """Obtain a token pair for ``username`` and store it.

        Raises :class:`AuthenticationError` for rejected credentials and
        :class:`ApiError` for transport failures or an unusable reply.
        """
        try:
            response = self._send(
                JWT_OBTAIN_PAIR_ENDPOINT, "POST", {"username": username, "password": password}
            )
        except requests.RequestException as exc:
            raise ApiError(0, None, f"Network error: {exc}") from exc
        if response.status_code == 401:
            raise AuthenticationError("Invalid username or password.", _response_body(response))
        try:
            tokens = TokenPair.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ApiError(response.status_code, response.text, "Login reply did not contain a token pair") from exc
        self.token_store.save(tokens)
        log.info("Logged in", extra={"username": username})
        return tokens

    def logout(self) -> None:
        self.token_store.clear()

    # -- Requests -----------------------------------------------------------

    def _send(
        self,
        endpoint: str,
        method: str,
        data: Any = None,
        token: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        """Single request; raises :class:`ApiError` for any failure except 401."""
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        url = self.base_url + endpoint.lstrip("/")
        log.debug("API request", extra={"method": method, "endpoint": endpoint})
        response = self.session.request(
            method,
            url,
            json=data,
            params=params,
            headers=headers,
            timeout=self.timeout,
        )
        if not response.ok and response.status_code != 401:
            raise ApiError(response.status_code, _response_body(response))
        return response

    def _refresh(self) -> Optional[str]:
        """Exchange the refresh token for a new access token, or clear the store."""
        tokens = self.tokens
        refresh_token = tokens.refresh if tokens is not None else None
        try:
            response = self._send(JWT_REFRESH_ENDPOINT, "POST", {"refresh": refresh_token})
            access = response.json().get("access") if response.ok else None
        except (ApiError, requests.RequestException, ValueError, AttributeError) as exc:
            log.warning("Token refresh failed", extra={"error": str(exc)})
            access = None
        if not access:
            self.token_store.clear()
            return None
        self.token_store.save(TokenPair(access=access, refresh=refresh_token))
        log.info("Access token refreshed")
        return access

    def request(
        self,
        endpoint: str,
        method: str = "GET",
        data: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        """Authenticated request with one refresh-and-resend on 401.

        Returns the final response, which is still a 401 when the tokens
        could not be refreshed (the store is cleared in that case).
        """
        tokens = self.tokens
        access = tokens.access if tokens is not None else None
        response = self._send(endpoint, method, data, access, params)
        if response.status_code != 401:
            return response
        if access is None:
            self.token_store.clear()
            return response

        new_access = self._refresh()
        if new_access is None:
            return response
        return self._send(endpoint, method, data, new_access, params)

    def request_json(
        self,
        endpoint: str,
        method: str = "GET",
        data: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Like :meth:`request` but decodes the body.

        Raises :class:`AuthenticationError` when the request ends in a 401
        and :class:`ApiError` for transport failures.
        """
        try:
            response = self.request(endpoint, method, data, params)
        except requests.RequestException as exc:
            raise ApiError(0, None, f"Network error: {exc}") from exc
        if response.status_code == 401:
            raise AuthenticationError(body=_response_body(response))
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(response.status_code, response.text, "Response was not valid JSON") from exc
