"""Exception types raised by the budget dashboard."""

from __future__ import annotations

from typing import Any, Optional


class BudgetDashboardError(Exception):
    """Base class for all errors raised by this package."""


class ApiError(BudgetDashboardError):
    """Non-success response from the budget REST API."""

    def __init__(self, status: int, body: Any = None, message: Optional[str] = None) -> None:
        self.status = status
        self.body = body
        super().__init__(message or f"HTTP error! Status: {status} - {body}")


class AuthenticationError(ApiError):
    """Credentials were rejected and the stored tokens have been cleared."""

    def __init__(self, message: str = "Authentication failed, please log in again.", body: Any = None) -> None:
        super().__init__(401, body, message)


class ResourceError(BudgetDashboardError):
    """A query or mutation against one of the REST resources failed."""


class BankSyncError(BudgetDashboardError):
    """The bank aggregator request failed or no account is linked."""


class AssistantError(BudgetDashboardError):
    """The generative AI request failed or returned an unusable reply."""
