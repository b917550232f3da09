"""Configuration management for the budget dashboard.

This module centralizes all configuration values including the REST API
location, credential locations for the external integrations, and
environment variable overrides.
"""

from __future__ import annotations

import os
from pathlib import Path

# Base project root - assumes this file is in budget_dashboard/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directory (token store, logs)
DATA_DIR = Path(os.getenv("BUDGET_DATA_DIR", _PROJECT_ROOT / "data"))

# Budget REST API
API_URL = os.getenv("BUDGET_API_URL", "http://localhost:8000/api/")
JWT_OBTAIN_PAIR_ENDPOINT = "auth/login/"
JWT_REFRESH_ENDPOINT = "auth/refresh/"
HTTP_TIMEOUT = float(os.getenv("BUDGET_HTTP_TIMEOUT", "10"))

TOKEN_PATH = Path(
    os.getenv("BUDGET_TOKEN_PATH", DATA_DIR / "jwt.json")
).resolve()

# Logging
LOG_LEVEL = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()

# Charts
PROJECTION_MONTHS = int(os.getenv("BUDGET_PROJECTION_MONTHS", "6"))

# Bank aggregator (Plaid)
PLAID_ENVIRONMENTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}
PLAID_ENV = os.getenv("PLAID_ENV", "sandbox")
PLAID_CLIENT_ID = os.getenv("PLAID_CLIENT_ID", "")
PLAID_SECRET = os.getenv("PLAID_SECRET", "")
PLAID_REDIRECT_URI = os.getenv("PLAID_REDIRECT_URI")
PLAID_POLL_DELAY = float(os.getenv("PLAID_POLL_DELAY", "2"))
PLAID_MAX_POLLS = int(os.getenv("PLAID_MAX_POLLS", "30"))
PLAID_CLIENT_NAME = "Bean Budget"
DEV_USER_ID = "defaultUserId"

# Generative AI (Google AI Studio)
GOOGLE_AI_STUDIO_KEY = os.getenv("GOOGLE_AI_STUDIO_KEY", "")
GOOGLE_AI_MODEL = os.getenv("GOOGLE_AI_MODEL", "gemini-2.0-flash")
GOOGLE_AI_URL = os.getenv(
    "GOOGLE_AI_URL", "https://generativelanguage.googleapis.com/v1beta/"
)


def get_plaid_base_url(env: str | None = None) -> str:
    """Resolve the aggregator host for ``env`` (defaults to ``PLAID_ENV``)."""
    key = (env or PLAID_ENV).lower()
    try:
        return PLAID_ENVIRONMENTS[key]
    except KeyError:
        raise ValueError(f"Unknown Plaid environment '{key}'") from None
