"""JSON log formatting for the budget dashboard.

Every module obtains its logger through :func:`get_logger` so that output
is consistently structured regardless of whether the code runs inside
Streamlit, a script, or the test suite.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Optional, TextIO

from .config import LOG_LEVEL

ROOT_LOGGER_NAME = "budget_dashboard"


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects.

    Keys: ``timestamp`` (ISO-8601, UTC), ``level``, ``logger_name``,
    ``message`` and, when supplied through ``extra=``, an ``extra`` mapping.
    """

    _STANDARD_ATTRS = frozenset(
        logging.LogRecord(
            name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
        ).__dict__.keys()
    ) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }
        extra_fields = {
            key: str(value)
            for key, value in record.__dict__.items()
            if key not in self._STANDARD_ATTRS
        }
        if extra_fields:
            entry["extra"] = extra_fields
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(level: Optional[str] = None, stream: Optional[TextIO] = None) -> logging.Logger:
    """Attach a JSON stream handler to the package root logger once."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level or LOG_LEVEL)
    if not root.handlers:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a child of the package logger, configuring the root on first use."""
    configure_logging()
    short = name.rsplit(".", 1)[-1]
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{short}")
