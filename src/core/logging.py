"""Logging helpers: request correlation ids and a JSON formatter.

The request id is stored in a context variable by ``RequestIdMiddleware`` and
stamped on every record by ``RequestIdFilter``, so workflow and permission
logs emitted deep inside a request can be tied back to it.
"""

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys() | {"message", "request_id"}
)


def get_request_id() -> Optional[str]:
    """Return the request id bound to the current context, if any."""
    return request_id_var.get()


class RequestIdFilter(logging.Filter):
    """Attach ``request_id`` to every record ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"  # type: ignore[attr-defined]
        return True


class JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line for log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id and request_id != "-":
            payload["request_id"] = request_id
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # Anything passed through ``extra=`` ends up as a plain record attribute.
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            payload[key] = value if isinstance(value, (str, int, float, bool, type(None))) else str(value)

        return json.dumps(payload, default=str)


__all__ = ["JsonFormatter", "RequestIdFilter", "get_request_id", "request_id_var"]
