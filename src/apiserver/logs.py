"""
=============================================================================
LOGGING SETUP
=============================================================================

stdlib logging, configured once at startup.

Every record carries a `request_id` attribute. Inside a request it is the
id assigned by RequestIDMiddleware; elsewhere it is "-". The id lives in a
ContextVar, so each connection thread (and the timeout worker thread,
which copies the context) sees its own value.

    2026-01-15 12:30:45 [INFO] apiserver.access [host/Ab3xYz91Qp-000007]: ...

With log_format="json" each record is one JSON object per line:

    {"time": "...", "level": "INFO", "logger": "apiserver.access",
     "message": "...", "request_id": "host/Ab3xYz91Qp-000007"}

Extra fields passed via `extra={...}` are included in JSON output.

=============================================================================
"""

import contextvars
import json
import logging
from typing import Optional


_request_id: contextvars.ContextVar = contextvars.ContextVar("request_id", default="-")

# Attributes every LogRecord has; anything else came from `extra=`.
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "request_id",
}

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(request_id)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def bind_request_id(request_id: str) -> contextvars.Token:
    """Make `request_id` current for this context. Returns a reset token."""
    return _request_id.set(request_id)


def reset_request_id(token: contextvars.Token) -> None:
    _request_id.reset(token)


def current_request_id() -> str:
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    """Stamps the current request id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = _request_id.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON document per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", fmt: str = "text",
                      stream: Optional[object] = None) -> logging.Handler:
    """
    Install a single stream handler on the root logger.

    Replaces handlers installed by an earlier call so repeated startup (tests)
    does not duplicate output.
    """
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level, handlers=[handler], force=True)
    logging.getLogger("apiserver").setLevel(numeric_level)
    return handler
