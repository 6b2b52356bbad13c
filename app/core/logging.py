"""Structured logging for Docwise API.

Every line is rendered as ``key=value`` pairs. Context such as ``user_id`` or
``document_id`` is passed through :func:`log_with_context` and lands as its
own field. Fields that look like credentials (OAuth tokens, Stripe
signatures, API keys) are masked before they reach the handler.
"""

import logging
import sys
from typing import Any

# Promoted to top-level fields, in this order, ahead of free-form extras
CONTEXT_KEYS = ("user_id", "document_id", "request_id")

SENSITIVE_MARKERS = ("token", "secret", "signature", "api_key", "password", "authorization")

REDACTED = "***"


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_MARKERS)


def _render(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() for ch in text) or "=" in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


class StructuredFormatter(logging.Formatter):
    """Renders records as a single ``key=value`` line."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for key in CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                fields[key] = value

        for key, value in getattr(record, "extra_data", {}).items():
            fields[key] = REDACTED if _is_sensitive(key) else value

        if record.exc_info:
            # Keep tracebacks on one line so log shippers don't split them
            fields["exc"] = self.formatException(record.exc_info).replace("\n", " | ")

        return " ".join(f"{key}={_render(value)}" for key, value in fields.items())


def _level_for_env() -> int:
    try:
        from app.core.config import get_settings

        return logging.DEBUG if get_settings().DOCWISE_ENV == "dev" else logging.INFO
    except Exception:
        # Settings can be incomplete during import in scripts
        return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """Return a logger that writes structured lines to stdout.

    The handler is attached once per logger name.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    logger.setLevel(_level_for_env())
    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """Log ``msg`` with context fields.

    ``user_id``, ``document_id`` and ``request_id`` become top-level fields;
    anything else is appended after them.
    """
    extra: dict[str, Any] = {}
    for key in CONTEXT_KEYS:
        value = kwargs.pop(key, None)
        if value is not None:
            extra[key] = str(value)
    extra["extra_data"] = kwargs
    logger.log(level, msg, extra=extra)
