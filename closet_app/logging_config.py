"""Structured JSON logging for the StyleSphere closet app.

Every user action (an upload, a save, a purchase) runs inside an
``operation_context`` which pins a correlation id and the action name, so the
log lines for one tap can be grouped even when the work hops across the
closet mirror, the recommendation engine and the upload coordinator.

Closet owners, marketplace sellers and their photos are personal data. Owner
ids, display names and profile pictures are masked by key; hosted image URLs
and inline ``data:`` images are masked by shape wherever they appear.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import os
import re
import uuid
from typing import Any, Dict, Iterator, Optional

CORRELATION_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("correlation_id", default=None)
USER_ACTION: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("user_action", default=None)

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "taskName"}
_SENSITIVE_KEYS = frozenset(
    {
        "user_id",
        "owner_id",
        "email",
        "display_name",
        "image_url",
        "data_url",
        "profile_picture",
        "auth_token",
        "upload_preset",
    }
)
_EMAIL_PATTERN = re.compile(r"[\w.\-]+@[\w.\-]+")
MASK = "[redacted]"


class JsonFormatter(logging.Formatter):
    """One JSON object per line: event, correlation id, user action and extras."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        message = super().format(record)
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
            "event": getattr(record, "event", message),
            "correlation_id": getattr(record, "correlation_id", None) or CORRELATION_ID.get(),
            "user_action": USER_ACTION.get(),
        }
        for key, value in vars(record).items():
            if key in _RECORD_ATTRIBUTES or key in payload:
                continue
            payload[key] = MASK if key in _SENSITIVE_KEYS else redact_for_log(value)
        return json.dumps(payload)


def configure_logging(level: int | str | None = None) -> None:
    """Send JSON lines to stderr at ``level`` or ``LOG_LEVEL`` (default INFO)."""

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logging.root.handlers.clear()
    logging.basicConfig(level=level or os.getenv("LOG_LEVEL", "INFO"), handlers=[handler])


def _mask_text(value: str) -> str:
    if _EMAIL_PATTERN.search(value):
        return _EMAIL_PATTERN.sub("[redacted-email]", value)
    lowered = value.lower()
    if lowered.startswith("data:"):
        return "[redacted-data-url]"
    if lowered.startswith(("http://", "https://")):
        return "[redacted-url]"
    return value


def redact_for_log(payload: Any) -> Any:
    """Return a log-safe copy of ``payload``.

    Sensitive keys are masked at any depth, strings that look like an email, a
    hosted photo or an inline image are masked, numbers and booleans pass
    through, and any other object is logged by its ``str``.
    """

    if payload is None or isinstance(payload, (bool, int, float)):
        return payload
    if isinstance(payload, str):
        return _mask_text(payload)
    if isinstance(payload, dict):
        return {key: MASK if key in _SENSITIVE_KEYS else redact_for_log(value) for key, value in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [redact_for_log(item) for item in payload]
    return str(payload)


def get_logger(name: str) -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


def ensure_correlation_id(correlation_id: str | None = None) -> str:
    """Adopt ``correlation_id`` if given, else keep the current one or mint one."""

    if correlation_id:
        CORRELATION_ID.set(correlation_id)
        return correlation_id
    current = CORRELATION_ID.get()
    if current:
        return current
    minted = uuid.uuid4().hex
    CORRELATION_ID.set(minted)
    return minted


@contextlib.contextmanager
def correlation_context(correlation_id: str | None = None) -> Iterator[str]:
    token = CORRELATION_ID.set(correlation_id or uuid.uuid4().hex)
    try:
        yield CORRELATION_ID.get()
    finally:
        CORRELATION_ID.reset(token)


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Log ``event`` with scrubbed ``fields`` attached as record extras."""

    correlation_id = ensure_correlation_id(fields.pop("correlation_id", None))
    exc_info = fields.pop("exc_info", None)
    logger.log(
        level,
        event,
        exc_info=exc_info,
        extra={"event": event, "correlation_id": correlation_id, **redact_for_log(fields)},
    )


@contextlib.contextmanager
def operation_context(name: str, correlation_id: str | None = None) -> Iterator[str]:
    """Tag every log line inside the block with one correlation id and ``name``."""

    action_token = USER_ACTION.set(name)
    try:
        with correlation_context(correlation_id) as scoped_id:
            yield scoped_id
    finally:
        USER_ACTION.reset(action_token)


__all__ = [
    "MASK",
    "JsonFormatter",
    "configure_logging",
    "correlation_context",
    "ensure_correlation_id",
    "get_logger",
    "log_event",
    "operation_context",
    "redact_for_log",
]
