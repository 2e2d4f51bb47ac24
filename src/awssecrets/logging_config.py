"""Central logging configuration for the secrets package."""
from __future__ import annotations

import json
import logging
import os
import sys
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

_CONFIG_LOCK = threading.Lock()
_CONFIGURED = False
_CORRELATION_ID = os.getenv("AWSSECRETS_CORR_ID") or str(uuid.uuid4())

REDACTED = "***REDACTED***"

# Field names (lower-cased) whose values must never reach a log sink.
_SENSITIVE_FIELDS = (
    "secretstring",
    "secretbinary",
    "secret_value",
    "payload",
    "password",
    "token",
    "authorization",
)

# LogRecord attributes that are not user supplied ``extra`` fields.
_RESERVED_ATTRS = frozenset(
    {
        "args",
        "msg",
        "message",
        "name",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "correlation_id",
    }
)


def get_correlation_id() -> str:
    """Return the process-scoped correlation identifier."""

    return _CORRELATION_ID


def _is_sensitive(field: str) -> bool:
    lowered = field.lower()
    return any(token in lowered for token in _SENSITIVE_FIELDS)


def redact(value: Any) -> Any:
    """Return ``value`` with every sensitive mapping entry masked."""

    if isinstance(value, Mapping):
        return {
            key: REDACTED if isinstance(key, str) and _is_sensitive(key) else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact(item) for item in value)
    return value


class _CorrelationIdFilter(logging.Filter):
    """Inject the correlation identifier into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        if not getattr(record, "correlation_id", None):
            record.correlation_id = _CORRELATION_ID
        return True


class _RedactionFilter(logging.Filter):
    """Mask secret payloads passed through ``extra`` or as mapping arguments."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        for key in list(record.__dict__):
            if key in _RESERVED_ATTRS:
                continue
            if _is_sensitive(key):
                record.__dict__[key] = REDACTED
            else:
                record.__dict__[key] = redact(record.__dict__[key])

        if isinstance(record.args, Mapping):
            record.args = redact(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(redact(value) for value in record.args)
        return True


class _JsonFormatter(logging.Formatter):
    """Formatter that outputs one JSON document per record."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", _CORRELATION_ID),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class _StructuredFormatter(logging.Formatter):
    """Plain-text formatter with UTC timestamps and the correlation id."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)sZ %(levelname)s %(name)s [corr=%(correlation_id)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: D401, N802
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.strftime(datefmt or self.datefmt or "%Y-%m-%dT%H:%M:%S")


def configure_logging(level_override: str | None = None) -> None:
    """Install the package log handler once and apply the requested level."""

    global _CONFIGURED

    with _CONFIG_LOCK:
        root = logging.getLogger()
        first_configuration = not _CONFIGURED
        if first_configuration:
            handler = logging.StreamHandler(stream=sys.stdout)
            use_json = os.getenv("AWSSECRETS_LOG_JSON", "false").lower() == "true"
            handler.addFilter(_CorrelationIdFilter())
            handler.addFilter(_RedactionFilter())
            handler.setFormatter(_JsonFormatter() if use_json else _StructuredFormatter())
            root.handlers = [handler]
            _CONFIGURED = True

        level: int | None = None
        if level_override:
            level = getattr(logging, level_override.upper(), logging.INFO)
        elif first_configuration:
            env_level = os.getenv("AWSSECRETS_LOG_LEVEL", "INFO").upper()
            level = getattr(logging, env_level, logging.INFO)

        if level is not None:
            root.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Return a logger, configuring the package handler on first use."""

    configure_logging()
    return logging.getLogger(name)


__all__ = ["get_logger", "configure_logging", "get_correlation_id", "redact", "REDACTED"]
