"""Structured logging configuration for the SSH server.

Supports:
- JSON-formatted log output for machine parsing
- Correlation fields (session_id, user) for per-session tracing
- Configurable log levels via environment variables
- Context variables so each connection thread carries its own fields

Usage:
    from gitgood.logging_config import setup_logging, LogContext

    setup_logging()
    logger = logging.getLogger(__name__)

    with LogContext(session_id=generate_session_id(), user="alice"):
        logger.info("Session started")
    # Output: 2024-01-15T10:30:00.123456Z INFO [gitgood.server] [3f2c.../alice] Session started
"""

import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Optional

# Context variables for correlation fields (thread-safe)
_session_id: ContextVar[Optional[str]] = ContextVar("session_id", default=None)
_user: ContextVar[Optional[str]] = ContextVar("user", default=None)
_extra_context: ContextVar[dict] = ContextVar("extra_context", default={})

# Attributes every LogRecord carries; anything else came from ``extra=``
_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
})


def _env_bool(key: str, default: bool) -> bool:
    return os.environ.get(key, str(default)).lower() == "true"


def set_context(
    session_id: Optional[str] = None,
    user: Optional[str] = None,
    **extra: Any,
) -> None:
    """Set correlation context for the current thread.

    Args:
        session_id: Unique identifier of the SSH connection.
        user: Principal name presented by the client.
        **extra: Additional context fields to include in logs.
    """
    if session_id is not None:
        _session_id.set(session_id)
    if user is not None:
        _user.set(user)
    if extra:
        current = _extra_context.get()
        _extra_context.set({**current, **extra})


def get_context() -> dict[str, Any]:
    """Get the current correlation context.

    Returns:
        Dictionary with session_id, user, and any extra context.
    """
    context = {}
    session_id = _session_id.get()
    if session_id:
        context["session_id"] = session_id
    user = _user.get()
    if user:
        context["user"] = user
    extra = _extra_context.get()
    if extra:
        context.update(extra)
    return context


def clear_context() -> None:
    """Clear all correlation context for the current thread."""
    _session_id.set(None)
    _user.set(None)
    _extra_context.set({})


def _timestamp(record: logging.LogRecord) -> str:
    return time.strftime(
        "%Y-%m-%dT%H:%M:%S",
        time.gmtime(record.created),
    ) + f".{int(record.msecs * 1000):06d}Z"


class JSONFormatter(logging.Formatter):
    """JSON log formatter with correlation field support.

    Produces logs in the format:
    {
        "timestamp": "2024-01-15T10:30:00.123456Z",
        "level": "INFO",
        "logger": "gitgood.dispatcher",
        "message": "Dispatching git service",
        "session_id": "3f2c...",
        "user": "alice",
        "location": "dispatcher.py:42:dispatch",
        "command": "git-upload-pack"
    }
    """

    def __init__(
        self,
        include_timestamp: bool = True,
        include_location: bool = True,
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {}

        if self.include_timestamp:
            log_dict["timestamp"] = _timestamp(record)

        log_dict["level"] = record.levelname
        log_dict["logger"] = record.name
        log_dict["message"] = record.getMessage()
        log_dict.update(get_context())

        if self.include_location:
            log_dict["location"] = f"{record.filename}:{record.lineno}:{record.funcName}"

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                log_dict[key] = value

        return json.dumps(log_dict, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter with correlation field support.

    Produces logs in the format:
    2024-01-15T10:30:00.123456Z INFO [gitgood.server] [3f2c.../alice] Session started
    """

    def __init__(
        self,
        include_timestamp: bool = True,
        include_location: bool = False,
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        parts = []

        if self.include_timestamp:
            parts.append(_timestamp(record))

        parts.append(record.levelname)
        parts.append(f"[{record.name}]")

        context = get_context()
        ctx_parts = [context[key] for key in ("session_id", "user") if key in context]
        if ctx_parts:
            parts.append(f"[{'/'.join(ctx_parts)}]")

        parts.append(record.getMessage())

        if self.include_location:
            parts.append(f"({record.filename}:{record.lineno})")

        result = " ".join(parts)

        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)

        return result


def setup_logging(
    level: Optional[str] = None,
    format_type: Optional[str] = None,
    include_timestamp: Optional[bool] = None,
    include_location: Optional[bool] = None,
) -> None:
    """Configure the root logger with the specified settings.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to LOG_LEVEL environment variable or INFO.
        format_type: Log format ("json" or "text").
                     Defaults to LOG_FORMAT environment variable or "text".
        include_timestamp: Include timestamp in logs.
                          Defaults to LOG_INCLUDE_TIMESTAMP env var or True.
        include_location: Include source location in logs.
                         Defaults to LOG_INCLUDE_LOCATION env var or False.
    """
    level = level or os.environ.get("LOG_LEVEL", "INFO").upper()
    format_type = format_type or os.environ.get("LOG_FORMAT", "text")
    if include_timestamp is None:
        include_timestamp = _env_bool("LOG_INCLUDE_TIMESTAMP", True)
    if include_location is None:
        include_location = _env_bool("LOG_INCLUDE_LOCATION", False)

    formatter: logging.Formatter
    if format_type.lower() == "json":
        formatter = JSONFormatter(
            include_timestamp=include_timestamp,
            include_location=include_location,
        )
    else:
        formatter = TextFormatter(
            include_timestamp=include_timestamp,
            include_location=include_location,
        )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # paramiko logs every transport negotiation step at INFO
    logging.getLogger("paramiko").setLevel(logging.WARNING)


class LogContext:
    """Context manager for setting correlation context.

    Usage:
        with LogContext(session_id="3f2c...", user="alice"):
            logger.info("Processing")  # Will include session_id and user
        # Previous context restored after the block
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        user: Optional[str] = None,
        **extra: Any,
    ):
        self.session_id = session_id
        self.user = user
        self.extra = extra
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        self._tokens["session_id"] = _session_id.get()
        self._tokens["user"] = _user.get()
        self._tokens["extra"] = _extra_context.get()

        set_context(session_id=self.session_id, user=self.user, **self.extra)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _session_id.set(self._tokens.get("session_id"))
        _user.set(self._tokens.get("user"))
        _extra_context.set(self._tokens.get("extra", {}))


def generate_session_id() -> str:
    """Generate a unique session ID (UUID4 format)."""
    return str(uuid.uuid4())
