from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Mapping

__all__ = [
    "LEVEL_NAME_TO_INT",
    "LOG_FORMAT_CONSOLE",
    "LOG_FORMAT_ENV",
    "LOG_FORMAT_JSON",
    "ContextFilter",
    "LogContext",
    "StructuredConsoleFormatter",
    "StructuredJSONFormatter",
    "configure_logging",
    "get_logger",
]


LOG_FORMAT_ENV = "ADUIB_INTERCEPT_LOG_FORMAT"
LOG_FORMAT_JSON = "json"
LOG_FORMAT_CONSOLE = "console"

LEVEL_NAME_TO_INT: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_DEFAULT_CONTEXT_KEYS = ("session_id", "request_id", "interceptor_id")
_LOG_CONTEXT: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("aduib_intercept_log_context")

_DEFAULT_CONSOLE_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s %(message)s "
    "session_id=%(session_id)s request_id=%(request_id)s interceptor_id=%(interceptor_id)s"
)

_RESERVED_FIELDS = {"timestamp", "level", "logger", "message", "exception", "stack"}

_LOG_RECORD_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module", "exc_info",
    "exc_text", "stack_info", "lineno", "funcName", "created", "msecs", "relativeCreated", "thread",
    "threadName", "processName", "process", "message", "asctime", "taskName",
}


def _normalize_log_format(value: str | None) -> str:
    if not value:
        return LOG_FORMAT_JSON
    normalized = value.strip().lower()
    if normalized in {LOG_FORMAT_JSON, LOG_FORMAT_CONSOLE}:
        return normalized
    return LOG_FORMAT_JSON


def _json_default(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return repr(value)


def _extract_extras(record: logging.LogRecord) -> dict[str, Any]:
    extras: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _LOG_RECORD_ATTRS or key.startswith("_"):
            continue
        extras[key] = value
    return extras


def _merge_context(base: Mapping[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in updates.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def _context_snapshot() -> dict[str, Any]:
    current = _LOG_CONTEXT.get({})
    snapshot: dict[str, Any] = {key: current.get(key) for key in _DEFAULT_CONTEXT_KEYS}
    for key, value in current.items():
        if key not in snapshot:
            snapshot[key] = value
    return snapshot


def _filter_reserved(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if key not in _RESERVED_FIELDS}


class LogContext:
    """Async-safe structured logging context.

    Values bound here are attached to every record emitted in the same
    context (task or thread), and restored when the block exits.

    Args:
        session_id: Server session identifier.
        request_id: Protocol request correlation identifier.
        interceptor_id: Interceptor currently executing.
        **extra: Additional context values for log enrichment.
    """

    def __init__(
        self,
        session_id: str | None = None,
        request_id: str | None = None,
        interceptor_id: str | None = None,
        **extra: Any,
    ) -> None:
        self._values = _merge_context(
            {},
            {"session_id": session_id, "request_id": request_id, "interceptor_id": interceptor_id, **extra},
        )
        self._token: contextvars.Token[dict[str, Any]] | None = None

    def __enter__(self) -> LogContext:
        current = _LOG_CONTEXT.get({})
        self._token = _LOG_CONTEXT.set(_merge_context(current, self._values))
        return self

    def __exit__(self, exc_type: Any, exc: Any, traceback: Any) -> None:
        if self._token is not None:
            _LOG_CONTEXT.reset(self._token)
            self._token = None

    @classmethod
    def snapshot(cls) -> dict[str, Any]:
        return _context_snapshot()


class ContextFilter(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _context_snapshot().items():
            if hasattr(record, key):
                continue
            record.__dict__[key] = "-" if value is None else value
        return True


class StructuredJSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON documents."""

    def __init__(self, *, datefmt: str | None = None, ensure_ascii: bool = True) -> None:
        super().__init__(datefmt=datefmt)
        self._ensure_ascii = ensure_ascii

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_filter_reserved(_context_snapshot()))
        payload.update(_filter_reserved(_extract_extras(record)))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        return json.dumps(payload, default=_json_default, ensure_ascii=self._ensure_ascii)


class StructuredConsoleFormatter(logging.Formatter):

    def __init__(self, fmt: str | None = None, *, datefmt: str | None = None) -> None:
        super().__init__(fmt=fmt or _DEFAULT_CONSOLE_FORMAT, datefmt=datefmt)


def _handler_exists(logger: logging.Logger, format_kind: str) -> bool:
    for handler in logger.handlers:
        if getattr(handler, "_aduib_intercept_handler", False) and getattr(handler, "_format_kind", None) == format_kind:
            return True
    return False


def get_logger(
    name: str,
    *,
    log_format: str | None = None,
    level: int | str | None = None,
    stream: Any | None = None,
) -> logging.Logger:
    """Return a logger with a structured handler attached.

    Args:
        name: Logger name.
        log_format: "json" or "console"; defaults to ``ADUIB_INTERCEPT_LOG_FORMAT``.
        level: Optional level (int or name) for the handler and logger.
        stream: Optional output stream, stderr by default.
    """

    resolved_format = _normalize_log_format(log_format or os.getenv(LOG_FORMAT_ENV))
    if isinstance(level, str):
        level = LEVEL_NAME_TO_INT.get(level.upper(), logging.INFO)
    logger = logging.getLogger(name)
    if _handler_exists(logger, resolved_format):
        return logger
    formatter: logging.Formatter
    if resolved_format == LOG_FORMAT_CONSOLE:
        formatter = StructuredConsoleFormatter()
    else:
        formatter = StructuredJSONFormatter()
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    handler.setLevel(level or logging.NOTSET)
    handler._aduib_intercept_handler = True
    handler._format_kind = resolved_format
    logger.addHandler(handler)
    if level is not None:
        logger.setLevel(level)
    elif logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


def configure_logging(log_format: str | None = None, level: int | str | None = None) -> logging.Logger:
    """Attach the structured handler to the package root logger."""
    return get_logger("aduib_intercept", log_format=log_format, level=level)
