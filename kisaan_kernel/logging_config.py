"""
Structured JSON logging for the kisaan core.

Every record under the ``kisaan_kernel`` logger namespace is written as one
JSON object per line.  Messages are snake_case event names
(``ledger_reserved``, ``status_transitioned``); the details travel in
``extra=`` and land as top-level keys.  Request-scoped fields (actor,
record, idempotency key) are bound once per actor action with
``LogContext.bind`` and attached to every line emitted inside it.

Kernel exceptions logged with ``exc_info`` contribute their ``code`` and
public attributes as ``exc_*`` keys, so a failed reservation's key and
remaining quantity are queryable without parsing the message.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

_LOGGER_PREFIX = "kisaan_kernel"

_CONTEXT_FIELDS = frozenset(
    {"correlation_id", "actor_id", "entity_id", "listing_id", "idempotency_key"}
)
_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("kisaan_log_context", default=_EMPTY)


def _checked(fields: dict[str, str | None]) -> dict[str, str]:
    unknown = set(fields) - _CONTEXT_FIELDS
    if unknown:
        raise KeyError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
    return {k: v for k, v in fields.items() if v is not None}


class LogContext:
    """Request-scoped log fields, safe across threads and asyncio tasks."""

    @staticmethod
    def set(**fields: str | None) -> None:
        """Merge ``fields`` into the current context; None values are ignored."""
        merged = {**_context.get(), **_checked(fields)}
        _context.set(MappingProxyType(merged))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """Set ``fields`` for the duration of the block, then restore."""
        token = _context.set(MappingProxyType({**_context.get(), **_checked(fields)}))
        try:
            yield
        finally:
            _context.reset(token)


# Attributes every LogRecord carries; anything else came in through extra=.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "taskName",
}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger ``kisaan_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``kisaan_kernel`` logger.

    Only the first call has an effect until ``reset_logging``.  Records do
    not propagate to the root logger, so host applications choose where
    core logs go by passing ``handler`` or ``stream``.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    core = logging.getLogger(_LOGGER_PREFIX)
    core.setLevel(level)
    core.propagate = False
    core.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and allow reconfiguration. Tests only."""
    global _configured
    with _lock:
        _configured = False
    core = logging.getLogger(_LOGGER_PREFIX)
    core.handlers.clear()
    core.setLevel(logging.WARNING)
