"""
Structured JSON logging for the agency kernel.

Every kernel module logs through ``get_logger("<layer>.<name>")`` with a
snake_case event name as the message and the details in ``extra=``::

    logger.info("case_status_changed", extra={"case_id": str(case.id), ...})

``StructuredFormatter`` turns each record into one JSON line and merges the
request-scoped fields held by ``LogContext`` (correlation, actor, case and
request ids).  Kernel exceptions logged with ``exc_info`` are flattened into
``exc_*`` fields so a log query can filter on ``exc_code`` or
``exc_retryable`` without parsing tracebacks.
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
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "agency_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = ("correlation_id", "actor_id", "case_id", "request_id")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"agency_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


class LogContext:
    """
    Request-scoped log fields, safe across threads and tasks.

    ``set`` updates only the fields given; ``bind`` scopes them to a
    ``with`` block and restores the previous values on exit.
    """

    @staticmethod
    def set(**fields: str | None) -> None:
        for name, value in fields.items():
            if name not in _context_vars:
                raise TypeError(f"Unknown log context field: {name}")
            if value is not None:
                _context_vars[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _context_vars.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        tokens = [
            (_context_vars[name], _context_vars[name].set(str(value)))
            for name, value in fields.items()
            if value is not None and name in _context_vars
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else on a record came from extra=.
_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    retryable = getattr(exc, "retryable", None)
    if retryable is not None:
        fields["exc_retryable"] = retryable
    # Kernel errors keep their context as public attributes
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Renders a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and key not in entry
        )

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``agency_kernel`` namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_setup_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``agency_kernel`` logger.

    Later calls are no-ops until ``reset_logging``.  Records do not
    propagate to the root logger, so a host application's own handlers
    never see kernel lines twice.
    """
    global _handler
    with _setup_lock:
        if _handler is not None:
            return
        _handler = handler or logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(StructuredFormatter())

        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(_handler)


def reset_logging() -> None:
    """Remove the kernel handler. Tests only."""
    global _handler
    with _setup_lock:
        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        kernel_logger.handlers.clear()
        kernel_logger.setLevel(logging.WARNING)
        _handler = None
