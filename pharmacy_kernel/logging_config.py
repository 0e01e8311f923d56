"""
Structured JSON logging for the pharmacy kernel.

Every record is one JSON object per line.  Request-scoped fields (the tenant,
the acting user, the order being fulfilled, the flow) live in context
variables so that they appear on every line emitted while a coordinator run
or module call is in progress, across threads and async tasks alike.

Usage::

    logger = get_logger("services.inventory_ledger")
    with LogContext.bind(tenant_id=ctx.tenant_id, order_id=order_id):
        logger.info("stock_decremented", extra={"quantity": 2})
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

_CONTEXT_FIELDS = (
    "correlation_id",
    "tenant_id",
    "actor_id",
    "order_id",
    "flow",
    "trace_id",
)

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"pharmacy_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


def _context_var(name: str) -> ContextVar[str | None]:
    try:
        return _context_vars[name]
    except KeyError:
        raise TypeError(f"unknown log context field: {name!r}") from None


class LogContext:
    """Request-scoped log fields backed by context variables."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Set the given fields; ``None`` values leave a field untouched."""
        for name, value in fields.items():
            if value is not None:
                _context_var(name).set(str(value))

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
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (_context_var(name), _context_var(name).set(str(value)))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # PharmacyKernelError subclasses keep their details as public attributes
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                entry.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_to_json)


_ROOT_LOGGER = "pharmacy_kernel"


def get_logger(name: str) -> logging.Logger:
    """Return ``pharmacy_kernel.<name>``; module services log under it too."""
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


_state_lock = threading.Lock()
_configured = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the kernel logger.  Later calls do nothing."""
    global _configured
    with _state_lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger(_ROOT_LOGGER)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """Drop the kernel handlers so ``configure_logging`` can run again (tests)."""
    global _configured
    with _state_lock:
        _configured = False
    root = logging.getLogger(_ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
