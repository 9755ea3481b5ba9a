"""
Structured JSON logging for the billing kernel.

Every record becomes one JSON line carrying:

- the envelope (``ts``, ``level``, ``logger``, ``message``);
- the invoice context bound with :class:`LogContext`;
- any ``extra=`` fields, with ``Money`` written as
  ``{"amount": <minor units>, "currency": <code>}`` and statuses, tax
  types and currencies written as their plain values;
- an ``error`` object when the record carries an exception.
"""

__all__ = [
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
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

from billing_kernel.domain.values import Money


class LogContext:
    """
    Invoice-scoped fields attached to every record logged in this context.

    Values live in a single ``ContextVar``, so each thread and task sees
    only what it bound itself.
    """

    FIELDS = ("correlation_id", "invoice_id", "invoice_number", "idempotency_key")

    _fields: ContextVar[dict[str, str]] = ContextVar("billing_log_context", default={})

    @classmethod
    def _merged(cls, fields: dict[str, str | None]) -> dict[str, str]:
        unknown = set(fields) - set(cls.FIELDS)
        if unknown:
            raise ValueError(f"unknown log context fields: {sorted(unknown)}")
        merged = dict(cls._fields.get())
        merged.update({k: v for k, v in fields.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Add fields to the current context. ``None`` values are ignored."""
        cls._fields.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._fields.get())

    @classmethod
    def clear(cls) -> None:
        cls._fields.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[None]:
        """Add fields for the duration of a ``with`` block."""
        token = cls._fields.set(cls._merged(fields))
        try:
            yield
        finally:
            cls._fields.reset(token)


def _encode(value: Any) -> Any:
    if isinstance(value, Money):
        return {"amount": value.amount, "currency": value.currency.value}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return str(value)


_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "taskName",
}


def _error_fields(exc: BaseException) -> dict[str, Any]:
    error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        error["code"] = code
    error.update({k: v for k, v in vars(exc).items() if not k.startswith("_")})
    return error


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = _error_fields(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_encode)


_LOGGER_PREFIX = "billing_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the billing_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the billing_kernel logger. Later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root.addHandler(target)


def reset_logging() -> None:
    """Undo configure_logging. Used by the test suite."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    root.propagate = True
