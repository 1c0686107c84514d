"""
Structured JSON logging for the payout system.

Every record is one JSON object per line.  Run-scoped fields (``run_id``,
``seller_id``, ``tenant_id``, ``step``) come from ``LogContext`` and are
added to every record emitted while they are bound, so a seller's log lines
can be grepped out of a run even when sellers run on worker threads.

Worker threads start with an empty context: bind the fields again inside
the thread.
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping
from uuid import UUID

_LOGGER_PREFIX = "payout"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = ("run_id", "tenant_id", "seller_id", "step", "correlation_id")

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("payout_log_context", default=_EMPTY)


def _merged(fields: dict[str, str | None]) -> Mapping[str, str]:
    unknown = set(fields) - set(_CONTEXT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown log context field(s): {sorted(unknown)}")
    merged = dict(_context.get())
    merged.update({k: v for k, v in fields.items() if v is not None})
    return MappingProxyType(merged)


class LogContext:
    """Run-scoped log fields held in a single ContextVar.

    The stored mapping is read-only; every change installs a new one, so a
    ``bind`` block restores exactly what was there before it.
    """

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set fields for the rest of the current context.  None is ignored."""
        _context.set(_merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """Set fields for the duration of a ``with`` block."""
        token = _context.set(_merged(fields))
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    return repr(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON line per record: base fields, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        payload.update(
            (key, val)
            for key, val in vars(record).items()
            if key not in _STDLIB_KEYS and key not in payload
        )

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            # PayoutError subclasses carry their context as attributes.
            payload.update(
                (f"exc_{k}", v)
                for k, v in vars(exc).items()
                if not k.startswith("_") and k != "code"
            )
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """``get_logger("batch.lease")`` -> the ``payout.batch.lease`` logger."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``payout`` logger.  Later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    payout_logger = logging.getLogger(_LOGGER_PREFIX)
    payout_logger.setLevel(level)
    payout_logger.addHandler(handler)
    payout_logger.propagate = False


def reset_logging() -> None:
    """Undo ``configure_logging``.  For tests."""
    global _configured
    with _lock:
        _configured = False
    payout_logger = logging.getLogger(_LOGGER_PREFIX)
    payout_logger.handlers.clear()
    payout_logger.setLevel(logging.WARNING)
    payout_logger.propagate = True
