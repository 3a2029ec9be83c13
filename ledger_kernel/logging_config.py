"""
Structured JSON logging for the ledger kernel.

Every record is one JSON object per line.  Fields bound through LogContext
(correlation id, organization, actor, entry, operation) are stamped onto
each record emitted while they are bound; ``extra`` keys are copied as
top-level fields; ledger exceptions contribute their ``code`` and public
attributes under an ``exc_`` prefix.

Services bind a correlation id per transaction when the caller has not
bound one, so all records of one posting can be joined on it.
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
from typing import Any
from uuid import UUID, uuid4

LOGGER_NAMESPACE = "ledger_kernel"

CONTEXT_FIELDS = (
    "correlation_id",
    "organization_id",
    "actor_id",
    "entry_id",
    "operation",
)

# One immutable snapshot per context; writers replace it, never mutate it
_bound: ContextVar[dict[str, str]] = ContextVar("ledger_log_context", default={})


def _with_fields(fields: dict[str, Any]) -> dict[str, str]:
    unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(unknown)}")
    snapshot = dict(_bound.get())
    snapshot.update(
        (name, str(value)) for name, value in fields.items() if value is not None
    )
    return snapshot


class LogContext:
    """
    Request-scoped fields attached to every ledger log record.

    Values live in a ContextVar, so each thread and asyncio task sees its
    own binding.  None values never overwrite a bound field.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        _bound.set(_with_fields(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_bound.get())

    @staticmethod
    def clear() -> None:
        _bound.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Bind fields for the duration of the block, then restore."""
        token = _bound.set(_with_fields(fields))
        try:
            yield
        finally:
            _bound.reset(token)

    @staticmethod
    def correlation_id() -> str:
        """The bound correlation id, or a fresh one if none is bound."""
        return _bound.get().get("correlation_id") or str(uuid4())


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
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
        if name.startswith("_") or name in ("args", "code"):
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger for a kernel module, e.g. ``get_logger("services.posting")``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_setup_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``ledger_kernel`` logger.

    Only the first call has an effect until reset_logging() runs; later
    calls keep the handler already installed.
    """
    global _installed_handler
    with _setup_lock:
        if _installed_handler is not None:
            return
        _installed_handler = handler or logging.StreamHandler(stream or sys.stderr)
        _installed_handler.setFormatter(StructuredFormatter())

        kernel_logger = logging.getLogger(LOGGER_NAMESPACE)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(_installed_handler)


def reset_logging() -> None:
    """Detach the installed handler.  FOR TESTING ONLY."""
    global _installed_handler
    with _setup_lock:
        _installed_handler = None
        kernel_logger = logging.getLogger(LOGGER_NAMESPACE)
        kernel_logger.handlers.clear()
        kernel_logger.setLevel(logging.WARNING)
