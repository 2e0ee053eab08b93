"""
Structured JSON logging for the visit kernel.

Every record under the ``visit_kernel`` logger is written as one JSON
object per line: a fixed envelope (``ts``, ``level``, ``logger``,
``message``), the request-scoped fields held in ``LogContext``, any
``extra`` fields, and for exceptions the kernel error's ``code`` plus its
structured attributes.

Credential tokens are bearer secrets.  Any field named in
``REDACTED_FIELDS`` is masked before the line is written, whether it came
from ``extra`` or from an exception attribute.
"""

__all__ = [
    "REDACTED_FIELDS",
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

LOGGER_NAMESPACE = "visit_kernel"

REDACTED_FIELDS = frozenset({"token", "credential_token", "secret"})
_MASK = "[redacted]"

_CONTEXT_FIELDS = (
    "correlation_id",
    "visit_id",
    "actor_id",
    "building_id",
    "operation",
    "trace_id",
)
_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"visit_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


def _context_var(name: str) -> ContextVar[str | None]:
    try:
        return _context_vars[name]
    except KeyError:
        raise TypeError(f"unknown log context field {name!r}") from None


class LogContext:
    """Request-scoped log fields, safe across threads and tasks."""

    FIELDS = _CONTEXT_FIELDS

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set the given fields; ``None`` values leave a field unchanged."""
        for name, value in fields.items():
            var = _context_var(name)
            if value is not None:
                var.set(value)

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
        """Set fields for the duration of a block.

        On exit every field is restored to its value at entry, including
        fields changed inside the block with ``set``.
        """
        for name in fields:
            _context_var(name)
        tokens = []
        for name, var in _context_vars.items():
            value = fields.get(name)
            tokens.append((var, var.set(var.get() if value is None else value)))
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(_json_default(v) if isinstance(v, Enum) else str(v) for v in value)
    if isinstance(value, (UUID, bytes)):
        return str(value)
    return repr(value)


def _masked(name: str, value: Any) -> Any:
    return _MASK if name in REDACTED_FIELDS and value is not None else value


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }

        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS and name not in payload:
                payload[name] = _masked(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)

    @staticmethod
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
                fields[f"exc_{name}"] = _masked(name, value)
        return fields


def get_logger(name: str) -> logging.Logger:
    """Child logger under the ``visit_kernel`` namespace."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the ``visit_kernel`` logger.

    Only the first call has an effect; later calls return immediately so
    engines and test fixtures can call this freely.
    """
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())

        root = logging.getLogger(LOGGER_NAMESPACE)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(target)


def reset_logging() -> None:
    """Drop handlers and allow ``configure_logging`` to run again (tests)."""
    global _configured
    with _configure_lock:
        _configured = False
        root = logging.getLogger(LOGGER_NAMESPACE)
        for h in list(root.handlers):
            root.removeHandler(h)
        root.setLevel(logging.WARNING)
