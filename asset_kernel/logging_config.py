"""Structured JSON logging for the asset depreciation engine.

Every logger lives under the ``asset_kernel`` namespace and writes one JSON
object per line.  Run-scoped identifiers (execution, schedule, asset, actor)
travel in :class:`LogContext` and are merged into every line emitted while
they are bound.
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from typing import IO, Any

ROOT_LOGGER = "asset_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "execution_id",
    "schedule_id",
    "asset_id",
    "actor_id",
    "trace_id",
)

# Never mutated in place; every update installs a fresh dict.
_bound: ContextVar[Mapping[str, str]] = ContextVar("asset_log_context", default={})


def _with_fields(fields: Mapping[str, Any]) -> dict[str, str]:
    merged = dict(_bound.get())
    merged.update(
        (name, str(value))
        for name, value in fields.items()
        if value is not None and name in CONTEXT_FIELDS
    )
    return merged


class LogContext:
    """Identifiers merged into every log line of the current context.

    Worker threads start with an empty context, so the batch executor binds
    ``execution_id`` and ``asset_id`` again inside each worker.
    """

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set fields for the rest of the current context.  None is ignored."""
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"unknown log context field(s): {', '.join(sorted(unknown))}")
        _bound.set(_with_fields(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_bound.get())

    @classmethod
    def clear(cls) -> None:
        _bound.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Bind fields for the duration of a ``with`` block.

        None values and names outside the known context fields are skipped;
        whatever was bound before is restored on exit.
        """
        token = _bound.set(_with_fields(fields))
        try:
            yield cls
        finally:
            _bound.reset(token)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_value(value: Any) -> Any:
    """Fallback for values json cannot encode (UUID, Decimal, dates, enums)."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        line.update(LogContext.get_all())
        for name, value in self._extra_fields(record):
            line.setdefault(name, value)
        if record.exc_info and record.exc_info[1] is not None:
            line.update(self._exception_fields(record))
        return json.dumps(line, default=_json_value)

    @staticmethod
    def _extra_fields(record: logging.LogRecord) -> Iterator[tuple[str, Any]]:
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRIBUTES:
                yield name, value

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # AssetKernelError subclasses carry their context as attributes
        for name, value in vars(exc).items():
            if not name.startswith("_") and name not in ("args", "code"):
                fields[f"exc_{name}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_setup_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: IO[str] | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``asset_kernel`` logger.

    Only the first call has an effect until :func:`reset_logging` runs.
    """
    global _handler
    with _setup_lock:
        if _handler is not None:
            return
        _handler = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(StructuredFormatter())

        root = logging.getLogger(ROOT_LOGGER)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(_handler)


def reset_logging() -> None:
    """Detach every handler and return the namespace to stdlib defaults.  Tests only."""
    global _handler
    with _setup_lock:
        _handler = None
        root = logging.getLogger(ROOT_LOGGER)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
        root.propagate = True
