"""
Structured JSON logging for the ledger kernel.

Every record under the ``ledger_kernel`` namespace is rendered as one JSON
object per line.  Request-scoped fields (correlation id, tenant, shard,
operation) live in a single context variable, so they follow the request
across threads and asyncio tasks without being passed around explicitly.

Usage::

    from ledger_kernel.logging_config import LogContext, get_logger

    logger = get_logger("services.provisioning")

    with LogContext.bind(tenant_id=tenant.tenant_id, shard_id=shard_id):
        logger.info("tenant_provisioned", extra={"accounts": 3})
"""

from __future__ import annotations

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
from types import MappingProxyType
from typing import IO, Any

NAMESPACE = "ledger_kernel"

_EMPTY: Mapping[str, str] = MappingProxyType({})


class LogContext:
    """Request-scoped log fields held in one immutable mapping per context."""

    FIELDS = ("correlation_id", "tenant_id", "shard_id", "operation")

    _fields: ContextVar[Mapping[str, str]] = ContextVar("ledger_log_fields", default=_EMPTY)

    @classmethod
    def _merged(cls, values: Mapping[str, Any]) -> Mapping[str, str]:
        unknown = set(values) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(cls._fields.get())
        merged.update({k: str(v) for k, v in values.items() if v is not None})
        return MappingProxyType(merged)

    @classmethod
    def set(cls, **values: Any) -> None:
        """Overwrite the given fields for the rest of this context.  None is skipped."""
        cls._fields.set(cls._merged(values))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._fields.get())

    @classmethod
    def clear(cls) -> None:
        cls._fields.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **values: Any) -> Iterator[None]:
        """Add fields for the duration of a ``with`` block, then restore."""
        token = cls._fields.set(cls._merged(values))
        try:
            yield
        finally:
            cls._fields.reset(token)


# Attributes every LogRecord has; anything else arrived through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
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
    # LedgerKernelError subclasses keep their context as public attributes
    for name, value in vars(exc).items():
        if not name.startswith("_"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: base keys, then context, then ``extra=``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
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
    """``get_logger("db.shards")`` -> ``ledger_kernel.db.shards``."""
    return logging.getLogger(f"{NAMESPACE}.{name}")


_state_lock = threading.Lock()
_installed: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: IO[str] | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``ledger_kernel`` logger.

    Only the first call has an effect until ``reset_logging()``.  Records
    do not propagate to the root logger, so host applications that log to
    the root do not see ledger lines twice.
    """
    global _installed
    with _state_lock:
        if _installed is not None:
            return
        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())

        kernel_logger = logging.getLogger(NAMESPACE)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(target)
        _installed = target


def reset_logging() -> None:
    """Drop the JSON handlers and allow reconfiguration.  Tests only."""
    global _installed
    with _state_lock:
        _installed = None
        kernel_logger = logging.getLogger(NAMESPACE)
        # Handlers owned by a host (e.g. a test runner) stay attached
        for existing in list(kernel_logger.handlers):
            if isinstance(existing.formatter, StructuredFormatter):
                kernel_logger.removeHandler(existing)
        kernel_logger.setLevel(logging.WARNING)
