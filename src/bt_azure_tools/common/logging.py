"""Logging configuration and helpers for bt-azure-tools.

Everything uses the standard :mod:`logging` library. The formatter renders one
human-readable line per record (timestamp, level, logger name, operation ID and
any ``extra`` fields as ``key=value`` pairs). Records go to stderr so command
output on stdout stays clean.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from bt_azure_tools.settings import Settings

# ---------------------------------------------------------------------------
# Context and constants
# ---------------------------------------------------------------------------

# Command-scoped operation ID, bound once per CLI invocation.
_OPERATION_ID: ContextVar[str | None] = ContextVar(
    "bta_operation_id",
    default=None,
)

# Attributes already handled by logging that should not be copied into the
# extra key=value list.
_STANDARD_ATTRS: set[str] = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "message",
    "asctime",
    "operation_id",
    "taskName",
}

_CONFIGURED_FLAG = "_bta_configured"

# Azure SDK loggers are chatty at INFO (every token request is logged).
_QUIET_LOGGERS = ("azure", "azure.identity", "azure.core", "httpx", "httpcore")


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------


class ConsoleLogFormatter(logging.Formatter):
    """Render log records as single-line console output.

    Example line:

        2026-10-19T09:12:44.120Z WARNING bt_azure_tools.features.grants.scoped
        [op=3f2a9c1e] grant.restore.failed grant=sql-admin error=...
    """

    _time_format = "%Y-%m-%dT%H:%M:%S"

    def __init__(self) -> None:
        fmt = "%(asctime)s %(levelname)-5s %(name)s [op=%(operation_id)s] %(message)s"
        super().__init__(fmt=fmt, datefmt=self._time_format)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        dt = datetime.fromtimestamp(record.created, tz=UTC)
        base = dt.strftime(datefmt or self._time_format)
        return f"{base}.{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - std signature
        record.operation_id = getattr(record, "operation_id", None) or _OPERATION_ID.get() or "-"

        base = super().format(record)

        extras: list[str] = []
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            extras.append(f"{key}={_format_extra_value(value)}")

        if extras:
            return f"{base} " + " ".join(extras)
        return base


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def setup_logging(settings: Settings) -> None:
    """Configure root logging for the process.

    Installs a single console-style handler on stderr and sets the root level
    from ``settings.logging_level`` (env: ``BTA_LOGGING_LEVEL``). Subsequent
    calls only adjust the level.
    """
    root_logger = logging.getLogger()
    level = getattr(logging, settings.logging_level.upper(), logging.WARNING)

    if getattr(root_logger, _CONFIGURED_FLAG, False):
        root_logger.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ConsoleLogFormatter())

    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(max(level, logging.WARNING))

    setattr(root_logger, _CONFIGURED_FLAG, True)


# ---------------------------------------------------------------------------
# Context helpers
# ---------------------------------------------------------------------------


def bind_operation_context(operation_id: str | None = None) -> str:
    """Bind an operation ID to the logging context and return it."""
    value = operation_id or uuid.uuid4().hex[:8]
    _OPERATION_ID.set(value)
    return value


def clear_operation_context() -> None:
    _OPERATION_ID.set(None)


def log_context(
    *,
    tenant_id: str | None = None,
    subscription_id: str | None = None,
    server: str | None = None,
    database: str | None = None,
    principal_id: str | None = None,
    scope: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a consistent `extra` payload for structured logs.

    Example:
        logger.info(
            "sql.permissions.applied",
            extra=log_context(server=server.name, database=db.name, level=level.value),
        )
    """
    ctx: dict[str, Any] = {}

    if tenant_id is not None:
        ctx["tenant_id"] = tenant_id
    if subscription_id is not None:
        ctx["subscription_id"] = subscription_id
    if server is not None:
        ctx["server"] = server
    if database is not None:
        ctx["database"] = database
    if principal_id is not None:
        ctx["principal_id"] = principal_id
    if scope is not None:
        ctx["scope"] = scope

    for key, value in extra.items():
        ctx[key] = value

    return ctx


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _format_extra_value(value: Any) -> str:
    if isinstance(value, (int, float, bool)):
        return str(value)
    if value is None:
        return "null"
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(str(item) for item in value) or "[]"
    return str(value)


__all__ = [
    "ConsoleLogFormatter",
    "bind_operation_context",
    "clear_operation_context",
    "log_context",
    "setup_logging",
]
