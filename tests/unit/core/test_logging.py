from __future__ import annotations

import logging

from bt_azure_tools.common.logging import (
    ConsoleLogFormatter,
    bind_operation_context,
    clear_operation_context,
    log_context,
)


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("bt_azure_tools.test", logging.WARNING, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_renders_operation_id_and_extras() -> None:
    bind_operation_context("abc12345")
    try:
        line = ConsoleLogFormatter().format(
            _record("grant.restore.failed", **log_context(server="srv", roles=["db_owner", "db_datareader"]))
        )
    finally:
        clear_operation_context()

    assert "[op=abc12345]" in line
    assert "grant.restore.failed" in line
    assert "server=srv" in line
    assert "roles=db_owner,db_datareader" in line
    assert line.split(" ", 1)[0].endswith("Z")


def test_formatter_without_context_uses_placeholder() -> None:
    clear_operation_context()

    line = ConsoleLogFormatter().format(_record("sql.connect", database=None))

    assert "[op=-]" in line
    assert "database=null" in line


def test_log_context_drops_unset_fields() -> None:
    assert log_context(tenant_id=None, server="srv", attempt=2) == {"server": "srv", "attempt": 2}


def test_bind_operation_context_generates_short_ids() -> None:
    value = bind_operation_context()
    clear_operation_context()

    assert len(value) == 8
