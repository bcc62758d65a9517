"""
Azure SQL connections authenticated with an Entra access token.

Engines use the ``mssql+pyodbc`` dialect. The token is handed to the ODBC
driver through ``attrs_before`` in a ``do_connect`` listener, so the connection
string never carries credentials.
"""

from __future__ import annotations

import asyncio
import logging
import struct
from collections.abc import Mapping
from typing import Any, Protocol

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from bt_azure_tools.common.logging import log_context
from bt_azure_tools.core.credentials import CredentialCache
from bt_azure_tools.core.errors import SqlExecutionError
from bt_azure_tools.settings import Settings

logger = logging.getLogger(__name__)

_SQL_COPT_SS_ACCESS_TOKEN = 1256  # ODBC constant for access token injection


class SqlSession(Protocol):
    """What the permission reconciler needs from a database connection."""

    async def execute(self, statement: str, params: Mapping[str, Any] | None = None) -> None: ...

    async def scalar(self, statement: str, params: Mapping[str, Any] | None = None) -> Any: ...

    async def column(self, statement: str, params: Mapping[str, Any] | None = None) -> list[Any]: ...

    async def aclose(self) -> None: ...


def quote_identifier(name: str) -> str:
    """Bracket-quote a T-SQL identifier, doubling any closing bracket."""
    return "[" + name.replace("]", "]]") + "]"


def encode_access_token(token: str) -> bytes:
    """Pack a bearer token the way the ODBC driver expects it."""
    raw = token.encode("utf-16-le")
    return struct.pack("<I", len(raw)) + raw


def build_sql_url(settings: Settings, server_fqdn: str, database: str) -> URL:
    return URL.create(
        "mssql+pyodbc",
        host=server_fqdn,
        port=1433,
        database=database,
        query={
            "driver": settings.sql_driver,
            "Encrypt": "yes",
            "TrustServerCertificate": "no",
            "Connection Timeout": str(settings.sql_connect_timeout_seconds),
        },
    )


def _access_token_injector(token_bytes: bytes):
    def _inject_token(_dialect, _conn_rec, _cargs, cparams):
        attrs_before = dict(cparams.get("attrs_before") or {})
        attrs_before[_SQL_COPT_SS_ACCESS_TOKEN] = token_bytes
        cparams["attrs_before"] = attrs_before
        for key in ("user", "username", "password", "Authentication"):
            cparams.pop(key, None)

    return _inject_token


def attach_access_token(engine: Engine, token: str) -> None:
    event.listen(engine, "do_connect", _access_token_injector(encode_access_token(token)), insert=True)


def build_sql_engine(settings: Settings, server_fqdn: str, database: str, token: str) -> Engine:
    """One autocommit engine per (server, database); no pooling across runs."""
    engine = create_engine(
        build_sql_url(settings, server_fqdn, database),
        poolclass=NullPool,
        isolation_level="AUTOCOMMIT",
    )
    attach_access_token(engine, token)
    return engine


class AzureSqlSession:
    """Autocommit connection whose blocking calls run in a worker thread."""

    def __init__(self, engine: Engine, *, server: str, database: str) -> None:
        self._engine = engine
        self._connection: Connection | None = None
        self.server = server
        self.database = database

    async def __aenter__(self) -> AzureSqlSession:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def connect(self) -> None:
        if self._connection is not None:
            return
        try:
            self._connection = await asyncio.to_thread(self._engine.connect)
        except SQLAlchemyError as exc:
            raise SqlExecutionError(
                f"Could not connect to database '{self.database}' on '{self.server}': {_describe(exc)}"
            ) from exc
        logger.debug("sql.connect", extra=log_context(server=self.server, database=self.database))

    async def aclose(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            await asyncio.to_thread(connection.close)
        await asyncio.to_thread(self._engine.dispose)

    async def execute(self, statement: str, params: Mapping[str, Any] | None = None) -> None:
        await self._run(statement, params, lambda result: None)

    async def scalar(self, statement: str, params: Mapping[str, Any] | None = None) -> Any:
        return await self._run(statement, params, lambda result: result.scalar())

    async def column(self, statement: str, params: Mapping[str, Any] | None = None) -> list[Any]:
        return await self._run(statement, params, lambda result: list(result.scalars().all()))

    async def _run(self, statement: str, params: Mapping[str, Any] | None, reader) -> Any:
        if self._connection is None:
            await self.connect()
        connection = self._connection

        def _work() -> Any:
            if params:
                result = connection.execute(text(statement), dict(params))
            else:
                # DDL with bracket-quoted names is sent as-is so ':' is not taken for a bind marker.
                result = connection.exec_driver_sql(statement)
            try:
                return reader(result)
            finally:
                result.close()

        try:
            return await asyncio.to_thread(_work)
        except SQLAlchemyError as exc:
            raise SqlExecutionError(f"SQL statement failed: {_describe(exc)}", statement=statement) from exc


async def open_sql_session(
    credentials: CredentialCache,
    settings: Settings,
    *,
    server_fqdn: str,
    database: str,
    tenant_id: str | None,
) -> AzureSqlSession:
    """Acquire a database token for ``tenant_id`` and open a connected session."""
    token = await credentials.get_token(settings.sql_token_scope, tenant_id=tenant_id)
    engine = build_sql_engine(settings, server_fqdn, database, token)
    session = AzureSqlSession(engine, server=server_fqdn, database=database)
    try:
        await session.connect()
    except BaseException:
        await asyncio.to_thread(engine.dispose)
        raise
    return session


def _describe(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig or exc).strip()


__all__ = [
    "AzureSqlSession",
    "SqlSession",
    "attach_access_token",
    "build_sql_engine",
    "build_sql_url",
    "encode_access_token",
    "open_sql_session",
    "quote_identifier",
]
