"""Database user and role membership reconciliation for Entra principals."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from bt_azure_tools.common.logging import log_context
from bt_azure_tools.core.errors import BtaError
from bt_azure_tools.core.models import PrincipalRef
from bt_azure_tools.core.permissions import MANAGED_ROLES, PermissionLevel, infer_permission_level
from bt_azure_tools.infra.sql import SqlSession, quote_identifier

logger = logging.getLogger(__name__)

USER_EXISTS_SQL = """
SELECT COUNT(*)
FROM sys.database_principals
WHERE name = :user_name AND type_desc IN ('EXTERNAL_USER', 'EXTERNAL_GROUP')
"""

USER_ROLES_SQL = """
SELECT r.name AS role_name
FROM sys.database_role_members rm
INNER JOIN sys.database_principals u ON rm.member_principal_id = u.principal_id
INNER JOIN sys.database_principals r ON rm.role_principal_id = r.principal_id
WHERE u.name = :user_name
"""

IS_IN_ROLE_SQL = """
SELECT COUNT(*)
FROM sys.database_role_members rm
INNER JOIN sys.database_principals u ON rm.member_principal_id = u.principal_id
INNER JOIN sys.database_principals r ON rm.role_principal_id = r.principal_id
WHERE u.name = :user_name AND r.name = :role_name
"""

CAN_MANAGE_USERS_SQL = """
SELECT CASE
    WHEN IS_ROLEMEMBER('db_owner') = 1 THEN 1
    WHEN HAS_PERMS_BY_NAME(DB_NAME(), 'DATABASE', 'ALTER ANY USER') = 1 THEN 1
    ELSE 0
END
"""


def create_user_sql(user_name: str) -> str:
    return f"CREATE USER {quote_identifier(user_name)} FROM EXTERNAL PROVIDER"


def drop_user_sql(user_name: str) -> str:
    return f"DROP USER {quote_identifier(user_name)}"


def add_role_member_sql(role_name: str, user_name: str) -> str:
    return f"ALTER ROLE {quote_identifier(role_name)} ADD MEMBER {quote_identifier(user_name)}"


def drop_role_member_sql(role_name: str, user_name: str) -> str:
    return f"ALTER ROLE {quote_identifier(role_name)} DROP MEMBER {quote_identifier(user_name)}"


def grant_execute_sql(user_name: str) -> str:
    return f"GRANT EXECUTE TO {quote_identifier(user_name)}"


@dataclass(slots=True)
class SqlApplyResult:
    """What a single :meth:`SqlPermissionReconciler.apply` call changed."""

    user_name: str
    level: PermissionLevel
    created_user: bool = False
    dropped_user: bool = False
    roles_removed: list[str] = field(default_factory=list)
    roles_added: list[str] = field(default_factory=list)
    execute_granted: bool = False
    statements: list[str] = field(default_factory=list)


class SqlPermissionReconciler:
    """Resync one principal's managed role memberships to a permission level.

    Every managed membership the principal holds is dropped before the target
    roles are added, so the outcome depends only on the requested level.
    Statements run one by one on an autocommit connection; a failure stops the
    run without undoing earlier statements.
    """

    def __init__(self, session: SqlSession, *, database: str | None = None, server: str | None = None) -> None:
        self._session = session
        self._database = database
        self._server = server

    async def user_exists(self, user_name: str) -> bool:
        count = await self._session.scalar(USER_EXISTS_SQL, {"user_name": user_name})
        return int(count or 0) > 0

    async def role_memberships(self, user_name: str) -> list[str]:
        rows = await self._session.column(USER_ROLES_SQL, {"user_name": user_name})
        return [str(row) for row in rows if row]

    async def is_in_role(self, user_name: str, role_name: str) -> bool:
        count = await self._session.scalar(IS_IN_ROLE_SQL, {"user_name": user_name, "role_name": role_name})
        return int(count or 0) > 0

    async def get_permission_level(self, principal: PrincipalRef) -> PermissionLevel | None:
        """Best guess of the current level, for display. ``None`` when the user does not exist."""
        user_name = principal.sql_user_name
        if not await self.user_exists(user_name):
            return None
        return infer_permission_level(await self.role_memberships(user_name))

    async def apply(self, principal: PrincipalRef, level: PermissionLevel) -> SqlApplyResult:
        user_name = principal.sql_user_name
        result = SqlApplyResult(user_name=user_name, level=level)
        exists = await self.user_exists(user_name)

        if level is PermissionLevel.NONE:
            if exists:
                await self._execute(result, drop_user_sql(user_name))
                result.dropped_user = True
            self._log_applied(principal, result)
            return result

        if not exists:
            await self._execute(result, create_user_sql(user_name))
            result.created_user = True

        for role in MANAGED_ROLES:
            if await self.is_in_role(user_name, role):
                await self._execute(result, drop_role_member_sql(role, user_name))
                result.roles_removed.append(role)

        for role in level.roles:
            await self._execute(result, add_role_member_sql(role, user_name))
            result.roles_added.append(role)

        if level.grants_execute:
            await self._execute(result, grant_execute_sql(user_name))
            result.execute_granted = True

        self._log_applied(principal, result)
        return result

    async def _execute(self, result: SqlApplyResult, statement: str) -> None:
        logger.debug("sql.statement", extra=log_context(server=self._server, database=self._database, statement=statement))
        await self._session.execute(statement)
        result.statements.append(statement)

    def _log_applied(self, principal: PrincipalRef, result: SqlApplyResult) -> None:
        logger.info(
            "sql.permissions.applied",
            extra=log_context(
                server=self._server,
                database=self._database,
                principal_id=principal.object_id,
                level=result.level.value,
                created_user=result.created_user,
                dropped_user=result.dropped_user,
                roles=result.roles_added,
            ),
        )


async def can_current_user_manage_users(session: SqlSession) -> bool:
    """True when the connected identity is ``db_owner`` or holds ``ALTER ANY USER``.

    Any failure counts as "cannot manage".
    """
    try:
        value = await session.scalar(CAN_MANAGE_USERS_SQL)
    except BtaError as exc:
        logger.info("sql.permissions.check_failed", extra=log_context(error=str(exc)))
        return False
    return int(value or 0) == 1


__all__ = [
    "SqlApplyResult",
    "SqlPermissionReconciler",
    "add_role_member_sql",
    "can_current_user_manage_users",
    "create_user_sql",
    "drop_role_member_sql",
    "drop_user_sql",
    "grant_execute_sql",
]
