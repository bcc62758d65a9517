"""SQL server Entra administrator reads, writes and temporary elevation."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from bt_azure_tools.common.logging import log_context
from bt_azure_tools.core.models import AdminRef, PrincipalRef, SqlServerRef, normalize_object_id
from bt_azure_tools.features.grants.scoped import RestorePolicy, ScopedPrivilegeGrant, acquire_grant
from bt_azure_tools.infra.arm import ArmClient
from bt_azure_tools.settings import Settings

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def admin_path(server: SqlServerRef) -> str:
    return f"{server.resource_id}/administrators/ActiveDirectory"


def parse_admin(payload: dict[str, Any]) -> AdminRef | None:
    props = payload.get("properties") or {}
    sid = props.get("sid")
    if not sid:
        return None
    login = props.get("login") or ""
    return AdminRef(object_id=normalize_object_id(sid), display_name=login or sid, login_name=login or None)


class SqlAdminService:
    """Manage the Entra administrator of Azure SQL servers."""

    def __init__(self, arm: ArmClient, settings: Settings, *, sleep: Sleep = asyncio.sleep) -> None:
        self._arm = arm
        self._settings = settings
        self._sleep = sleep

    async def get_admin(self, server: SqlServerRef) -> AdminRef | None:
        payload = await self._arm.get_resource(
            admin_path(server),
            api_version=self._settings.sql_api_version,
            allow_not_found=True,
        )
        if payload is None:
            return None
        return parse_admin(payload)

    async def set_admin(self, server: SqlServerRef, admin: AdminRef) -> AdminRef:
        body = {
            "properties": {
                "administratorType": "ActiveDirectory",
                "login": admin.login_name or admin.display_name,
                "sid": admin.object_id,
                "tenantId": server.tenant_id,
            }
        }
        logger.info(
            "sql.admin.set",
            extra=log_context(server=server.name, principal_id=admin.object_id, login=body["properties"]["login"]),
        )
        await self._arm.put_and_wait(admin_path(server), body, api_version=self._settings.sql_api_version)
        return admin

    async def wait_for_propagation(self, server: SqlServerRef, admin: AdminRef) -> None:
        """Give the server time to honor a new administrator. Never raises."""
        delay = self._settings.admin_propagation_delay_seconds
        if self._settings.admin_propagation_mode == "poll":
            if await self._poll_for_admin(server, admin):
                return
            logger.info(
                "sql.admin.propagation.poll_timeout",
                extra=log_context(server=server.name, fallback_seconds=delay),
            )
        if delay > 0:
            await self._sleep(delay)

    async def _poll_for_admin(self, server: SqlServerRef, admin: AdminRef) -> bool:
        deadline = time.monotonic() + self._settings.admin_propagation_timeout_seconds
        interval = self._settings.admin_propagation_poll_interval_seconds
        wanted = normalize_object_id(admin.object_id)
        while True:
            try:
                current = await self.get_admin(server)
            except Exception as exc:
                logger.debug("sql.admin.propagation.poll_error", extra=log_context(server=server.name, error=str(exc)))
                current = None
            if current is not None and current.object_id == wanted:
                logger.debug("sql.admin.propagation.observed", extra=log_context(server=server.name))
                return True
            if time.monotonic() >= deadline:
                return False
            await self._sleep(interval)

    async def elevate_current_user(
        self, server: SqlServerRef, operator: PrincipalRef
    ) -> ScopedPrivilegeGrant[AdminRef]:
        """Make ``operator`` the server administrator until the grant is released.

        With no previous administrator there is nothing to put back, so the
        operator stays administrator after release.
        """
        operator_admin = AdminRef.from_principal(operator)

        async def _apply(previous: AdminRef | None) -> AdminRef:
            logger.info(
                "sql.admin.elevate",
                extra=log_context(
                    server=server.name,
                    principal_id=operator.object_id,
                    previous=str(previous) if previous else None,
                ),
            )
            return await self.set_admin(server, operator_admin)

        async def _restore(previous: AdminRef | None, applied: AdminRef | None) -> None:
            if previous is None:
                return
            logger.info(
                "sql.admin.restore",
                extra=log_context(server=server.name, principal_id=previous.object_id),
            )
            await self.set_admin(server, previous)

        grant = await acquire_grant(
            "sql-admin",
            read_current=lambda: self.get_admin(server),
            apply=_apply,
            restore=_restore,
            policy=RestorePolicy.AUTOMATIC,
            restore_when_absent=False,
        )
        try:
            await self.wait_for_propagation(server, grant.applied)
        except BaseException:
            await grant.release()
            raise
        return grant


__all__ = ["SqlAdminService", "admin_path", "parse_admin"]
