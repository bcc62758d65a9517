"""Tenants, subscriptions, SQL servers and databases visible to the operator."""

from __future__ import annotations

import logging
from typing import Any

from bt_azure_tools.common.logging import log_context
from bt_azure_tools.core.errors import ApiRequestError, AuthenticationError, LookupFailedError
from bt_azure_tools.core.models import SqlDatabaseRef, SqlServerRef, SubscriptionRef, TenantRef
from bt_azure_tools.features.rbac.resources import resource_group_from_id
from bt_azure_tools.infra.arm import ArmClient
from bt_azure_tools.settings import Settings

logger = logging.getLogger(__name__)

SYSTEM_DATABASES = frozenset({"master"})


def parse_tenant(payload: dict[str, Any]) -> TenantRef | None:
    tenant_id = payload.get("tenantId")
    if not tenant_id:
        return None
    return TenantRef(
        tenant_id=str(tenant_id),
        display_name=payload.get("displayName") or str(tenant_id),
        default_domain=payload.get("defaultDomain"),
    )


def parse_subscription(payload: dict[str, Any], *, tenant_id: str | None = None) -> SubscriptionRef | None:
    subscription_id = payload.get("subscriptionId")
    owner = payload.get("tenantId") or tenant_id
    if not subscription_id or not owner:
        return None
    return SubscriptionRef(
        subscription_id=str(subscription_id),
        display_name=payload.get("displayName") or str(subscription_id),
        tenant_id=str(owner),
    )


def parse_server(payload: dict[str, Any], *, tenant_id: str) -> SqlServerRef | None:
    resource_id = payload.get("id")
    name = payload.get("name")
    if not resource_id or not name:
        return None
    props = payload.get("properties") or {}
    return SqlServerRef(
        resource_id=str(resource_id),
        name=str(name),
        resource_group=resource_group_from_id(str(resource_id)) or "unknown",
        fqdn=props.get("fullyQualifiedDomainName") or f"{name}.database.windows.net",
        tenant_id=tenant_id,
    )


class InventoryService:
    def __init__(self, arm: ArmClient, settings: Settings) -> None:
        self._arm = arm
        self._settings = settings

    async def list_tenants(self) -> list[TenantRef]:
        payloads = await self._arm.for_tenant(None).list_all(
            "/tenants", api_version=self._settings.subscriptions_api_version
        )
        tenants = [tenant for tenant in (parse_tenant(item) for item in payloads) if tenant is not None]
        return sorted(tenants, key=lambda tenant: tenant.display_name.casefold())

    async def list_subscriptions(self, tenant_id: str | None = None) -> list[SubscriptionRef]:
        payloads = await self._arm.for_tenant(tenant_id).list_all(
            "/subscriptions", api_version=self._settings.subscriptions_api_version
        )
        subscriptions = [
            sub for sub in (parse_subscription(item, tenant_id=tenant_id) for item in payloads) if sub is not None
        ]
        return sorted(subscriptions, key=lambda sub: sub.display_name.casefold())

    async def find_subscription(self, name_or_id: str, *, tenant_id: str | None = None) -> SubscriptionRef:
        """Match by id or display name. Without a tenant, every visible tenant is searched."""
        wanted = name_or_id.strip().casefold()

        def _match(candidates: list[SubscriptionRef]) -> SubscriptionRef | None:
            for sub in candidates:
                if wanted in (sub.subscription_id.casefold(), sub.display_name.casefold()):
                    return sub
            return None

        if tenant_id:
            found = _match(await self.list_subscriptions(tenant_id))
            if found is not None:
                return found
            raise LookupFailedError("Subscription", name_or_id, detail=f"in tenant '{tenant_id}'")

        for tenant in await self.list_tenants():
            try:
                candidates = await self.list_subscriptions(tenant.tenant_id)
            except (ApiRequestError, AuthenticationError) as exc:
                logger.info(
                    "inventory.tenant.skipped",
                    extra=log_context(tenant_id=tenant.tenant_id, error=str(exc)),
                )
                continue
            found = _match(candidates)
            if found is not None:
                return found
        raise LookupFailedError("Subscription", name_or_id, detail="in any accessible tenant")

    async def list_servers(self, subscription: SubscriptionRef) -> list[SqlServerRef]:
        payloads = await self._arm.for_tenant(subscription.tenant_id).list_all(
            f"/subscriptions/{subscription.subscription_id}/providers/Microsoft.Sql/servers",
            api_version=self._settings.sql_api_version,
        )
        servers = [
            server
            for server in (parse_server(item, tenant_id=subscription.tenant_id) for item in payloads)
            if server is not None
        ]
        return sorted(servers, key=lambda server: server.name)

    async def find_server(self, subscription: SubscriptionRef, name_or_fqdn: str) -> SqlServerRef:
        wanted = name_or_fqdn.strip().casefold()
        for server in await self.list_servers(subscription):
            if wanted in (server.name.casefold(), server.fqdn.casefold()):
                return server
        raise LookupFailedError("SQL server", name_or_fqdn, detail=f"in subscription '{subscription.display_name}'")

    async def list_databases(self, server: SqlServerRef) -> list[SqlDatabaseRef]:
        payloads = await self._arm.for_tenant(server.tenant_id).list_all(
            f"{server.resource_id}/databases",
            api_version=self._settings.sql_api_version,
        )
        databases = []
        for item in payloads:
            name = item.get("name")
            if not name or str(name).lower() in SYSTEM_DATABASES:
                continue
            databases.append(SqlDatabaseRef(resource_id=str(item.get("id") or ""), name=str(name), server=server))
        return sorted(databases, key=lambda db: db.name)

    async def find_database(self, server: SqlServerRef, name: str) -> SqlDatabaseRef:
        wanted = name.strip().casefold()
        for database in await self.list_databases(server):
            if database.name.casefold() == wanted:
                return database
        raise LookupFailedError("Database", name, detail=f"on server '{server.name}'")


__all__ = [
    "InventoryService",
    "parse_server",
    "parse_subscription",
    "parse_tenant",
]
