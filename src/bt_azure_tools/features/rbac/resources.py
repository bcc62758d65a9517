"""Discover ARM resources of a catalog type in a subscription."""

from __future__ import annotations

from typing import Any

from bt_azure_tools.core.catalog import SupportedResourceType
from bt_azure_tools.core.errors import LookupFailedError
from bt_azure_tools.core.models import ArmResourceRef, SubscriptionRef
from bt_azure_tools.infra.arm import ArmClient
from bt_azure_tools.infra.graph import odata_quote
from bt_azure_tools.settings import Settings


def resource_group_from_id(resource_id: str) -> str | None:
    parts = [part for part in resource_id.split("/") if part]
    for index, part in enumerate(parts[:-1]):
        if part.lower() == "resourcegroups":
            return parts[index + 1]
    return None


def _matches_kind(resource_type: SupportedResourceType, kind: str | None) -> bool:
    if not resource_type.kind_contains:
        return True
    return bool(kind) and resource_type.kind_contains.lower() in kind.lower()


def parse_resource(payload: dict[str, Any]) -> ArmResourceRef | None:
    resource_id = payload.get("id")
    name = payload.get("name")
    arm_type = payload.get("type")
    if not resource_id or not name or not arm_type:
        return None
    return ArmResourceRef(
        resource_id=str(resource_id),
        name=str(name),
        resource_group=resource_group_from_id(str(resource_id)) or "unknown",
        resource_type=str(arm_type),
        location=str(payload.get("location") or "unknown"),
        kind=payload.get("kind") or None,
    )


class ResourceDirectory:
    def __init__(self, arm: ArmClient, settings: Settings) -> None:
        self._arm = arm
        self._api_version = settings.resources_api_version

    async def list_resources(
        self, subscription: SubscriptionRef, resource_type: SupportedResourceType
    ) -> list[ArmResourceRef]:
        """Resources of ``resource_type``, filtered by kind where the type requires it, sorted by name."""
        payloads = await self._arm.list_all(
            f"/subscriptions/{subscription.subscription_id}/resources",
            api_version=self._api_version,
            odata_filter=f"resourceType eq '{odata_quote(resource_type.arm_type)}'",
        )
        resources = []
        for payload in payloads:
            resource = parse_resource(payload)
            if resource is None or not _matches_kind(resource_type, resource.kind):
                continue
            resources.append(resource)
        return sorted(resources, key=lambda item: item.name.casefold())

    async def find_resource(
        self, subscription: SubscriptionRef, resource_type: SupportedResourceType, name_or_id: str
    ) -> ArmResourceRef:
        wanted = name_or_id.strip().casefold()
        for resource in await self.list_resources(subscription, resource_type):
            if wanted in (resource.name.casefold(), resource.resource_id.casefold()):
                return resource
        raise LookupFailedError(
            resource_type.display_name,
            name_or_id,
            detail=f"in subscription '{subscription.display_name}'",
        )


__all__ = ["ResourceDirectory", "parse_resource", "resource_group_from_id"]
