"""Additive RBAC role assignment reconciliation at an ARM scope."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from bt_azure_tools.common.logging import log_context
from bt_azure_tools.core.errors import InvalidScopeError, RoleNotFoundError
from bt_azure_tools.core.models import PrincipalRef, RoleAssignmentRecord, SubscriptionRef, normalize_object_id
from bt_azure_tools.infra.arm import ArmClient
from bt_azure_tools.infra.graph import odata_quote
from bt_azure_tools.infra.http import extract_error
from bt_azure_tools.settings import Settings

logger = logging.getLogger(__name__)

_ROLE_ASSIGNMENTS = "providers/Microsoft.Authorization/roleAssignments"
_ROLE_DEFINITIONS = "providers/Microsoft.Authorization/roleDefinitions"


def normalize_scope(scope: str) -> str:
    """One leading slash, no trailing slash. Blank scopes are rejected."""
    text = (scope or "").strip()
    if not text or not text.strip("/"):
        raise InvalidScopeError("Scope cannot be empty.")
    return "/" + text.strip("/")


def dedupe_role_names(role_names: Iterable[str]) -> list[str]:
    """Drop blanks and case-insensitive duplicates, keeping first-seen order."""
    seen: set[str] = set()
    ordered: list[str] = []
    for name in role_names:
        cleaned = (name or "").strip()
        key = cleaned.casefold()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        ordered.append(cleaned)
    return ordered


@dataclass(slots=True)
class RoleAssignmentPlan:
    scope: str
    principal: PrincipalRef
    desired: list[str]
    current: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def up_to_date(self) -> bool:
        return not self.missing


class RoleAssignmentReconciler:
    """Add the role assignments a principal is missing at a scope.

    Never removes an assignment. Role definition names are memoized for the
    lifetime of the reconciler.
    """

    def __init__(self, arm: ArmClient, settings: Settings) -> None:
        self._arm = arm
        self._api_version = settings.rbac_api_version
        self._role_names: dict[str, str | None] = {}

    async def list_principal_role_names(self, scope: str, principal_id: str) -> list[str]:
        normalized = normalize_scope(scope)
        wanted = normalize_object_id(principal_id)
        assignments = await self._arm.list_all(
            f"{normalized}/{_ROLE_ASSIGNMENTS}",
            api_version=self._api_version,
            odata_filter="atScope()",
        )

        definition_ids: dict[str, str] = {}
        for assignment in assignments:
            props = assignment.get("properties") or {}
            assigned_to = props.get("principalId")
            if not assigned_to or normalize_object_id(assigned_to) != wanted:
                continue
            definition_id = props.get("roleDefinitionId")
            if definition_id:
                definition_ids.setdefault(str(definition_id).lower(), str(definition_id))

        names: dict[str, str] = {}
        for definition_id in definition_ids.values():
            role_name = await self.resolve_role_name(definition_id)
            if role_name:
                names.setdefault(role_name.casefold(), role_name)
        return sorted(names.values(), key=str.casefold)

    async def resolve_role_name(self, role_definition_id: str) -> str | None:
        key = role_definition_id.lower()
        if key not in self._role_names:
            payload = await self._arm.get_resource(role_definition_id, api_version=self._api_version)
            props = (payload or {}).get("properties") or {}
            self._role_names[key] = props.get("roleName") or None
        return self._role_names[key]

    async def resolve_role_definition_id(self, subscription: SubscriptionRef, role_name: str) -> str:
        definitions = await self._arm.list_all(
            f"/subscriptions/{subscription.subscription_id}/{_ROLE_DEFINITIONS}",
            api_version=self._api_version,
            odata_filter=f"roleName eq '{odata_quote(role_name)}'",
        )
        for definition in definitions:
            definition_id = definition.get("id")
            if definition_id:
                return str(definition_id)
        raise RoleNotFoundError(role_name, subscription=subscription.display_name)

    async def plan(self, scope: str, principal: PrincipalRef, role_names: Iterable[str]) -> RoleAssignmentPlan:
        """Compare desired roles with current ones without writing anything."""
        normalized = normalize_scope(scope)
        desired = dedupe_role_names(role_names)
        plan = RoleAssignmentPlan(scope=normalized, principal=principal, desired=desired)
        if not desired:
            return plan
        plan.current = await self.list_principal_role_names(normalized, principal.object_id)
        existing = {name.casefold() for name in plan.current}
        plan.missing = [name for name in desired if name.casefold() not in existing]
        return plan

    async def reconcile(
        self,
        subscription: SubscriptionRef,
        scope: str,
        principal: PrincipalRef,
        role_names: Iterable[str],
    ) -> list[str]:
        """Assign each desired role the principal does not already hold.

        Returns only the role names that were newly assigned.
        """
        plan = await self.plan(scope, principal, role_names)
        if plan.up_to_date:
            logger.info(
                "rbac.reconcile.up_to_date",
                extra=log_context(scope=plan.scope, principal_id=principal.object_id, roles=plan.desired),
            )
            return []

        created: list[str] = []
        for role_name in plan.missing:
            definition_id = await self.resolve_role_definition_id(subscription, role_name)
            record = RoleAssignmentRecord(
                scope=plan.scope,
                principal_id=normalize_object_id(principal.object_id),
                role_definition_id=definition_id,
            )
            if await self._put_assignment(record, principal):
                created.append(role_name)
        return created

    async def _put_assignment(self, record: RoleAssignmentRecord, principal: PrincipalRef) -> bool:
        body = {
            "properties": {
                "roleDefinitionId": record.role_definition_id,
                "principalId": record.principal_id,
                "principalType": principal.kind.arm_principal_type,
            }
        }
        path = f"{record.scope}/{_ROLE_ASSIGNMENTS}/{record.assignment_name}"
        response = await self._arm.request(
            "PUT",
            path,
            params={"api-version": self._api_version},
            json=body,
            allowed_statuses=(409,),
        )
        ctx = log_context(
            scope=record.scope,
            principal_id=record.principal_id,
            role_definition_id=record.role_definition_id,
            assignment=record.assignment_name,
        )
        if response.status_code == 409:
            if "roleassignmentexists" in response.text.lower():
                logger.debug("rbac.assign.conflict", extra=ctx)
                return False
            code, message = extract_error(response)
            raise self._arm.error_class(409, method="PUT", url=self._arm.url_for(path), code=code, message=message)
        logger.info("rbac.assign.created", extra=ctx)
        return True


__all__ = [
    "RoleAssignmentPlan",
    "RoleAssignmentReconciler",
    "dedupe_role_names",
    "normalize_scope",
]
