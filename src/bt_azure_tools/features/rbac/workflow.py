"""Grant a catalog access level on one resource to one principal."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from bt_azure_tools.common.logging import log_context
from bt_azure_tools.core.catalog import ResourceAccessLevel
from bt_azure_tools.core.models import ArmResourceRef, PrincipalRef, SubscriptionRef
from bt_azure_tools.features.rbac.service import RoleAssignmentPlan, RoleAssignmentReconciler

logger = logging.getLogger(__name__)

ConfirmPlan = Callable[[RoleAssignmentPlan], bool]


@dataclass(slots=True)
class ResourceRoleResult:
    plan: RoleAssignmentPlan
    confirmed: bool
    assigned: list[str] = field(default_factory=list)

    @property
    def already_satisfied(self) -> bool:
        return self.plan.up_to_date


async def assign_resource_roles(
    reconciler: RoleAssignmentReconciler,
    *,
    subscription: SubscriptionRef,
    resource: ArmResourceRef,
    access_level: ResourceAccessLevel,
    principal: PrincipalRef,
    confirm: ConfirmPlan,
) -> ResourceRoleResult:
    """Plan, ask for confirmation when something is missing, then reconcile."""
    plan = await reconciler.plan(resource.resource_id, principal, access_level.role_names)
    if plan.up_to_date:
        logger.info(
            "rbac.workflow.up_to_date",
            extra=log_context(scope=plan.scope, principal_id=principal.object_id, access_level=access_level.name),
        )
        return ResourceRoleResult(plan=plan, confirmed=True)

    if not confirm(plan):
        logger.info("rbac.workflow.declined", extra=log_context(scope=plan.scope, principal_id=principal.object_id))
        return ResourceRoleResult(plan=plan, confirmed=False)

    assigned = await reconciler.reconcile(subscription, plan.scope, principal, plan.missing)
    logger.info(
        "rbac.workflow.completed",
        extra=log_context(
            subscription_id=subscription.subscription_id,
            scope=plan.scope,
            principal_id=principal.object_id,
            assigned=assigned,
        ),
    )
    return ResourceRoleResult(plan=plan, confirmed=True, assigned=assigned)


__all__ = ["ConfirmPlan", "ResourceRoleResult", "assign_resource_roles"]
