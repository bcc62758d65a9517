"""Set a principal's permission level on an Azure SQL database.

The operator may lack the rights to do so. In that case the operator is made
server administrator for the duration of the change and the previous
administrator is put back afterwards (unless the operator chooses to stay).
A temporary firewall rule is added first when the operator's public address
cannot reach the server.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from bt_azure_tools.common.logging import log_context
from bt_azure_tools.core.errors import BtaError
from bt_azure_tools.core.models import AdminRef, FirewallRuleRef, PrincipalRef, SqlDatabaseRef, SqlServerRef
from bt_azure_tools.core.permissions import PermissionLevel
from bt_azure_tools.features.grants.admin import SqlAdminService
from bt_azure_tools.features.grants.firewall import FirewallService, build_temporary_rule_name, cleanup_policy
from bt_azure_tools.features.grants.scoped import ReleaseOutcome, ReleaseStatus, ScopedPrivilegeGrant
from bt_azure_tools.features.sql.permissions import (
    SqlApplyResult,
    SqlPermissionReconciler,
    can_current_user_manage_users,
)
from bt_azure_tools.infra.sql import SqlSession
from bt_azure_tools.settings import Settings

logger = logging.getLogger(__name__)

SessionOpener = Callable[[SqlDatabaseRef], Awaitable[SqlSession]]


@dataclass(frozen=True, slots=True)
class SqlPermissionRequest:
    server: SqlServerRef
    database: SqlDatabaseRef
    principal: PrincipalRef
    level: PermissionLevel
    operator: PrincipalRef
    manage_firewall: bool = True


@dataclass(frozen=True, slots=True)
class SqlChangeSummary:
    """What the operator is asked to confirm before anything is written."""

    request: SqlPermissionRequest
    current_level: PermissionLevel | None
    can_manage_users: bool
    current_admin: AdminRef | None


class SqlWorkflowPrompts(Protocol):
    def add_firewall_rule(self, ip_address: str) -> bool: ...

    def confirm_changes(self, summary: SqlChangeSummary) -> bool: ...

    def restore_admin(self, previous: AdminRef | None) -> bool: ...

    def remove_firewall_rule(self, rule: FirewallRuleRef) -> bool: ...


@dataclass(slots=True)
class SqlWorkflowResult:
    summary: SqlChangeSummary | None = None
    confirmed: bool = False
    elevated: bool = False
    apply_result: SqlApplyResult | None = None
    admin_outcome: ReleaseOutcome | None = None
    firewall_rule: FirewallRuleRef | None = None
    firewall_outcome: ReleaseOutcome | None = None


async def _check_access(
    open_session: SessionOpener, request: SqlPermissionRequest
) -> tuple[bool, PermissionLevel | None]:
    """Check the operator's rights and the principal's current level. Failures count as "no"."""
    try:
        session = await open_session(request.database)
    except BtaError as exc:
        logger.info(
            "sql.workflow.check.connect_failed",
            extra=log_context(server=request.server.name, database=request.database.name, error=str(exc)),
        )
        return False, None
    try:
        can_manage = await can_current_user_manage_users(session)
        try:
            current = await SqlPermissionReconciler(session).get_permission_level(request.principal)
        except BtaError:
            current = None
        return can_manage, current
    finally:
        await session.aclose()


async def apply_sql_permissions(
    request: SqlPermissionRequest,
    *,
    admins: SqlAdminService,
    firewall: FirewallService,
    open_session: SessionOpener,
    prompts: SqlWorkflowPrompts,
    settings: Settings,
) -> SqlWorkflowResult:
    result = SqlWorkflowResult()
    ctx = log_context(
        server=request.server.name,
        database=request.database.name,
        principal_id=request.principal.object_id,
        level=request.level.value,
    )
    firewall_grant: ScopedPrivilegeGrant[FirewallRuleRef] | None = None
    admin_grant: ScopedPrivilegeGrant[AdminRef] | None = None

    try:
        if request.manage_firewall:
            ip_address = await firewall.get_public_ip()
            covering = await firewall.find_covering_rule(request.server, ip_address)
            if covering is not None:
                result.firewall_rule = covering
            elif prompts.add_firewall_rule(ip_address):
                firewall_grant = await firewall.grant_temporary_access(
                    request.server,
                    ip_address,
                    build_temporary_rule_name(),
                    policy=cleanup_policy(settings.firewall_rule_cleanup),
                )
                result.firewall_rule = firewall_grant.applied
            else:
                logger.warning("sql.workflow.firewall.skipped", extra=ctx)

        can_manage, current_level = await _check_access(open_session, request)
        current_admin = None if can_manage else await admins.get_admin(request.server)
        result.summary = SqlChangeSummary(
            request=request,
            current_level=current_level,
            can_manage_users=can_manage,
            current_admin=current_admin,
        )
        if not prompts.confirm_changes(result.summary):
            logger.info("sql.workflow.declined", extra=ctx)
            return result
        result.confirmed = True

        if not can_manage:
            admin_grant = await admins.elevate_current_user(request.server, request.operator)
            result.elevated = True

        session = await open_session(request.database)
        try:
            reconciler = SqlPermissionReconciler(
                session, database=request.database.name, server=request.server.name
            )
            result.apply_result = await reconciler.apply(request.principal, request.level)
        finally:
            await session.aclose()

        if admin_grant is not None and not prompts.restore_admin(admin_grant.previous):
            admin_grant.suppress()
        return result
    finally:
        if admin_grant is not None:
            result.admin_outcome = await admin_grant.release()
        if firewall_grant is not None:
            result.firewall_outcome = await _release_firewall(firewall_grant, prompts, settings)
        logger.info(
            "sql.workflow.finished",
            extra={
                **ctx,
                "elevated": result.elevated,
                "admin_release": result.admin_outcome.status.value if result.admin_outcome else None,
                "firewall_release": result.firewall_outcome.status.value if result.firewall_outcome else None,
            },
        )


async def _release_firewall(
    grant: ScopedPrivilegeGrant[FirewallRuleRef],
    prompts: SqlWorkflowPrompts,
    settings: Settings,
) -> ReleaseOutcome:
    outcome = await grant.release()
    rule = grant.applied
    if outcome.status is not ReleaseStatus.ADVISORY or rule is None or not rule.ephemeral:
        return outcome
    if settings.firewall_rule_cleanup == "ask" and prompts.remove_firewall_rule(rule):
        return await grant.restore()
    logger.warning("sql.workflow.firewall.rule_left", extra=log_context(rule=rule.name))
    return outcome


__all__ = [
    "SessionOpener",
    "SqlChangeSummary",
    "SqlPermissionRequest",
    "SqlWorkflowPrompts",
    "SqlWorkflowResult",
    "apply_sql_permissions",
]
