"""resource-iam and resource-types commands."""

from __future__ import annotations

import typer

from bt_azure_tools.commands import common
from bt_azure_tools.core.catalog import SUPPORTED_TYPES, SupportedResourceType, get_resource_type
from bt_azure_tools.features.rbac.resources import ResourceDirectory
from bt_azure_tools.features.rbac.service import RoleAssignmentPlan, RoleAssignmentReconciler
from bt_azure_tools.features.rbac.workflow import assign_resource_roles


def _require_type(type_id: str) -> SupportedResourceType:
    resource_type = get_resource_type(type_id)
    if resource_type is None:
        typer.echo(f"❌ unknown resource type: {type_id} (see `bta resource-types`)", err=True)
        raise typer.Exit(code=common.EXIT_FAILURE)
    return resource_type


def _confirm_plan(assume_yes: bool):
    def _confirm(plan: RoleAssignmentPlan) -> bool:
        common.echo_table(
            [
                ("Scope", plan.scope),
                ("Principal", str(plan.principal)),
                ("Current roles", ", ".join(plan.current) or "(none)"),
                ("Roles to add", ", ".join(plan.missing)),
            ]
        )
        return common.confirm("Assign the missing roles?", default=False, assume_yes=assume_yes)

    return _confirm


async def _resource_iam(
    runtime: common.Runtime,
    *,
    subscription: str,
    tenant: str | None,
    resource_type: SupportedResourceType,
    resource: str,
    access_level: str,
    user: str | None,
    principal: str | None,
    assume_yes: bool,
) -> None:
    level = resource_type.access_level(access_level)
    if level is None:
        names = ", ".join(item.name for item in resource_type.access_levels)
        typer.echo(f"❌ unknown access level '{access_level}' for {resource_type.display_name}. Choose from: {names}", err=True)
        raise typer.Exit(code=common.EXIT_FAILURE)

    sub = await runtime.subscription(subscription, tenant)
    arm = runtime.arm(sub.tenant_id)
    target_resource = await ResourceDirectory(arm, runtime.settings).find_resource(sub, resource_type, resource)
    target = await runtime.principals(sub.tenant_id).resolve(user=user, principal=principal)

    result = await assign_resource_roles(
        RoleAssignmentReconciler(arm, runtime.settings),
        subscription=sub,
        resource=target_resource,
        access_level=level,
        principal=target,
        confirm=_confirm_plan(assume_yes),
    )
    if result.already_satisfied:
        typer.echo(f"✅ {target.display_name} already has {level.name} on {target_resource.name}. No changes needed.")
    elif not result.confirmed:
        typer.echo("Operation cancelled.")
    elif result.assigned:
        typer.echo(f"✅ Assigned: {', '.join(result.assigned)}")
    else:
        typer.echo("✅ Role assignments already existed. No new assignments created.")


def run_resource_types() -> None:
    """List the resource types and access levels resource-iam supports."""
    for entry in SUPPORTED_TYPES:
        typer.echo(f"{entry.id:<22} {entry.display_name} ({entry.arm_type})")
        for level in entry.access_levels:
            typer.echo(f"    {level.name:<42} {', '.join(level.role_names)}")


def register(app: typer.Typer) -> None:
    @app.command("resource-iam")
    def resource_iam(
        subscription: str = typer.Option(..., "--subscription", "-s", help="Subscription name or ID."),
        type_id: str = typer.Option(..., "--type", "-t", help="Resource type ID (see `bta resource-types`)."),
        resource: str = typer.Option(..., "--resource", "-r", help="Resource name or resource ID."),
        access_level: str = typer.Option(..., "--access-level", "-a", help="Access level name for the type."),
        tenant: str | None = typer.Option(None, "--tenant", help="Tenant ID (default: search every tenant)."),
        user: str | None = typer.Option(None, "--user", "-u", help="User email / sign-in name."),
        principal: str | None = typer.Option(
            None, "--principal", "-p", help="Managed identity / app name, object ID or app ID."
        ),
        yes: bool = typer.Option(False, "--yes", "-y", help="Assign without asking."),
    ) -> None:
        """Grant an access level on an Azure resource to a user or app (adds roles, never removes)."""
        if bool(user) == bool(principal):
            typer.echo("❌ pass exactly one of --user or --principal", err=True)
            raise typer.Exit(code=common.EXIT_FAILURE)
        resource_type = _require_type(type_id)
        common.run(
            lambda runtime: _resource_iam(
                runtime,
                subscription=subscription,
                tenant=tenant,
                resource_type=resource_type,
                resource=resource,
                access_level=access_level,
                user=user,
                principal=principal,
                assume_yes=yes,
            )
        )

    @app.command("resource-types", help=run_resource_types.__doc__)
    def resource_types() -> None:
        run_resource_types()
