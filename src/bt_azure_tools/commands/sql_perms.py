"""sql-perms command."""

from __future__ import annotations

from dataclasses import dataclass

import typer

from bt_azure_tools.commands import common
from bt_azure_tools.core.models import AdminRef, FirewallRuleRef, SqlDatabaseRef
from bt_azure_tools.core.permissions import PermissionLevel
from bt_azure_tools.features.grants.admin import SqlAdminService
from bt_azure_tools.features.grants.firewall import FirewallService
from bt_azure_tools.features.grants.scoped import ReleaseStatus
from bt_azure_tools.features.sql.workflow import (
    SqlChangeSummary,
    SqlPermissionRequest,
    SqlWorkflowResult,
    apply_sql_permissions,
)
from bt_azure_tools.infra.sql import SqlSession, open_sql_session


@dataclass(slots=True)
class ConsolePrompts:
    """Answer workflow questions from flags, falling back to interactive confirmation."""

    assume_yes: bool
    restore_admin_choice: bool | None

    def add_firewall_rule(self, ip_address: str) -> bool:
        typer.echo(f"⚠️  Your IP address {ip_address} is not allowed through the SQL Server firewall.")
        return common.confirm("Add a temporary firewall rule for your IP?", default=True, assume_yes=self.assume_yes)

    def confirm_changes(self, summary: SqlChangeSummary) -> bool:
        request = summary.request
        current = summary.current_level.description if summary.current_level else "None (user does not exist)"
        typer.echo("")
        common.echo_table(
            [
                ("SQL Server", request.server.name),
                ("Database", request.database.name),
                ("Principal", str(request.principal)),
                ("Current Permission", current),
                ("New Permission", request.level.description),
            ]
        )
        typer.echo("")
        if summary.can_manage_users:
            typer.echo("✅ You have database permissions to manage users. No server admin change needed.")
        else:
            typer.echo("⚠️  This operation will temporarily make you the SQL Server Entra admin.")
            if summary.current_admin is not None:
                typer.echo(f"   Current admin: {summary.current_admin}")
            else:
                typer.echo("   No Entra admin is set. You will be configured as admin.")
        return common.confirm("Proceed with these changes?", default=False, assume_yes=self.assume_yes)

    def restore_admin(self, previous: AdminRef | None) -> bool:
        if previous is None:
            typer.echo("ℹ️  No original admin was set; you remain the SQL Server admin.")
            return False
        if self.restore_admin_choice is not None:
            return self.restore_admin_choice
        return common.confirm(
            f"Restore original admin ({previous.display_name})?", default=True, assume_yes=self.assume_yes
        )

    def remove_firewall_rule(self, rule: FirewallRuleRef) -> bool:
        return common.confirm(
            f"Remove temporary firewall rule ({rule.name})?", default=True, assume_yes=self.assume_yes
        )


def _report(result: SqlWorkflowResult, request: SqlPermissionRequest) -> None:
    if not result.confirmed:
        typer.echo("Operation cancelled.")
        return
    applied = result.apply_result
    if applied is not None:
        if request.level is PermissionLevel.NONE:
            typer.echo(f"✅ User {applied.user_name} removed from database {request.database.name}")
        else:
            typer.echo(f"✅ Permissions applied: {request.level.description}")
    admin = result.admin_outcome
    if admin is not None:
        if admin.status is ReleaseStatus.RESTORED:
            typer.echo("✅ Restored original SQL Server admin")
        elif admin.status is ReleaseStatus.SUPPRESSED:
            typer.echo("⚠️  Original admin was NOT restored. You remain the SQL Server admin.")
        elif admin.status is ReleaseStatus.FAILED:
            typer.echo(f"❌ Could not restore the original admin: {admin.error}", err=True)
    firewall = result.firewall_outcome
    if firewall is not None and result.firewall_rule is not None:
        if firewall.status is ReleaseStatus.RESTORED:
            typer.echo(f"✅ Firewall rule {result.firewall_rule.name} removed")
        elif firewall.status is ReleaseStatus.FAILED:
            typer.echo(f"❌ Could not remove firewall rule {result.firewall_rule.name}: {firewall.error}", err=True)
        else:
            typer.echo(f"⚠️  Firewall rule {result.firewall_rule.name} left in place")


async def _sql_perms(
    runtime: common.Runtime,
    *,
    subscription: str,
    tenant: str | None,
    server: str,
    database: str,
    user: str | None,
    principal: str | None,
    level: PermissionLevel,
    prompts: ConsolePrompts,
    manage_firewall: bool,
) -> None:
    sub = await runtime.subscription(subscription, tenant)
    inventory = runtime.inventory()
    server_ref = await inventory.find_server(sub, server)
    database_ref = await inventory.find_database(server_ref, database)
    directory = runtime.principals(sub.tenant_id)
    operator = await directory.current_user()
    target = await directory.resolve(user=user, principal=principal)

    arm = runtime.arm(sub.tenant_id)

    async def _open(db: SqlDatabaseRef) -> SqlSession:
        return await open_sql_session(
            runtime.credentials,
            runtime.settings,
            server_fqdn=db.server.fqdn,
            database=db.name,
            tenant_id=db.server.tenant_id,
        )

    request = SqlPermissionRequest(
        server=server_ref,
        database=database_ref,
        principal=target,
        level=level,
        operator=operator,
        manage_firewall=manage_firewall,
    )
    result = await apply_sql_permissions(
        request,
        admins=SqlAdminService(arm, runtime.settings),
        firewall=FirewallService(arm, runtime.http, runtime.settings),
        open_session=_open,
        prompts=prompts,
        settings=runtime.settings,
    )
    _report(result, request)


def register(app: typer.Typer) -> None:
    @app.command("sql-perms")
    def sql_perms(
        subscription: str = typer.Option(..., "--subscription", "-s", help="Subscription name or ID."),
        server: str = typer.Option(..., "--server", help="SQL server name or FQDN."),
        database: str = typer.Option(..., "--database", "-d", help="Database name."),
        level: str = typer.Option(
            ...,
            "--level",
            "-l",
            help="full_admin, full_app, restricted_app, read_only or none.",
        ),
        tenant: str | None = typer.Option(None, "--tenant", help="Tenant ID (default: search every tenant)."),
        user: str | None = typer.Option(None, "--user", "-u", help="User email / sign-in name."),
        principal: str | None = typer.Option(
            None, "--principal", "-p", help="Managed identity / app name, object ID or app ID."
        ),
        yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to every confirmation."),
        restore_admin: bool | None = typer.Option(
            None,
            "--restore-admin/--keep-admin",
            help="Restore the original SQL admin afterwards, or stay admin (default: ask).",
        ),
        firewall: bool = typer.Option(
            True, "--firewall/--no-firewall", help="Check (and if needed open) the firewall for your IP."
        ),
    ) -> None:
        """Set an Entra principal's permission level on an Azure SQL database."""
        if bool(user) == bool(principal):
            typer.echo("❌ pass exactly one of --user or --principal", err=True)
            raise typer.Exit(code=common.EXIT_FAILURE)
        try:
            parsed_level = PermissionLevel.parse(level)
        except ValueError:
            typer.echo(f"❌ unknown permission level: {level}", err=True)
            raise typer.Exit(code=common.EXIT_FAILURE) from None

        prompts = ConsolePrompts(assume_yes=yes, restore_admin_choice=restore_admin)
        common.run(
            lambda runtime: _sql_perms(
                runtime,
                subscription=subscription,
                tenant=tenant,
                server=server,
                database=database,
                user=user,
                principal=principal,
                level=parsed_level,
                prompts=prompts,
                manage_firewall=firewall,
            )
        )
