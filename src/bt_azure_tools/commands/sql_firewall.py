"""sql-firewall command."""

from __future__ import annotations

import typer

from bt_azure_tools.commands import common
from bt_azure_tools.features.grants.firewall import FirewallService, build_rule_name


async def _sql_firewall(
    runtime: common.Runtime, *, subscription: str, tenant: str | None, server: str, assume_yes: bool
) -> None:
    sub = await runtime.subscription(subscription, tenant)
    server_ref = await runtime.inventory().find_server(sub, server)
    firewall = FirewallService(runtime.arm(sub.tenant_id), runtime.http, runtime.settings)

    ip_address = await firewall.get_public_ip()
    typer.echo(f"Your public IP: {ip_address}")
    covering = await firewall.find_covering_rule(server_ref, ip_address)
    if covering is not None:
        typer.echo(f"✅ Your IP address {ip_address} is already allowed (rule {covering.name}). No changes needed.")
        return

    typer.echo(f"⚠️  Your IP address {ip_address} is NOT allowed through the firewall of {server_ref.name}.")
    if not common.confirm("Add firewall rule for your IP?", default=True, assume_yes=assume_yes):
        typer.echo("Operation cancelled.")
        return

    operator = await runtime.principals(sub.tenant_id).current_user()
    rule = await firewall.add_rule(server_ref, build_rule_name(operator.sign_in_name), ip_address)
    typer.echo(f"✅ Firewall rule added: {rule.name}")
    typer.echo("Note: it may take up to 5 minutes for the rule to take effect.")
    typer.echo(f"To remove it later, delete {rule.name} from the SQL Server firewall settings.")


def register(app: typer.Typer) -> None:
    @app.command("sql-firewall")
    def sql_firewall(
        subscription: str = typer.Option(..., "--subscription", "-s", help="Subscription name or ID."),
        server: str = typer.Option(..., "--server", help="SQL server name or FQDN."),
        tenant: str | None = typer.Option(None, "--tenant", help="Tenant ID (default: search every tenant)."),
        yes: bool = typer.Option(False, "--yes", "-y", help="Add the rule without asking."),
    ) -> None:
        """Allow your current public IP through an Azure SQL server firewall."""
        common.run(
            lambda runtime: _sql_firewall(
                runtime, subscription=subscription, tenant=tenant, server=server, assume_yes=yes
            )
        )
