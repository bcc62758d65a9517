"""whoami command."""

from __future__ import annotations

import typer

from bt_azure_tools.commands import common


async def _whoami(runtime: common.Runtime, tenant: str | None) -> None:
    operator = await runtime.principals(tenant).current_user()
    common.echo_table(
        [
            ("Name", operator.display_name),
            ("Sign-in", operator.sign_in_name or "-"),
            ("Object ID", operator.object_id),
        ]
    )


def run_whoami(tenant: str | None = None) -> None:
    """Show the signed-in operator."""
    common.run(lambda runtime: _whoami(runtime, tenant))


def register(app: typer.Typer) -> None:
    @app.command("whoami", help=run_whoami.__doc__)
    def whoami(
        tenant: str | None = typer.Option(None, "--tenant", help="Tenant ID to sign in to (default: home tenant)."),
    ) -> None:
        run_whoami(tenant)
