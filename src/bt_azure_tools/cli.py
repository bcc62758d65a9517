"""bta: grant and reconcile access to Azure SQL databases and ARM resources."""

from __future__ import annotations

from importlib import metadata

import typer

from bt_azure_tools.commands import register_all

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Grant and reconcile access to Azure SQL databases and RBAC-governed Azure resources.",
)


def _version_callback(value: bool) -> None:
    if not value:
        return
    try:
        version = metadata.version("bt-azure-tools")
    except metadata.PackageNotFoundError:
        version = "unknown"
    typer.echo(f"bt-azure-tools {version}")
    raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the installed version and exit.",
    ),
) -> None:
    """Grant and reconcile access to Azure SQL databases and RBAC-governed Azure resources."""


register_all(app)


if __name__ == "__main__":
    app()
