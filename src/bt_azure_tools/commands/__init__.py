"""Command registrations for the bta CLI."""

from __future__ import annotations

import typer

from . import resource_iam
from . import sql_firewall
from . import sql_perms
from . import whoami

COMMAND_MODULES = (
    whoami,
    sql_perms,
    sql_firewall,
    resource_iam,
)


def register_all(app: typer.Typer) -> None:
    for module in COMMAND_MODULES:
        module.register(app)
