"""Shared runtime wiring and console helpers for the bta CLI."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TypeVar

import httpx
import typer

from bt_azure_tools.common.logging import bind_operation_context, clear_operation_context, setup_logging
from bt_azure_tools.core.credentials import CredentialCache
from bt_azure_tools.core.errors import BtaError
from bt_azure_tools.core.models import SubscriptionRef
from bt_azure_tools.features.inventory.service import InventoryService
from bt_azure_tools.features.principals.service import PrincipalDirectory
from bt_azure_tools.infra.arm import ArmClient
from bt_azure_tools.infra.graph import GraphClient
from bt_azure_tools.infra.http import build_http_client
from bt_azure_tools.settings import Settings, get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXIT_FAILURE = 1
EXIT_CANCELLED = 130


@dataclass(slots=True)
class Runtime:
    """Everything a command needs for one invocation."""

    settings: Settings
    credentials: CredentialCache
    http: httpx.AsyncClient

    def arm(self, tenant_id: str | None = None) -> ArmClient:
        return ArmClient(self.http, self.credentials, self.settings, tenant_id=tenant_id)

    def graph(self, tenant_id: str | None = None) -> GraphClient:
        return GraphClient(self.http, self.credentials, self.settings, tenant_id=tenant_id)

    def inventory(self) -> InventoryService:
        return InventoryService(self.arm(), self.settings)

    def principals(self, tenant_id: str | None = None) -> PrincipalDirectory:
        return PrincipalDirectory(self.graph(tenant_id))

    async def subscription(self, name_or_id: str, tenant_id: str | None) -> SubscriptionRef:
        return await self.inventory().find_subscription(name_or_id, tenant_id=tenant_id)


@asynccontextmanager
async def open_runtime(settings: Settings) -> AsyncIterator[Runtime]:
    http = build_http_client(settings)
    try:
        yield Runtime(settings=settings, credentials=CredentialCache(settings), http=http)
    finally:
        await http.aclose()


def run(action: Callable[[Runtime], Awaitable[T]]) -> T:
    """Run ``action`` with a fresh runtime and map failures to exit codes."""
    settings = get_settings()
    setup_logging(settings)
    operation_id = bind_operation_context()

    async def _main() -> T:
        async with open_runtime(settings) as runtime:
            return await action(runtime)

    try:
        return asyncio.run(_main())
    except BtaError as exc:
        logger.debug("command.failed", exc_info=True)
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc
    except (KeyboardInterrupt, asyncio.CancelledError) as exc:
        typer.echo("⚠️  cancelled", err=True)
        raise typer.Exit(code=EXIT_CANCELLED) from exc
    finally:
        logger.debug("command.finished", extra={"operation": operation_id})
        clear_operation_context()


def confirm(message: str, *, default: bool, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    return typer.confirm(message, default=default)


def echo_table(rows: list[tuple[str, str]]) -> None:
    """Print aligned ``label  value`` rows."""
    if not rows:
        return
    width = max(len(label) for label, _ in rows)
    for label, value in rows:
        typer.echo(f"  {label.ljust(width)}  {value}")


__all__ = [
    "EXIT_CANCELLED",
    "EXIT_FAILURE",
    "Runtime",
    "confirm",
    "echo_table",
    "open_runtime",
    "run",
]
