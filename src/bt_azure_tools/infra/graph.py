"""Microsoft Graph v1.0 client."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from bt_azure_tools.core.credentials import CredentialCache
from bt_azure_tools.core.errors import GraphRequestError
from bt_azure_tools.infra.http import AzureRestClient, response_json
from bt_azure_tools.settings import Settings


def odata_quote(value: str) -> str:
    """Escape a value for use inside a single-quoted OData literal."""
    return value.replace("'", "''")


class GraphClient(AzureRestClient):
    service = "Graph"
    error_class = GraphRequestError
    next_link_key = "@odata.nextLink"

    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: CredentialCache,
        settings: Settings,
        *,
        tenant_id: str | None = None,
    ) -> None:
        super().__init__(
            http,
            credentials,
            base_url=f"{settings.graph_endpoint}/v1.0",
            scope=settings.graph_scope,
            tenant_id=tenant_id,
        )

    async def me(self) -> dict[str, Any]:
        payload = await self.get_json("/me", params={"$select": "id,displayName,userPrincipalName,mail"})
        return payload or {}

    async def get_by_path(self, collection: str, key: str, *, select: str) -> dict[str, Any] | None:
        """GET ``/{collection}/{key}``; ``None`` on 404 or a malformed key (400)."""
        path = f"/{collection}/{quote(key, safe='@')}"
        response = await self.request("GET", path, params={"$select": select}, allowed_statuses=(400, 404))
        if response.status_code in (400, 404):
            return None
        return response_json(response) or None

    async def query(
        self, collection: str, *, odata_filter: str, select: str, top: int | None = None
    ) -> list[dict[str, Any]]:
        params = {"$filter": odata_filter, "$select": select}
        if top is not None:
            params["$top"] = str(top)
            # A bounded search only needs the first page.
            payload = await self.get_json(f"/{collection}", params=params)
            return [entry for entry in (payload or {}).get("value") or [] if isinstance(entry, dict)]
        return await self.list_paged(f"/{collection}", params=params)


__all__ = ["GraphClient", "odata_quote"]
