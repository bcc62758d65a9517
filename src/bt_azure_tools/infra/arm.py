"""Azure Resource Manager client."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from bt_azure_tools.core.credentials import CredentialCache
from bt_azure_tools.core.errors import ArmRequestError, LongRunningOperationError
from bt_azure_tools.infra.http import AzureRestClient, response_json
from bt_azure_tools.settings import Settings

logger = logging.getLogger(__name__)

_TERMINAL_SUCCESS = {"succeeded"}
_TERMINAL_FAILURE = {"failed", "canceled", "cancelled"}


class ArmClient(AzureRestClient):
    """ARM REST calls, optionally pinned to one tenant's credential.

    Write operations wait for long-running operations to reach a terminal
    state before returning.
    """

    service = "ARM"
    error_class = ArmRequestError
    next_link_key = "nextLink"

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
            base_url=settings.arm_endpoint,
            scope=settings.arm_scope,
            tenant_id=tenant_id,
        )
        self.settings = settings

    def for_tenant(self, tenant_id: str | None) -> ArmClient:
        """Return a client sharing the HTTP pool but pinned to ``tenant_id``."""
        return ArmClient(self._http, self._credentials, self.settings, tenant_id=tenant_id)

    async def get_resource(
        self, path: str, *, api_version: str, allow_not_found: bool = False
    ) -> dict[str, Any] | None:
        return await self.get_json(path, params={"api-version": api_version}, allow_not_found=allow_not_found)

    async def list_all(self, path: str, *, api_version: str, odata_filter: str | None = None) -> list[dict[str, Any]]:
        params = {"api-version": api_version}
        if odata_filter:
            params["$filter"] = odata_filter
        return await self.list_paged(path, params=params)

    async def put_and_wait(self, path: str, body: dict[str, Any], *, api_version: str) -> dict[str, Any]:
        """Create or replace a resource and wait for the operation to finish."""
        response = await self.request("PUT", path, params={"api-version": api_version}, json=body)
        await self._wait_for_completion(response, method="PUT")
        return response_json(response)

    async def delete_and_wait(self, path: str, *, api_version: str, allow_not_found: bool = True) -> bool:
        """Delete a resource. Returns False when it did not exist."""
        allowed = (404,) if allow_not_found else ()
        response = await self.request(
            "DELETE", path, params={"api-version": api_version}, allowed_statuses=allowed
        )
        if response.status_code == 404:
            return False
        await self._wait_for_completion(response, method="DELETE")
        return True

    async def _wait_for_completion(self, response: httpx.Response, *, method: str) -> None:
        if response.status_code not in (201, 202):
            return
        async_url = response.headers.get("Azure-AsyncOperation")
        location_url = response.headers.get("Location")
        if async_url:
            await self._poll_async_operation(async_url, method=method)
        elif location_url and response.status_code == 202:
            await self._poll_location(location_url, method=method)

    async def _poll_async_operation(self, url: str, *, method: str) -> None:
        deadline = time.monotonic() + self.settings.lro_timeout_seconds
        while True:
            payload = response_json(await self.request("GET", url))
            status = str(payload.get("status") or "").strip()
            normalized = status.lower()
            if normalized in _TERMINAL_SUCCESS:
                logger.debug("arm.lro.succeeded", extra={"method": method, "url": url})
                return
            if normalized in _TERMINAL_FAILURE:
                error = payload.get("error") or {}
                detail = error.get("message") if isinstance(error, dict) else None
                raise LongRunningOperationError(url, status=status, detail=detail)
            if time.monotonic() >= deadline:
                raise LongRunningOperationError(url, status="TimedOut", detail=f"last status '{status or 'unknown'}'")
            await asyncio.sleep(self.settings.lro_poll_interval_seconds)

    async def _poll_location(self, url: str, *, method: str) -> None:
        deadline = time.monotonic() + self.settings.lro_timeout_seconds
        while True:
            response = await self.request("GET", url, allowed_statuses=(404,))
            if response.status_code != 202:
                logger.debug(
                    "arm.lro.completed",
                    extra={"method": method, "url": url, "status": response.status_code},
                )
                return
            if time.monotonic() >= deadline:
                raise LongRunningOperationError(url, status="TimedOut")
            await asyncio.sleep(self.settings.lro_poll_interval_seconds)


__all__ = ["ArmClient"]
