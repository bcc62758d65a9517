"""Bearer-token REST client shared by the ARM and Graph clients."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

import httpx

from bt_azure_tools.core.credentials import CredentialCache
from bt_azure_tools.core.errors import ApiRequestError, PagingLimitError, TransportError
from bt_azure_tools.settings import Settings

logger = logging.getLogger(__name__)

# Safety valve for paged listings that keep returning a next link.
_MAX_PAGES = 500


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the process-wide async HTTP client."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        follow_redirects=False,
        headers={"Accept": "application/json"},
    )


def extract_error(response: httpx.Response) -> tuple[str | None, str | None]:
    """Return ``(code, message)`` from an ARM/Graph error envelope, if present."""
    try:
        payload = response.json()
    except ValueError:
        text = response.text.strip()
        return None, text[:500] or None
    if not isinstance(payload, Mapping):
        return None, None
    error = payload.get("error")
    if isinstance(error, Mapping):
        code = error.get("code")
        message = error.get("message")
        return (str(code) if code else None), (str(message) if message else None)
    message = payload.get("message")
    return None, (str(message) if message else None)


class AzureRestClient:
    """Send authenticated JSON requests to one Azure REST endpoint."""

    service = "API"
    error_class: type[ApiRequestError] = ApiRequestError
    next_link_key = "nextLink"

    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: CredentialCache,
        *,
        base_url: str,
        scope: str,
        tenant_id: str | None = None,
    ) -> None:
        self._http = http
        self._credentials = credentials
        self._base_url = base_url.rstrip("/")
        self._scope = scope
        self.tenant_id = tenant_id

    def url_for(self, path: str) -> str:
        if path.startswith(("https://", "http://")):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self._base_url}{path}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        allowed_statuses: Iterable[int] = (),
    ) -> httpx.Response:
        """Send a request and raise :attr:`error_class` on any non-success status.

        Statuses listed in ``allowed_statuses`` are returned to the caller
        instead of raising.
        """
        url = self.url_for(path)
        token = await self._credentials.get_token(self._scope, tenant_id=self.tenant_id)
        request_headers = {"Authorization": f"Bearer {token}"}
        if headers:
            request_headers.update(headers)

        try:
            response = await self._http.request(method, url, params=params, json=json, headers=request_headers)
        except httpx.HTTPError as exc:
            raise TransportError(self.service, method=method, url=url, detail=str(exc) or type(exc).__name__) from exc

        logger.debug(
            "http.response",
            extra={"service": self.service, "method": method, "url": url, "status": response.status_code},
        )
        if response.is_success or response.status_code in set(allowed_statuses):
            return response

        code, message = extract_error(response)
        raise self.error_class(response.status_code, method=method, url=url, code=code, message=message)

    async def get_json(
        self,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        allow_not_found: bool = False,
    ) -> dict[str, Any] | None:
        allowed = (404,) if allow_not_found else ()
        response = await self.request("GET", path, params=params, allowed_statuses=allowed)
        if response.status_code == 404:
            return None
        return response_json(response)

    async def list_paged(self, path: str, *, params: Mapping[str, str] | None = None) -> list[dict[str, Any]]:
        """Drain every page of a ``value`` listing, following the next link."""
        items: list[dict[str, Any]] = []
        next_path: str | None = path
        next_params = params
        pages = 0
        while next_path:
            pages += 1
            if pages > _MAX_PAGES:
                raise PagingLimitError(self.service, url=path, pages=_MAX_PAGES)
            payload = response_json(await self.request("GET", next_path, params=next_params))
            for entry in payload.get("value") or []:
                if isinstance(entry, dict):
                    items.append(entry)
            link = payload.get(self.next_link_key)
            next_path = str(link) if link else None
            # The next link already carries the full query string.
            next_params = None
        return items


def response_json(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


__all__ = ["AzureRestClient", "build_http_client", "extract_error", "response_json"]
