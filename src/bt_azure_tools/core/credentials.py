"""Per-tenant Azure credential cache.

This is the only place credentials are constructed. One bootstrap credential
(no tenant pinned) is used for tenant discovery; every other call goes through
a credential pinned to the target tenant.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable

from azure.core.credentials import TokenCredential
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import (
    AzureCliCredential,
    ChainedTokenCredential,
    InteractiveBrowserCredential,
    TokenCachePersistenceOptions,
)

from bt_azure_tools.common.logging import log_context
from bt_azure_tools.core.errors import AuthenticationError
from bt_azure_tools.settings import Settings

logger = logging.getLogger(__name__)

CredentialFactory = Callable[[str | None], TokenCredential]


def build_default_credential(settings: Settings, tenant_id: str | None) -> TokenCredential:
    """Azure CLI first, then an interactive browser sign-in with a persistent cache."""
    sources: list[TokenCredential] = [
        AzureCliCredential(tenant_id=tenant_id) if tenant_id else AzureCliCredential(),
    ]
    if settings.credential_allow_browser:
        cache_options = TokenCachePersistenceOptions(name=settings.credential_cache_name)
        if tenant_id:
            browser = InteractiveBrowserCredential(tenant_id=tenant_id, cache_persistence_options=cache_options)
        else:
            browser = InteractiveBrowserCredential(cache_persistence_options=cache_options)
        sources.append(browser)
    return ChainedTokenCredential(*sources)


class CredentialCache:
    """Lazily create and memoize credentials per tenant."""

    def __init__(self, settings: Settings, factory: CredentialFactory | None = None) -> None:
        self._settings = settings
        self._factory: CredentialFactory = factory or (lambda tenant: build_default_credential(settings, tenant))
        self._lock = threading.Lock()
        self._bootstrap: TokenCredential | None = None
        self._by_tenant: dict[str, TokenCredential] = {}

    def get_bootstrap(self) -> TokenCredential:
        credential = self._bootstrap
        if credential is not None:
            return credential
        with self._lock:
            if self._bootstrap is None:
                logger.debug("credential.bootstrap.create")
                self._bootstrap = self._factory(None)
            return self._bootstrap

    def get_for_tenant(self, tenant_id: str) -> TokenCredential:
        key = tenant_id.strip().lower()
        if not key:
            raise ValueError("tenant_id must be a non-empty string")
        credential = self._by_tenant.get(key)
        if credential is not None:
            return credential
        with self._lock:
            credential = self._by_tenant.get(key)
            if credential is None:
                logger.debug("credential.tenant.create", extra=log_context(tenant_id=key))
                credential = self._factory(key)
                self._by_tenant[key] = credential
            return credential

    def get(self, tenant_id: str | None = None) -> TokenCredential:
        return self.get_for_tenant(tenant_id) if tenant_id else self.get_bootstrap()

    async def get_token(self, scope: str, *, tenant_id: str | None = None) -> str:
        """Acquire a bearer token for ``scope`` without blocking the event loop."""
        credential = self.get(tenant_id)
        try:
            access_token = await asyncio.to_thread(credential.get_token, scope)
        except ClientAuthenticationError as exc:
            logger.warning(
                "credential.token.failed",
                extra=log_context(tenant_id=tenant_id, scope=scope, error=str(exc)),
            )
            target = f"tenant '{tenant_id}'" if tenant_id else "the default tenant"
            raise AuthenticationError(
                f"Could not acquire a token for {scope} in {target}. Run 'az login' and try again.",
                tenant_id=tenant_id,
                scope=scope,
            ) from exc
        return access_token.token


__all__ = ["CredentialCache", "CredentialFactory", "build_default_credential"]
