from __future__ import annotations

import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor

import pytest
from azure.core.credentials import AccessToken
from azure.core.exceptions import ClientAuthenticationError

from bt_azure_tools.core.credentials import CredentialCache
from bt_azure_tools.core.errors import AuthenticationError


class _RecordingCredential:
    def __init__(self, tenant_id: str | None) -> None:
        self.tenant_id = tenant_id
        self.scopes: list[str] = []

    def get_token(self, *scopes: str, **_: object) -> AccessToken:
        self.scopes.extend(scopes)
        return AccessToken(f"token-{self.tenant_id}", 4102444800)


class _FailingCredential:
    def __init__(self, tenant_id: str | None) -> None:
        self.tenant_id = tenant_id

    def get_token(self, *scopes: str, **_: object) -> AccessToken:
        raise ClientAuthenticationError("interactive sign-in required")


def test_credentials_are_memoized_per_tenant(settings) -> None:
    created: list[str | None] = []

    def factory(tenant_id: str | None) -> _RecordingCredential:
        created.append(tenant_id)
        return _RecordingCredential(tenant_id)

    cache = CredentialCache(settings, factory=factory)

    first = cache.get_for_tenant("Tenant-A")
    second = cache.get_for_tenant("tenant-a ")
    other = cache.get_for_tenant("tenant-b")
    bootstrap = cache.get()

    assert first is second
    assert first is not other
    assert bootstrap is cache.get_bootstrap()
    assert created == ["tenant-a", "tenant-b", None]


def test_blank_tenant_is_rejected(settings) -> None:
    cache = CredentialCache(settings, factory=_RecordingCredential)

    with pytest.raises(ValueError):
        cache.get_for_tenant("   ")


async def test_get_token_uses_the_tenant_credential(settings) -> None:
    cache = CredentialCache(settings, factory=_RecordingCredential)

    token = await cache.get_token(settings.arm_scope, tenant_id="t1")

    assert token == "token-t1"
    assert cache.get_for_tenant("t1").scopes == ["https://management.azure.com/.default"]


async def test_authentication_failure_is_translated(settings) -> None:
    cache = CredentialCache(settings, factory=_FailingCredential)

    with pytest.raises(AuthenticationError) as excinfo:
        await cache.get_token(settings.graph_scope, tenant_id="t9")

    assert excinfo.value.tenant_id == "t9"
    assert excinfo.value.scope == "https://graph.microsoft.com/.default"
    assert "az login" in str(excinfo.value)


def test_concurrent_lookups_build_one_credential_per_key(settings) -> None:
    created: Counter[str | None] = Counter()
    counter_lock = threading.Lock()

    def slow_factory(tenant_id: str | None) -> _RecordingCredential:
        with counter_lock:
            created[tenant_id] += 1
        time.sleep(0.05)
        return _RecordingCredential(tenant_id)

    cache = CredentialCache(settings, factory=slow_factory)
    workers = 16
    barrier = threading.Barrier(workers)
    lookups = [
        lambda: cache.get_for_tenant("tenant-a"),
        lambda: cache.get_for_tenant(" Tenant-A "),
        lambda: cache.get_for_tenant("tenant-b"),
        cache.get_bootstrap,
    ]

    def run(index: int):
        barrier.wait(timeout=5)
        return index % len(lookups), lookups[index % len(lookups)]()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(run, range(workers)))

    by_lookup: dict[int, set[int]] = {}
    for slot, credential in results:
        by_lookup.setdefault(slot, set()).add(id(credential))
    assert all(len(ids) == 1 for ids in by_lookup.values())
    assert by_lookup[0] == by_lookup[1]
    assert by_lookup[0] != by_lookup[2]
    assert created == Counter({"tenant-a": 1, "tenant-b": 1, None: 1})
