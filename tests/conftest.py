from __future__ import annotations

import json as jsonlib
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import pytest
from azure.core.credentials import AccessToken

from bt_azure_tools.core.credentials import CredentialCache
from bt_azure_tools.core.errors import SqlExecutionError
from bt_azure_tools.features.sql.permissions import (
    CAN_MANAGE_USERS_SQL,
    IS_IN_ROLE_SQL,
    USER_EXISTS_SQL,
    USER_ROLES_SQL,
)
from bt_azure_tools.settings import Settings


def pytest_collection_modifyitems(config, items) -> None:
    for item in items:
        path_str = str(Path(str(item.fspath)))
        if "/tests/integration/" in path_str:
            item.add_marker(pytest.mark.integration)
        elif "/tests/unit/" in path_str:
            item.add_marker(pytest.mark.unit)


class FakeCredential:
    def __init__(self, tenant_id: str | None = None) -> None:
        self.tenant_id = tenant_id
        self.scopes: list[str] = []

    def get_token(self, *scopes: str, **_: Any) -> AccessToken:
        self.scopes.extend(scopes)
        return AccessToken(f"token-{self.tenant_id or 'bootstrap'}", 4102444800)


@dataclass
class _Route:
    method: str
    path: str
    respond: Callable[[httpx.Request], httpx.Response]
    when: Callable[[httpx.Request], bool] | None
    times: int | None


class MockAzure:
    """Route table behind an ``httpx.MockTransport``.

    Routes match on method and URL path (and an optional predicate). A route
    added with ``times`` is consumed after that many matches.
    """

    def __init__(self) -> None:
        self._routes: list[_Route] = []
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        *,
        status: int = 200,
        json: Any = None,
        text: str | None = None,
        headers: dict[str, str] | None = None,
        when: Callable[[httpx.Request], bool] | None = None,
        times: int | None = None,
        respond: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> None:
        if respond is None:

            def respond(request: httpx.Request) -> httpx.Response:
                if text is not None:
                    return httpx.Response(status, text=text, headers=headers)
                if json is None:
                    return httpx.Response(status, headers=headers)
                return httpx.Response(status, json=json, headers=headers)

        self._routes.append(_Route(method.upper(), path, respond, when, times))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for route in self._routes:
            if route.method != request.method or route.path != request.url.path:
                continue
            if route.when is not None and not route.when(request):
                continue
            if route.times is not None:
                if route.times <= 0:
                    continue
                route.times -= 1
            return route.respond(request)
        raise AssertionError(f"unexpected request: {request.method} {request.url}")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls(self, method: str, path: str | None = None) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method.upper() and (path is None or request.url.path == path)
        ]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return jsonlib.loads(request.content or b"null")


class FakeSqlSession:
    """In-memory stand-in for a database session.

    Answers the permission queries from ``users``/``memberships`` and records
    every executed statement. ``fail_on`` makes any statement containing that
    text raise.
    """

    def __init__(
        self,
        *,
        users: tuple[str, ...] = (),
        memberships: dict[str, set[str]] | None = None,
        can_manage: bool = True,
        fail_on: str | None = None,
    ) -> None:
        self.users = set(users)
        self.memberships = {user: set(roles) for user, roles in (memberships or {}).items()}
        self.can_manage = can_manage
        self.fail_on = fail_on
        self.executed: list[str] = []
        self.closed = False

    async def execute(self, statement: str, params=None) -> None:
        if self.fail_on and self.fail_on in statement:
            raise SqlExecutionError("SQL statement failed: permission denied", statement=statement)
        self.executed.append(statement)

    async def scalar(self, statement: str, params=None) -> Any:
        params = params or {}
        if statement == CAN_MANAGE_USERS_SQL:
            return 1 if self.can_manage else 0
        if statement == USER_EXISTS_SQL:
            return 1 if params["user_name"] in self.users else 0
        if statement == IS_IN_ROLE_SQL:
            return 1 if params["role_name"] in self.memberships.get(params["user_name"], set()) else 0
        raise AssertionError(f"unexpected scalar query: {statement}")

    async def column(self, statement: str, params=None) -> list[Any]:
        if statement == USER_ROLES_SQL:
            return sorted(self.memberships.get(params["user_name"], set()))
        raise AssertionError(f"unexpected column query: {statement}")

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        lro_poll_interval_seconds=0,
        admin_propagation_delay_seconds=0,
        admin_propagation_poll_interval_seconds=0.01,
        admin_propagation_timeout_seconds=0.05,
    )


@pytest.fixture
def credentials(settings: Settings) -> CredentialCache:
    return CredentialCache(settings, factory=FakeCredential)


@pytest.fixture
def azure() -> MockAzure:
    return MockAzure()


@pytest.fixture
async def http(azure: MockAzure):
    client = azure.client()
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def fake_sql() -> type[FakeSqlSession]:
    return FakeSqlSession
