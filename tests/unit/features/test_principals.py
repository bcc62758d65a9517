from __future__ import annotations

import pytest

from bt_azure_tools.core.errors import LookupFailedError
from bt_azure_tools.core.models import PrincipalKind, PrincipalRef
from bt_azure_tools.features.principals.service import (
    PrincipalDirectory,
    decode_guest_upn,
    encode_guest_prefix,
    is_guest,
    parse_service_principal,
    rank_user_matches,
)
from bt_azure_tools.infra.graph import GraphClient

APP_ID = "0a1b2c3d-0000-0000-0000-00000000000a"
SP_ID = "5e6f7a8b-0000-0000-0000-00000000000b"


@pytest.fixture
def directory(http, credentials, settings) -> PrincipalDirectory:
    return PrincipalDirectory(GraphClient(http, credentials, settings, tenant_id="t1"))


def _filter_is(expected: str):
    return lambda request: request.url.params.get("$filter") == expected


def test_guest_upn_round_trip_helpers() -> None:
    assert decode_guest_upn("jane.doe_contoso.com#EXT#@fabrikam.onmicrosoft.com") == "jane.doe@contoso.com"
    assert decode_guest_upn("first_last_contoso.com#ext#@fabrikam.onmicrosoft.com") == "first_last@contoso.com"
    assert decode_guest_upn("alice@fabrikam.com") is None
    assert decode_guest_upn("#EXT#@fabrikam.onmicrosoft.com") is None
    assert encode_guest_prefix("jane.doe@contoso.com") == "jane.doe_contoso.com#EXT#"
    assert encode_guest_prefix("not-an-email") is None


def test_ranking_prefers_exact_internal_matches() -> None:
    guest = PrincipalRef("1", "Jane (guest)", PrincipalKind.USER, sign_in_name="jane_contoso.com#EXT#@fab.onmicrosoft.com")
    by_mail = PrincipalRef("2", "Zed", PrincipalKind.USER, sign_in_name="zed@fab.com", mail="jane@contoso.com")
    internal = PrincipalRef("3", "Aaron", PrincipalKind.USER, sign_in_name="aaron@fab.com")
    exact = PrincipalRef("4", "Yolanda", PrincipalKind.USER, sign_in_name="JANE@contoso.com")

    ranked = rank_user_matches([guest, internal, by_mail, exact], "jane@contoso.com")

    assert [user.object_id for user in ranked] == ["4", "2", "1", "3"]
    assert is_guest(guest) and not is_guest(internal)


def test_managed_identities_are_recognized() -> None:
    identity = parse_service_principal(
        {"id": SP_ID.upper(), "displayName": "orders-api", "appId": APP_ID, "servicePrincipalType": "ManagedIdentity"}
    )
    app = parse_service_principal({"id": SP_ID, "displayName": "ci", "servicePrincipalType": "Application"})

    assert identity.kind is PrincipalKind.MANAGED_IDENTITY
    assert identity.object_id == SP_ID
    assert app.kind is PrincipalKind.SERVICE_PRINCIPAL
    assert parse_service_principal({}) is None


async def test_current_user(directory, azure) -> None:
    azure.add("GET", "/v1.0/me", json={"id": "me-1", "displayName": "Operator", "userPrincipalName": "op@contoso.com"})

    me = await directory.current_user()

    assert me.sign_in_name == "op@contoso.com"
    assert me.kind is PrincipalKind.USER


async def test_user_found_by_sign_in_name(directory, azure) -> None:
    azure.add(
        "GET",
        "/v1.0/users/alice@contoso.com",
        json={"id": "u-1", "displayName": "Alice", "userPrincipalName": "alice@contoso.com"},
    )

    user = await directory.resolve(user="alice@contoso.com")

    assert user.object_id == "u-1"
    assert len(azure.requests) == 1


async def test_user_found_by_mail(directory, azure) -> None:
    azure.add("GET", "/v1.0/users/bob@contoso.com", status=404, json={"error": {"code": "Request_ResourceNotFound"}})
    azure.add(
        "GET",
        "/v1.0/users",
        json={"value": [{"id": "u-2", "displayName": "Bob", "userPrincipalName": "bob@corp.contoso.com", "mail": "bob@contoso.com"}]},
        when=_filter_is("mail eq 'bob@contoso.com'"),
    )

    user = await directory.find_user_by_email("bob@contoso.com")

    assert user.object_id == "u-2"
    assert user.mail == "bob@contoso.com"


async def test_guest_found_by_decoded_alias(directory, azure) -> None:
    upn = "o'neil_partner.com#EXT#@contoso.onmicrosoft.com"
    azure.add("GET", "/v1.0/users/o'neil@partner.com", status=404, json={})
    azure.add("GET", "/v1.0/users", json={"value": []}, when=_filter_is("mail eq 'o''neil@partner.com'"))
    azure.add(
        "GET",
        "/v1.0/users",
        json={"value": [{"id": "g-1", "displayName": "Pat O'Neil", "userPrincipalName": upn}]},
        when=_filter_is("startswith(userPrincipalName,'o''neil_partner.com#EXT#')"),
    )

    user = await directory.find_user_by_email("o'neil@partner.com")

    assert user.object_id == "g-1"
    assert is_guest(user)


async def test_unknown_user_raises(directory, azure) -> None:
    azure.add("GET", "/v1.0/users/ghost@contoso.com", status=404, json={})
    azure.add("GET", "/v1.0/users", json={"value": []})

    with pytest.raises(LookupFailedError, match="ghost@contoso.com"):
        await directory.resolve(user="ghost@contoso.com")


async def test_service_principal_by_application_id(directory, azure) -> None:
    azure.add("GET", f"/v1.0/servicePrincipals/{APP_ID}", status=404, json={})
    azure.add(
        "GET",
        "/v1.0/servicePrincipals",
        json={"value": [{"id": SP_ID, "displayName": "orders-api", "appId": APP_ID, "servicePrincipalType": "Application"}]},
        when=_filter_is(f"appId eq '{APP_ID}'"),
    )

    sp = await directory.resolve(principal=APP_ID)

    assert sp.object_id == SP_ID
    assert sp.application_id == APP_ID


async def test_service_principal_by_display_name_skips_id_lookups(directory, azure) -> None:
    azure.add(
        "GET",
        "/v1.0/servicePrincipals",
        json={"value": [{"id": SP_ID, "displayName": "orders-api", "servicePrincipalType": "ManagedIdentity"}]},
        when=_filter_is("displayName eq 'orders-api'"),
    )

    sp = await directory.resolve(principal="orders-api")

    assert sp.kind is PrincipalKind.MANAGED_IDENTITY
    assert len(azure.requests) == 1


async def test_search_users_ranks_results(directory, azure) -> None:
    azure.add(
        "GET",
        "/v1.0/users",
        json={
            "value": [
                {"id": "u-2", "displayName": "Sam B", "userPrincipalName": "sam.b@contoso.com"},
                {"id": "u-1", "displayName": "Sam", "userPrincipalName": "sam@contoso.com"},
            ]
        },
    )

    users = await directory.search_users("sam@contoso.com")

    assert [user.object_id for user in users] == ["u-1", "u-2"]
    assert azure.calls("GET", "/v1.0/users")[0].url.params["$top"] == "20"
    assert await directory.search_users("  ") == []


async def test_resolve_requires_a_selector(directory) -> None:
    with pytest.raises(LookupFailedError):
        await directory.resolve()
