from __future__ import annotations

import hashlib
import uuid

import pytest

from bt_azure_tools.core.models import (
    AdminRef,
    FirewallRuleRef,
    PrincipalKind,
    PrincipalRef,
    RoleAssignmentRecord,
    ip_in_range,
    ipv4_to_int,
    normalize_object_id,
)

SCOPE = "/subscriptions/s1/resourceGroups/rg/providers/Microsoft.KeyVault/vaults/kv"
PRINCIPAL = "0f6c7a4e-1a2b-4c3d-8e9f-001122334455"
ROLE = "/subscriptions/s1/providers/Microsoft.Authorization/roleDefinitions/4633458b-17de-408a-b874-0445c86b69e6"


def test_assignment_name_is_deterministic_for_the_same_triple() -> None:
    first = RoleAssignmentRecord(SCOPE, PRINCIPAL, ROLE).assignment_name
    second = RoleAssignmentRecord(SCOPE, PRINCIPAL, ROLE).assignment_name

    assert first == second
    assert str(uuid.UUID(first)) == first


def test_assignment_name_uses_little_endian_guid_layout() -> None:
    digest = hashlib.md5(f"{SCOPE}|{PRINCIPAL}|{ROLE}".encode("utf-8")).digest()
    name = RoleAssignmentRecord(SCOPE, PRINCIPAL, ROLE).assignment_name

    assert uuid.UUID(name).bytes_le == digest
    # The first three groups are byte-swapped relative to the raw digest.
    assert name.replace("-", "")[:8] == digest[3::-1].hex()


def test_assignment_name_changes_with_any_part_of_the_key() -> None:
    base = RoleAssignmentRecord(SCOPE, PRINCIPAL, ROLE).assignment_name

    assert RoleAssignmentRecord(SCOPE + "2", PRINCIPAL, ROLE).assignment_name != base
    assert RoleAssignmentRecord(SCOPE, PRINCIPAL.replace("0f", "1f"), ROLE).assignment_name != base
    assert RoleAssignmentRecord(SCOPE, PRINCIPAL, ROLE + "0").assignment_name != base


@pytest.mark.parametrize(
    ("ip", "expected"),
    [
        ("10.0.0.4", False),
        ("10.0.0.5", True),
        ("10.0.0.7", True),
        ("10.0.0.10", True),
        ("10.0.0.11", False),
    ],
)
def test_ip_range_is_inclusive_at_both_ends(ip: str, expected: bool) -> None:
    assert ip_in_range(ip, "10.0.0.5", "10.0.0.10") is expected
    assert FirewallRuleRef("dev", "10.0.0.5", "10.0.0.10").contains(ip) is expected


def test_ip_comparison_is_numeric_not_lexical() -> None:
    assert ip_in_range("10.0.0.100", "10.0.0.9", "10.0.0.200")
    assert not ip_in_range("9.255.255.255", "10.0.0.0", "10.255.255.255")


@pytest.mark.parametrize("bad", ["", "not-an-ip", "256.1.1.1", "::1", None])
def test_invalid_addresses_never_match(bad: str | None) -> None:
    assert ipv4_to_int(bad) is None
    assert not ip_in_range("10.0.0.5", bad, "10.0.0.10")
    assert not ip_in_range(bad or "", "0.0.0.0", "255.255.255.255")


def test_ipv4_to_int_is_big_endian_unsigned() -> None:
    assert ipv4_to_int("0.0.0.1") == 1
    assert ipv4_to_int("1.0.0.0") == 1 << 24
    assert ipv4_to_int("255.255.255.255") == 2**32 - 1


def test_sql_user_name_prefers_sign_in_name_for_users_only() -> None:
    user = PrincipalRef("id-1", "Alice Smith", PrincipalKind.USER, sign_in_name="alice@contoso.com")
    identity = PrincipalRef("id-2", "orders-api", PrincipalKind.MANAGED_IDENTITY, sign_in_name="ignored")
    bare_user = PrincipalRef("id-3", "Bob", PrincipalKind.USER)

    assert user.sql_user_name == "alice@contoso.com"
    assert identity.sql_user_name == "orders-api"
    assert bare_user.sql_user_name == "Bob"


def test_principal_kinds_map_to_arm_principal_types() -> None:
    assert PrincipalKind.USER.arm_principal_type == "User"
    assert PrincipalKind.GROUP.arm_principal_type == "Group"
    assert PrincipalKind.SERVICE_PRINCIPAL.arm_principal_type == "ServicePrincipal"
    assert PrincipalKind.MANAGED_IDENTITY.arm_principal_type == "ServicePrincipal"


def test_admin_ref_from_principal_uses_sql_user_name_as_login() -> None:
    operator = PrincipalRef(PRINCIPAL, "Operator", PrincipalKind.USER, sign_in_name="op@contoso.com")

    admin = AdminRef.from_principal(operator)

    assert admin == AdminRef(PRINCIPAL, "Operator", "op@contoso.com")
    assert str(admin) == "Operator (op@contoso.com)"


def test_normalize_object_id_lowercases_guids() -> None:
    assert normalize_object_id(PRINCIPAL.upper()) == PRINCIPAL
    assert normalize_object_id(" Not-A-Guid ") == "not-a-guid"
