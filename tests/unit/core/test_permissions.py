from __future__ import annotations

import pytest

from bt_azure_tools.core.permissions import (
    DB_DATAREADER,
    DB_DATAWRITER,
    DB_OWNER,
    MANAGED_ROLES,
    PermissionLevel,
    infer_permission_level,
)


def test_level_role_sets() -> None:
    assert PermissionLevel.FULL_ADMIN.roles == (DB_OWNER,)
    assert PermissionLevel.FULL_APP.roles == (DB_DATAREADER, DB_DATAWRITER)
    assert PermissionLevel.RESTRICTED_APP.roles == (DB_DATAREADER, DB_DATAWRITER)
    assert PermissionLevel.READ_ONLY.roles == (DB_DATAREADER,)
    assert PermissionLevel.NONE.roles == ()


def test_only_full_app_grants_execute() -> None:
    assert [level for level in PermissionLevel if level.grants_execute] == [PermissionLevel.FULL_APP]


def test_every_level_role_is_managed() -> None:
    for level in PermissionLevel:
        assert set(level.roles) <= set(MANAGED_ROLES)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("full_admin", PermissionLevel.FULL_ADMIN),
        ("Full-App", PermissionLevel.FULL_APP),
        ("restricted app", PermissionLevel.RESTRICTED_APP),
        ("readonly", PermissionLevel.READ_ONLY),
        (" none ", PermissionLevel.NONE),
        ("owner", PermissionLevel.FULL_ADMIN),
    ],
)
def test_parse_accepts_values_and_aliases(raw: str, expected: PermissionLevel) -> None:
    assert PermissionLevel.parse(raw) is expected


def test_parse_rejects_unknown_levels() -> None:
    with pytest.raises(ValueError):
        PermissionLevel.parse("superuser")


@pytest.mark.parametrize(
    ("roles", "expected"),
    [
        (["db_owner", "db_datareader"], PermissionLevel.FULL_ADMIN),
        (["DB_DATAREADER", "db_datawriter"], PermissionLevel.FULL_APP),
        (["db_datareader"], PermissionLevel.READ_ONLY),
        (["db_datawriter"], None),
        ([], None),
    ],
)
def test_infer_permission_level_is_display_only_approximation(roles, expected) -> None:
    assert infer_permission_level(roles) is expected
