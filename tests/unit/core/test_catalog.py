from __future__ import annotations

from bt_azure_tools.core.catalog import SUPPORTED_TYPE_BY_ID, SUPPORTED_TYPES, get_resource_type


def test_catalog_has_twenty_four_unique_types() -> None:
    ids = [entry.id for entry in SUPPORTED_TYPES]

    assert len(ids) == 24
    assert len(set(ids)) == len(ids)
    assert set(SUPPORTED_TYPE_BY_ID) == set(ids)


def test_every_type_has_levels_with_roles() -> None:
    for entry in SUPPORTED_TYPES:
        assert entry.arm_type.count("/") >= 1, entry.id
        assert entry.access_levels, entry.id
        names = [level.name.casefold() for level in entry.access_levels]
        assert len(set(names)) == len(names), entry.id
        for level in entry.access_levels:
            assert level.role_names, f"{entry.id}:{level.name}"


def test_lookup_is_case_insensitive() -> None:
    key_vault = get_resource_type(" Key-Vault ")

    assert key_vault is not None
    assert key_vault.arm_type == "Microsoft.KeyVault/vaults"
    assert key_vault.access_level("secrets user").role_names == ("Key Vault Secrets User",)
    assert key_vault.access_level("no such level") is None
    assert get_resource_type("not-a-type") is None


def test_kind_filters_distinguish_shared_arm_types() -> None:
    openai = get_resource_type("azure-openai")
    functions = get_resource_type("function-app")

    assert openai.kind_contains == "openai"
    assert functions.kind_contains == "functionapp"
    assert get_resource_type("app-service").kind_contains is None
