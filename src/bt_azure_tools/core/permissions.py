"""Database permission levels and the role sets they map to."""

from __future__ import annotations

import enum
from collections.abc import Iterable

DB_OWNER = "db_owner"
DB_DATAREADER = "db_datareader"
DB_DATAWRITER = "db_datawriter"

# Every role the SQL reconciler resyncs. Membership in any of these that is not
# part of the target level is removed.
MANAGED_ROLES: tuple[str, ...] = (DB_OWNER, DB_DATAREADER, DB_DATAWRITER)


class PermissionLevel(str, enum.Enum):
    """Database permission levels, most to least privileged."""

    FULL_ADMIN = "full_admin"
    FULL_APP = "full_app"
    RESTRICTED_APP = "restricted_app"
    READ_ONLY = "read_only"
    NONE = "none"

    @property
    def roles(self) -> tuple[str, ...]:
        return _LEVEL_ROLES[self]

    @property
    def grants_execute(self) -> bool:
        return self is PermissionLevel.FULL_APP

    @property
    def description(self) -> str:
        return _LEVEL_DESCRIPTIONS[self]

    @classmethod
    def parse(cls, value: str) -> PermissionLevel:
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        aliases = {
            "admin": cls.FULL_ADMIN,
            "owner": cls.FULL_ADMIN,
            "app": cls.FULL_APP,
            "restricted": cls.RESTRICTED_APP,
            "read": cls.READ_ONLY,
            "readonly": cls.READ_ONLY,
            "remove": cls.NONE,
        }
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


_LEVEL_ROLES: dict[PermissionLevel, tuple[str, ...]] = {
    PermissionLevel.FULL_ADMIN: (DB_OWNER,),
    PermissionLevel.FULL_APP: (DB_DATAREADER, DB_DATAWRITER),
    PermissionLevel.RESTRICTED_APP: (DB_DATAREADER, DB_DATAWRITER),
    PermissionLevel.READ_ONLY: (DB_DATAREADER,),
    PermissionLevel.NONE: (),
}

_LEVEL_DESCRIPTIONS: dict[PermissionLevel, str] = {
    PermissionLevel.FULL_ADMIN: "Full Admin (db_owner - all permissions)",
    PermissionLevel.FULL_APP: "Full App-Level (read/write/execute)",
    PermissionLevel.RESTRICTED_APP: "Restricted App-Level (read/write only)",
    PermissionLevel.READ_ONLY: "Read-Only (db_datareader)",
    PermissionLevel.NONE: "None (remove user)",
}


def infer_permission_level(role_names: Iterable[str]) -> PermissionLevel | None:
    """Map observed role memberships back to a level, for display only.

    Lossy: FULL_APP and RESTRICTED_APP share the same roles and differ only by
    the EXECUTE grant, so both are reported as FULL_APP.
    """
    roles = {name.lower() for name in role_names}
    if DB_OWNER in roles:
        return PermissionLevel.FULL_ADMIN
    if DB_DATAREADER in roles and DB_DATAWRITER in roles:
        return PermissionLevel.FULL_APP
    if DB_DATAREADER in roles:
        return PermissionLevel.READ_ONLY
    return None


__all__ = [
    "DB_DATAREADER",
    "DB_DATAWRITER",
    "DB_OWNER",
    "MANAGED_ROLES",
    "PermissionLevel",
    "infer_permission_level",
]
