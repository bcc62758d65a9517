"""Value objects shared by the reconcilers, grants and clients."""

from __future__ import annotations

import enum
import hashlib
import ipaddress
import uuid
from dataclasses import dataclass


class PrincipalKind(str, enum.Enum):
    """Category of an Entra principal."""

    USER = "user"
    GROUP = "group"
    SERVICE_PRINCIPAL = "service_principal"
    MANAGED_IDENTITY = "managed_identity"

    @property
    def arm_principal_type(self) -> str:
        if self is PrincipalKind.USER:
            return "User"
        if self is PrincipalKind.GROUP:
            return "Group"
        return "ServicePrincipal"

    @property
    def label(self) -> str:
        return {
            PrincipalKind.USER: "User",
            PrincipalKind.GROUP: "Group",
            PrincipalKind.SERVICE_PRINCIPAL: "App",
            PrincipalKind.MANAGED_IDENTITY: "Managed Identity",
        }[self]


def normalize_object_id(value: str) -> str:
    """Return the canonical lower-case form of a GUID-like object ID."""
    text = str(value).strip()
    try:
        return str(uuid.UUID(text))
    except ValueError:
        return text.lower()


@dataclass(frozen=True, slots=True)
class PrincipalRef:
    """An Entra principal (user, group, service principal or managed identity)."""

    object_id: str
    display_name: str
    kind: PrincipalKind
    sign_in_name: str | None = None
    application_id: str | None = None
    mail: str | None = None

    @property
    def sql_user_name(self) -> str:
        """Name used in ``CREATE USER ... FROM EXTERNAL PROVIDER``."""
        if self.kind is PrincipalKind.USER and self.sign_in_name:
            return self.sign_in_name
        return self.display_name

    def __str__(self) -> str:
        if self.sign_in_name:
            return f"{self.display_name} ({self.sign_in_name}) [{self.kind.label}]"
        return f"{self.display_name} [{self.kind.label}]"


@dataclass(frozen=True, slots=True)
class AdminRef:
    """The Entra administrator configured on a SQL server."""

    object_id: str
    display_name: str
    login_name: str | None = None

    @classmethod
    def from_principal(cls, principal: PrincipalRef) -> AdminRef:
        return cls(
            object_id=principal.object_id,
            display_name=principal.display_name,
            login_name=principal.sql_user_name,
        )

    def __str__(self) -> str:
        if self.login_name and self.login_name != self.display_name:
            return f"{self.display_name} ({self.login_name})"
        return self.display_name


@dataclass(frozen=True, slots=True)
class TenantRef:
    tenant_id: str
    display_name: str
    default_domain: str | None = None

    def __str__(self) -> str:
        return f"{self.display_name} ({self.default_domain or self.tenant_id})"


@dataclass(frozen=True, slots=True)
class SubscriptionRef:
    subscription_id: str
    display_name: str
    tenant_id: str

    def __str__(self) -> str:
        return f"{self.display_name} ({self.subscription_id})"


@dataclass(frozen=True, slots=True)
class SqlServerRef:
    resource_id: str
    name: str
    resource_group: str
    fqdn: str
    tenant_id: str

    def __str__(self) -> str:
        return f"{self.name} ({self.fqdn})"


@dataclass(frozen=True, slots=True)
class SqlDatabaseRef:
    resource_id: str
    name: str
    server: SqlServerRef

    def __str__(self) -> str:
        return f"{self.name} (on {self.server.name})"


@dataclass(frozen=True, slots=True)
class ArmResourceRef:
    resource_id: str
    name: str
    resource_group: str
    resource_type: str
    location: str
    kind: str | None = None


@dataclass(frozen=True, slots=True)
class RoleAssignmentRecord:
    """The unit the RBAC reconciler idempotently creates."""

    scope: str
    principal_id: str
    role_definition_id: str

    @property
    def assignment_name(self) -> str:
        """Deterministic assignment GUID derived from the full logical key.

        MD5 digest laid out as a little-endian GUID so identifiers match those
        produced by earlier releases of the tool for the same triple.
        """
        key = f"{self.scope}|{self.principal_id}|{self.role_definition_id}"
        digest = hashlib.md5(key.encode("utf-8"), usedforsecurity=False).digest()
        return str(uuid.UUID(bytes_le=digest))


@dataclass(frozen=True, slots=True)
class FirewallRuleRef:
    name: str
    start_ip: str
    end_ip: str
    ephemeral: bool = False

    def contains(self, ip_address: str) -> bool:
        return ip_in_range(ip_address, self.start_ip, self.end_ip)


def ipv4_to_int(value: str | None) -> int | None:
    """Parse an IPv4 address as an unsigned 32-bit big-endian integer."""
    if not value:
        return None
    try:
        return int(ipaddress.IPv4Address(value.strip()))
    except ValueError:
        return None


def ip_in_range(ip_address: str, start_ip: str | None, end_ip: str | None) -> bool:
    """Return True when ``ip_address`` lies in the inclusive range ``[start_ip, end_ip]``."""
    ip = ipv4_to_int(ip_address)
    start = ipv4_to_int(start_ip)
    end = ipv4_to_int(end_ip)
    if ip is None or start is None or end is None:
        return False
    return start <= ip <= end


__all__ = [
    "AdminRef",
    "ArmResourceRef",
    "FirewallRuleRef",
    "PrincipalKind",
    "PrincipalRef",
    "RoleAssignmentRecord",
    "SqlDatabaseRef",
    "SqlServerRef",
    "SubscriptionRef",
    "TenantRef",
    "ip_in_range",
    "ipv4_to_int",
    "normalize_object_id",
]
