"""Entra principal lookup through Microsoft Graph."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from bt_azure_tools.common.logging import log_context
from bt_azure_tools.core.errors import LookupFailedError
from bt_azure_tools.core.models import PrincipalKind, PrincipalRef, normalize_object_id
from bt_azure_tools.infra.graph import GraphClient, odata_quote

logger = logging.getLogger(__name__)

USER_SELECT = "id,displayName,userPrincipalName,mail"
SERVICE_PRINCIPAL_SELECT = "id,displayName,appId,servicePrincipalType"
SEARCH_LIMIT = 20

_GUEST_MARKER = "#EXT#"


def decode_guest_upn(user_principal_name: str | None) -> str | None:
    """``jane.doe_contoso.com#EXT#@tenant.onmicrosoft.com`` -> ``jane.doe@contoso.com``."""
    if not user_principal_name:
        return None
    marker = user_principal_name.upper().find(_GUEST_MARKER)
    if marker <= 0:
        return None
    encoded = user_principal_name[:marker]
    split = encoded.rfind("_")
    if split <= 0 or split >= len(encoded) - 1:
        return None
    return f"{encoded[:split]}@{encoded[split + 1:]}"


def encode_guest_prefix(email: str) -> str | None:
    """The UPN prefix a guest invited with ``email`` is given (``local_domain#EXT#``)."""
    local, sep, domain = email.strip().rpartition("@")
    if not sep or not local or not domain:
        return None
    return f"{local}_{domain}{_GUEST_MARKER}"


def is_guest(principal: PrincipalRef) -> bool:
    return _GUEST_MARKER in (principal.sign_in_name or "").upper()


def rank_user_matches(users: list[PrincipalRef], query: str) -> list[PrincipalRef]:
    """Order users for display, best match first.

    Exact sign-in name, then exact mail, then decoded guest alias, then
    internal accounts before guests, then display name.
    """
    wanted = query.strip().casefold()

    def _key(user: PrincipalRef) -> tuple[int, int, int, int, str]:
        upn = (user.sign_in_name or "").casefold()
        mail = (user.mail or "").casefold()
        alias = (decode_guest_upn(user.sign_in_name) or "").casefold()
        return (
            0 if upn and upn == wanted else 1,
            0 if mail and mail == wanted else 1,
            0 if alias and alias == wanted else 1,
            1 if is_guest(user) else 0,
            user.display_name.casefold(),
        )

    return sorted(users, key=_key)


def parse_user(payload: dict[str, Any]) -> PrincipalRef | None:
    object_id = payload.get("id")
    if not object_id:
        return None
    upn = payload.get("userPrincipalName")
    mail = payload.get("mail")
    return PrincipalRef(
        object_id=normalize_object_id(object_id),
        display_name=payload.get("displayName") or "Unknown",
        kind=PrincipalKind.USER,
        sign_in_name=upn or mail,
        mail=mail,
    )


def parse_service_principal(payload: dict[str, Any]) -> PrincipalRef | None:
    object_id = payload.get("id")
    if not object_id:
        return None
    sp_type = str(payload.get("servicePrincipalType") or "")
    kind = PrincipalKind.MANAGED_IDENTITY if sp_type.lower() == "managedidentity" else PrincipalKind.SERVICE_PRINCIPAL
    return PrincipalRef(
        object_id=normalize_object_id(object_id),
        display_name=payload.get("displayName") or "Unknown",
        kind=kind,
        application_id=payload.get("appId"),
    )


def _is_guid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class PrincipalDirectory:
    """Find users and service principals in the operator's directory."""

    def __init__(self, graph: GraphClient) -> None:
        self._graph = graph

    async def current_user(self) -> PrincipalRef:
        payload = await self._graph.me()
        user = parse_user(payload)
        if user is None:
            raise LookupFailedError("Signed-in user", "me", detail="(Graph returned no id)")
        return user

    async def search_users(self, term: str) -> list[PrincipalRef]:
        term = term.strip()
        if not term:
            return []
        quoted = odata_quote(term)
        payloads = await self._graph.query(
            "users",
            odata_filter=(
                f"startswith(displayName,'{quoted}') or startswith(mail,'{quoted}') "
                f"or startswith(userPrincipalName,'{quoted}')"
            ),
            select=USER_SELECT,
            top=SEARCH_LIMIT,
        )
        users = [user for user in (parse_user(item) for item in payloads) if user is not None]
        return rank_user_matches(users, term)

    async def find_user_by_email(self, email: str) -> PrincipalRef | None:
        """Exact lookup: sign-in name, then mail, then the guest form of the address."""
        email = email.strip()
        if not email:
            return None

        payload = await self._graph.get_by_path("users", email, select=USER_SELECT)
        if payload is not None and (user := parse_user(payload)) is not None:
            return user

        payloads = await self._graph.query(
            "users",
            odata_filter=f"mail eq '{odata_quote(email)}'",
            select=USER_SELECT,
            top=SEARCH_LIMIT,
        )
        users = [user for user in (parse_user(item) for item in payloads) if user is not None]
        if users:
            return rank_user_matches(users, email)[0]

        prefix = encode_guest_prefix(email)
        if prefix:
            payloads = await self._graph.query(
                "users",
                odata_filter=f"startswith(userPrincipalName,'{odata_quote(prefix)}')",
                select=USER_SELECT,
                top=SEARCH_LIMIT,
            )
            for user in (parse_user(item) for item in payloads):
                if user is not None and (decode_guest_upn(user.sign_in_name) or "").casefold() == email.casefold():
                    logger.debug("principals.user.guest_match", extra=log_context(principal_id=user.object_id))
                    return user
        return None

    async def search_service_principals(self, term: str) -> list[PrincipalRef]:
        term = term.strip()
        if not term:
            return []
        payloads = await self._graph.query(
            "servicePrincipals",
            odata_filter=f"startswith(displayName,'{odata_quote(term)}')",
            select=SERVICE_PRINCIPAL_SELECT,
            top=SEARCH_LIMIT,
        )
        found = [sp for sp in (parse_service_principal(item) for item in payloads) if sp is not None]
        return sorted(found, key=lambda sp: sp.display_name.casefold())

    async def find_service_principal(self, identifier: str) -> PrincipalRef | None:
        """Exact lookup by object id, then application id, then display name."""
        identifier = identifier.strip()
        if not identifier:
            return None

        if _is_guid(identifier):
            payload = await self._graph.get_by_path("servicePrincipals", identifier, select=SERVICE_PRINCIPAL_SELECT)
            if payload is not None and (sp := parse_service_principal(payload)) is not None:
                return sp
            for item in await self._graph.query(
                "servicePrincipals",
                odata_filter=f"appId eq '{identifier}'",
                select=SERVICE_PRINCIPAL_SELECT,
                top=1,
            ):
                if (sp := parse_service_principal(item)) is not None:
                    return sp

        for item in await self._graph.query(
            "servicePrincipals",
            odata_filter=f"displayName eq '{odata_quote(identifier)}'",
            select=SERVICE_PRINCIPAL_SELECT,
            top=1,
        ):
            if (sp := parse_service_principal(item)) is not None:
                return sp
        return None

    async def resolve(self, *, user: str | None = None, principal: str | None = None) -> PrincipalRef:
        """Resolve a command-line principal selector to exactly one principal."""
        if user:
            found = await self.find_user_by_email(user)
            if found is None:
                raise LookupFailedError("User", user, detail="(no sign-in name, mail or guest alias matched)")
            return found
        if principal:
            found = await self.find_service_principal(principal)
            if found is None:
                raise LookupFailedError("Service principal", principal)
            return found
        raise LookupFailedError("Principal", "", detail="(pass a user email or a principal name/id)")


__all__ = [
    "PrincipalDirectory",
    "decode_guest_upn",
    "encode_guest_prefix",
    "is_guest",
    "parse_service_principal",
    "parse_user",
    "rank_user_matches",
]
