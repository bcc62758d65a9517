"""SQL server firewall rules and temporary single-address access."""

from __future__ import annotations

import logging
import re
import socket
from datetime import UTC, datetime
from typing import Any

import httpx

from bt_azure_tools.common.logging import log_context
from bt_azure_tools.core.errors import BtaError, TransportError
from bt_azure_tools.core.models import FirewallRuleRef, SqlServerRef, ipv4_to_int
from bt_azure_tools.features.grants.scoped import RestorePolicy, ScopedPrivilegeGrant, acquire_grant
from bt_azure_tools.infra.arm import ArmClient
from bt_azure_tools.settings import Settings

logger = logging.getLogger(__name__)

_RULE_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9_.\-]")
_RULE_PART_MAX = 20


def sanitize_rule_part(value: str | None) -> str:
    """Keep characters Azure accepts in rule names; cap the length."""
    cleaned = _RULE_NAME_UNSAFE.sub("", value or "")
    if not cleaned:
        return "Unknown"
    return cleaned[:_RULE_PART_MAX]


def build_rule_name(user_principal_name: str | None, machine_name: str | None = None, *, now: datetime | None = None) -> str:
    """``DevAccess-<user>-<machine>-<yyyyMMdd-HHmmss>`` (UTC)."""
    user = user_principal_name or ""
    at = user.find("@")
    if at > 0:
        user = user[:at]
    machine = machine_name if machine_name is not None else socket.gethostname()
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%d-%H%M%S")
    return f"DevAccess-{sanitize_rule_part(user)}-{sanitize_rule_part(machine)}-{stamp}"


def build_temporary_rule_name(machine_name: str | None = None, *, now: datetime | None = None) -> str:
    """Name for rules added for the duration of one SQL permission change."""
    machine = machine_name if machine_name is not None else socket.gethostname()
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%d%H%M%S")
    return f"BTAzureTools-{sanitize_rule_part(machine)}-{stamp}"


def cleanup_policy(setting: str) -> RestorePolicy:
    """``always`` removes temporary rules automatically; ``ask``/``never`` leave the decision to the caller."""
    return RestorePolicy.AUTOMATIC if setting == "always" else RestorePolicy.ADVISORY


def parse_rule(payload: dict[str, Any]) -> FirewallRuleRef | None:
    props = payload.get("properties") or {}
    name = payload.get("name")
    if not name:
        return None
    return FirewallRuleRef(
        name=str(name),
        start_ip=str(props.get("startIpAddress") or ""),
        end_ip=str(props.get("endIpAddress") or ""),
    )


class FirewallService:
    def __init__(self, arm: ArmClient, http: httpx.AsyncClient, settings: Settings) -> None:
        self._arm = arm
        self._http = http
        self._settings = settings

    async def get_public_ip(self) -> str:
        url = self._settings.public_ip_url
        try:
            response = await self._http.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError("public IP service", method="GET", url=url, detail=str(exc) or type(exc).__name__) from exc
        ip = response.text.strip()
        if ipv4_to_int(ip) is None:
            raise BtaError(f"Invalid IPv4 address received from {url}: {ip!r}")
        return ip

    def _rules_path(self, server: SqlServerRef) -> str:
        return f"{server.resource_id}/firewallRules"

    async def list_rules(self, server: SqlServerRef) -> list[FirewallRuleRef]:
        payloads = await self._arm.list_all(self._rules_path(server), api_version=self._settings.sql_api_version)
        rules = [rule for rule in (parse_rule(item) for item in payloads) if rule is not None]
        return rules

    async def find_covering_rule(self, server: SqlServerRef, ip_address: str) -> FirewallRuleRef | None:
        for rule in await self.list_rules(server):
            if rule.contains(ip_address):
                return rule
        return None

    async def is_ip_allowed(self, server: SqlServerRef, ip_address: str) -> bool:
        return await self.find_covering_rule(server, ip_address) is not None

    async def add_rule(self, server: SqlServerRef, rule_name: str, ip_address: str) -> FirewallRuleRef:
        body = {"properties": {"startIpAddress": ip_address, "endIpAddress": ip_address}}
        await self._arm.put_and_wait(
            f"{self._rules_path(server)}/{rule_name}",
            body,
            api_version=self._settings.sql_api_version,
        )
        logger.info("sql.firewall.rule.added", extra=log_context(server=server.name, rule=rule_name, ip=ip_address))
        return FirewallRuleRef(name=rule_name, start_ip=ip_address, end_ip=ip_address, ephemeral=True)

    async def remove_rule(self, server: SqlServerRef, rule_name: str) -> bool:
        """Delete a rule; a rule that is already gone counts as removed."""
        existed = await self._arm.delete_and_wait(
            f"{self._rules_path(server)}/{rule_name}",
            api_version=self._settings.sql_api_version,
            allow_not_found=True,
        )
        logger.info(
            "sql.firewall.rule.removed",
            extra=log_context(server=server.name, rule=rule_name, existed=existed),
        )
        return existed

    async def grant_temporary_access(
        self,
        server: SqlServerRef,
        ip_address: str,
        rule_name: str,
        policy: RestorePolicy = RestorePolicy.ADVISORY,
    ) -> ScopedPrivilegeGrant[FirewallRuleRef]:
        """Make sure ``ip_address`` can reach ``server``.

        Captures the rule that already covers the address, if any. A new
        single-address rule is created only when none does, and only such an
        ephemeral rule is ever deleted on restore.
        """

        async def _apply(previous: FirewallRuleRef | None) -> FirewallRuleRef:
            if previous is not None:
                logger.info(
                    "sql.firewall.already_allowed",
                    extra=log_context(server=server.name, rule=previous.name, ip=ip_address),
                )
                return previous
            return await self.add_rule(server, rule_name, ip_address)

        async def _restore(previous: FirewallRuleRef | None, applied: FirewallRuleRef | None) -> None:
            if applied is None:
                # the PUT may have landed before the failure
                if previous is None:
                    await self.remove_rule(server, rule_name)
                return
            if applied.ephemeral:
                await self.remove_rule(server, applied.name)

        return await acquire_grant(
            "sql-firewall",
            read_current=lambda: self.find_covering_rule(server, ip_address),
            apply=_apply,
            restore=_restore,
            policy=policy,
            restore_when_absent=True,
        )


__all__ = [
    "FirewallService",
    "build_rule_name",
    "build_temporary_rule_name",
    "cleanup_policy",
    "parse_rule",
    "sanitize_rule_part",
]
