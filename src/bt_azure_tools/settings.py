"""bt-azure-tools settings (Pydantic v2)."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str:
    override = os.getenv("BTA_ENV_FILE")
    if override and override.strip():
        return str(Path(override).expanduser().resolve())
    return str((Path.cwd() / ".env").resolve())


class Settings(BaseSettings):
    """Tool settings loaded from BTA_* env vars (and an optional .env)."""

    model_config = SettingsConfigDict(
        env_file=_env_file(),
        env_file_encoding="utf-8",
        env_prefix="BTA_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # ---- Endpoints ---------------------------------------------------------
    arm_endpoint: str = "https://management.azure.com"
    graph_endpoint: str = "https://graph.microsoft.com"
    sql_token_scope: str = "https://database.windows.net/.default"
    public_ip_url: str = "https://api.ipify.org/"

    # ---- API versions ------------------------------------------------------
    rbac_api_version: str = "2022-04-01"
    resources_api_version: str = "2021-04-01"
    sql_api_version: str = "2021-11-01"
    subscriptions_api_version: str = "2022-12-01"

    # ---- HTTP / long-running operations -----------------------------------
    http_timeout_seconds: float = Field(30.0, gt=0)
    lro_poll_interval_seconds: float = Field(2.0, ge=0)
    lro_timeout_seconds: float = Field(300.0, gt=0)

    # ---- SQL ---------------------------------------------------------------
    sql_driver: str = "ODBC Driver 18 for SQL Server"
    sql_connect_timeout_seconds: int = Field(30, ge=1)

    # ---- Admin elevation ---------------------------------------------------
    admin_propagation_mode: Literal["fixed", "poll"] = "fixed"
    admin_propagation_delay_seconds: float = Field(5.0, ge=0)
    admin_propagation_timeout_seconds: float = Field(60.0, ge=0)
    admin_propagation_poll_interval_seconds: float = Field(2.0, gt=0)

    # ---- Firewall ----------------------------------------------------------
    firewall_rule_cleanup: Literal["ask", "always", "never"] = "ask"

    # ---- Credentials -------------------------------------------------------
    credential_allow_browser: bool = True
    credential_cache_name: str = "BTAzureTools"

    # ---- Logging -----------------------------------------------------------
    logging_level: str = "WARNING"

    # ---- Validators --------------------------------------------------------

    @field_validator("logging_level", mode="before")
    @classmethod
    def _v_log_level(cls, v: Any) -> str:
        return ("" if v is None else str(v).strip()).upper() or "WARNING"

    @field_validator("arm_endpoint", "graph_endpoint", mode="before")
    @classmethod
    def _v_endpoint(cls, v: Any) -> str:
        text = ("" if v is None else str(v)).strip().rstrip("/")
        if not text.startswith("https://"):
            raise ValueError("endpoints must use https://")
        return text

    @field_validator("admin_propagation_mode", "firewall_rule_cleanup", mode="before")
    @classmethod
    def _v_lower_enum(cls, v: Any) -> str:
        return str(v).strip().lower()

    @property
    def arm_scope(self) -> str:
        return f"{self.arm_endpoint}/.default"

    @property
    def graph_scope(self) -> str:
        return f"{self.graph_endpoint}/.default"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(_env_file=_env_file())


__all__ = ["Settings", "get_settings"]
