from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Central configuration for the lead mail import service.

    - Reads from .env (local) and process environment.
    - Accepts the connector env var names the hosting platform already sets.
    - Ignores extra env vars so adding new ones doesn't break startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # Core app
    # -------------------------------------------------------------------------
    app_name: str = Field(default="Lead Mail Import", alias="APP_NAME")
    debug: bool = Field(default=False, alias="DEBUG")
    environment: str = Field(default="local", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------
    database_url: str = Field(default="sqlite:///./leadmail.db", alias="DATABASE_URL")

    # -------------------------------------------------------------------------
    # Mail connector (OAuth token broker for the Gmail account)
    # -------------------------------------------------------------------------
    connectors_hostname: Optional[str] = Field(
        default=None,
        alias="REPLIT_CONNECTORS_HOSTNAME",
    )
    # Identity token when running interactively, renewal token when deployed.
    connector_identity: Optional[str] = Field(default=None, alias="REPL_IDENTITY")
    connector_renewal_token: Optional[str] = Field(
        default=None,
        alias="WEB_REPL_RENEWAL",
    )
    connector_name: str = Field(default="google-mail", alias="MAIL_CONNECTOR_NAME")
    connector_token_header: str = Field(
        default="X_REPLIT_TOKEN",
        alias="MAIL_CONNECTOR_TOKEN_HEADER",
    )
    connector_timeout_seconds: float = Field(
        default=15.0,
        alias="MAIL_CONNECTOR_TIMEOUT_SECONDS",
    )

    # -------------------------------------------------------------------------
    # Operator endpoints
    # -------------------------------------------------------------------------
    #   ADMIN_API_KEYS=key1,key2
    admin_api_keys_raw: Optional[str] = Field(default=None, alias="ADMIN_API_KEYS")

    @property
    def admin_api_keys(self) -> list[str]:
        """
        Returns a list of API keys from the comma-separated env string.
        Safe if env is missing or empty.
        """
        if not self.admin_api_keys_raw:
            return []
        return [
            key.strip()
            for key in self.admin_api_keys_raw.split(",")
            if key.strip()
        ]

    @property
    def connector_token(self) -> Optional[str]:
        """Value for the connector identity header, or None when not deployed with one."""
        if self.connector_identity:
            return f"repl {self.connector_identity}"
        if self.connector_renewal_token:
            return f"depl {self.connector_renewal_token}"
        return None


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader so config is evaluated once per process.
    """
    settings = Settings()
    logger.info(
        "Settings loaded (env=%s, debug=%s)",
        settings.environment,
        settings.debug,
    )
    return settings


settings: Settings = get_settings()
