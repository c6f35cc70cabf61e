"""Configuration settings for the Polar MCP server using Pydantic Settings.

This module provides type-safe configuration management with automatic validation,
environment variable loading, and documentation generation.
"""

import logging
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from polar_mcp.core.constants import (
    ACCESS_TOKEN_TTL_DEFAULT,
    POLAR_API_BASE,
    POLAR_AUTH_URL,
    POLAR_TOKEN_URL,
)

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Central configuration management with Pydantic validation.

    All settings are loaded from environment variables with automatic type conversion
    and validation. The object is built once at startup and handed to the
    components that need it.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
        validate_default=True,
        populate_by_name=True,
    )

    # ========================================
    # Debug Settings
    # ========================================
    debug: bool = Field(
        default=False,
        alias="MCP_DEBUG",
        description="Enable debug mode with verbose logging",
    )

    # ========================================
    # Server Settings
    # ========================================
    host: str = Field(
        default="0.0.0.0",
        description="Server host address",
    )

    port: int = Field(
        default=8051,
        ge=1024,
        le=65535,
        description="Server port number",
    )

    transport: Literal["stdio", "http", "sse"] = Field(
        default="stdio",
        description="Transport mode (stdio for local use, http or sse when hosted)",
    )

    public_base_url: str | None = Field(
        default=None,
        description="Externally visible base URL of the hosted server",
    )

    # ========================================
    # Polar AccessLink Settings
    # ========================================
    polar_client_id: str | None = Field(
        default=None,
        description="Polar AccessLink OAuth client id",
    )

    polar_client_secret: str | None = Field(
        default=None,
        description="Polar AccessLink OAuth client secret",
    )

    polar_access_token: str | None = Field(
        default=None,
        description="Pre-obtained bearer token for the local deployment",
    )

    polar_user_id: int | None = Field(
        default=None,
        description="Polar user id for the local deployment (needed by user-scoped tools)",
    )

    polar_api_base: str = Field(
        default=POLAR_API_BASE,
        description="Base URL of the AccessLink REST API",
    )

    polar_auth_url: str = Field(
        default=POLAR_AUTH_URL,
        description="Polar OAuth2 authorization endpoint",
    )

    polar_token_url: str = Field(
        default=POLAR_TOKEN_URL,
        description="Polar OAuth2 token endpoint",
    )

    # ========================================
    # Hosted Authorization Settings
    # ========================================
    auth_mode: Literal["session", "delegated"] = Field(
        default="session",
        description=(
            "How a completed authorization surfaces: 'session' hands out an opaque "
            "session id, 'delegated' acts as OAuth2 server toward the MCP client"
        ),
    )

    store_backend: Literal["memory", "file"] = Field(
        default="memory",
        description="Key-value store backend for OAuth state and sessions",
    )

    store_dir: str = Field(
        default=".oauth_storage",
        description="Directory used by the file store backend",
    )

    session_secret_key: str = Field(
        default="change-me-in-production",
        description="Secret used to sign the approval session cookie",
    )

    oauth2_secret_key: str = Field(
        default="change-me-in-production",
        description="OAuth2 JWT secret key (delegated mode)",
    )

    oauth2_scopes: str = Field(
        default="polar:read",
        description="Comma-separated list of valid OAuth2 scopes",
    )

    access_token_ttl_seconds: int = Field(
        default=ACCESS_TOKEN_TTL_DEFAULT,
        ge=60,
        description="Lifetime of downstream access tokens in seconds",
    )

    # ========================================
    # Validators
    # ========================================
    @field_validator("public_base_url", mode="before")
    @classmethod
    def set_public_base_url(cls, v: str | None, info: Any) -> str:
        """Default the public URL from host and port if not provided."""
        if v:
            return str(v).rstrip("/")
        host = info.data.get("host", "0.0.0.0")
        port = info.data.get("port", 8051)
        if host == "0.0.0.0":
            host = "localhost"
        return f"http://{host}:{port}"

    @field_validator("polar_user_id", mode="before")
    @classmethod
    def blank_user_id_is_none(cls, v: Any) -> Any:
        """Treat an empty POLAR_USER_ID as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    # ========================================
    # Helper Methods
    # ========================================
    @property
    def callback_url(self) -> str:
        """Redirect URI registered with Polar for the hosted flow."""
        return f"{self.public_base_url}/callback"

    def has_polar_client(self) -> bool:
        """Check if Polar OAuth client credentials are configured."""
        return bool(self.polar_client_id and self.polar_client_secret)

    def get_oauth2_scopes_list(self) -> list[str]:
        """Get OAuth2 scopes as a list."""
        return [s.strip() for s in self.oauth2_scopes.split(",") if s.strip()]

    def to_dict(self) -> dict[str, Any]:
        """Export settings as a dictionary (safe version without secrets)."""
        return {
            "debug": self.debug,
            "host": self.host,
            "port": self.port,
            "transport": self.transport,
            "public_base_url": self.public_base_url,
            "auth_mode": self.auth_mode,
            "store_backend": self.store_backend,
            "has_polar_client": self.has_polar_client(),
            "has_access_token": bool(self.polar_access_token),
            "has_user_id": self.polar_user_id is not None,
        }


# Singleton pattern with proper typing
_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance (singleton pattern)."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
        logger.info("Settings initialized from environment")
        logger.debug("Transport: %s", _settings_instance.transport)
        if _settings_instance.transport == "stdio" and not _settings_instance.polar_access_token:
            logger.warning(
                "POLAR_ACCESS_TOKEN is missing. Tools will fail until it is set.",
            )
    return _settings_instance


def reset_settings() -> None:
    """Reset settings instance (useful for testing)."""
    global _settings_instance
    _settings_instance = None
