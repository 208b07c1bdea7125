"""Configuration classes for the ClawBar Gateway Agent.

This module contains all configuration classes organized by domain.
Configuration is loaded from environment variables and .env files.
"""

from typing import Any, Optional
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def str_to_bool(value: Any) -> bool:
    """Convert various string representations to boolean values.

    Args:
        value: The value to convert. Can be bool, str, int, or any other type.

    Returns:
        bool: The converted boolean value.

    Examples:
        >>> str_to_bool("true")
        True
        >>> str_to_bool("0")
        False
        >>> str_to_bool("on")
        True
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes", "on", "enabled")
    return bool(value)


class ServerConfig(BaseSettings):
    """Status API server settings."""

    # Application metadata
    app_name: str = "ClawBar Gateway Agent"
    app_version: str = "1.0.0"

    # Status API
    server_port: int = Field(default=8765, alias="SERVER_PORT")
    server_host: str = Field(default="127.0.0.1", alias="SERVER_HOST")


class GatewayConfig(BaseSettings):
    """Local gateway connection settings."""

    gateway_port: int = Field(default=18789, ge=1, le=65535, alias="GATEWAY_PORT")
    gateway_token: Optional[str] = Field(default=None, alias="GATEWAY_TOKEN")

    # Request ids are "<client_tag>-<n>"
    client_tag: str = "clawbar"

    # Secure store entry holding the device identity
    identity_service: str = Field(
        default="com.vector.clawbar.device-identity", alias="IDENTITY_SERVICE"
    )
    identity_account: str = Field(default="device-key", alias="IDENTITY_ACCOUNT")

    @field_validator("gateway_token")
    @classmethod
    def validate_gateway_token(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty token as no token."""
        if v is not None and not v.strip():
            return None
        return v


class ConnectionTimingConfig(BaseSettings):
    """Reconnect, polling and keepalive timings (seconds)."""

    reconnect_backoff_floor: float = Field(default=1.0, gt=0)
    reconnect_backoff_ceiling: float = Field(default=30.0, gt=0)
    reconnect_backoff_multiplier: float = Field(default=2.0, ge=1.0)
    reconnect_jitter: float = Field(default=0.2, ge=0, lt=1)
    connect_timeout: float = Field(default=10.0, gt=0)

    poll_interval: float = Field(default=15.0, gt=0)
    poll_tolerance: float = Field(default=2.0, ge=0)
    usage_poll_every: int = Field(default=6, ge=1)

    ping_interval: float = Field(default=30.0, gt=0)
    ping_tolerance: float = Field(default=5.0, ge=0)
    ping_timeout: float = Field(default=10.0, gt=0)

    @model_validator(mode="after")
    def validate_backoff_bounds(self) -> "ConnectionTimingConfig":
        """Ensure the backoff ceiling is not below the floor."""
        if self.reconnect_backoff_ceiling < self.reconnect_backoff_floor:
            raise ValueError("reconnect_backoff_ceiling must be >= reconnect_backoff_floor")
        return self


class MonitoringConfig(BaseSettings):
    """Monitoring configuration settings."""

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    @field_validator("log_json", mode="before")
    @classmethod
    def validate_log_json(cls, v) -> bool:
        """Convert string boolean values to actual boolean."""
        return str_to_bool(v)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()


class ApplicationConfig(
    ServerConfig,
    GatewayConfig,
    ConnectionTimingConfig,
    MonitoringConfig,
    BaseSettings
):
    """Main application configuration that combines all configuration domains."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )
