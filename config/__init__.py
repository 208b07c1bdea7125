"""Configuration management for the ClawBar Gateway Agent.

This module handles all configuration loading and validation using Pydantic BaseSettings.
Configuration is loaded from environment variables and .env files.
"""

from .config import (
    ApplicationConfig,
    ConnectionTimingConfig,
    GatewayConfig,
    MonitoringConfig,
    ServerConfig,
    str_to_bool,
)


def load_config() -> ApplicationConfig:
    """Load and validate application configuration."""
    return ApplicationConfig()


__all__ = [
    "ApplicationConfig",
    "ConnectionTimingConfig",
    "GatewayConfig",
    "MonitoringConfig",
    "ServerConfig",
    "load_config",
    "str_to_bool",
]
