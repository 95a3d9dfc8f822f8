"""Configuration management for the MCP configuration service.

Supports YAML settings files and environment variable overrides.
Settings are loaded once and cached for performance.
"""

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigServiceSettings(BaseSettings):
    """Configuration service settings."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8002)

    # Managed document, manifest and static tool directory
    config_path: str = Field(
        default="./config.yaml",
        validation_alias=AliasChoices("CONFIG_PATH", "CONFIG_SERVICE_CONFIG_PATH", "config_path"),
        description="YAML document holding serverDefinitions",
    )
    manifest_path: str = Field(default="manifest.json")
    tools_directory: str = Field(default="tools")

    # Derived cache and connections
    cache_ttl_seconds: int = Field(default=300, gt=0)
    connect_timeout_seconds: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="CONFIG_SERVICE_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    config_service: ConfigServiceSettings = Field(default_factory=ConfigServiceSettings)

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    settings_path = os.environ.get("MCP_SETTINGS_PATH", "config/settings.yaml")
    return Settings.from_yaml(settings_path)
