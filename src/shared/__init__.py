"""Shared utilities and models for the MCP configuration service."""

from shared.models import (
    CacheKeys,
    PluginDescriptor,
    ReconcileResult,
    ServerDefinitionsBody,
    SERVER_DEFINITIONS_KEY,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "CacheKeys",
    "PluginDescriptor",
    "ReconcileResult",
    "ServerDefinitionsBody",
    "SERVER_DEFINITIONS_KEY",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
