"""Configuration Service - MCP server definitions and tool refresh.

Persists the server definitions, keeps the derived cache and the live
connection registry consistent with them, and recomputes the authenticated,
available tool set after every change.
"""

from config_service.cache import DerivedCache
from config_service.reconcile import ReconciliationPipeline
from config_service.registry import ConnectionRegistry
from config_service.store import ConfigStore, merge_definitions
from config_service.tools import ManifestLoader, ToolAssembler

__all__ = [
    "ConfigStore",
    "ConnectionRegistry",
    "DerivedCache",
    "ManifestLoader",
    "ReconciliationPipeline",
    "ToolAssembler",
    "merge_definitions",
]
