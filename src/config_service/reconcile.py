"""Reconciliation Pipeline.

Propagates a change of the server definitions to the derived cache, the
live connections and the tool list. Every mutation and the reconciliation
that follows it run under one lock, so at most one reconciliation is in
flight per configuration document and waiting requests apply in arrival
order.
"""

import asyncio
from pathlib import Path
from typing import Any, Optional

from shared.logging import get_logger, log_context
from shared.models import (
    FILTERED_TOOLS_KEY,
    INCLUDED_TOOLS_KEY,
    SERVER_DEFINITIONS_KEY,
    CacheKeys,
    PluginDescriptor,
    ReconcileResult,
    ServerDefinitions,
)
from config_service.auth import (
    AuthPredicate,
    authenticate_plugins,
    check_plugin_auth,
    filter_available_plugins,
)
from config_service.cache import DerivedCache
from config_service.registry import ConnectionRegistry
from config_service.store import ConfigStore
from config_service.tools import ManifestLoader, ToolAssembler

logger = get_logger(__name__)


def startup_snapshot(document: dict[str, Any]) -> dict[str, Any]:
    """Summary of the document exposed as the startup configuration."""
    return {
        "servers": sorted(document.get(SERVER_DEFINITIONS_KEY) or {}),
        INCLUDED_TOOLS_KEY: list(document.get(INCLUDED_TOOLS_KEY) or []),
        FILTERED_TOOLS_KEY: list(document.get(FILTERED_TOOLS_KEY) or []),
    }


class ReconciliationPipeline:
    """
    Applies configuration changes and rebuilds everything derived from them.

    Collaborators are injected so each can be replaced in tests:
    - store: durable configuration document
    - cache: derived cache (startup snapshot, tool list)
    - registry: live connections and available tools
    - assembler: static tools from ``tools_directory``
    - manifest_loader: plugin manifest
    - auth_check: plugin authentication predicate
    """

    def __init__(
        self,
        store: ConfigStore,
        cache: DerivedCache,
        registry: ConnectionRegistry,
        manifest_loader: ManifestLoader,
        tools_directory: str | Path,
        assembler: Optional[ToolAssembler] = None,
        auth_check: AuthPredicate = check_plugin_auth
    ) -> None:
        self.store = store
        self.cache = cache
        self.registry = registry
        self.manifest_loader = manifest_loader
        self.tools_directory = Path(tools_directory)
        self.assembler = assembler or ToolAssembler()
        self.auth_check = auth_check
        self._lock = asyncio.Lock()

    async def replace(self, definitions: ServerDefinitions) -> ReconcileResult:
        """Replace all server definitions, then reconcile."""
        async with self._lock:
            with log_context(operation="replace"):
                await self.store.replace(definitions)
                return await self._reconcile()

    async def merge(self, definitions: ServerDefinitions) -> ReconcileResult:
        """Merge partial server definitions, then reconcile."""
        async with self._lock:
            with log_context(operation="merge"):
                await self.store.merge(definitions)
                return await self._reconcile()

    async def remove(self, server_name: str) -> ReconcileResult:
        """Remove one server definition, then reconcile."""
        async with self._lock:
            with log_context(operation="remove", server=server_name):
                await self.store.remove(server_name)
                return await self._reconcile()

    async def refresh(self) -> ReconcileResult:
        """Reconcile against the stored document without changing it."""
        async with self._lock:
            with log_context(operation="refresh"):
                return await self._reconcile()

    async def _reconcile(self) -> ReconcileResult:
        """
        Run the reconciliation steps in order.

        Must be called with the lock held. Per-server connection failures
        are collected; storage and manifest failures propagate.
        """
        # Readers must miss from here until the tool list is repopulated
        await self.cache.invalidate_all()

        document = await self.store.load()
        definitions = document.get(SERVER_DEFINITIONS_KEY) or {}

        static_tools = await self.assembler.assemble(
            document.get(INCLUDED_TOOLS_KEY),
            document.get(FILTERED_TOOLS_KEY),
            self.tools_directory
        )

        await self.registry.disconnect_all()
        failures = await self.registry.initialize_from(definitions)
        self.registry.register_available_tools(static_tools)

        manifest = await self.manifest_loader.read()
        tools = self._select_tools(self.registry.load_manifest_tools(manifest))
        await self.cache.set(CacheKeys.TOOLS, tools)

        logger.info(
            "Reconciliation complete",
            servers=sorted(definitions),
            connected=self.registry.connection_names,
            failed=sorted(failures),
            tool_count=len(tools)
        )

        return ReconcileResult(
            document=document,
            tools=tools,
            connected=self.registry.connection_names,
            failures={name: failure.reason for name, failure in failures.items()},
        )

    def _select_tools(self, plugins: list[PluginDescriptor]) -> list[dict[str, Any]]:
        authenticated = authenticate_plugins(plugins, self.auth_check)
        available = filter_available_plugins(authenticated, self.registry.available_tools)
        return [plugin.to_public() for plugin in available]

    async def derive_tools(self) -> list[dict[str, Any]]:
        """
        Derive the tool list from the registry's current state.

        Used on a tool-list cache miss. Neither the cache nor the registry
        is modified.
        """
        manifest = await self.manifest_loader.read()
        return self._select_tools([*manifest, *self.registry.server_plugins()])

    async def startup_config(self) -> tuple[dict[str, Any], bool]:
        """
        Get the startup snapshot and whether it came from the cache.

        On a miss the snapshot is derived from the stored document and not
        cached.
        """
        snapshot = await self.cache.get(CacheKeys.STARTUP_CONFIG)
        if snapshot is not None:
            return snapshot, True
        return startup_snapshot(await self.store.load()), False

    async def cache_startup_config(self) -> dict[str, Any]:
        """Store a fresh startup snapshot in the cache."""
        async with self._lock:
            snapshot = startup_snapshot(await self.store.load())
            await self.cache.set(CacheKeys.STARTUP_CONFIG, snapshot)
            return snapshot
