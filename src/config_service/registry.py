"""Connection Registry for the configuration service.

Holds live connections to configured MCP servers and the map of tools
currently available to the platform. The reconciliation pipeline tears it
down and rebuilds it whenever the server definitions change.
"""

import asyncio
from typing import Any, Iterator, Optional

from shared.logging import get_logger
from shared.models import MCP_DELIMITER, PluginDescriptor, ServerDefinitions
from config_service.connections import Connection, Connector, http_connector
from config_service.errors import PartialInitializationFailure

logger = get_logger(__name__)


def mcp_tool_key(tool_name: str, server_name: str) -> str:
    """Key under which a server's tool is made available."""
    return f"{tool_name}{MCP_DELIMITER}{server_name}"


class ConnectionRegistry:
    """
    Live connections and available tools.

    Responsibilities:
    - Open one connection per server definition
    - Close every connection on teardown
    - Track the available tool map (static tools and server tools)
    - Extend the plugin manifest with the tools of live servers
    """

    def __init__(self, connector: Optional[Connector] = None) -> None:
        self._connector = connector or http_connector()
        self._connections: dict[str, Connection] = {}
        self._available_tools: dict[str, dict[str, Any]] = {}

    @property
    def connection_names(self) -> list[str]:
        """Names of servers with a live connection."""
        return sorted(self._connections)

    @property
    def available_tools(self) -> dict[str, dict[str, Any]]:
        """Copy of the available tool map, keyed by tool key."""
        return dict(self._available_tools)

    def get(self, server_name: str) -> Optional[Connection]:
        """Get the live connection for a server, if any."""
        return self._connections.get(server_name)

    async def disconnect_all(self) -> None:
        """Close every live connection and forget all available tools."""
        connections = list(self._connections.values())
        self._connections.clear()
        self._available_tools.clear()

        for connection in connections:
            try:
                await connection.close()
            except Exception as e:
                logger.warning(
                    "Failed to close connection",
                    server=connection.name,
                    error=str(e)
                )

        logger.info("All connections closed", count=len(connections))

    async def initialize_from(
        self,
        definitions: ServerDefinitions
    ) -> dict[str, PartialInitializationFailure]:
        """
        Connect to every defined server.

        A server that fails to connect is left out of the live set; the
        others are still connected.

        Args:
            definitions: Server definitions keyed by server name

        Returns:
            Failures keyed by server name (empty when all connected)
        """
        names = list(definitions)
        results = await asyncio.gather(
            *(self._connector(name, definitions[name]) for name in names),
            return_exceptions=True
        )

        failures: dict[str, PartialInitializationFailure] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failures[name] = PartialInitializationFailure(name, str(result) or type(result).__name__)
                logger.error(
                    "Server failed to initialize",
                    server=name,
                    operation="initialize",
                    error=str(result)
                )
                continue
            self._connections[name] = result

        logger.info(
            "Connections initialized",
            connected=self.connection_names,
            failed=sorted(failures)
        )
        return failures

    def register_available_tools(self, tools: dict[str, dict[str, Any]]) -> None:
        """
        Mark tools as available.

        Args:
            tools: Tool definitions keyed by tool key
        """
        self._available_tools.update(tools)
        logger.debug("Tools registered", count=len(tools))

    def load_manifest_tools(
        self,
        manifest: list[PluginDescriptor]
    ) -> list[PluginDescriptor]:
        """
        Register the tools of live servers and add them to the manifest.

        Args:
            manifest: Plugin descriptors from the manifest

        Returns:
            The manifest followed by one descriptor per server tool
        """
        for server_name, tool in self._server_tools():
            key = mcp_tool_key(tool["name"], server_name)
            self._available_tools[key] = {**tool, "server": server_name}

        return [*manifest, *self.server_plugins()]

    def server_plugins(self) -> list[PluginDescriptor]:
        """Plugin descriptors for the tools of every live server."""
        plugins = []
        for server_name, tool in self._server_tools():
            entry: dict[str, Any] = {
                "name": tool["name"],
                "pluginKey": mcp_tool_key(tool["name"], server_name),
                "description": tool.get("description") or "",
            }
            icon_path = self._connections[server_name].icon_path
            if icon_path:
                entry["icon"] = icon_path
            plugins.append(PluginDescriptor(**entry))
        return plugins

    def _server_tools(self) -> Iterator[tuple[str, dict[str, Any]]]:
        """Yield (server name, tool) for every well-formed tool of live servers."""
        for server_name, connection in self._connections.items():
            for tool in connection.tools:
                if not isinstance(tool, dict) or not isinstance(tool.get("name"), str):
                    logger.warning("Tool without a name skipped", server=server_name)
                    continue
                yield server_name, tool

    def get_tool_count(self) -> dict[str, int]:
        """Get count of tools per live server."""
        counts = {name: 0 for name in self._connections}
        for server_name, _ in self._server_tools():
            counts[server_name] += 1
        return counts
