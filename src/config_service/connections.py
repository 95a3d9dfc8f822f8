"""Connections to configured MCP servers.

A connection is a live handle to one server: it knows the server's name,
the tools the server offers, and how to close itself. The registry obtains
connections through a connector, so tests and other transports can supply
their own.
"""

import json
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from shared.logging import get_logger
from config_service.errors import UnsupportedTransport

logger = get_logger(__name__)

PROTOCOL_VERSION = "2025-03-26"
HTTP_TRANSPORTS = {"http", "streamable-http", "sse"}


class Connection(Protocol):
    """Contract the registry relies on."""
    name: str
    tools: list[dict[str, Any]]
    icon_path: Optional[str]

    async def close(self) -> None:
        ...


Connector = Callable[[str, dict[str, Any]], Awaitable[Connection]]


class ServerConnection:
    """
    Connection to an MCP server reachable over HTTP.

    Performs the JSON-RPC ``initialize`` handshake and lists the server's
    tools. The underlying client stays open until ``close``.
    """

    def __init__(
        self,
        name: str,
        definition: dict[str, Any],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        """
        Initialize a connection.

        Args:
            name: Server name from the configuration document
            definition: Server definition record
            timeout: Request timeout in seconds
            transport: Optional httpx transport (defaults to the network)
        """
        self.name = name
        self.url = definition["url"]
        self.icon_path: Optional[str] = definition.get("iconPath")
        self.timeout = float(definition.get("timeout", timeout))
        self.tools: list[dict[str, Any]] = []
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            **definition.get("headers", {}),
        }
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._request_id = 0

    async def open(self) -> "ServerConnection":
        """Open the client, initialize the session and list tools."""
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers=self._headers,
            transport=self._transport
        )
        try:
            await self._initialize()
            self.tools = await self._list_tools()
        except Exception:
            await self.close()
            raise

        logger.info("Server connected", server=self.name, tool_count=len(self.tools))
        return self

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True
    )
    async def _initialize(self) -> None:
        result = await self._rpc("initialize", {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": "mcp-config-service", "version": "0.1.0"},
        })
        logger.debug(
            "Server initialized",
            server=self.name,
            server_info=result.get("serverInfo", {})
        )
        await self._notify("notifications/initialized")

    async def _list_tools(self) -> list[dict[str, Any]]:
        tools: list[dict[str, Any]] = []
        cursor: Optional[str] = None

        while True:
            params = {"cursor": cursor} if cursor else {}
            result = await self._rpc("tools/list", params)
            for tool in result.get("tools", []):
                if isinstance(tool, dict) and isinstance(tool.get("name"), str):
                    tools.append(tool)
                else:
                    logger.warning("Malformed tool dropped", server=self.name, tool=repr(tool))
            cursor = result.get("nextCursor")
            if not cursor:
                return tools

    async def _rpc(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        self._request_id += 1
        response = await self._post({
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        })

        session_id = response.headers.get("mcp-session-id")
        if session_id:
            self._client.headers["Mcp-Session-Id"] = session_id

        message = _parse_message(response)
        if "error" in message:
            raise httpx.HTTPError(f"{method} failed: {message['error'].get('message', 'unknown error')}")
        return message.get("result", {})

    async def _notify(self, method: str) -> None:
        await self._post({"jsonrpc": "2.0", "method": method})

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        response = await self._client.post(self.url, json=payload)
        response.raise_for_status()
        return response


def _parse_message(response: httpx.Response) -> dict[str, Any]:
    """Extract the JSON-RPC message from a JSON or event-stream response."""
    content_type = response.headers.get("content-type", "")
    if content_type.startswith("text/event-stream"):
        for line in response.text.splitlines():
            if line.startswith("data:"):
                return json.loads(line[len("data:"):].strip())
        return {}
    return response.json()


def http_connector(
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Connector:
    """
    Build the default connector.

    Args:
        timeout: Default request timeout for servers that set none
        transport: Optional httpx transport shared by every connection

    Returns:
        Coroutine function opening a connection for a server definition
    """

    async def connect(name: str, definition: dict[str, Any]) -> Connection:
        kind = definition.get("type", "http")
        if "url" not in definition or kind not in HTTP_TRANSPORTS:
            raise UnsupportedTransport(
                f"Server '{name}' needs a url and one of {sorted(HTTP_TRANSPORTS)}"
            )
        connection = ServerConnection(name, definition, timeout=timeout, transport=transport)
        return await connection.open()

    return connect
