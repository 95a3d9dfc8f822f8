"""Core data models for the MCP configuration service.

This module defines the shared data structures: request and response
bodies of the configuration API, plugin and tool descriptors, and the
outcome of a reconciliation run.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# Top-level document field owned by the service
SERVER_DEFINITIONS_KEY = "serverDefinitions"

# Admin include/exclude lists read from the document
INCLUDED_TOOLS_KEY = "includedTools"
FILTERED_TOOLS_KEY = "filteredTools"

# Separator between tool name and server name in MCP tool keys
MCP_DELIMITER = "_mcp_"

ServerDefinitions = dict[str, dict[str, Any]]


class CacheKeys(str, Enum):
    """Logical keys of the derived cache."""
    STARTUP_CONFIG = "startupConfigSnapshot"
    TOOLS = "toolList"


class ServerDefinitionsBody(BaseModel):
    """Request body carrying a full or partial server definitions map."""
    serverDefinitions: ServerDefinitions


class AuthField(BaseModel):
    """A credential a plugin needs, resolved from the environment."""
    authField: str = Field(..., description="Environment variable name(s), '||' separated")
    label: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class PluginDescriptor(BaseModel):
    """
    A plugin entry from the manifest or a live MCP server.

    Unknown fields are preserved so the descriptor round-trips to clients
    unchanged. ``authenticated`` is derived on every reconciliation and is
    only present on entries whose credentials resolved.
    """
    name: str
    pluginKey: str
    description: str = ""
    icon: Optional[str] = None
    authConfig: list[AuthField] = Field(default_factory=list)
    toolkit: bool = False
    authenticated: Optional[bool] = None

    model_config = ConfigDict(extra="allow")

    def to_public(self) -> dict[str, Any]:
        """Serialize with only the fields that were actually set."""
        return self.model_dump(exclude_unset=True)


class ReconcileResult(BaseModel):
    """Outcome of one reconciliation run."""
    document: dict[str, Any] = Field(default_factory=dict)
    tools: list[dict[str, Any]] = Field(default_factory=list)
    connected: list[str] = Field(default_factory=list)
    failures: dict[str, str] = Field(default_factory=dict)

    @property
    def server_definitions(self) -> ServerDefinitions:
        """Server definitions of the reloaded document."""
        return self.document.get(SERVER_DEFINITIONS_KEY) or {}


class ServerDefinitionsResponse(BaseModel):
    """Current server definitions."""
    serverDefinitions: ServerDefinitions


class UpdateResponse(BaseModel):
    """Response to a configuration change."""
    success: bool = True
    serverDefinitions: ServerDefinitions


class RemoveResponse(UpdateResponse):
    """Response to a server removal."""
    message: str


class ToolListResponse(BaseModel):
    """Authenticated, available tools."""
    tools: list[dict[str, Any]]
    cached: bool


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    servers: list[str]
    tool_count: int
    server_tools: dict[str, int] = Field(default_factory=dict)
