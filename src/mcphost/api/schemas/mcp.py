"""MCP host API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from mcphost.core.health_monitor import HealthStatus
from mcphost.mcp.client import ConnectionStatus
from mcphost.mcp.registry import PackageStatus


class ServerResponse(BaseModel):
    """Configured server with its live connection status."""

    id: str
    enabled: bool
    status: ConnectionStatus
    config: dict[str, Any]


class ServersResponse(BaseModel):
    """Collection of configured servers."""

    items: list[ServerResponse]


class ConnectionStatusResponse(BaseModel):
    """Connection status keyed by server id."""

    servers: dict[str, ConnectionStatus]


class UpdateServerRequest(BaseModel):
    """Partial server entry merged into the stored one."""

    changes: dict[str, Any] = Field(default_factory=dict)


class ToolResponse(BaseModel):
    name: str
    description: str
    input_schema: dict[str, Any]


class ToolsResponse(BaseModel):
    items: list[ToolResponse]


class CallToolRequest(BaseModel):
    """Direct tool call against one connected server."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResultResponse(BaseModel):
    content: list[dict[str, Any]]
    is_error: bool


class BridgedToolResponse(BaseModel):
    """Bridged tool descriptor for LLM consumers."""

    name: str
    server_id: str
    description: str
    parameters: dict[str, Any]


class ServerFailureResponse(BaseModel):
    server_id: str
    message: str


class BridgedToolsResponse(BaseModel):
    items: list[BridgedToolResponse]
    failures: list[ServerFailureResponse]


class InvokeBridgedToolRequest(BaseModel):
    arguments: dict[str, Any] = Field(default_factory=dict)


class InvokeBridgedToolResponse(BaseModel):
    name: str
    output: str


class ToolHealthResponse(BaseModel):
    error_count: int
    success_count: int
    last_error: str | None = None


class ServerHealthResponse(BaseModel):
    """Health counters for one server."""

    server_id: str
    status: HealthStatus
    error_count: int
    success_count: int
    consecutive_errors: int
    last_error: str | None
    last_error_time: datetime | None
    last_success: datetime | None
    success_rate: float
    deprioritized: bool
    tools: dict[str, ToolHealthResponse]


class HealthReportResponse(BaseModel):
    servers: dict[str, ServerHealthResponse]
    last_updated: datetime


class UnhealthyServersResponse(BaseModel):
    items: list[str]


class PackageValidationResponse(BaseModel):
    package: str
    valid: bool
    status: PackageStatus
    message: str
    alternative: str | None = None


class SystemDiagnosisResponse(BaseModel):
    success: bool
    issues: list[str]
    recommendations: list[str]


class CleanupResponse(BaseModel):
    cleaned_count: int
    removed: list[str]


class DeepLinkRequest(BaseModel):
    url: str


class DeepLinkResponse(BaseModel):
    """Server added from a deep link."""

    name: str
    server: ServerResponse


class ConfigurationResponse(BaseModel):
    """Stored configuration in the `mcpServers` / `disabled` layout."""

    mcp_servers: dict[str, dict[str, Any]] = Field(serialization_alias="mcpServers")
    disabled: dict[str, dict[str, Any]]


class RefreshResult(BaseModel):
    success: bool
    error: str | None = None


class RefreshResponse(BaseModel):
    results: dict[str, RefreshResult]
