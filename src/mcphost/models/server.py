"""Server configuration and tool domain models."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class TransportType(StrEnum):
    """Channel used to reach a tool provider."""

    STDIO = "stdio"
    HTTP = "http"
    SSE = "sse"


class ServerConfig(BaseModel):
    """Declared MCP server.

    Accepts the `type` spelling for `transport` and `url` / `baseUrl` for
    `base_url`, since configuration files in the wild use all of them.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    transport: TransportType = Field(validation_alias=AliasChoices("transport", "type"))
    name: str | None = None
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("base_url", "baseUrl", "url"),
    )
    headers: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_transport_requirements(self) -> ServerConfig:
        if self.transport is TransportType.STDIO and not (self.command and self.command.strip()):
            msg = "Command is required for stdio transport"
            raise ValueError(msg)
        if self.transport in (TransportType.HTTP, TransportType.SSE) and not self.base_url:
            msg = f"Base URL is required for {self.transport.value.upper()} transport"
            raise ValueError(msg)
        return self

    @classmethod
    def from_entry(cls, server_id: str, entry: dict[str, Any]) -> ServerConfig:
        """Build a config from a stored entry keyed by id."""
        return cls.model_validate({**entry, "id": server_id})

    def to_entry(self) -> dict[str, Any]:
        """Serialize without the id, for storage keyed by id."""
        return self.model_dump(mode="json", exclude={"id"}, exclude_none=True)


class MCPConfiguration(BaseModel):
    """Enabled and disabled server entries, keyed by server id."""

    model_config = ConfigDict(populate_by_name=True)

    enabled_servers: dict[str, dict[str, Any]] = Field(default_factory=dict, alias="mcpServers")
    disabled_servers: dict[str, dict[str, Any]] = Field(default_factory=dict, alias="disabled")


class ToolInputSchema(BaseModel):
    """JSON-schema subset declared by a tool for its arguments."""

    model_config = ConfigDict(extra="allow")

    type: str = "object"
    properties: dict[str, Any] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _default_malformed_fields(cls, data: Any) -> Any:
        if isinstance(data, ToolInputSchema):
            return data
        payload = dict(data) if isinstance(data, Mapping) else {}
        if not isinstance(payload.get("type"), str):
            payload["type"] = "object"
        if not isinstance(payload.get("properties"), Mapping):
            payload["properties"] = {}
        required = payload.get("required")
        payload["required"] = (
            [name for name in required if isinstance(name, str)]
            if isinstance(required, list)
            else []
        )
        return payload


class Tool(BaseModel):
    """Tool advertised by a connected server."""

    name: str
    description: str = ""
    input_schema: ToolInputSchema = Field(
        default_factory=ToolInputSchema,
        validation_alias=AliasChoices("input_schema", "inputSchema"),
    )


class ToolCall(BaseModel):
    """Request to run one tool."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ContentItem(BaseModel):
    """One structured content block in a tool result."""

    model_config = ConfigDict(extra="allow")

    type: str = "text"
    text: str | None = None
    data: Any = None


class ToolResult(BaseModel):
    """Normalized tool call result."""

    content: list[ContentItem] = Field(default_factory=list)
    is_error: bool = False
