"""Flatten tools from every enabled MCP server into one invocable namespace."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from mcphost.core.health_monitor import HealthMonitor
from mcphost.core.logger import get_logger
from mcphost.mcp.client import MCPConnectionManager
from mcphost.mcp.errors import MCPHostError, ToolArgumentsInvalid, ToolExecutionFailed
from mcphost.models.server import (
    ContentItem,
    MCPConfiguration,
    ServerConfig,
    Tool,
    ToolCall,
    ToolResult,
)

logger = get_logger(__name__)

DEGENERATE_LITERALS = frozenset({"undefined", "null", "None"})
CONFIGURATION_FAILURE_ID = "*"


class ConfigurationSource(Protocol):
    async def load_configuration(self) -> MCPConfiguration:
        """Return enabled and disabled server entries."""


class SchemaType(StrEnum):
    """Argument types understood when building validators from tool schemas."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> SchemaType:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


def python_type(schema_type: SchemaType) -> Any:
    match schema_type:
        case SchemaType.STRING:
            return str
        case SchemaType.NUMBER:
            return float
        case SchemaType.BOOLEAN:
            return bool
        case SchemaType.ARRAY:
            return list[Any]
        case _:
            return Any


def build_arguments_model(bridge_key: str, tool: Tool) -> type[BaseModel]:
    """Generate a pydantic model validating the arguments declared by `tool`.

    Validation is strict: a `number` field rejects `"5"` and a `boolean` field
    rejects `"yes"` or `1` instead of coercing them.
    """
    schema = tool.input_schema
    required = set(schema.required)
    fields: dict[str, Any] = {}
    for index, (name, definition) in enumerate(schema.properties.items()):
        definition = definition if isinstance(definition, Mapping) else {}
        annotation = python_type(SchemaType.parse(definition.get("type")))
        description = definition.get("description") or ""
        if name in required:
            fields[f"arg_{index}"] = (
                annotation,
                Field(alias=name, description=description),
            )
        else:
            fields[f"arg_{index}"] = (
                annotation | None if annotation is not Any else Any,
                Field(default=None, alias=name, description=description),
            )
    return create_model(
        f"{bridge_key}_arguments",
        __config__=ConfigDict(strict=True),
        **fields,
    )


def flatten_content(items: list[ContentItem]) -> str:
    """Render structured tool output as newline-separated text."""
    lines: list[str] = []
    for item in items:
        if item.type == "text":
            lines.append(item.text or "")
        elif item.type == "resource":
            data = item.data
            if data is None:
                data = (item.model_extra or {}).get("resource")
            lines.append(f"[Resource: {data}]")
        else:
            lines.append(f"[{item.type}: {json.dumps(item.data)}]")
    return "\n".join(lines)


@dataclass(slots=True)
class BridgedTool:
    """One server tool exposed under its bridge key."""

    key: str
    server_id: str
    tool: Tool
    arguments_model: type[BaseModel]
    manager: MCPConnectionManager
    health_monitor: HealthMonitor

    @property
    def description(self) -> str:
        return self.tool.description or f"Tool from MCP server {self.server_id}"

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.key,
            "description": self.description,
            "parameters": self.arguments_model.model_json_schema(by_alias=True),
        }

    def validate_arguments(self, arguments: Mapping[str, Any] | None) -> dict[str, Any]:
        try:
            validated = self.arguments_model.model_validate(dict(arguments or {}))
        except ValidationError as exc:
            raise ToolArgumentsInvalid(
                f"Invalid arguments for {self.key}: {exc}",
                bridge_key=self.key,
            ) from exc
        required = set(self.tool.input_schema.required)
        dumped = validated.model_dump(by_alias=True, exclude_unset=True)
        return {
            name: value for name, value in dumped.items() if value is not None or name in required
        }

    async def invoke(self, arguments: Mapping[str, Any] | None = None) -> str:
        """Validate, call the remote tool, record the outcome, and return text."""
        payload = self.validate_arguments(arguments)
        logger.debug("Executing %s on %s with %s", self.tool.name, self.server_id, payload)
        try:
            result = await self.manager.call_tool(
                self.server_id,
                ToolCall(name=self.tool.name, arguments=payload),
            )
        except MCPHostError as exc:
            self.health_monitor.record_error(self.server_id, self.tool.name, str(exc))
            if isinstance(exc, ToolExecutionFailed):
                raise
            raise ToolExecutionFailed(
                str(exc),
                server_id=self.server_id,
                tool_name=self.tool.name,
            ) from exc

        if result.is_error:
            message = flatten_content(result.content) or "Tool execution failed"
            self.health_monitor.record_error(self.server_id, self.tool.name, message)
            raise ToolExecutionFailed(message, server_id=self.server_id, tool_name=self.tool.name)

        self.health_monitor.record_success(self.server_id, self.tool.name)
        return _render(result)


def _render(result: ToolResult) -> str:
    if result.content:
        return flatten_content(result.content)
    return result.model_dump_json(by_alias=True)


@dataclass(slots=True)
class ServerFailure:
    server_id: str
    message: str


@dataclass(slots=True)
class BridgeResult:
    tools: dict[str, BridgedTool] = field(default_factory=dict)
    failures: list[ServerFailure] = field(default_factory=list)


class ToolBridge:
    """Discover tools on every enabled server and key them as `{serverId}_{toolName}`.

    Servers are visited in sorted id order and tools in declaration order. When
    two tools map to the same key the first one is kept. Discovery runs again on
    every `get_tools()` call.
    """

    def __init__(
        self,
        *,
        manager: MCPConnectionManager,
        health_monitor: HealthMonitor,
        config_source: ConfigurationSource,
    ) -> None:
        self._manager = manager
        self._health_monitor = health_monitor
        self._config_source = config_source

    async def get_tools(self) -> BridgeResult:
        result = BridgeResult()
        try:
            configuration = await self._config_source.load_configuration()
        except Exception as exc:  # noqa: BLE001
            logger.error("Error loading MCP configuration: %s", exc)
            result.failures.append(ServerFailure(CONFIGURATION_FAILURE_ID, str(exc)))
            return result

        for server_id in sorted(configuration.enabled_servers):
            entry = configuration.enabled_servers[server_id]
            try:
                if not self._manager.is_connected(server_id):
                    await self._manager.connect(ServerConfig.from_entry(server_id, entry))
                tools = await self._manager.list_tools(server_id)
            except (MCPHostError, ValidationError) as exc:
                logger.error("Error loading tools from server %s: %s", server_id, exc)
                result.failures.append(ServerFailure(server_id, str(exc)))
                continue

            for tool in tools:
                self._register(result.tools, server_id, tool)
            logger.info("Loaded %s tools from MCP server %s", len(tools), server_id)

        logger.info(
            "MCP tools summary: %s tools from %s enabled servers (%s disabled)",
            len(result.tools),
            len(configuration.enabled_servers),
            len(configuration.disabled_servers),
        )
        return result

    def _register(self, tools: dict[str, BridgedTool], server_id: str, tool: Tool) -> None:
        if not tool.name.strip():
            logger.error("Invalid tool name from server %s: %r", server_id, tool.name)
            return

        key = f"{server_id}_{tool.name}"
        if any(literal in key for literal in DEGENERATE_LITERALS):
            logger.error("Invalid tool key %s from server %s", key, server_id)
            return

        existing = tools.get(key)
        if existing is not None:
            logger.error(
                "Tool key %s from server %s collides with server %s, keeping the first",
                key,
                server_id,
                existing.server_id,
            )
            return

        tools[key] = BridgedTool(
            key=key,
            server_id=server_id,
            tool=tool,
            arguments_model=build_arguments_model(key, tool),
            manager=self._manager,
            health_monitor=self._health_monitor,
        )
