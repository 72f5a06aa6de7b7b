"""Live MCP server connections keyed by server id."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from mcphost.core.logger import get_logger
from mcphost.mcp.diagnostics import SystemDiagnosis, diagnose_connection_error, diagnose_system
from mcphost.mcp.errors import (
    AlreadyConnected,
    ConnectionFailed,
    NotConnected,
    ToolExecutionFailed,
)
from mcphost.mcp.registry import PackageRegistry, PackageValidation, RegistryData
from mcphost.mcp.security import validate_runtime_security
from mcphost.mcp.transports import MCPSession, SessionFactory, create_connection
from mcphost.models.server import (
    ContentItem,
    ServerConfig,
    Tool,
    ToolCall,
    ToolResult,
    TransportType,
)

logger = get_logger(__name__)

DEFAULT_TEST_TIMEOUT_SECONDS = 15.0


class ConnectionStatus(StrEnum):
    """Lifecycle state of one server id."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(slots=True)
class _Connection:
    """Open session plus the task that owns its transport context."""

    config: ServerConfig
    session: MCPSession
    task: asyncio.Task[None]
    stop: asyncio.Event
    connected_at: datetime


def _payload(value: Any) -> dict[str, Any]:
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, Mapping):
        return dict(value)
    msg = f"Unexpected MCP payload of type {type(value).__name__}"
    raise ValueError(msg)


def normalize_tool(value: Any) -> Tool:
    payload = _payload(value)
    payload["description"] = payload.get("description") or ""
    return Tool.model_validate(payload)


def normalize_result(value: Any) -> ToolResult:
    payload = _payload(value)
    content = payload.get("content")
    items = content if isinstance(content, list) else []
    return ToolResult(
        content=[ContentItem.model_validate(_payload(item)) for item in items],
        is_error=bool(payload.get("isError", payload.get("is_error", False))),
    )


class MCPConnectionManager:
    """Connect to MCP servers and route tool traffic to them.

    Each connection is held open by a dedicated task that enters the session's
    async context and waits for a stop signal, so the transport is always closed
    from the task that opened it. A second `connect()` for an id that is connected
    or still connecting raises `AlreadyConnected`.
    """

    def __init__(
        self,
        *,
        session_factory: SessionFactory | None = None,
        registry: PackageRegistry | None = None,
        test_timeout_seconds: float = DEFAULT_TEST_TIMEOUT_SECONDS,
    ) -> None:
        self._session_factory = session_factory or create_connection
        self._registry = registry or PackageRegistry()
        self._test_timeout_seconds = test_timeout_seconds
        self._connections: dict[str, _Connection] = {}
        self._connecting: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def registry(self) -> PackageRegistry:
        return self._registry

    def _lock(self, server_id: str) -> asyncio.Lock:
        return self._locks.setdefault(server_id, asyncio.Lock())

    async def connect(self, config: ServerConfig) -> None:
        """Validate, launch, and handshake one server."""
        server_id = config.id
        if server_id in self._connections or server_id in self._connecting:
            raise AlreadyConnected(server_id)

        if config.transport is TransportType.STDIO:
            if not config.command:
                raise ConnectionFailed(
                    "Command is required for stdio transport",
                    server_id=server_id,
                    category="invalid_config",
                )
            validate_runtime_security(config.command, config.args)
        elif not config.base_url:
            raise ConnectionFailed(
                f"Base URL is required for {config.transport.value.upper()} transport",
                server_id=server_id,
                category="invalid_config",
            )

        self._connecting.add(server_id)
        try:
            async with self._lock(server_id):
                await self._open(config)
        finally:
            self._connecting.discard(server_id)
            lock = self._locks.get(server_id)
            if lock is not None and not lock.locked():
                del self._locks[server_id]

    async def _open(self, config: ServerConfig) -> None:
        loop = asyncio.get_running_loop()
        ready: asyncio.Future[MCPSession] = loop.create_future()
        stop = asyncio.Event()
        task = asyncio.create_task(
            self._hold_session(config, ready, stop),
            name=f"mcp-session-{config.id}",
        )
        try:
            session = await ready
        except asyncio.CancelledError:
            stop.set()
            task.cancel()
            raise
        except Exception as exc:
            await task
            logger.error("Failed to connect to MCP server %s: %s", config.id, exc)
            raise await diagnose_connection_error(exc, config, self._registry) from exc

        self._connections[config.id] = _Connection(
            config=config,
            session=session,
            task=task,
            stop=stop,
            connected_at=datetime.now(UTC),
        )
        logger.info("Connected to MCP server %s (%s)", config.id, config.transport.value)

    async def _hold_session(
        self,
        config: ServerConfig,
        ready: asyncio.Future[MCPSession],
        stop: asyncio.Event,
    ) -> None:
        try:
            async with self._session_factory(config) as session:
                await session.initialize()
                if not ready.done():
                    ready.set_result(session)
                await stop.wait()
        except Exception as exc:  # noqa: BLE001
            if not ready.done():
                ready.set_exception(exc)
                return
            logger.warning("Connection to %s closed with error: %s", config.id, exc)
        finally:
            if not ready.done():
                ready.cancel()
            current = self._connections.get(config.id)
            if current is not None and current.task is asyncio.current_task():
                self._connections.pop(config.id, None)
                logger.info("MCP server %s disconnected", config.id)

    async def disconnect(self, server_id: str) -> None:
        """Close the transport; the id is forgotten even if closing fails."""
        connection = self._connections.pop(server_id, None)
        if connection is None:
            logger.debug("Disconnect requested for %s, which is not connected", server_id)
            return
        connection.stop.set()
        try:
            await connection.task
        except Exception as exc:  # noqa: BLE001
            logger.warning("Error disconnecting from server %s: %s", server_id, exc)
        logger.info("Disconnected from MCP server %s", server_id)

    async def disconnect_all(self) -> None:
        server_ids = list(self._connections)
        results = await asyncio.gather(
            *(self.disconnect(server_id) for server_id in server_ids),
            return_exceptions=True,
        )
        for server_id, result in zip(server_ids, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Error disconnecting from server %s: %s", server_id, result)

    def _require(self, server_id: str) -> _Connection:
        connection = self._connections.get(server_id)
        if connection is None:
            raise NotConnected(server_id)
        return connection

    async def list_tools(self, server_id: str) -> list[Tool]:
        connection = self._require(server_id)
        try:
            response = await connection.session.list_tools()
            raw_tools = _payload(response).get("tools") or []
        except Exception as exc:
            logger.error("Failed to list tools from server %s: %s", server_id, exc)
            raise ConnectionFailed(
                f"Failed to list tools from server {server_id}: {exc}",
                server_id=server_id,
            ) from exc

        tools: list[Tool] = []
        for raw in raw_tools:
            try:
                tools.append(normalize_tool(raw))
            except ValueError as exc:
                logger.error("Skipping malformed tool from server %s: %s", server_id, exc)
        return tools

    async def call_tool(self, server_id: str, call: ToolCall) -> ToolResult:
        connection = self._require(server_id)
        try:
            response = await connection.session.call_tool(call.name, call.arguments)
            return normalize_result(response)
        except Exception as exc:
            logger.error("Failed to call tool %s on server %s: %s", call.name, server_id, exc)
            raise ToolExecutionFailed(
                f"Tool {call.name} failed on server {server_id}: {exc}",
                server_id=server_id,
                tool_name=call.name,
            ) from exc

    async def ping(self, server_id: str) -> bool:
        """List-tools probe; never raises."""
        if server_id not in self._connections:
            return False
        try:
            await self.list_tools(server_id)
        except Exception:  # noqa: BLE001
            return False
        return True

    def is_connected(self, server_id: str) -> bool:
        return server_id in self._connections

    def get_connected_servers(self) -> list[str]:
        return list(self._connections)

    def status(self, server_id: str) -> ConnectionStatus:
        if server_id in self._connections:
            return ConnectionStatus.CONNECTED
        if server_id in self._connecting:
            return ConnectionStatus.CONNECTING
        return ConnectionStatus.DISCONNECTED

    def get_connection_status(self) -> dict[str, ConnectionStatus]:
        known = [*self._connections, *sorted(self._connecting - set(self._connections))]
        return {server_id: self.status(server_id) for server_id in known}

    def connected_config(self, server_id: str) -> ServerConfig | None:
        connection = self._connections.get(server_id)
        return connection.config if connection is not None else None

    async def test_connection(
        self,
        config: ServerConfig,
        timeout: float | None = None,
    ) -> list[Tool]:
        """Connect under a throwaway id, list tools, and disconnect again."""
        limit = self._test_timeout_seconds if timeout is None else timeout
        probe = config.model_copy(update={"id": f"test-{uuid4().hex[:12]}"})

        async def attempt() -> list[Tool]:
            await self.connect(probe)
            try:
                return await self.list_tools(probe.id)
            finally:
                await self.disconnect(probe.id)

        try:
            return await asyncio.wait_for(attempt(), timeout=limit)
        except TimeoutError:
            await self.disconnect(probe.id)
            raise ConnectionFailed(
                f"Connection test timed out after {limit:g} seconds. This may indicate a "
                "transport mismatch (e.g., trying to connect to an HTTP server with SSE "
                "transport, or vice versa).",
                server_id=config.id,
                category="timeout",
            ) from None

    async def get_registry(self) -> RegistryData:
        return await self._registry.load()

    async def validate_package(self, package: str) -> PackageValidation:
        return await self._registry.validate_package(package)

    async def diagnose_system(self) -> SystemDiagnosis:
        return await diagnose_system()
