"""Open MCP SDK client sessions for stdio, streamable HTTP, and SSE servers."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import timedelta
from typing import Any, Protocol, cast

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import Implementation

from mcphost.core.logger import get_logger
from mcphost.mcp.errors import ConnectionFailed
from mcphost.mcp.resolver import build_environment, resolve_command
from mcphost.models.server import ServerConfig, TransportType

logger = get_logger(__name__)

CLIENT_INFO = Implementation(name="mcphost", version="0.1.0")
HTTP_TIMEOUT = timedelta(seconds=30)


class MCPSession(Protocol):
    """Subset of `mcp.ClientSession` the connection manager relies on."""

    async def initialize(self) -> Any:
        """Run the MCP initialize handshake."""

    async def list_tools(self) -> Any:
        """Return the server's tool listing."""

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
    ) -> Any:
        """Invoke one tool."""


class SessionFactory(Protocol):
    """Build a not-yet-initialized session context for one server."""

    def __call__(self, config: ServerConfig) -> AbstractAsyncContextManager[MCPSession]:
        """Return an async context manager that yields a session."""


def create_connection(config: ServerConfig) -> AbstractAsyncContextManager[MCPSession]:
    """Default session factory: pick the SDK client matching the configured transport."""
    match config.transport:
        case TransportType.STDIO:
            if not config.command:
                raise ConnectionFailed(
                    "Command is required for stdio transport",
                    server_id=config.id,
                    category="invalid_config",
                )
            return _stdio_session(config)
        case TransportType.HTTP | TransportType.SSE:
            if not config.base_url:
                raise ConnectionFailed(
                    f"Base URL is required for {config.transport.value.upper()} transport",
                    server_id=config.id,
                    category="invalid_config",
                )
            return _remote_session(config)
        case _:
            raise ConnectionFailed(
                f"Unknown transport type: {config.transport}",
                server_id=config.id,
                category="invalid_config",
            )


@asynccontextmanager
async def _stdio_session(config: ServerConfig) -> AsyncIterator[MCPSession]:
    resolved = resolve_command(cast(str, config.command), config.args, server_id=config.id)
    logger.debug(
        "Launching %s: %s %s",
        config.id,
        resolved.command,
        " ".join(resolved.args),
    )
    params = StdioServerParameters(
        command=resolved.command,
        args=resolved.args,
        env=build_environment(config.env),
    )
    async with stdio_client(params) as (read, write):
        async with ClientSession(read, write, client_info=CLIENT_INFO) as session:
            yield cast(MCPSession, session)


@asynccontextmanager
async def _remote_session(config: ServerConfig) -> AsyncIterator[MCPSession]:
    url = cast(str, config.base_url)
    headers = dict(config.headers) or None
    logger.debug(
        "Opening %s transport for %s at %s (custom headers: %s)",
        config.transport.value,
        config.id,
        url,
        bool(headers),
    )
    if config.transport is TransportType.SSE:
        async with sse_client(url, headers=headers) as (read, write):
            async with ClientSession(read, write, client_info=CLIENT_INFO) as session:
                yield cast(MCPSession, session)
        return
    async with streamablehttp_client(url, headers=headers, timeout=HTTP_TIMEOUT) as (
        read,
        write,
        _,
    ):
        async with ClientSession(read, write, client_info=CLIENT_INFO) as session:
            yield cast(MCPSession, session)
