"""Error taxonomy for launching and talking to MCP servers."""

from __future__ import annotations

from typing import Literal

type ConnectionErrorCategory = Literal[
    "validation",
    "not_installed",
    "permission",
    "package_deprecated",
    "package_unknown",
    "install_failed",
    "process_exited",
    "network",
    "auth",
    "not_found",
    "timeout",
    "already_connected",
    "invalid_config",
    "unknown",
]


class MCPHostError(RuntimeError):
    """Base class for every error raised by mcphost."""


class ValidationRejected(MCPHostError):
    """The security validator refused a launch command."""

    def __init__(self, reason: str, *, token: str | None = None) -> None:
        super().__init__(reason)
        self.token = token
        self.reason = reason


class ConnectionFailed(MCPHostError):
    """Transport or handshake failure, enriched with a diagnosis."""

    def __init__(
        self,
        message: str,
        *,
        server_id: str | None = None,
        category: ConnectionErrorCategory = "unknown",
    ) -> None:
        super().__init__(message)
        self.server_id = server_id
        self.category = category


class CommandNotFound(ConnectionFailed):
    """The launch executable could not be located."""

    def __init__(self, message: str, *, server_id: str | None = None) -> None:
        super().__init__(message, server_id=server_id, category="not_installed")


class AlreadyConnected(ConnectionFailed):
    """A connect was attempted for an id that is connected or connecting."""

    def __init__(self, server_id: str) -> None:
        super().__init__(
            f"Server {server_id} is already connected. Disconnect it before connecting again.",
            server_id=server_id,
            category="already_connected",
        )


class NotConnected(MCPHostError):
    """Operation against a server id without a live connection."""

    def __init__(self, server_id: str) -> None:
        super().__init__(f"Server {server_id} is not connected. Make sure to connect first.")
        self.server_id = server_id


class ToolExecutionFailed(MCPHostError):
    """A remote tool call failed after the connection was established."""

    def __init__(self, message: str, *, server_id: str, tool_name: str) -> None:
        super().__init__(message)
        self.server_id = server_id
        self.tool_name = tool_name


class ToolArgumentsInvalid(MCPHostError):
    """Arguments for a bridged tool did not match its declared input schema."""

    def __init__(self, message: str, *, bridge_key: str) -> None:
        super().__init__(message)
        self.bridge_key = bridge_key


class RegistryUnavailable(MCPHostError):
    """The package registry file could not be read or parsed."""


class ServerNotFound(MCPHostError):
    """A configuration entry does not exist."""

    def __init__(self, server_id: str, *, section: str = "configuration") -> None:
        super().__init__(f"Server {server_id} not found in {section}")
        self.server_id = server_id


class ServerAlreadyExists(MCPHostError):
    """A configuration entry with the same id is already stored."""

    def __init__(self, server_id: str) -> None:
        super().__init__(
            f"Server {server_id} already exists in configuration. Remove or rename it first."
        )
        self.server_id = server_id


class DeepLinkInvalid(MCPHostError):
    """A deep link could not be parsed into a server configuration."""
