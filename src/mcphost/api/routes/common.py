"""Common route helpers."""

from __future__ import annotations

from fastapi import HTTPException, status

from mcphost.mcp.errors import (
    AlreadyConnected,
    ConnectionFailed,
    DeepLinkInvalid,
    MCPHostError,
    NotConnected,
    ServerAlreadyExists,
    ServerNotFound,
    ToolArgumentsInvalid,
    ToolExecutionFailed,
    ValidationRejected,
)


def http_error(exc: MCPHostError) -> HTTPException:
    """Map a domain error to the HTTP status a client should see."""
    match exc:
        case ValidationRejected() | ToolArgumentsInvalid() | DeepLinkInvalid():
            code = status.HTTP_422_UNPROCESSABLE_ENTITY
        case NotConnected() | ServerNotFound():
            code = status.HTTP_404_NOT_FOUND
        case AlreadyConnected() | ServerAlreadyExists():
            code = status.HTTP_409_CONFLICT
        case ConnectionFailed() | ToolExecutionFailed():
            code = status.HTTP_502_BAD_GATEWAY
        case _:
            code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(exc))
