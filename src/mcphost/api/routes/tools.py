"""Tool listing and invocation routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from mcphost.api.deps import get_connection_manager, get_tool_bridge
from mcphost.api.routes.common import http_error
from mcphost.api.schemas.mcp import (
    BridgedToolResponse,
    BridgedToolsResponse,
    CallToolRequest,
    InvokeBridgedToolRequest,
    InvokeBridgedToolResponse,
    ServerFailureResponse,
    ToolResponse,
    ToolResultResponse,
    ToolsResponse,
)
from mcphost.core.tool_bridge import ToolBridge
from mcphost.mcp.client import MCPConnectionManager
from mcphost.mcp.errors import MCPHostError
from mcphost.models.server import ToolCall

router = APIRouter(prefix="/api/v1/mcp", tags=["mcp"])


@router.get("/servers/{server_id}/tools", response_model=ToolsResponse)
async def list_server_tools(
    server_id: str,
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> ToolsResponse:
    try:
        tools = await manager.list_tools(server_id)
    except MCPHostError as exc:
        raise http_error(exc) from exc
    return ToolsResponse(
        items=[
            ToolResponse(
                name=tool.name,
                description=tool.description,
                input_schema=tool.input_schema.model_dump(),
            )
            for tool in tools
        ]
    )


@router.post("/servers/{server_id}/tools/call", response_model=ToolResultResponse)
async def call_server_tool(
    server_id: str,
    request: CallToolRequest,
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> ToolResultResponse:
    try:
        result = await manager.call_tool(
            server_id,
            ToolCall(name=request.name, arguments=request.arguments),
        )
    except MCPHostError as exc:
        raise http_error(exc) from exc
    return ToolResultResponse(
        content=[item.model_dump(exclude_none=True) for item in result.content],
        is_error=result.is_error,
    )


@router.get("/tools", response_model=BridgedToolsResponse)
async def list_bridged_tools(
    bridge: ToolBridge = Depends(get_tool_bridge),
) -> BridgedToolsResponse:
    result = await bridge.get_tools()
    items = []
    for tool in result.tools.values():
        described = tool.describe()
        items.append(
            BridgedToolResponse(
                name=described["name"],
                server_id=tool.server_id,
                description=described["description"],
                parameters=described["parameters"],
            )
        )
    return BridgedToolsResponse(
        items=items,
        failures=[
            ServerFailureResponse(server_id=failure.server_id, message=failure.message)
            for failure in result.failures
        ],
    )


@router.post("/tools/{key}/invoke", response_model=InvokeBridgedToolResponse)
async def invoke_bridged_tool(
    key: str,
    request: InvokeBridgedToolRequest,
    bridge: ToolBridge = Depends(get_tool_bridge),
) -> InvokeBridgedToolResponse:
    result = await bridge.get_tools()
    tool = result.tools.get(key)
    if tool is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tool not found")
    try:
        output = await tool.invoke(request.arguments)
    except MCPHostError as exc:
        raise http_error(exc) from exc
    return InvokeBridgedToolResponse(name=key, output=output)
