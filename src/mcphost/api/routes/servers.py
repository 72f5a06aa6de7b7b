"""Server connection and configuration routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from mcphost.api.deps import get_connection_manager, get_store
from mcphost.api.routes.common import http_error
from mcphost.api.schemas.mcp import (
    ConfigurationResponse,
    ConnectionStatusResponse,
    DeepLinkRequest,
    DeepLinkResponse,
    RefreshResponse,
    RefreshResult,
    ServerResponse,
    ServersResponse,
    ToolResponse,
    ToolsResponse,
    UpdateServerRequest,
)
from mcphost.core.logger import get_logger
from mcphost.db.store import ConfigurationStore, ServerRecord
from mcphost.mcp.client import MCPConnectionManager
from mcphost.mcp.deep_link import parse_deep_link
from mcphost.mcp.errors import MCPHostError, ServerAlreadyExists
from mcphost.models.server import MCPConfiguration, ServerConfig

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/mcp", tags=["mcp"])


def _as_response(record: ServerRecord, manager: MCPConnectionManager) -> ServerResponse:
    return ServerResponse(
        id=record.id,
        enabled=record.enabled,
        status=manager.status(record.id),
        config=record.entry,
    )


async def _persist_connected(store: ConfigurationStore, config: ServerConfig) -> None:
    record = await store.get_record(config.id)
    if record is None:
        await store.add_server(config)
        logger.info("New server %s added to configuration", config.id)
    elif not record.enabled:
        await store.enable_server(config.id)


@router.get("/servers", response_model=ServersResponse)
async def list_servers(
    manager: MCPConnectionManager = Depends(get_connection_manager),
    store: ConfigurationStore = Depends(get_store),
) -> ServersResponse:
    records = await store.list_servers()
    return ServersResponse(items=[_as_response(record, manager) for record in records])


@router.get("/status", response_model=ConnectionStatusResponse)
async def connection_status(
    manager: MCPConnectionManager = Depends(get_connection_manager),
    store: ConfigurationStore = Depends(get_store),
) -> ConnectionStatusResponse:
    servers = {record.id: manager.status(record.id) for record in await store.list_servers()}
    servers.update(manager.get_connection_status())
    return ConnectionStatusResponse(servers=servers)


@router.post("/servers/connect", response_model=ServerResponse)
async def connect_server(
    config: ServerConfig,
    manager: MCPConnectionManager = Depends(get_connection_manager),
    store: ConfigurationStore = Depends(get_store),
) -> ServerResponse:
    try:
        await manager.connect(config)
        await _persist_connected(store, config)
    except MCPHostError as exc:
        raise http_error(exc) from exc
    record = await store.get_record(config.id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Server not found")
    return _as_response(record, manager)


@router.post("/servers/test", response_model=ToolsResponse)
async def test_server(
    config: ServerConfig,
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> ToolsResponse:
    try:
        tools = await manager.test_connection(config)
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


@router.post("/servers/{server_id}/disconnect", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_server(
    server_id: str,
    manager: MCPConnectionManager = Depends(get_connection_manager),
    store: ConfigurationStore = Depends(get_store),
) -> None:
    await manager.disconnect(server_id)
    try:
        await store.disable_server(server_id)
    except MCPHostError as exc:
        raise http_error(exc) from exc


@router.post("/servers/{server_id}/enable", status_code=status.HTTP_204_NO_CONTENT)
async def enable_server(
    server_id: str,
    store: ConfigurationStore = Depends(get_store),
) -> None:
    try:
        await store.enable_server(server_id)
    except MCPHostError as exc:
        raise http_error(exc) from exc


@router.post("/servers/{server_id}/disable", status_code=status.HTTP_204_NO_CONTENT)
async def disable_server(
    server_id: str,
    store: ConfigurationStore = Depends(get_store),
) -> None:
    try:
        await store.disable_server(server_id)
    except MCPHostError as exc:
        raise http_error(exc) from exc


@router.patch("/servers/{server_id}", response_model=ServerResponse)
async def update_server(
    server_id: str,
    request: UpdateServerRequest,
    manager: MCPConnectionManager = Depends(get_connection_manager),
    store: ConfigurationStore = Depends(get_store),
) -> ServerResponse:
    try:
        await store.update_server(server_id, request.changes)
    except MCPHostError as exc:
        raise http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    record = await store.get_record(server_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Server not found")
    return _as_response(record, manager)


@router.delete("/servers/{server_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_server(
    server_id: str,
    manager: MCPConnectionManager = Depends(get_connection_manager),
    store: ConfigurationStore = Depends(get_store),
) -> None:
    await manager.disconnect(server_id)
    if not await store.remove_server(server_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Server not found")


@router.get("/configuration", response_model=ConfigurationResponse)
async def export_configuration(
    store: ConfigurationStore = Depends(get_store),
) -> ConfigurationResponse:
    configuration = await store.export_configuration()
    return ConfigurationResponse(
        mcp_servers=configuration.enabled_servers,
        disabled=configuration.disabled_servers,
    )


@router.post("/configuration", status_code=status.HTTP_204_NO_CONTENT)
async def import_configuration(
    configuration: MCPConfiguration,
    store: ConfigurationStore = Depends(get_store),
) -> None:
    await store.import_configuration(configuration)


@router.post("/configuration/refresh", response_model=RefreshResponse)
async def refresh_configuration(
    manager: MCPConnectionManager = Depends(get_connection_manager),
    store: ConfigurationStore = Depends(get_store),
) -> RefreshResponse:
    """Drop every connection and reconnect the enabled servers."""
    await manager.disconnect_all()
    configuration = await store.load_configuration()
    results: dict[str, RefreshResult] = {}
    for server_id, entry in configuration.enabled_servers.items():
        try:
            await manager.connect(ServerConfig.from_entry(server_id, entry))
        except (MCPHostError, ValueError) as exc:
            logger.error("Failed to reconnect MCP server %s: %s", server_id, exc)
            results[server_id] = RefreshResult(success=False, error=str(exc))
            continue
        results[server_id] = RefreshResult(success=True)
    return RefreshResponse(results=results)


@router.post("/deep-link", response_model=DeepLinkResponse, status_code=status.HTTP_201_CREATED)
async def add_from_deep_link(
    request: DeepLinkRequest,
    manager: MCPConnectionManager = Depends(get_connection_manager),
    store: ConfigurationStore = Depends(get_store),
) -> DeepLinkResponse:
    try:
        parsed = parse_deep_link(request.url)
    except MCPHostError as exc:
        raise http_error(exc) from exc
    server_id = parsed.config.id
    if manager.is_connected(server_id) or await store.get_record(server_id) is not None:
        raise http_error(ServerAlreadyExists(server_id))
    await store.add_server(parsed.config)
    record = await store.get_record(server_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Server not found")
    return DeepLinkResponse(name=parsed.name, server=_as_response(record, manager))
