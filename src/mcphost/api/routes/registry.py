"""Package registry and host diagnostics routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import ValidationError

from mcphost.api.deps import get_connection_manager, get_store
from mcphost.api.schemas.mcp import (
    CleanupResponse,
    PackageValidationResponse,
    SystemDiagnosisResponse,
)
from mcphost.core.logger import get_logger
from mcphost.db.store import ConfigurationStore
from mcphost.mcp.client import MCPConnectionManager
from mcphost.mcp.diagnostics import npx_package
from mcphost.models.server import ServerConfig

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/mcp", tags=["mcp-registry"])


@router.get("/registry")
async def get_registry(
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> dict[str, Any]:
    registry = await manager.get_registry()
    return registry.model_dump(mode="json")


@router.get("/registry/validate/{package:path}", response_model=PackageValidationResponse)
async def validate_package(
    package: str,
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> PackageValidationResponse:
    validation = await manager.validate_package(package)
    return PackageValidationResponse(package=package, **validation.model_dump())


@router.get("/diagnose", response_model=SystemDiagnosisResponse)
async def diagnose(
    manager: MCPConnectionManager = Depends(get_connection_manager),
) -> SystemDiagnosisResponse:
    diagnosis = await manager.diagnose_system()
    return SystemDiagnosisResponse(
        success=diagnosis.success,
        issues=diagnosis.issues,
        recommendations=diagnosis.recommendations,
    )


@router.post("/registry/cleanup-deprecated", response_model=CleanupResponse)
async def cleanup_deprecated(
    manager: MCPConnectionManager = Depends(get_connection_manager),
    store: ConfigurationStore = Depends(get_store),
) -> CleanupResponse:
    """Remove enabled servers that launch a deprecated npx package."""
    registry = await manager.get_registry()
    deprecated = {entry.package_identifier for entry in registry.deprecated}
    configuration = await store.load_configuration()
    removed: list[str] = []
    for server_id, entry in configuration.enabled_servers.items():
        try:
            config = ServerConfig.from_entry(server_id, entry)
        except ValidationError:
            continue
        if npx_package(config) not in deprecated:
            continue
        await store.remove_server(server_id)
        await manager.disconnect(server_id)
        removed.append(server_id)
        logger.info("Cleaned up deprecated MCP server %s", server_id)
    return CleanupResponse(cleaned_count=len(removed), removed=removed)
