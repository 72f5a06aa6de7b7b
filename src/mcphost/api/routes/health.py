"""Server health routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from mcphost.api.deps import get_health_monitor
from mcphost.api.schemas.mcp import (
    HealthReportResponse,
    ServerHealthResponse,
    ToolHealthResponse,
    UnhealthyServersResponse,
)
from mcphost.core.health_monitor import HealthMonitor, ServerHealth

router = APIRouter(prefix="/api/v1/mcp/health", tags=["mcp-health"])


def _as_response(health: ServerHealth, monitor: HealthMonitor) -> ServerHealthResponse:
    return ServerHealthResponse(
        server_id=health.server_id,
        status=health.status,
        error_count=health.error_count,
        success_count=health.success_count,
        consecutive_errors=health.consecutive_errors,
        last_error=health.last_error,
        last_error_time=health.last_error_time,
        last_success=health.last_success,
        success_rate=monitor.success_rate(health.server_id),
        deprioritized=monitor.should_deprioritize(health.server_id),
        tools={
            name: ToolHealthResponse(
                error_count=tool.error_count,
                success_count=tool.success_count,
                last_error=tool.last_error,
            )
            for name, tool in health.tools.items()
        },
    )


@router.get("", response_model=HealthReportResponse)
async def health_report(
    monitor: HealthMonitor = Depends(get_health_monitor),
) -> HealthReportResponse:
    report = monitor.get_health_report()
    return HealthReportResponse(
        servers={
            server_id: _as_response(health, monitor)
            for server_id, health in report.servers.items()
        },
        last_updated=report.last_updated,
    )


@router.get("/unhealthy", response_model=UnhealthyServersResponse)
async def unhealthy_servers(
    monitor: HealthMonitor = Depends(get_health_monitor),
) -> UnhealthyServersResponse:
    return UnhealthyServersResponse(items=monitor.get_unhealthy_servers())


@router.get("/{server_id}", response_model=ServerHealthResponse)
async def server_health(
    server_id: str,
    monitor: HealthMonitor = Depends(get_health_monitor),
) -> ServerHealthResponse:
    health = monitor.get_server_health(server_id)
    if health is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No health data for server",
        )
    return _as_response(health, monitor)


@router.post("/{server_id}/reset", status_code=status.HTTP_204_NO_CONTENT)
async def reset_server_health(
    server_id: str,
    monitor: HealthMonitor = Depends(get_health_monitor),
) -> None:
    monitor.reset_server_health(server_id)
