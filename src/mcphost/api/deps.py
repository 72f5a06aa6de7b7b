"""Shared API dependency providers."""

from __future__ import annotations

from fastapi import Depends

from mcphost.core.health_monitor import HealthMonitor
from mcphost.core.tool_bridge import ToolBridge
from mcphost.db.store import ConfigurationStore
from mcphost.mcp.client import MCPConnectionManager
from mcphost.mcp.registry import PackageRegistry
from mcphost.settings import HostSettings, load_settings

_SETTINGS = load_settings()
_REGISTRY = PackageRegistry(_SETTINGS.registry_path)
_CONNECTION_MANAGER = MCPConnectionManager(
    registry=_REGISTRY,
    test_timeout_seconds=_SETTINGS.test_connection_timeout,
)
_HEALTH_MONITOR = HealthMonitor(
    unhealthy_threshold=_SETTINGS.unhealthy_threshold,
    sweep_interval_seconds=_SETTINGS.health_sweep_seconds,
    error_decay_seconds=_SETTINGS.error_decay_seconds,
)


def get_settings() -> HostSettings:
    return _SETTINGS


def get_store() -> ConfigurationStore:
    return ConfigurationStore(db_path=_SETTINGS.db_path)


def get_registry() -> PackageRegistry:
    return _REGISTRY


def get_connection_manager() -> MCPConnectionManager:
    return _CONNECTION_MANAGER


def get_health_monitor() -> HealthMonitor:
    return _HEALTH_MONITOR


def get_tool_bridge(
    manager: MCPConnectionManager = Depends(get_connection_manager),
    health_monitor: HealthMonitor = Depends(get_health_monitor),
    store: ConfigurationStore = Depends(get_store),
) -> ToolBridge:
    return ToolBridge(manager=manager, health_monitor=health_monitor, config_source=store)
