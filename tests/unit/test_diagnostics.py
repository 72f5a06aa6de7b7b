from __future__ import annotations

import httpx
import pytest
from mcp.shared.exceptions import McpError
from mcp.types import ErrorData

from mcphost.mcp import diagnostics
from mcphost.mcp.diagnostics import diagnose_connection_error, diagnose_system, npx_package
from mcphost.mcp.errors import CommandNotFound, ConnectionFailed, NotConnected
from mcphost.mcp.registry import PackageRegistry
from mcphost.models.server import ServerConfig


def _npx_config(package: str) -> ServerConfig:
    return ServerConfig(id="srv", transport="stdio", command="npx", args=["-y", package])


def _remote_config() -> ServerConfig:
    return ServerConfig(id="remote", transport="http", base_url="https://mcp.example.com/mcp")


def _closed() -> McpError:
    return McpError(ErrorData(code=-32000, message="Connection closed"))


def _status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://mcp.example.com/mcp")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError("bad status", request=request, response=response)


def test_npx_package_handles_launchers() -> None:
    assert npx_package(_npx_config("pkg")) == "pkg"
    assert npx_package(ServerConfig(id="a", transport="stdio", command="npx pkg")) == "pkg"
    assert npx_package(ServerConfig(id="b", transport="stdio", command="uvx", args=["x"])) is None


@pytest.mark.asyncio
async def test_domain_errors_pass_through() -> None:
    original = NotConnected("srv")
    result = await diagnose_connection_error(original, _npx_config("pkg"), PackageRegistry())
    assert result is original


@pytest.mark.asyncio
async def test_missing_executable() -> None:
    result = await diagnose_connection_error(
        FileNotFoundError("npx"),
        _npx_config("pkg"),
        PackageRegistry(),
    )
    assert isinstance(result, CommandNotFound)
    assert "Command not found: npx" in str(result)


@pytest.mark.asyncio
async def test_permission_denied() -> None:
    result = await diagnose_connection_error(
        PermissionError("denied"),
        _npx_config("pkg"),
        PackageRegistry(),
    )
    assert isinstance(result, ConnectionFailed)
    assert result.category == "permission"


@pytest.mark.asyncio
async def test_closed_connection_for_deprecated_package_suggests_alternative() -> None:
    error = ExceptionGroup("task group", [_closed()])
    result = await diagnose_connection_error(
        error,
        _npx_config("@modelcontextprotocol/server-sqlite"),
        PackageRegistry(),
    )
    assert isinstance(result, ConnectionFailed)
    assert result.category == "package_deprecated"
    assert "Package never existed." in str(result)
    assert "@modelcontextprotocol/server-memory" in str(result)


@pytest.mark.asyncio
async def test_closed_connection_for_unknown_package_lists_known_ones() -> None:
    result = await diagnose_connection_error(
        _closed(),
        _npx_config("some-community-server"),
        PackageRegistry(),
    )
    assert isinstance(result, ConnectionFailed)
    assert result.category == "package_unknown"
    assert "@modelcontextprotocol/server-filesystem" in str(result)


@pytest.mark.asyncio
async def test_closed_connection_for_known_package_is_install_failure() -> None:
    result = await diagnose_connection_error(
        RuntimeError("Connection closed"),
        _npx_config("@modelcontextprotocol/server-memory"),
        PackageRegistry(),
    )
    assert isinstance(result, ConnectionFailed)
    assert result.category == "install_failed"


@pytest.mark.asyncio
async def test_registry_failure_while_diagnosing(monkeypatch: pytest.MonkeyPatch) -> None:
    registry = PackageRegistry()

    async def explode(package: str) -> None:
        raise RuntimeError("registry down")

    monkeypatch.setattr(registry, "find_deprecated", explode)
    result = await diagnose_connection_error(_closed(), _npx_config("pkg"), registry)
    assert isinstance(result, ConnectionFailed)
    assert result.category == "package_unknown"
    assert "MCP package not found: pkg" in str(result)


@pytest.mark.asyncio
async def test_closed_connection_for_other_launchers_is_process_exit() -> None:
    config = ServerConfig(id="py", transport="stdio", command="python3", args=["server.py"])
    result = await diagnose_connection_error(_closed(), config, PackageRegistry())
    assert isinstance(result, ConnectionFailed)
    assert result.category == "process_exited"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "category"),
    [
        (_status_error(401), "auth"),
        (_status_error(403), "auth"),
        (_status_error(404), "not_found"),
        (_status_error(500), "unknown"),
        (httpx.ConnectTimeout("slow"), "timeout"),
        (httpx.ConnectError("refused"), "network"),
        (ConnectionRefusedError("refused"), "network"),
    ],
)
async def test_remote_failures_are_categorized(error: BaseException, category: str) -> None:
    result = await diagnose_connection_error(error, _remote_config(), PackageRegistry())
    assert isinstance(result, ConnectionFailed)
    assert result.category == category
    assert result.server_id == "remote"


@pytest.mark.asyncio
async def test_diagnose_system_treats_uvx_as_optional(monkeypatch: pytest.MonkeyPatch) -> None:
    async def probe(executable: str) -> bool:
        return executable != "uvx"

    monkeypatch.setattr(diagnostics, "probe_version", probe)
    diagnosis = await diagnose_system(path="/usr/local/bin")
    assert diagnosis.success is True
    assert diagnosis.issues == []
    assert len(diagnosis.recommendations) == 1
    assert "uv" in diagnosis.recommendations[0]


@pytest.mark.asyncio
async def test_diagnose_system_reports_missing_runtimes(monkeypatch: pytest.MonkeyPatch) -> None:
    async def probe(executable: str) -> bool:
        return executable not in {"node", "npx"}

    monkeypatch.setattr(diagnostics, "probe_version", probe)
    diagnosis = await diagnose_system(path="/home/user/bin")
    assert diagnosis.success is False
    assert "Node.js is not installed or not in PATH" in diagnosis.issues
    assert "npx is not installed or not in PATH" in diagnosis.issues
    assert "Common Node.js paths not in PATH environment variable" in diagnosis.issues


@pytest.mark.asyncio
async def test_probe_version_handles_missing_executable() -> None:
    assert await diagnostics.probe_version("definitely-not-a-real-binary-xyz") is False
