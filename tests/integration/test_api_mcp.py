from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from mcphost.api.app import create_app
from mcphost.api.deps import (
    get_connection_manager,
    get_health_monitor,
    get_store,
)
from mcphost.core.health_monitor import HealthMonitor
from mcphost.db.store import ConfigurationStore
from mcphost.mcp.client import MCPConnectionManager
from mcphost.mcp.diagnostics import SystemDiagnosis
from tests.support.mcp_helpers import FakeSessionFactory, stdio_entry, tool_payload

FS_CONFIG = {
    "id": "fs",
    "transport": "stdio",
    "command": "npx",
    "args": ["-y", "@modelcontextprotocol/server-filesystem", "/tmp"],
}


@dataclass
class APIHarness:
    client: TestClient
    factory: FakeSessionFactory
    manager: MCPConnectionManager
    monitor: HealthMonitor
    store: ConfigurationStore


@pytest.fixture
def api(tmp_path: Path) -> Iterator[APIHarness]:
    factory = FakeSessionFactory()
    manager = MCPConnectionManager(session_factory=factory, test_timeout_seconds=0.2)
    monitor = HealthMonitor(unhealthy_threshold=2)
    store = ConfigurationStore(tmp_path / "mcphost.db")

    app = create_app()
    app.dependency_overrides[get_connection_manager] = lambda: manager
    app.dependency_overrides[get_health_monitor] = lambda: monitor
    app.dependency_overrides[get_store] = lambda: store
    # Connections are held by tasks on the client's event loop, so keep one loop for the test.
    with TestClient(app) as client:
        yield APIHarness(client, factory, manager, monitor, store)
        client.portal.call(manager.disconnect_all)


def test_health_endpoint(api: APIHarness) -> None:
    response = api.client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_connect_persists_server_and_lists_tools(api: APIHarness) -> None:
    api.factory.tools["fs"] = [tool_payload("read_file", path="string")]

    connected = api.client.post("/api/v1/mcp/servers/connect", json=FS_CONFIG)
    assert connected.status_code == 200
    assert connected.json()["status"] == "connected"
    assert connected.json()["enabled"] is True

    listing = api.client.get("/api/v1/mcp/servers")
    assert [item["id"] for item in listing.json()["items"]] == ["fs"]

    status_response = api.client.get("/api/v1/mcp/status")
    assert status_response.json() == {"servers": {"fs": "connected"}}

    tools = api.client.get("/api/v1/mcp/servers/fs/tools")
    assert tools.status_code == 200
    assert tools.json()["items"][0]["name"] == "read_file"
    assert tools.json()["items"][0]["input_schema"]["required"] == ["path"]

    again = api.client.post("/api/v1/mcp/servers/connect", json=FS_CONFIG)
    assert again.status_code == 409


def test_blocked_command_maps_to_422(api: APIHarness) -> None:
    response = api.client.post(
        "/api/v1/mcp/servers/connect",
        json={"id": "evil", "transport": "stdio", "command": "bash", "args": ["-c", "rm -rf /"]},
    )
    assert response.status_code == 422
    assert "bash" in response.json()["detail"]
    assert api.factory.opened == []


def test_invalid_config_body_is_rejected(api: APIHarness) -> None:
    response = api.client.post(
        "/api/v1/mcp/servers/connect",
        json={"id": "remote", "transport": "http"},
    )
    assert response.status_code == 422


def test_unknown_server_tools_map_to_404(api: APIHarness) -> None:
    response = api.client.get("/api/v1/mcp/servers/missing/tools")
    assert response.status_code == 404
    assert "not connected" in response.json()["detail"]


def test_handshake_failure_maps_to_502(api: APIHarness) -> None:
    api.factory.initialize_errors["fs"] = FileNotFoundError("npx")
    response = api.client.post("/api/v1/mcp/servers/connect", json=FS_CONFIG)
    assert response.status_code == 502
    assert "Command not found" in response.json()["detail"]


def test_direct_tool_call(api: APIHarness) -> None:
    api.factory.results[("fs", "read_file")] = {
        "content": [{"type": "text", "text": "data"}],
        "isError": False,
    }
    api.client.post("/api/v1/mcp/servers/connect", json=FS_CONFIG)

    response = api.client.post(
        "/api/v1/mcp/servers/fs/tools/call",
        json={"name": "read_file", "arguments": {"path": "/tmp/a"}},
    )

    assert response.status_code == 200
    assert response.json() == {"content": [{"type": "text", "text": "data"}], "is_error": False}
    assert api.factory.calls == [("fs", "read_file", {"path": "/tmp/a"})]


def test_test_connection_endpoint(api: APIHarness) -> None:
    api.factory.default_tools = [tool_payload("echo")]
    ok = api.client.post("/api/v1/mcp/servers/test", json=FS_CONFIG)
    assert ok.status_code == 200
    assert [item["name"] for item in ok.json()["items"]] == ["echo"]

    api.factory.hang_every_initialize = True
    slow = api.client.post("/api/v1/mcp/servers/test", json=FS_CONFIG)
    assert slow.status_code == 502
    assert "transport mismatch" in slow.json()["detail"]
    assert api.manager.get_connected_servers() == []


def test_disconnect_enable_disable_and_delete(api: APIHarness) -> None:
    api.client.post("/api/v1/mcp/servers/connect", json=FS_CONFIG)

    assert api.client.post("/api/v1/mcp/servers/fs/disconnect").status_code == 204
    assert not api.manager.is_connected("fs")
    listing = api.client.get("/api/v1/mcp/servers").json()["items"]
    assert listing[0]["enabled"] is False
    assert listing[0]["status"] == "disconnected"

    assert api.client.post("/api/v1/mcp/servers/fs/disable").status_code == 404
    assert api.client.post("/api/v1/mcp/servers/fs/enable").status_code == 204

    patched = api.client.patch("/api/v1/mcp/servers/fs", json={"changes": {"name": "Files"}})
    assert patched.status_code == 200
    assert patched.json()["config"]["name"] == "Files"
    bad_patch = api.client.patch("/api/v1/mcp/servers/fs", json={"changes": {"command": ""}})
    assert bad_patch.status_code == 422
    missing_patch = api.client.patch("/api/v1/mcp/servers/nope", json={"changes": {}})
    assert missing_patch.status_code == 404

    assert api.client.delete("/api/v1/mcp/servers/fs").status_code == 204
    assert api.client.delete("/api/v1/mcp/servers/fs").status_code == 404


def test_configuration_import_export_and_refresh(api: APIHarness) -> None:
    imported = api.client.post(
        "/api/v1/mcp/configuration",
        json={
            "mcpServers": {
                "memory": stdio_entry(),
                "evil": {"transport": "stdio", "command": "sudo", "args": ["ls"]},
            },
            "disabled": {"old": stdio_entry()},
        },
    )
    assert imported.status_code == 204

    exported = api.client.get("/api/v1/mcp/configuration").json()
    assert sorted(exported["mcpServers"]) == ["evil", "memory"]
    assert list(exported["disabled"]) == ["old"]

    refreshed = api.client.post("/api/v1/mcp/configuration/refresh").json()["results"]
    assert refreshed["memory"] == {"success": True, "error": None}
    assert refreshed["evil"]["success"] is False
    assert "old" not in refreshed
    assert api.manager.get_connected_servers() == ["memory"]


def test_bridged_tools_and_invocation(api: APIHarness) -> None:
    api.factory.tools["fs"] = [tool_payload("read_file", path="string"), tool_payload("")]
    api.factory.list_errors["git"] = RuntimeError("git server crashed")
    api.client.post(
        "/api/v1/mcp/configuration",
        json={"mcpServers": {"fs": stdio_entry(), "git": stdio_entry()}},
    )

    listing = api.client.get("/api/v1/mcp/tools").json()
    assert [item["name"] for item in listing["items"]] == ["fs_read_file"]
    assert listing["items"][0]["server_id"] == "fs"
    assert listing["items"][0]["parameters"]["required"] == ["path"]
    assert [failure["server_id"] for failure in listing["failures"]] == ["git"]

    invoked = api.client.post(
        "/api/v1/mcp/tools/fs_read_file/invoke",
        json={"arguments": {"path": "/tmp/a"}},
    )
    assert invoked.status_code == 200
    assert invoked.json() == {"name": "fs_read_file", "output": "read_file ok"}

    invalid = api.client.post("/api/v1/mcp/tools/fs_read_file/invoke", json={"arguments": {}})
    assert invalid.status_code == 422

    unknown = api.client.post("/api/v1/mcp/tools/fs_nope/invoke", json={})
    assert unknown.status_code == 404

    health = api.client.get("/api/v1/mcp/health/fs").json()
    assert health["status"] == "healthy"
    assert health["success_count"] == 1


def test_health_endpoints(api: APIHarness) -> None:
    api.monitor.record_error("fs", "read_file", "boom")
    api.monitor.record_error("fs", "read_file", "boom")

    report = api.client.get("/api/v1/mcp/health").json()
    assert report["servers"]["fs"]["status"] == "unhealthy"
    assert report["servers"]["fs"]["success_rate"] == 0.0
    assert report["servers"]["fs"]["deprioritized"] is True
    assert report["servers"]["fs"]["tools"]["read_file"]["error_count"] == 2

    assert api.client.get("/api/v1/mcp/health/unhealthy").json() == {"items": ["fs"]}
    assert api.client.post("/api/v1/mcp/health/fs/reset").status_code == 204
    assert api.client.get("/api/v1/mcp/health/fs").status_code == 404


def test_deep_link_endpoint(api: APIHarness) -> None:
    created = api.client.post(
        "/api/v1/mcp/deep-link",
        json={
            "url": (
                "mcphost://mcp/add?name=Memory&type=stdio&command=npx"
                "&args=-y,@modelcontextprotocol/server-memory"
            )
        },
    )
    assert created.status_code == 201
    assert created.json()["name"] == "Memory"
    assert created.json()["server"]["id"] == "memory"
    assert created.json()["server"]["status"] == "disconnected"

    rejected = api.client.post(
        "/api/v1/mcp/deep-link",
        json={"url": "mcphost://mcp/add?name=x&type=stdio&command=npx&args=-y,left-pad"},
    )
    assert rejected.status_code == 422

    malformed = api.client.post("/api/v1/mcp/deep-link", json={"url": "https://example.com"})
    assert malformed.status_code == 422


def test_registry_endpoints(api: APIHarness, monkeypatch: pytest.MonkeyPatch) -> None:
    registry = api.client.get("/api/v1/mcp/registry").json()
    assert registry["version"] == "1.0.0"

    verdict = api.client.get(
        "/api/v1/mcp/registry/validate/@modelcontextprotocol/server-sqlite"
    ).json()
    assert verdict["package"] == "@modelcontextprotocol/server-sqlite"
    assert verdict["status"] == "deprecated"

    async def fake_diagnosis() -> SystemDiagnosis:
        return SystemDiagnosis(success=False, issues=["npx missing"], recommendations=["install"])

    monkeypatch.setattr(api.manager, "diagnose_system", fake_diagnosis)
    diagnosis = api.client.get("/api/v1/mcp/diagnose").json()
    assert diagnosis["success"] is False
    assert diagnosis["issues"] == ["npx missing"]
    assert diagnosis["recommendations"] == ["install"]


def test_cleanup_deprecated_servers(api: APIHarness) -> None:
    api.client.post(
        "/api/v1/mcp/configuration",
        json={
            "mcpServers": {
                "sqlite": stdio_entry("@modelcontextprotocol/server-sqlite"),
                "memory": stdio_entry(),
            }
        },
    )

    cleaned = api.client.post("/api/v1/mcp/registry/cleanup-deprecated").json()

    assert cleaned == {"cleaned_count": 1, "removed": ["sqlite"]}
    exported = api.client.get("/api/v1/mcp/configuration").json()
    assert list(exported["mcpServers"]) == ["memory"]


def test_deep_link_does_not_replace_stored_server(api: APIHarness) -> None:
    api.client.post(
        "/api/v1/mcp/configuration",
        json={"disabled": {"memory": {**stdio_entry(), "env": {"TOKEN": "mine"}}}},
    )

    response = api.client.post(
        "/api/v1/mcp/deep-link",
        json={
            "url": (
                "mcphost://mcp/add?name=memory&type=stdio&command=npx"
                "&args=-y,@modelcontextprotocol/server-filesystem,/"
            )
        },
    )

    assert response.status_code == 409
    assert "already exists" in response.json()["detail"]
    exported = api.client.get("/api/v1/mcp/configuration").json()
    assert exported["mcpServers"] == {}
    assert exported["disabled"]["memory"]["env"] == {"TOKEN": "mine"}
    assert exported["disabled"]["memory"]["args"] == ["-y", "@modelcontextprotocol/server-memory"]
