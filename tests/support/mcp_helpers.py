from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

from mcphost.models.server import MCPConfiguration, ServerConfig


class MCPTestClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, *, seconds: int) -> None:
        self.current += timedelta(seconds=seconds)


class ModelPayload:
    """Stand-in for SDK result models, which expose `model_dump`."""

    def __init__(self, payload: dict[str, Any]) -> None:
        self._payload = payload

    def model_dump(self, **_: Any) -> dict[str, Any]:
        return self._payload


def tool_payload(name: str, **properties: str) -> dict[str, Any]:
    return {
        "name": name,
        "description": f"{name} tool",
        "inputSchema": {
            "type": "object",
            "properties": {key: {"type": value} for key, value in properties.items()},
            "required": list(properties),
        },
    }


class FakeSession:
    def __init__(self, server_id: str, factory: FakeSessionFactory) -> None:
        self.server_id = server_id
        self._factory = factory
        self.initialized = False

    async def initialize(self) -> ModelPayload:
        if self._factory.hang_every_initialize or self.server_id in self._factory.hang_initialize:
            await asyncio.Event().wait()
        failure = self._factory.initialize_errors.get(self.server_id)
        if failure is not None:
            raise failure
        self.initialized = True
        return ModelPayload({"protocolVersion": "2025-06-18", "serverInfo": {"name": "fake"}})

    async def list_tools(self) -> ModelPayload:
        failure = self._factory.list_errors.get(self.server_id)
        if failure is not None:
            raise failure
        tools = self._factory.tools.get(self.server_id, self._factory.default_tools)
        return ModelPayload({"tools": tools})

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
    ) -> ModelPayload:
        self._factory.calls.append((self.server_id, name, dict(arguments or {})))
        failure = self._factory.call_errors.get(self.server_id)
        if failure is not None:
            raise failure
        result = self._factory.results.get(
            (self.server_id, name),
            {"content": [{"type": "text", "text": f"{name} ok"}], "isError": False},
        )
        return ModelPayload(result)


class FakeSessionFactory:
    """Session factory producing in-memory sessions, keyed by server id."""

    def __init__(self) -> None:
        self.tools: dict[str, list[dict[str, Any]]] = {}
        self.default_tools: list[dict[str, Any]] = []
        self.results: dict[tuple[str, str], dict[str, Any]] = {}
        self.initialize_errors: dict[str, BaseException] = {}
        self.list_errors: dict[str, Exception] = {}
        self.call_errors: dict[str, Exception] = {}
        self.close_errors: dict[str, Exception] = {}
        self.hang_initialize: set[str] = set()
        self.hang_every_initialize = False
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.opened: list[str] = []
        self.closed: list[str] = []

    @asynccontextmanager
    async def __call__(self, config: ServerConfig) -> AsyncIterator[FakeSession]:
        self.opened.append(config.id)
        try:
            yield FakeSession(config.id, self)
        finally:
            self.closed.append(config.id)
            failure = self.close_errors.get(config.id)
            if failure is not None:
                raise failure


class InMemoryConfigSource:
    def __init__(self, configuration: MCPConfiguration | None = None) -> None:
        self.configuration = configuration or MCPConfiguration()
        self.error: Exception | None = None

    async def load_configuration(self) -> MCPConfiguration:
        if self.error is not None:
            raise self.error
        return self.configuration


def stdio_entry(package: str = "@modelcontextprotocol/server-memory") -> dict[str, Any]:
    return {"transport": "stdio", "command": "npx", "args": ["-y", package]}
