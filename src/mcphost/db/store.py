"""Async SQLite persistence for MCP server configuration."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from mcphost.core.logger import get_logger
from mcphost.db.migrations import apply_migrations
from mcphost.mcp.errors import ServerNotFound
from mcphost.models.server import MCPConfiguration, ServerConfig

logger = get_logger(__name__)


@dataclass(slots=True)
class ServerRecord:
    """Stored server entry together with its enabled flag."""

    id: str
    enabled: bool
    entry: dict[str, Any]
    updated_at: datetime


class ConfigurationStore:
    """Enabled and disabled MCP server entries kept in one SQLite table."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        try:
            await apply_migrations(conn)
            yield conn
        finally:
            await conn.close()

    async def _upsert(
        self,
        conn: aiosqlite.Connection,
        server_id: str,
        entry: Mapping[str, Any],
        *,
        enabled: bool,
    ) -> None:
        await conn.execute(
            """
            INSERT INTO mcp_servers(id, enabled, config, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                enabled=excluded.enabled,
                config=excluded.config,
                updated_at=excluded.updated_at
            """,
            (server_id, int(enabled), json.dumps(dict(entry)), datetime.now(UTC).isoformat()),
        )

    async def load_configuration(self) -> MCPConfiguration:
        records = await self.list_records()
        return MCPConfiguration(
            enabled_servers={record.id: record.entry for record in records if record.enabled},
            disabled_servers={record.id: record.entry for record in records if not record.enabled},
        )

    async def list_records(self) -> list[ServerRecord]:
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT * FROM mcp_servers ORDER BY id ASC")
            rows = await cursor.fetchall()
        return [self._record_from_row(row) for row in rows]

    async def get_record(self, server_id: str) -> ServerRecord | None:
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT * FROM mcp_servers WHERE id = ?", (server_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._record_from_row(row)

    async def add_server(self, config: ServerConfig) -> None:
        """Store the server as enabled, replacing any previous entry for its id."""
        async with self.connection() as conn:
            await self._upsert(conn, config.id, config.to_entry(), enabled=True)
            await conn.commit()
        logger.info("Server %s added to configuration", config.id)

    async def remove_server(self, server_id: str) -> bool:
        async with self.connection() as conn:
            cursor = await conn.execute("DELETE FROM mcp_servers WHERE id = ?", (server_id,))
            await conn.commit()
            removed = cursor.rowcount > 0
        if removed:
            logger.info("Server %s removed from configuration", server_id)
        else:
            logger.warning("Server %s not found in configuration", server_id)
        return removed

    async def update_server(self, server_id: str, changes: Mapping[str, Any]) -> ServerConfig:
        """Merge `changes` into a stored entry and return the resulting config."""
        record = await self.get_record(server_id)
        if record is None:
            raise ServerNotFound(server_id)
        merged = ServerConfig.from_entry(server_id, {**record.entry, **changes})
        async with self.connection() as conn:
            await self._upsert(conn, server_id, merged.to_entry(), enabled=record.enabled)
            await conn.commit()
        return merged

    async def _set_enabled(self, server_id: str, *, enabled: bool) -> None:
        async with self.connection() as conn:
            cursor = await conn.execute(
                """
                UPDATE mcp_servers SET enabled = ?, updated_at = ?
                WHERE id = ? AND enabled = ?
                """,
                (int(enabled), datetime.now(UTC).isoformat(), server_id, int(not enabled)),
            )
            await conn.commit()
            changed = cursor.rowcount > 0
        if not changed:
            raise ServerNotFound(server_id, section="disabled" if enabled else "mcpServers")

    async def enable_server(self, server_id: str) -> None:
        """Move a server from the disabled section back to the enabled one."""
        await self._set_enabled(server_id, enabled=True)
        logger.info("Server %s enabled", server_id)

    async def disable_server(self, server_id: str) -> None:
        """Move an enabled server to the disabled section."""
        await self._set_enabled(server_id, enabled=False)
        logger.info("Server %s disabled", server_id)

    async def get_server(self, server_id: str) -> ServerConfig | None:
        """Return the config of an enabled server."""
        record = await self.get_record(server_id)
        if record is None or not record.enabled:
            return None
        return ServerConfig.from_entry(server_id, record.entry)

    async def list_servers(self) -> list[ServerRecord]:
        """Enabled servers first, then disabled ones, each group sorted by id."""
        records = await self.list_records()
        return [record for record in records if record.enabled] + [
            record for record in records if not record.enabled
        ]

    async def import_configuration(self, configuration: MCPConfiguration) -> None:
        """Merge imported entries over the stored ones; disabled entries are applied last."""
        async with self.connection() as conn:
            for server_id, entry in configuration.enabled_servers.items():
                await self._upsert(conn, server_id, entry, enabled=True)
            for server_id, entry in configuration.disabled_servers.items():
                await self._upsert(conn, server_id, entry, enabled=False)
            await conn.commit()
        logger.info(
            "Imported %s enabled and %s disabled servers",
            len(configuration.enabled_servers),
            len(configuration.disabled_servers),
        )

    async def export_configuration(self) -> MCPConfiguration:
        return await self.load_configuration()

    @staticmethod
    def _record_from_row(row: aiosqlite.Row) -> ServerRecord:
        return ServerRecord(
            id=row["id"],
            enabled=bool(row["enabled"]),
            entry=json.loads(row["config"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
