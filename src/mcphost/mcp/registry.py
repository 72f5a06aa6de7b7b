"""Catalog of known-good and deprecated MCP server packages."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from mcphost.core.logger import get_logger
from mcphost.mcp.errors import RegistryUnavailable

logger = get_logger(__name__)

type PackageStatus = Literal["active", "deprecated", "unknown", "error"]

_PACKAGE_ALIASES = AliasChoices("package_identifier", "packageIdentifier", "npmPackage")


class RegistryEntry(BaseModel):
    """Known server package."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    package_identifier: str = Field(validation_alias=_PACKAGE_ALIASES)
    status: str
    version: str | None = None


class DeprecatedEntry(BaseModel):
    """Package that should no longer be launched, with a suggested replacement."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    package_identifier: str = Field(validation_alias=_PACKAGE_ALIASES)
    reason: str
    alternative: str


class RegistryData(BaseModel):
    """Registry document as stored on disk."""

    model_config = ConfigDict(populate_by_name=True)

    version: str
    last_updated: str = Field(validation_alias=AliasChoices("last_updated", "lastUpdated"))
    entries: list[RegistryEntry] = Field(default_factory=list)
    deprecated: list[DeprecatedEntry] = Field(default_factory=list)


class PackageValidation(BaseModel):
    """Verdict for one package name."""

    valid: bool
    status: PackageStatus
    message: str
    alternative: str | None = None


FALLBACK_REGISTRY = RegistryData(
    version="1.0.0",
    last_updated="2025-01-14",
    entries=[
        RegistryEntry(
            id="filesystem-local",
            name="Local File System",
            package_identifier="@modelcontextprotocol/server-filesystem",
            status="active",
            version="2025.8.21",
        ),
        RegistryEntry(
            id="memory",
            name="Memory Storage",
            package_identifier="@modelcontextprotocol/server-memory",
            status="active",
            version="2025.8.4",
        ),
        RegistryEntry(
            id="sequential-thinking",
            name="Sequential Thinking",
            package_identifier="@modelcontextprotocol/server-sequential-thinking",
            status="active",
            version="2025.7.1",
        ),
    ],
    deprecated=[
        DeprecatedEntry(
            id="sqlite",
            name="SQLite Database",
            package_identifier="@modelcontextprotocol/server-sqlite",
            reason="Package never existed.",
            alternative=(
                "@modelcontextprotocol/server-memory or @modelcontextprotocol/server-filesystem"
            ),
        )
    ],
)


class PackageRegistry:
    """Read-only registry loaded once from disk, with an embedded fallback."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._cache: RegistryData | None = None

    async def load(self) -> RegistryData:
        """Return the cached registry, reading it on first use."""
        if self._cache is not None:
            return self._cache
        try:
            self._cache = await asyncio.to_thread(self._read)
        except RegistryUnavailable as exc:
            logger.warning("Failed to load MCP registry, using fallback data: %s", exc)
            self._cache = FALLBACK_REGISTRY
        return self._cache

    def _read(self) -> RegistryData:
        if self._path is None:
            raise RegistryUnavailable("no registry path configured")
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
            return RegistryData.model_validate(payload)
        except (OSError, ValueError, ValidationError) as exc:
            raise RegistryUnavailable(f"{self._path}: {exc}") from exc

    async def find_deprecated(self, package: str) -> DeprecatedEntry | None:
        registry = await self.load()
        return next(
            (entry for entry in registry.deprecated if entry.package_identifier == package),
            None,
        )

    async def find_active(self, package: str) -> RegistryEntry | None:
        registry = await self.load()
        return next(
            (
                entry
                for entry in registry.entries
                if entry.package_identifier == package and entry.status == "active"
            ),
            None,
        )

    async def active_packages(self) -> list[str]:
        registry = await self.load()
        return [entry.package_identifier for entry in registry.entries if entry.status == "active"]

    async def validate_package(self, package: str) -> PackageValidation:
        """Classify a package as active, deprecated, or unknown."""
        try:
            deprecated = await self.find_deprecated(package)
            if deprecated is not None:
                return PackageValidation(
                    valid=False,
                    status="deprecated",
                    message=deprecated.reason,
                    alternative=deprecated.alternative,
                )
            active = await self.find_active(package)
            if active is not None:
                return PackageValidation(
                    valid=True,
                    status="active",
                    message=f"Package {package} is available (v{active.version or 'latest'})",
                )
            available = ", ".join(await self.active_packages())
        except Exception as exc:  # noqa: BLE001
            logger.error("Registry lookup failed for %s: %s", package, exc)
            return PackageValidation(
                valid=False,
                status="error",
                message="Unable to validate package due to registry loading error",
            )
        return PackageValidation(
            valid=False,
            status="unknown",
            message=f"Unknown package. Available packages: {available}",
        )
