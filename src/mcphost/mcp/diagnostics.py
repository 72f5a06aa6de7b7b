"""Turn raw transport failures into actionable errors, and probe the host toolchain."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field

import httpx
from mcp.shared.exceptions import McpError

from mcphost.core.logger import get_logger
from mcphost.mcp.errors import (
    CommandNotFound,
    ConnectionFailed,
    MCPHostError,
    ValidationRejected,
)
from mcphost.mcp.registry import PackageRegistry
from mcphost.mcp.security import base_command, extract_npx_package, split_command
from mcphost.models.server import ServerConfig, TransportType

logger = get_logger(__name__)

CONNECTION_CLOSED_CODE = -32000
NPM_SEARCH_URL = "https://www.npmjs.com/search?q=%40modelcontextprotocol"


def root_cause(exc: BaseException) -> BaseException:
    """Unwrap task-group exception groups down to the first leaf error."""
    while isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        exc = exc.exceptions[0]
    return exc


def _connection_closed(exc: BaseException) -> bool:
    if isinstance(exc, McpError) and exc.error.code == CONNECTION_CLOSED_CODE:
        return True
    text = str(exc)
    return "Connection closed" in text or f"MCP error {CONNECTION_CLOSED_CODE}" in text


def npx_package(config: ServerConfig) -> str | None:
    """Package an npx-launched server runs, or None for any other launcher."""
    if not config.command:
        return None
    executable, argv = split_command(config.command, config.args)
    if base_command(executable) != "npx":
        return None
    try:
        package, _ = extract_npx_package(argv)
    except ValidationRejected:
        return None
    return package


async def diagnose_connection_error(
    error: BaseException,
    config: ServerConfig,
    registry: PackageRegistry,
) -> MCPHostError:
    """Map a handshake failure to a domain error with a remediation hint."""
    if isinstance(error, MCPHostError):
        return error
    cause = root_cause(error)
    if isinstance(cause, MCPHostError):
        return cause
    if config.transport is TransportType.STDIO:
        return await _diagnose_stdio(cause, config, registry)
    return _diagnose_remote(cause, config)


async def _diagnose_stdio(
    cause: BaseException,
    config: ServerConfig,
    registry: PackageRegistry,
) -> MCPHostError:
    server_id = config.id
    if isinstance(cause, FileNotFoundError):
        return CommandNotFound(
            f"Command not found: {config.command}. Please ensure Node.js and npm are "
            "properly installed and accessible.",
            server_id=server_id,
        )
    if isinstance(cause, PermissionError):
        return ConnectionFailed(
            f"Permission denied executing: {config.command}. Please check file permissions.",
            server_id=server_id,
            category="permission",
        )
    if not _connection_closed(cause):
        return ConnectionFailed(str(cause) or type(cause).__name__, server_id=server_id)

    package = npx_package(config)
    if package is None:
        return ConnectionFailed(
            "MCP server connection failed. The server process may have exited "
            "unexpectedly. Please check the server logs for more details.",
            server_id=server_id,
            category="process_exited",
        )
    try:
        deprecated = await registry.find_deprecated(package)
        if deprecated is not None:
            return ConnectionFailed(
                f"Package not available: {package}. {deprecated.reason} "
                f"Alternative: {deprecated.alternative}",
                server_id=server_id,
                category="package_deprecated",
            )
        if await registry.find_active(package) is None:
            available = ", ".join(await registry.active_packages())
            return ConnectionFailed(
                f"Unknown MCP package: {package}. Available packages: {available}. "
                f"You can also check: {NPM_SEARCH_URL}",
                server_id=server_id,
                category="package_unknown",
            )
    except Exception as exc:  # noqa: BLE001
        logger.warning("Registry lookup failed while diagnosing %s: %s", server_id, exc)
        return ConnectionFailed(
            f"MCP package not found: {package}. Please verify the package name and ensure "
            "it's available in the npm registry.",
            server_id=server_id,
            category="package_unknown",
        )
    return ConnectionFailed(
        f"MCP package installation failed: {package}. The package exists but npm couldn't "
        "install it. Please check your internet connection and try again.",
        server_id=server_id,
        category="install_failed",
    )


def _diagnose_remote(cause: BaseException, config: ServerConfig) -> MCPHostError:
    label = config.transport.value.upper()
    server_id = config.id
    if isinstance(cause, httpx.HTTPStatusError):
        status_code = cause.response.status_code
        if status_code in (401, 403):
            return ConnectionFailed(
                f"Authentication failed for {label} server. Please check your API key "
                "and permissions.",
                server_id=server_id,
                category="auth",
            )
        if status_code == 404:
            return ConnectionFailed(
                f"{label} server not found at {config.base_url}. Please check the URL.",
                server_id=server_id,
                category="not_found",
            )
        return ConnectionFailed(
            f"{label} server at {config.base_url} answered with http status {status_code}.",
            server_id=server_id,
        )
    if isinstance(cause, httpx.TimeoutException):
        return ConnectionFailed(
            f"Timed out connecting to {label} server at {config.base_url}.",
            server_id=server_id,
            category="timeout",
        )
    if isinstance(cause, httpx.TransportError | OSError):
        return ConnectionFailed(
            f"Network error connecting to {label} server at {config.base_url}. "
            "Please check the URL and network connection.",
            server_id=server_id,
            category="network",
        )
    return ConnectionFailed(str(cause) or type(cause).__name__, server_id=server_id)


@dataclass
class SystemDiagnosis:
    success: bool
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _ToolProbe:
    executable: str
    issue: str
    recommendation: str
    optional: bool = False


SYSTEM_PROBES: tuple[_ToolProbe, ...] = (
    _ToolProbe(
        "node",
        "Node.js is not installed or not in PATH",
        "Install Node.js from https://nodejs.org/",
    ),
    _ToolProbe(
        "npm",
        "npm is not installed or not in PATH",
        "npm should come with Node.js. Try reinstalling Node.js.",
    ),
    _ToolProbe(
        "npx",
        "npx is not installed or not in PATH",
        "npx should come with npm 5.2.0+. Try updating npm: npm install -g npm@latest",
    ),
    _ToolProbe(
        "python3",
        "Python 3 is not installed or not in PATH",
        "Install Python 3 from https://www.python.org/ or using Homebrew: brew install python3",
    ),
    _ToolProbe(
        "pip3",
        "pip3 is not installed or not in PATH",
        "pip3 should come with Python 3. Try reinstalling Python or install pip separately.",
    ),
    _ToolProbe(
        "uvx",
        "uvx is not installed or not in PATH",
        "Consider installing uv for better Python MCP server support: pip3 install uv",
        optional=True,
    ),
)

COMMON_NODE_DIRS = ("/usr/local/bin", "/opt/homebrew/bin")


async def probe_version(executable: str) -> bool:
    """Run `<executable> --version` and report whether it exited cleanly."""
    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            "--version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await process.communicate()
    except OSError:
        return False
    if process.returncode != 0:
        return False
    logger.debug("%s is available: %s", executable, stdout.decode(errors="replace").strip())
    return True


async def diagnose_system(path: str | None = None) -> SystemDiagnosis:
    """Check that the runtimes used to launch stdio servers are installed."""
    issues: list[str] = []
    recommendations: list[str] = []
    results = await asyncio.gather(*(probe_version(probe.executable) for probe in SYSTEM_PROBES))
    for probe, available in zip(SYSTEM_PROBES, results, strict=True):
        if available:
            continue
        if probe.optional:
            logger.debug("%s is not available (optional)", probe.executable)
        else:
            issues.append(probe.issue)
        recommendations.append(probe.recommendation)

    entries = (os.environ.get("PATH", "") if path is None else path).split(os.pathsep)
    if not any(directory in entries for directory in COMMON_NODE_DIRS):
        issues.append("Common Node.js paths not in PATH environment variable")
        recommendations.append("Ensure /usr/local/bin or /opt/homebrew/bin are in your PATH")

    return SystemDiagnosis(success=not issues, issues=issues, recommendations=recommendations)
