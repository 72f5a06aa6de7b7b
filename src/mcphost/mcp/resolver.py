"""Locate launch executables and build the environment for stdio servers."""

from __future__ import annotations

import os
import shutil
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from mcphost.core.logger import get_logger
from mcphost.mcp.errors import CommandNotFound
from mcphost.mcp.security import (
    SAFE_NPX_FLAGS,
    base_command,
    split_command,
    validate_runtime_security,
)

logger = get_logger(__name__)


def _well_known_npx() -> tuple[Path, ...]:
    return (
        Path("/usr/local/bin/npx"),
        Path("/opt/homebrew/bin/npx"),
        Path.home() / "n" / "bin" / "npx",
    )


def _well_known_dirs() -> tuple[str, ...]:
    return (
        "/usr/local/bin",
        "/opt/homebrew/bin",
        str(Path.home() / "n" / "bin"),
        "/usr/bin",
        "/bin",
    )


@dataclass(frozen=True)
class ResolvedCommand:
    command: str
    args: list[str]


def resolve_command(
    command: str,
    args: Sequence[str] = (),
    *,
    server_id: str | None = None,
) -> ResolvedCommand:
    """Validate a launch command and return the executable to spawn.

    `npx` is looked up on PATH and then in a few fixed install locations.
    Every other command is returned unchanged.
    """
    validate_runtime_security(command, args)
    executable, argv = split_command(command, args)
    if base_command(executable) != "npx" or not argv:
        return ResolvedCommand(command=executable, args=argv)

    located = shutil.which("npx")
    if located:
        logger.debug("Found npx at %s", located)
        return ResolvedCommand(command=located, args=argv)
    logger.warning("npx not found in PATH, trying fallback locations")

    for candidate in _well_known_npx():
        if candidate.is_file():
            logger.debug("Found npx at fallback location %s", candidate)
            return ResolvedCommand(command=str(candidate), args=argv)

    package = next(
        (arg for arg in argv if arg not in SAFE_NPX_FLAGS and not arg.startswith("-")),
        argv[0],
    )
    logger.error("npx not found. Node.js and npm do not appear to be installed")
    raise CommandNotFound(
        "npx command not found. Please install Node.js and npm, then try again. "
        f"Package: {package}",
        server_id=server_id,
    )


def detect_node_paths() -> list[str]:
    """Return the directories holding `node` and `npm` on the current PATH."""
    paths: list[str] = []
    for executable in ("node", "npm"):
        located = shutil.which(executable)
        if not located:
            continue
        directory = str(Path(located).parent)
        if directory not in paths:
            paths.append(directory)
    return paths


def enhanced_path(current: str | None = None) -> str:
    """Append the usual Node.js install directories missing from `current`."""
    current = os.environ.get("PATH", "") if current is None else current
    entries = [entry for entry in current.split(os.pathsep) if entry]
    extra = [directory for directory in _well_known_dirs() if directory not in entries]
    return os.pathsep.join([*entries, *extra])


def build_environment(config_env: Mapping[str, str] | None = None) -> dict[str, str]:
    """Process env overlaid with the server's env, with PATH forced to the augmented value."""
    path = enhanced_path()
    detected = [directory for directory in detect_node_paths() if directory]
    if detected:
        path = os.pathsep.join([path, *detected])
    env = dict(os.environ)
    env.update(config_env or {})
    env["PATH"] = path
    return env
