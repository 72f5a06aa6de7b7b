"""Environment-driven settings for mcphost."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_DB_PATH = Path(".mcphost/mcphost.db")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw.strip())


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw.strip())


def _env_path(name: str) -> Path | None:
    raw = os.getenv(name, "").strip()
    return Path(raw).expanduser() if raw else None


@dataclass(frozen=True)
class HostSettings:
    log_level: str = "INFO"
    db_path: Path = DEFAULT_DB_PATH
    registry_path: Path | None = None
    unhealthy_threshold: int = 5
    health_sweep_seconds: float = 30.0
    error_decay_seconds: float = 3600.0
    test_connection_timeout: float = 15.0


def load_settings(env_file: Path | None = None) -> HostSettings:
    """Load settings from the process environment after an optional `.env` file."""
    load_dotenv(env_file, override=False)
    return HostSettings(
        log_level=os.getenv("MCPHOST_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        db_path=_env_path("MCPHOST_DB_PATH") or DEFAULT_DB_PATH,
        registry_path=_env_path("MCPHOST_REGISTRY_PATH"),
        unhealthy_threshold=_env_int("MCPHOST_UNHEALTHY_THRESHOLD", 5),
        health_sweep_seconds=_env_float("MCPHOST_HEALTH_SWEEP_SECONDS", 30.0),
        error_decay_seconds=_env_float("MCPHOST_ERROR_DECAY_SECONDS", 3600.0),
        test_connection_timeout=_env_float("MCPHOST_TEST_CONNECTION_TIMEOUT", 15.0),
    )
