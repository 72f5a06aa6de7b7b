"""Per-server tool call health tracking."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from mcphost.core.logger import get_logger

logger = get_logger(__name__)

DEFAULT_UNHEALTHY_THRESHOLD = 5
DEFAULT_SWEEP_INTERVAL_SECONDS = 30.0
DEFAULT_ERROR_DECAY_SECONDS = 3600.0
DEPRIORITIZE_SUCCESS_RATE = 0.5


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass(slots=True)
class ToolHealth:
    error_count: int = 0
    success_count: int = 0
    last_error: str | None = None


@dataclass(slots=True)
class ServerHealth:
    server_id: str
    status: HealthStatus = HealthStatus.UNKNOWN
    error_count: int = 0
    success_count: int = 0
    consecutive_errors: int = 0
    last_error: str | None = None
    last_error_time: datetime | None = None
    last_success: datetime | None = None
    tools: dict[str, ToolHealth] = field(default_factory=dict)


@dataclass(slots=True)
class HealthReport:
    servers: dict[str, ServerHealth]
    last_updated: datetime


class HealthMonitor:
    """Counts successes and failures and flips servers between healthy and unhealthy.

    A server turns unhealthy once `consecutive_errors` reaches the threshold and
    returns to healthy on its next success. A periodic sweep forgives errors
    older than the decay window.
    """

    def __init__(
        self,
        *,
        unhealthy_threshold: int = DEFAULT_UNHEALTHY_THRESHOLD,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        error_decay_seconds: float = DEFAULT_ERROR_DECAY_SECONDS,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._unhealthy_threshold = unhealthy_threshold
        self._sweep_interval_seconds = sweep_interval_seconds
        self._error_decay = timedelta(seconds=error_decay_seconds)
        self._now_provider = now_provider or (lambda: datetime.now(UTC))
        self._servers: dict[str, ServerHealth] = {}
        self._sweep_task: asyncio.Task[None] | None = None

    def _server(self, server_id: str) -> ServerHealth:
        health = self._servers.get(server_id)
        if health is None:
            health = ServerHealth(server_id=server_id)
            self._servers[server_id] = health
        return health

    def record_success(self, server_id: str, tool_name: str) -> None:
        health = self._server(server_id)
        health.success_count += 1
        health.consecutive_errors = 0
        health.last_success = self._now_provider()
        health.tools.setdefault(tool_name, ToolHealth()).success_count += 1

        if health.status is HealthStatus.UNHEALTHY:
            logger.info("Server %s healthy again after a call to %s", server_id, tool_name)
        health.status = HealthStatus.HEALTHY

    def record_error(self, server_id: str, tool_name: str, message: str) -> None:
        health = self._server(server_id)
        health.error_count += 1
        health.consecutive_errors += 1
        health.last_error = message
        health.last_error_time = self._now_provider()
        tool = health.tools.setdefault(tool_name, ToolHealth())
        tool.error_count += 1
        tool.last_error = message

        if (
            health.consecutive_errors >= self._unhealthy_threshold
            and health.status is not HealthStatus.UNHEALTHY
        ):
            health.status = HealthStatus.UNHEALTHY
            logger.warning(
                "Server %s marked unhealthy after %s consecutive errors (threshold %s)",
                server_id,
                health.consecutive_errors,
                self._unhealthy_threshold,
            )
        logger.error("Tool %s on server %s failed: %s", tool_name, server_id, message)

    def get_server_health(self, server_id: str) -> ServerHealth | None:
        health = self._servers.get(server_id)
        return copy.deepcopy(health) if health is not None else None

    def get_health_report(self) -> HealthReport:
        return HealthReport(
            servers=copy.deepcopy(self._servers),
            last_updated=self._now_provider(),
        )

    def get_unhealthy_servers(self) -> list[str]:
        return [
            server_id
            for server_id, health in self._servers.items()
            if health.status is HealthStatus.UNHEALTHY
        ]

    def success_rate(self, server_id: str) -> float:
        """Fraction of successful calls; 1.0 while nothing has been recorded."""
        health = self._servers.get(server_id)
        if health is None:
            return 1.0
        total = health.success_count + health.error_count
        if total == 0:
            return 1.0
        return health.success_count / total

    def reset_server_health(self, server_id: str) -> None:
        self._servers.pop(server_id, None)
        logger.info("Health data reset for server %s", server_id)

    def should_deprioritize(self, server_id: str) -> bool:
        health = self._servers.get(server_id)
        if health is None:
            return False
        return (
            health.status is HealthStatus.UNHEALTHY
            or self.success_rate(server_id) < DEPRIORITIZE_SUCCESS_RATE
        )

    def sweep(self, now: datetime | None = None) -> None:
        """Forgive consecutive errors whose last occurrence is older than the decay window."""
        current = now or self._now_provider()
        cutoff = current - self._error_decay
        for server_id, health in self._servers.items():
            if health.last_error_time is None or health.last_error_time >= cutoff:
                continue
            health.consecutive_errors = 0
            if health.status is HealthStatus.UNHEALTHY and health.success_count > 0:
                health.status = HealthStatus.HEALTHY
                logger.info(
                    "Server %s reset to healthy, last error is older than the decay window",
                    server_id,
                )

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_seconds)
            self.sweep()

    def start(self) -> None:
        """Begin periodic sweeps on the running event loop."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="mcp-health-sweep")

    async def stop(self) -> None:
        task = self._sweep_task
        self._sweep_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()
