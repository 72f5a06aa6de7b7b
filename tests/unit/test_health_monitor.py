from __future__ import annotations

import asyncio

import pytest

from mcphost.core.health_monitor import HealthMonitor, HealthStatus
from tests.support.mcp_helpers import MCPTestClock


def test_unknown_server_reports_defaults() -> None:
    monitor = HealthMonitor()
    assert monitor.get_server_health("nobody") is None
    assert monitor.success_rate("nobody") == 1.0
    assert monitor.should_deprioritize("nobody") is False
    assert monitor.get_unhealthy_servers() == []


def test_server_turns_unhealthy_exactly_at_threshold_and_recovers() -> None:
    monitor = HealthMonitor(unhealthy_threshold=5)
    for attempt in range(4):
        monitor.record_error("fs", "read_file", f"boom {attempt}")
    health = monitor.get_server_health("fs")
    assert health is not None
    assert health.status is HealthStatus.UNKNOWN
    assert health.consecutive_errors == 4

    monitor.record_error("fs", "read_file", "boom 4")
    health = monitor.get_server_health("fs")
    assert health is not None
    assert health.status is HealthStatus.UNHEALTHY
    assert monitor.get_unhealthy_servers() == ["fs"]

    monitor.record_success("fs", "read_file")
    health = monitor.get_server_health("fs")
    assert health is not None
    assert health.status is HealthStatus.HEALTHY
    assert health.consecutive_errors == 0
    assert health.error_count == 5
    assert health.success_count == 1
    assert health.tools["read_file"].error_count == 5
    assert health.tools["read_file"].last_error == "boom 4"


def test_repeated_crossings_log_the_transition_once(caplog: pytest.LogCaptureFixture) -> None:
    monitor = HealthMonitor(unhealthy_threshold=2)
    for _ in range(4):
        monitor.record_error("git", "log", "failed")
    transitions = [record for record in caplog.records if "marked unhealthy" in record.getMessage()]
    assert len(transitions) == 1


def test_success_marks_unknown_server_healthy_and_stamps_time() -> None:
    clock = MCPTestClock()
    monitor = HealthMonitor(now_provider=clock)
    monitor.record_success("memory", "store")
    health = monitor.get_server_health("memory")
    assert health is not None
    assert health.status is HealthStatus.HEALTHY
    assert health.last_success == clock.current


def test_success_rate_and_deprioritization() -> None:
    monitor = HealthMonitor(unhealthy_threshold=10)
    monitor.record_success("a", "t")
    monitor.record_error("a", "t", "x")
    monitor.record_error("a", "t", "x")
    assert monitor.success_rate("a") == pytest.approx(1 / 3)
    assert monitor.should_deprioritize("a") is True

    monitor.record_success("b", "t")
    monitor.record_error("b", "t", "x")
    assert monitor.success_rate("b") == 0.5
    assert monitor.should_deprioritize("b") is False


def test_sweep_forgives_errors_older_than_decay_window() -> None:
    clock = MCPTestClock()
    monitor = HealthMonitor(unhealthy_threshold=2, error_decay_seconds=3600, now_provider=clock)
    monitor.record_success("fs", "read")
    monitor.record_error("fs", "read", "x")
    monitor.record_error("fs", "read", "x")
    monitor.record_error("never-ok", "read", "x")
    monitor.record_error("never-ok", "read", "x")

    clock.advance(seconds=1800)
    monitor.sweep()
    fs = monitor.get_server_health("fs")
    assert fs is not None
    assert fs.status is HealthStatus.UNHEALTHY

    clock.advance(seconds=1801)
    monitor.sweep()
    fs = monitor.get_server_health("fs")
    never_ok = monitor.get_server_health("never-ok")
    assert fs is not None
    assert never_ok is not None
    assert fs.consecutive_errors == 0
    assert fs.status is HealthStatus.HEALTHY
    assert never_ok.consecutive_errors == 0
    assert never_ok.status is HealthStatus.UNHEALTHY


def test_reset_discards_history() -> None:
    monitor = HealthMonitor()
    monitor.record_error("fs", "read", "x")
    monitor.reset_server_health("fs")
    assert monitor.get_server_health("fs") is None
    assert monitor.success_rate("fs") == 1.0


def test_report_is_a_snapshot() -> None:
    monitor = HealthMonitor()
    monitor.record_error("fs", "read", "x")
    report = monitor.get_health_report()
    report.servers["fs"].error_count = 99
    health = monitor.get_server_health("fs")
    assert health is not None
    assert health.error_count == 1


@pytest.mark.asyncio
async def test_periodic_sweep_task_starts_and_stops() -> None:
    clock = MCPTestClock()
    monitor = HealthMonitor(
        unhealthy_threshold=1,
        sweep_interval_seconds=0.01,
        error_decay_seconds=60,
        now_provider=clock,
    )
    monitor.record_success("fs", "read")
    monitor.record_error("fs", "read", "x")
    clock.advance(seconds=120)

    monitor.start()
    assert monitor.running
    for _ in range(50):
        await asyncio.sleep(0.01)
        health = monitor.get_server_health("fs")
        if health is not None and health.status is HealthStatus.HEALTHY:
            break
    await monitor.stop()

    assert not monitor.running
    health = monitor.get_server_health("fs")
    assert health is not None
    assert health.status is HealthStatus.HEALTHY
