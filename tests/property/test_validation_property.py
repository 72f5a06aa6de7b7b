from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from mcphost.core.health_monitor import HealthMonitor
from mcphost.mcp.errors import ValidationRejected
from mcphost.mcp.security import (
    BLOCKED_COMMANDS,
    validate_runtime_security,
    validate_whitelisted_command,
)

_ARGS = st.lists(st.text(max_size=20), max_size=6)


@given(st.sampled_from(sorted(BLOCKED_COMMANDS)), _ARGS)
def test_blocked_commands_are_rejected_for_any_arguments(command: str, args: list[str]) -> None:
    with pytest.raises(ValidationRejected):
        validate_runtime_security(command, args)
    with pytest.raises(ValidationRejected):
        validate_whitelisted_command(f"/usr/bin/{command}", args)


@given(st.sampled_from(["-e", "--eval", "-p", "--print", "-r", "--require"]), _ARGS)
def test_node_inline_code_flags_are_rejected_anywhere(flag: str, tail: list[str]) -> None:
    with pytest.raises(ValidationRejected):
        validate_runtime_security("node", ["server.js", *tail, flag])


@given(st.lists(st.booleans(), max_size=40))
def test_success_rate_stays_in_unit_interval(outcomes: list[bool]) -> None:
    monitor = HealthMonitor()
    for succeeded in outcomes:
        if succeeded:
            monitor.record_success("srv", "tool")
        else:
            monitor.record_error("srv", "tool", "failed")

    rate = monitor.success_rate("srv")
    assert 0.0 <= rate <= 1.0
    if not outcomes:
        assert rate == 1.0
    else:
        assert rate == outcomes.count(True) / len(outcomes)


@given(st.integers(min_value=1, max_value=10), st.integers(min_value=0, max_value=20))
def test_unhealthy_exactly_when_streak_reaches_threshold(threshold: int, errors: int) -> None:
    monitor = HealthMonitor(unhealthy_threshold=threshold)
    monitor.record_success("srv", "tool")
    for _ in range(errors):
        monitor.record_error("srv", "tool", "failed")

    assert ("srv" in monitor.get_unhealthy_servers()) == (errors >= threshold)
