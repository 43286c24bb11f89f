"""
Health monitor tests.
"""

import asyncio
import dataclasses
import json

import pytest

from agentric_core.agents.base import AgentRole, AgentStatus
from agentric_core.health import HealthMonitor, HealthStatus, format_health_text, process_uptime
from agentric_core.registry import AgentRegistry
from agentric_core.state import SystemState, SystemStatus


@pytest.fixture
def monitored(channel):
    registry = AgentRegistry(channel)
    registry.create_agent("guardian", {"name": "The Guardian", "type": "guardian"},
                          role=AgentRole.IMMUTABLE, immutable=True)
    registry.create_agent("blackBox", {"name": "The Black Box", "type": "black-box"},
                          role=AgentRole.IMMUTABLE, immutable=True)
    registry.create_agent("math", {"name": "Math", "priority": 2})
    state = SystemState(status=SystemStatus.OPERATIONAL)
    return registry, state, HealthMonitor(registry, state)


class TestSnapshot:

    def test_counts_and_flags(self, monitored):
        registry, state, monitor = monitored

        health = monitor.snapshot()

        assert health.agent_counts.to_dict() == {"total": 3, "active": 3, "immutable": 2, "departmental": 1}
        assert health.guardian_active is True
        assert health.black_box_active is True
        assert health.overall == HealthStatus.OK
        assert health.average_response_time_ms == 0.0
        assert state.last_health_check == health.timestamp

    def test_snapshot_is_immutable(self, monitored):
        registry, state, monitor = monitored
        health = monitor.snapshot()
        with pytest.raises(dataclasses.FrozenInstanceError):
            health.emergency_mode = True

    def test_emergency_warns(self, monitored):
        registry, state, monitor = monitored
        state.emergency_mode = True
        assert monitor.snapshot().overall == HealthStatus.WARN

    def test_guardian_down_fails(self, monitored):
        registry, state, monitor = monitored
        registry.get_agent("guardian").update_status(AgentStatus.ERROR)

        health = monitor.snapshot()

        assert health.guardian_active is False
        assert health.overall == HealthStatus.FAIL

    def test_read_only(self, monitored):
        registry, state, monitor = monitored
        before = (state.total_interactions, state.emergency_mode, state.status)
        monitor.snapshot()
        assert (state.total_interactions, state.emergency_mode, state.status) == before

    def test_to_dict_serializable(self, monitored):
        registry, state, monitor = monitored
        d = monitor.snapshot().to_dict()
        assert d["agents"]["immutable"] == 2
        assert d["overall"] == "ok"
        assert json.dumps(d)

    def test_format_text(self, monitored):
        registry, state, monitor = monitored
        text = format_health_text(monitor.snapshot())
        assert "AgentricAI University" in text
        assert "3/3 active" in text

    def test_uptime(self):
        assert process_uptime() >= 0


class TestPeriodicMonitor:

    @pytest.mark.asyncio
    async def test_start_and_stop(self, monitored):
        registry, state, monitor = monitored

        monitor.start(0.01)
        assert monitor.running
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert state.last_health_check is not None
        assert not monitor.running

    @pytest.mark.asyncio
    async def test_zero_interval_disabled(self, monitored):
        registry, state, monitor = monitored
        monitor.start(0)
        assert not monitor.running
        await monitor.stop()
