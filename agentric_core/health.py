"""
AgentricAI Orchestration Core - Health Monitoring

Read-only health snapshots of the running system, produced on demand and on a
fixed interval by a background asyncio task. The only state a snapshot
touches is ``SystemState.last_health_check``.
"""

import asyncio
import logging
import os
import platform
import socket
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import psutil

from . import __version__
from .config import BLACK_BOX_ID, GUARDIAN_ID
from .metrics import MetricsManager, metrics_manager
from .registry import AgentRegistry
from .state import SystemState, SystemStatus


# ══════════════════════════════════════════════════════════════════════════════
# DATA MODELS
# ══════════════════════════════════════════════════════════════════════════════

class HealthStatus(str, Enum):
    OK = "ok"
    WARN = "warn"
    FAIL = "fail"


@dataclass(frozen=True)
class AgentCounts:
    total: int = 0
    active: int = 0
    immutable: int = 0
    departmental: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "active": self.active,
            "immutable": self.immutable,
            "departmental": self.departmental,
        }


@dataclass(frozen=True)
class SystemHealth:
    """Immutable point-in-time view of the system."""
    status: str
    overall: HealthStatus
    agent_counts: AgentCounts
    total_interactions: int
    average_response_time_ms: float
    emergency_mode: bool
    guardian_active: bool
    black_box_active: bool
    uptime_seconds: float
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    version: str = __version__
    hostname: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "overall": self.overall.value,
            "agents": self.agent_counts.to_dict(),
            "totalInteractions": self.total_interactions,
            "averageResponseTimeMs": round(self.average_response_time_ms, 2),
            "emergencyMode": self.emergency_mode,
            "guardianActive": self.guardian_active,
            "blackBoxActive": self.black_box_active,
            "uptimeSeconds": round(self.uptime_seconds, 1),
            "timestamp": self.timestamp,
            "version": self.version,
            "hostname": self.hostname,
        }


def process_uptime() -> float:
    """Seconds since this process started."""
    try:
        return time.time() - psutil.Process(os.getpid()).create_time()
    except psutil.Error:
        return 0.0


# ══════════════════════════════════════════════════════════════════════════════
# HEALTH MONITOR
# ══════════════════════════════════════════════════════════════════════════════

class HealthMonitor:
    """Builds SystemHealth snapshots and refreshes them periodically."""

    def __init__(self, registry: AgentRegistry, state: SystemState,
                 router: Optional[Any] = None,
                 metrics: Optional[MetricsManager] = None):
        self.registry = registry
        self.state = state
        # Anything exposing ``average_response_time_ms``
        self.router = router
        self.metrics = metrics or metrics_manager
        self.logger = logging.getLogger("health_monitor")
        self.last_snapshot: Optional[SystemHealth] = None
        self._task: Optional[asyncio.Task] = None

    def snapshot(self) -> SystemHealth:
        counts = self.registry.counts()
        guardian = self.registry.get_agent(GUARDIAN_ID)
        black_box = self.registry.get_agent(BLACK_BOX_ID)
        guardian_active = bool(guardian and guardian.is_active)
        black_box_active = bool(black_box and black_box.is_active)

        if (self.state.status in (SystemStatus.ERROR, SystemStatus.SHUTDOWN)
                or not guardian_active or not black_box_active):
            overall = HealthStatus.FAIL
        elif self.state.emergency_mode or counts["active"] < counts["total"]:
            overall = HealthStatus.WARN
        else:
            overall = HealthStatus.OK

        health = SystemHealth(
            status=self.state.status.value,
            overall=overall,
            agent_counts=AgentCounts(**counts),
            total_interactions=self.state.total_interactions,
            average_response_time_ms=self.router.average_response_time_ms if self.router else 0.0,
            emergency_mode=self.state.emergency_mode,
            guardian_active=guardian_active,
            black_box_active=black_box_active,
            uptime_seconds=process_uptime(),
            hostname=socket.gethostname(),
        )
        self.state.last_health_check = health.timestamp
        self.last_snapshot = health
        self.metrics.update_agent_counts(
            Counter(agent.status.value for agent in self.registry.list_agents())
        )
        return health

    # ── Background task ──────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval: float) -> None:
        """Start the periodic monitor on the running loop. No-op for ``interval <= 0``."""
        if interval <= 0 or self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(interval))
        self.logger.info(f"Health monitor started (every {interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.info("Health monitor stopped")

    async def _run(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                health = self.snapshot()
            except Exception as e:
                self.logger.error(f"Health snapshot failed: {e}")
                continue
            if health.overall != HealthStatus.OK:
                self.logger.warning(f"System health {health.overall.value}: "
                                    f"{health.agent_counts.active}/{health.agent_counts.total} agents active, "
                                    f"emergency_mode={health.emergency_mode}")
            else:
                self.logger.debug(f"Health check ok: {health.agent_counts.total} agents")


# ══════════════════════════════════════════════════════════════════════════════
# REPORTING
# ══════════════════════════════════════════════════════════════════════════════

def format_health_text(health: SystemHealth) -> str:
    """Format a health snapshot as human-readable text."""
    STATUS_ICONS = {
        HealthStatus.OK: "✅",
        HealthStatus.WARN: "⚠️",
        HealthStatus.FAIL: "❌",
    }
    counts = health.agent_counts

    lines = []
    lines.append("=" * 60)
    lines.append("  AgentricAI University - Orchestration Health")
    lines.append("=" * 60)
    lines.append(f"  Timestamp:  {health.timestamp}")
    lines.append(f"  Version:    {health.version}")
    lines.append(f"  Hostname:   {health.hostname}")
    lines.append(f"  Python:     {platform.python_version()}")
    lines.append(f"  Uptime:     {health.uptime_seconds:.0f}s")
    lines.append("")
    lines.append(f"  Overall:    {STATUS_ICONS[health.overall]}  {health.overall.value.upper()}")
    lines.append(f"  Status:     {health.status}")
    lines.append("-" * 60)
    lines.append(f"  Agents:     {counts.active}/{counts.total} active "
                 f"({counts.immutable} immutable, {counts.departmental} departmental)")
    lines.append(f"  Guardian:   {'active' if health.guardian_active else 'DOWN'}")
    lines.append(f"  Black Box:  {'active' if health.black_box_active else 'DOWN'}")
    lines.append(f"  Emergency:  {'ACTIVE' if health.emergency_mode else 'none'}")
    lines.append(f"  Interactions: {health.total_interactions} "
                 f"(avg {health.average_response_time_ms:.1f}ms)")
    lines.append("-" * 60)
    lines.append("")
    return "\n".join(lines)
