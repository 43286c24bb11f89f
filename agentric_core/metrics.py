"""
AgentricAI Orchestration Core - Prometheus Metrics

Metrics collection and export for:
- Routing (outcomes, latency, in-flight envelopes)
- Ethical review and audit persistence
- Emergency mode and notifications
- Agent population by status
"""

import logging
from typing import Any, Dict, Mapping

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from . import __version__

logger = logging.getLogger("agentric_metrics")

METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST


# ══════════════════════════════════════════════════════════════════════════════
# METRICS DEFINITIONS
# ══════════════════════════════════════════════════════════════════════════════

REGISTRY = CollectorRegistry()

# ── Routing Metrics ──
ROUTINGS_TOTAL = Counter(
    "agentric_routings_total",
    "Total routing attempts by outcome",
    ["outcome"],
    registry=REGISTRY,
)
ROUTING_DURATION = Histogram(
    "agentric_routing_duration_seconds",
    "Duration of delivered routings in seconds",
    ["target"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
    registry=REGISTRY,
)
INFLIGHT_ROUTINGS = Gauge(
    "agentric_inflight_routings",
    "Number of envelopes currently being routed",
    registry=REGISTRY,
)

# ── Review & Audit Metrics ──
ETHICAL_REJECTIONS = Counter(
    "agentric_ethical_rejections_total",
    "Envelopes blocked by the Guardian",
    registry=REGISTRY,
)
AUDIT_FAILURES = Counter(
    "agentric_audit_failures_total",
    "Audit records that could not be persisted",
    registry=REGISTRY,
)

# ── Emergency Metrics ──
EMERGENCY_MODE = Gauge(
    "agentric_emergency_mode",
    "Emergency mode (1=active, 0=inactive)",
    registry=REGISTRY,
)
EMERGENCIES_TOTAL = Counter(
    "agentric_emergencies_total",
    "Emergencies raised",
    ["emergency_type"],
    registry=REGISTRY,
)
EMERGENCY_NOTIFY_FAILURES = Counter(
    "agentric_emergency_notification_failures_total",
    "Emergency notifications that failed",
    ["agent_id"],
    registry=REGISTRY,
)

# ── Agent Metrics ──
AGENTS = Gauge(
    "agentric_agents",
    "Registered agents by status",
    ["status"],
    registry=REGISTRY,
)

CORE_INFO = Info(
    "agentric_core",
    "Orchestration core information",
    registry=REGISTRY,
)
CORE_INFO.info({
    "version": __version__,
    "name": "AgentricAI Orchestration Core",
})


# ══════════════════════════════════════════════════════════════════════════════
# METRICS MANAGER
# ══════════════════════════════════════════════════════════════════════════════

class MetricsManager:
    """Central metrics management."""

    def __init__(self, enabled: bool = True):
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def record_routing(self, outcome: str, target: str = "", duration: float = 0.0):
        if not self._enabled:
            return
        ROUTINGS_TOTAL.labels(outcome=outcome).inc()
        if outcome == "delivered":
            ROUTING_DURATION.labels(target=target).observe(duration)
        elif outcome == "rejected":
            ETHICAL_REJECTIONS.inc()

    def routing_started(self):
        if self._enabled:
            INFLIGHT_ROUTINGS.inc()

    def routing_finished(self):
        if self._enabled:
            INFLIGHT_ROUTINGS.dec()

    def record_audit_failure(self):
        if self._enabled:
            AUDIT_FAILURES.inc()

    def record_emergency(self, emergency_type: str):
        if not self._enabled:
            return
        EMERGENCIES_TOTAL.labels(emergency_type=emergency_type).inc()
        EMERGENCY_MODE.set(1)

    def set_emergency_mode(self, active: bool):
        if self._enabled:
            EMERGENCY_MODE.set(1 if active else 0)

    def record_notification_failure(self, agent_id: str):
        if self._enabled:
            EMERGENCY_NOTIFY_FAILURES.labels(agent_id=agent_id).inc()

    def update_agent_counts(self, by_status: Mapping[str, int]):
        """Set the per-status agent gauge."""
        if not self._enabled:
            return
        for status, count in by_status.items():
            AGENTS.labels(status=status).set(count)

    def get_metrics_text(self) -> str:
        """Get metrics in Prometheus exposition format."""
        return generate_latest(REGISTRY).decode("utf-8")

    def get_summary(self) -> Dict[str, Any]:
        return {"enabled": self._enabled}


# ══════════════════════════════════════════════════════════════════════════════
# GLOBAL INSTANCE
# ══════════════════════════════════════════════════════════════════════════════

metrics_manager = MetricsManager()
