"""
Envelope routing pipeline.

Every call to ``route_message`` runs the same strictly sequential steps:

    build envelope -> ethical review -> audit record -> resolve target -> deliver

The Guardian is the only sender that skips review. The audit record is written
exactly once per attempt, before delivery, whether or not the envelope was
approved. Routing failures come back as RoutingResult objects; the single
exception that escapes is AuditPersistenceFailure.
"""

import asyncio
import logging
import statistics
import time
from collections import deque
from typing import Any, Deque, Dict, Optional

from .audit import AuditLog
from .config import GUARDIAN_ID, OrchestratorConfig, orchestrator_config
from .envelope import MessageEnvelope, RoutingOutcome, RoutingResult, message_priority
from .exceptions import (
    AgentricError,
    AuditPersistenceFailure,
    EthicalRejection,
    ExceptionSeverity,
    NotFoundError,
    RecoveryAction,
)
from .gate import EthicalReviewGate, ReviewVerdict
from .metrics import MetricsManager, metrics_manager
from .registry import AgentRegistry
from .state import SystemState
from .telemetry import LogLevel, TelemetrySink


class Router:
    """Routes content between agents through the review gate and audit log."""

    def __init__(self, registry: AgentRegistry, gate: EthicalReviewGate,
                 audit_log: AuditLog, state: Optional[SystemState] = None,
                 config: Optional[OrchestratorConfig] = None,
                 metrics: Optional[MetricsManager] = None,
                 telemetry: Optional[TelemetrySink] = None):
        self.registry = registry
        self.gate = gate
        self.audit_log = audit_log
        self.state = state or SystemState()
        self.config = config or orchestrator_config
        self.metrics = metrics or metrics_manager
        self.telemetry = telemetry
        self.logger = logging.getLogger("router")

        self._admission: Optional[asyncio.Semaphore] = None
        if self.config.max_inflight_routings > 0:
            self._admission = asyncio.Semaphore(self.config.max_inflight_routings)
        self._response_times: Deque[float] = deque(maxlen=max(1, self.config.response_time_window))

    # ── Stats ────────────────────────────────────────────────────────────

    @property
    def average_response_time_ms(self) -> float:
        """Mean delivery latency over the recent window, in milliseconds."""
        if not self._response_times:
            return 0.0
        return statistics.mean(self._response_times) * 1000.0

    # ── Routing ──────────────────────────────────────────────────────────

    async def route_message(self, from_id: str, to_id: str, content: Any) -> RoutingResult:
        """Route ``content`` from ``from_id`` to ``to_id``.

        Raises:
            AuditPersistenceFailure: the attempt could not be recorded.
        """
        if self._admission is None:
            return await self._route(from_id, to_id, content)
        async with self._admission:
            return await self._route(from_id, to_id, content)

    async def _route(self, from_id: str, to_id: str, content: Any) -> RoutingResult:
        self.metrics.routing_started()
        try:
            envelope = MessageEnvelope(
                sender=from_id,
                recipient=to_id,
                content=content,
                priority=message_priority(self.registry, from_id, to_id,
                                          default=self.config.default_message_priority),
            )

            verdict = await self._review(envelope)
            envelope.metadata.ethical_review = verdict.approved

            try:
                await self.audit_log.record(
                    envelope, "approved" if verdict.approved else "rejected", verdict.reason,
                )
            except AuditPersistenceFailure:
                self.metrics.record_audit_failure()
                raise

            if not verdict.approved:
                return self._rejected(envelope, verdict)

            return await self._deliver(envelope)
        finally:
            self.metrics.routing_finished()

    async def _review(self, envelope: MessageEnvelope) -> ReviewVerdict:
        if envelope.sender == GUARDIAN_ID:
            return ReviewVerdict(True, "guardian self-review")
        return await self.gate.review(envelope)

    def _rejected(self, envelope: MessageEnvelope, verdict: ReviewVerdict) -> RoutingResult:
        rejection = EthicalRejection(envelope.envelope_id, verdict.reason or "")
        self.metrics.record_routing(RoutingOutcome.REJECTED.value)
        self._trace(LogLevel.INFO, f"Envelope {envelope.sender} -> {envelope.recipient} "
                                   f"blocked: {rejection}", envelope)
        return RoutingResult(
            success=False,
            envelope_id=envelope.envelope_id,
            outcome=RoutingOutcome.REJECTED,
            reason=str(rejection),
            error=verdict.error or rejection.to_dict(),
        )

    async def _deliver(self, envelope: MessageEnvelope) -> RoutingResult:
        target = self.registry.get_agent(envelope.recipient)
        if target is None:
            return self._failed(envelope, NotFoundError(envelope.recipient))
        if not target.is_active:
            return self._failed(envelope, AgentricError(
                f"Target agent '{target.id}' is not active (status={target.status.value})",
                severity=ExceptionSeverity.WARNING,
                recovery=RecoveryAction.RETRY,
                retryable=True,
                context={"agent_id": target.id, "status": target.status.value},
                error_code="AGENTRIC-RTE-0003",
            ))

        start = time.perf_counter()
        try:
            response = await target.process_message(envelope.to_dict(),
                                                    timeout=self.config.agent_timeout)
        except AgentricError as e:
            return self._failed(envelope, e)
        except Exception as e:
            return self._failed(envelope, AgentricError(
                f"Agent '{target.id}' failed: {e}",
                context={"agent_id": target.id},
                cause=e,
                error_code="AGENTRIC-RTE-0004",
            ))
        elapsed = time.perf_counter() - start

        self.state.total_interactions += 1
        self._response_times.append(elapsed)
        self.metrics.record_routing(RoutingOutcome.DELIVERED.value, target.id, elapsed)
        self.logger.debug(f"Delivered {envelope.envelope_id} to {target.id} in {elapsed * 1000:.1f}ms")

        return RoutingResult(
            success=True,
            envelope_id=envelope.envelope_id,
            outcome=RoutingOutcome.DELIVERED,
            response=response,
        )

    def _failed(self, envelope: MessageEnvelope, error: AgentricError) -> RoutingResult:
        self.metrics.record_routing(RoutingOutcome.FAILED.value)
        self._trace(LogLevel.WARNING, f"Routing {envelope.sender} -> {envelope.recipient} "
                                      f"failed: {error}", envelope, error.to_dict())
        return RoutingResult(
            success=False,
            envelope_id=envelope.envelope_id,
            outcome=RoutingOutcome.FAILED,
            reason=str(error),
            error=error.to_dict(),
        )

    def _trace(self, level: LogLevel, message: str, envelope: MessageEnvelope,
               metadata: Optional[Dict[str, Any]] = None) -> None:
        if self.telemetry:
            self.telemetry.record(level, message, component="router",
                                  correlation_id=envelope.envelope_id, metadata=metadata)
        else:
            getattr(self.logger, level.value)(message)
