"""
AgentricAI orchestrator.

Owns the registry and wires the routing pipeline, emergency coordinator and
health monitor together.

Lifecycle:
    uninitialized -> initializing -> operational -> {error | shutdown}

Initialization order is fixed: immutable agents (Guardian, Black Box), then
departmental agents, then the student-facing agent. Only departmental
failures are survivable.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from . import events
from .agents.base import AgentImplementation, AgentRole, AgentStatus
from .agents.builtin import BlackBoxAgent, DefaultAgent, GuardianAgent
from .audit import AuditLog
from .classifier import DepartmentClassifier, KeywordDepartmentClassifier
from .config import (
    ADMIN_ID,
    BLACK_BOX_ID,
    BLACK_BOX_TYPE,
    COUNSELING_ID,
    CURRICULUM_ID,
    GUARDIAN_ID,
    GUARDIAN_TYPE,
    STUDENT_AGENT_ID,
    AgentConfigProvider,
    AuditConfig,
    GuardianConfig,
    OrchestratorConfig,
    audit_config,
    guardian_config,
    orchestrator_config,
)
from .emergency import EmergencyCoordinator, EmergencyOutcome
from .envelope import RoutingOutcome, RoutingResult
from .exceptions import (
    AgentricError,
    AuditPersistenceFailure,
    InitializationFailure,
    NotFoundError,
    SystemUnavailableError,
)
from .gate import EthicalReviewGate
from .health import HealthMonitor, SystemHealth
from .metrics import MetricsManager, metrics_manager
from .registry import AgentRegistry
from .router import Router
from .state import SystemState, SystemStatus
from .telemetry import TelemetrySink

IMMUTABLE_AGENT_IDS = (GUARDIAN_ID, BLACK_BOX_ID)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class InteractionResult:
    """Outcome of a student or admin flow: the primary routing plus follow-ups."""
    success: bool
    primary: RoutingResult
    follow_ups: Dict[str, RoutingResult] = field(default_factory=dict)
    department: Optional[str] = None
    fallback: bool = False

    @property
    def response(self) -> Optional[Dict[str, Any]]:
        return self.primary.response

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": self.success,
            "envelopeId": self.primary.envelope_id,
            "outcome": self.primary.outcome.value,
            "response": self.primary.response,
            "department": self.department,
            "fallback": self.fallback,
            "followUps": {k: v.to_dict() for k, v in self.follow_ups.items()},
        }
        if self.primary.reason:
            result["reason"] = self.primary.reason
        return result


class AgentOrchestrator:
    """Central coordinator for the AgentricAI University agent ecosystem."""

    def __init__(self,
                 config_provider: Optional[AgentConfigProvider] = None,
                 implementations: Optional[Mapping[str, AgentImplementation]] = None,
                 config: Optional[OrchestratorConfig] = None,
                 audit: Optional[AuditConfig] = None,
                 guardian: Optional[GuardianConfig] = None,
                 channel: Optional[events.EventChannel] = None,
                 classifier: Optional[DepartmentClassifier] = None,
                 metrics: Optional[MetricsManager] = None,
                 telemetry: Optional[TelemetrySink] = None):
        self.config_provider = config_provider or AgentConfigProvider()
        self.config = config or orchestrator_config
        self.audit_config = audit or audit_config
        self.guardian_config = guardian or guardian_config
        self.channel = channel or events.EventChannel()
        self.classifier = classifier or KeywordDepartmentClassifier()
        self.metrics = metrics or metrics_manager
        self.telemetry = telemetry or TelemetrySink("orchestrator_telemetry")
        self.telemetry.attach(self.channel)
        self.logger = logging.getLogger("orchestrator")

        self._implementations: Dict[str, AgentImplementation] = dict(implementations or {})
        self.skipped_agents: List[InitializationFailure] = []

        self.state = SystemState()
        self.registry = AgentRegistry(self.channel, self.config.default_agent_priority)
        self.gate = EthicalReviewGate(self.registry, timeout=self.config.agent_timeout)
        self.audit_log = AuditLog(self.registry, timeout=self.config.agent_timeout,
                                  max_records=self.audit_config.memory_window)
        self.router = Router(self.registry, self.gate, self.audit_log, self.state,
                             config=self.config, metrics=self.metrics, telemetry=self.telemetry)
        self.emergency = EmergencyCoordinator(self.registry, self.state, self.channel,
                                              timeout=self.config.agent_timeout,
                                              metrics=self.metrics)
        self.monitor = HealthMonitor(self.registry, self.state, self.router, metrics=self.metrics)

    @property
    def status(self) -> SystemStatus:
        return self.state.status

    @property
    def is_operational(self) -> bool:
        return self.state.status == SystemStatus.OPERATIONAL

    # ══════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ══════════════════════════════════════════════════════════════════════

    async def initialize(self) -> None:
        """Create every agent, freeze the registry and start monitoring.

        Raises:
            InitializationFailure: an immutable or the student-facing agent
                could not be created. The system is left in ``error``.
        """
        if self.state.status != SystemStatus.UNINITIALIZED:
            raise AgentricError(f"Orchestrator cannot initialize from state '{self.state.status.value}'",
                                error_code="AGENTRIC-INI-0003")

        self.logger.info("Initializing AgentricAI University orchestrator")
        self.state.status = SystemStatus.INITIALIZING
        self.state.started_at = _now()

        try:
            try:
                snapshot = self.config_provider.load()
            except (OSError, ValueError) as e:
                raise InitializationFailure("registry", f"cannot load agent registry: {e}", cause=e) from e

            for agent_id, agent_config in snapshot.immutable_agents.items():
                if agent_id not in IMMUTABLE_AGENT_IDS:
                    raise InitializationFailure(agent_id, "only the Guardian and the Black Box "
                                                          "may be immutable")
                self._create(agent_id, agent_config, AgentRole.IMMUTABLE, immutable=True)
            self._validate_immutable_agents()

            for agent_id, agent_config in snapshot.departmental_agents.items():
                try:
                    self._create(agent_id, agent_config, AgentRole.DEPARTMENTAL)
                except InitializationFailure as e:
                    self.skipped_agents.append(e)

            if STUDENT_AGENT_ID not in snapshot.student_facing_agent:
                raise InitializationFailure(STUDENT_AGENT_ID, "student-facing agent is not configured")
            for agent_id, agent_config in snapshot.student_facing_agent.items():
                self._create(agent_id, agent_config, AgentRole.STUDENT_FACING)
        except InitializationFailure as e:
            self._fail(e)
            raise
        except Exception as e:
            failure = InitializationFailure("orchestrator", f"unexpected error: {e}", cause=e)
            self._fail(failure)
            raise failure from e

        self.registry.freeze()
        self.monitor.start(self.config.health_check_interval)
        self.monitor.snapshot()
        self.state.status = SystemStatus.OPERATIONAL
        self.logger.info(f"Orchestrator initialized with {len(self.registry)} agents "
                         f"({len(self.skipped_agents)} skipped)")
        self.channel.publish(events.SystemReady(agent_count=len(self.registry)))

    def _create(self, agent_id: str, agent_config: Mapping[str, Any],
                role: AgentRole, immutable: bool = False) -> None:
        fatal = role != AgentRole.DEPARTMENTAL
        try:
            self.registry.create_agent(agent_id, agent_config, self._implementation_for(agent_id),
                                       role=role, immutable=immutable)
        except Exception as e:
            failure = InitializationFailure(agent_id, str(e), fatal=fatal, cause=e)
            if fatal:
                self.logger.critical(str(failure))
            else:
                self.logger.error(f"{failure}; continuing without it")
            raise failure from e

    def _implementation_for(self, agent_id: str) -> AgentImplementation:
        if agent_id in self._implementations:
            return self._implementations[agent_id]
        if agent_id == GUARDIAN_ID:
            return GuardianAgent(self.guardian_config.blocked_terms)
        if agent_id == BLACK_BOX_ID:
            return BlackBoxAgent(self.audit_config.audit_log_path,
                                 self.audit_config.audit_secret,
                                 self.audit_config.fsync,
                                 memory_window=self.audit_config.memory_window)
        return DefaultAgent()

    def _validate_immutable_agents(self) -> None:
        for agent_id, agent_type in ((GUARDIAN_ID, GUARDIAN_TYPE), (BLACK_BOX_ID, BLACK_BOX_TYPE)):
            agent = self.registry.get_agent(agent_id)
            if agent is None or agent.type != agent_type:
                raise InitializationFailure(agent_id, f"an immutable agent of type '{agent_type}' "
                                                      f"must be registered as '{agent_id}'")
            if len(self.registry.find_by_type(agent_type)) != 1:
                raise InitializationFailure(agent_id, f"exactly one '{agent_type}' agent is allowed")

    def _fail(self, error: AgentricError) -> None:
        self.state.status = SystemStatus.ERROR
        self.logger.critical(f"Orchestrator entering error state: {error}")
        self.channel.publish(events.SystemError(
            error_code=error.error_code, message=str(error), details=error.to_dict(),
        ))

    async def shutdown(self) -> None:
        self.logger.info("Shutting down orchestrator")
        for agent in self.registry.list_agents():
            agent.update_status(AgentStatus.SHUTTING_DOWN)
        await self.monitor.stop()
        self.state.status = SystemStatus.SHUTDOWN
        self.telemetry.detach()

    # ══════════════════════════════════════════════════════════════════════
    # ROUTING
    # ══════════════════════════════════════════════════════════════════════

    async def route_message(self, from_id: str, to_id: str, content: Any) -> RoutingResult:
        """Route through the gate and audit log.

        Refused with a failed result while the orchestrator is not
        operational, including after a fatal audit failure.

        Raises:
            AuditPersistenceFailure: after moving the system to ``error``.
        """
        if not self.is_operational:
            return self._unavailable(from_id, to_id)
        try:
            return await self.router.route_message(from_id, to_id, content)
        except AuditPersistenceFailure as e:
            self._fail(e)
            raise

    def _unavailable(self, from_id: str, to_id: str) -> RoutingResult:
        error = SystemUnavailableError(self.state.status.value)
        self.metrics.record_routing(RoutingOutcome.FAILED.value)
        self.logger.warning(f"Refusing {from_id} -> {to_id}: {error}")
        return RoutingResult(
            success=False,
            envelope_id=str(uuid.uuid4()),
            outcome=RoutingOutcome.FAILED,
            reason=str(error),
            error=error.to_dict(),
        )

    async def process_student_interaction(self, student_id: str, interaction: Any) -> InteractionResult:
        """Student agent first, then counseling monitoring, then the matching department.

        If the student agent cannot be reached, Counseling is asked for an
        emergency response instead.
        """
        source = f"student:{student_id}"
        primary = await self.route_message(source, STUDENT_AGENT_ID, {
            "type": "student_interaction",
            "studentId": student_id,
            "data": interaction,
            "timestamp": _now(),
        })

        if primary.outcome == RoutingOutcome.FAILED:
            self.logger.error(f"Student interaction for {student_id} failed: {primary.reason}")
            if not self.is_operational or not self.registry.has_agent(COUNSELING_ID):
                return InteractionResult(success=False, primary=primary)
            fallback = await self.route_message(STUDENT_AGENT_ID, COUNSELING_ID, {
                "type": "emergency_response",
                "studentId": student_id,
                "error": primary.reason,
            })
            return InteractionResult(success=fallback.success, primary=fallback,
                                     follow_ups={"failed": primary}, fallback=True)

        if primary.outcome == RoutingOutcome.REJECTED:
            return InteractionResult(success=False, primary=primary)

        result = InteractionResult(success=True, primary=primary)

        if self.registry.has_agent(COUNSELING_ID):
            result.follow_ups["emotional_monitoring"] = await self.route_message(STUDENT_AGENT_ID, COUNSELING_ID, {
                "type": "emotional_monitoring",
                "studentId": student_id,
                "interaction": interaction,
                "response": primary.response,
            })

        department = self.classifier.determine_department(interaction)
        result.department = department
        if department and self.registry.has_agent(department):
            result.follow_ups[department] = await self.route_message(STUDENT_AGENT_ID, department, {
                "type": "departmental_query",
                "studentId": student_id,
                "data": interaction,
                "studentResponse": primary.response,
            })

        for agent_id, follow_up in result.follow_ups.items():
            if not follow_up.success:
                self.logger.warning(f"Follow-up to {agent_id} for student {student_id} "
                                    f"did not complete: {follow_up.reason}")
        return result

    async def process_admin_message(self, source: str, message: Any) -> InteractionResult:
        """Parent/teacher input through the admin agent; goals go on to Curriculum.

        Raises:
            NotFoundError: no admin agent is registered.
        """
        if not self.registry.has_agent(ADMIN_ID):
            error = NotFoundError(ADMIN_ID, recovery_hint="Administrative agent not available")
            self.logger.error(str(error))
            raise error

        primary = await self.route_message(f"admin:{source}", ADMIN_ID, {
            "type": "admin_input",
            "source": source,
            "data": message,
            "timestamp": _now(),
        })
        result = InteractionResult(success=primary.success, primary=primary)

        response = primary.response or {}
        if primary.success and response.get("containsGoals") and self.registry.has_agent(CURRICULUM_ID):
            result.follow_ups[CURRICULUM_ID] = await self.route_message(ADMIN_ID, CURRICULUM_ID, {
                "type": "goal_processing",
                "source": source,
                "goals": response.get("extractedGoals"),
                "originalMessage": message,
            })
        return result

    # ══════════════════════════════════════════════════════════════════════
    # EMERGENCIES & HEALTH
    # ══════════════════════════════════════════════════════════════════════

    async def handle_emergency(self, emergency_type: str,
                               data: Optional[Dict[str, Any]] = None) -> EmergencyOutcome:
        return await self.emergency.handle_emergency(emergency_type, data)

    def clear_emergency(self, cleared_by: str, reason: str = "") -> bool:
        return self.emergency.clear_emergency(cleared_by, reason)

    def get_system_health(self) -> SystemHealth:
        return self.monitor.snapshot()

    def agents_status(self) -> List[Dict[str, Any]]:
        return [agent.to_dict() for agent in self.registry.list_agents()]
