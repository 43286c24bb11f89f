"""
Emergency escalation.

The Guardian is always notified first and awaited. Counseling and Principal
are then notified concurrently; a failure in one never prevents delivery to
the other. Emergency mode is sticky until an explicit administrative clear.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from . import events
from .config import COUNSELING_ID, GUARDIAN_ID, PRINCIPAL_ID
from .exceptions import EmergencyHandlingFailure
from .metrics import MetricsManager, metrics_manager
from .registry import AgentRegistry
from .state import SystemState

SECONDARY_RESPONDERS: Tuple[str, ...] = (COUNSELING_ID, PRINCIPAL_ID)


@dataclass
class EmergencyOutcome:
    """Who was notified about one emergency, and who could not be."""
    emergency_type: str
    guardian_notified: bool = False
    notified: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: List[EmergencyHandlingFailure] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def success(self) -> bool:
        return self.guardian_notified and not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "emergencyType": self.emergency_type,
            "guardianNotified": self.guardian_notified,
            "notified": list(self.notified),
            "skipped": list(self.skipped),
            "failures": [f.to_dict() for f in self.failures],
            "timestamp": self.timestamp,
        }


class EmergencyCoordinator:
    """Raises and clears emergency mode and notifies the responders."""

    def __init__(self, registry: AgentRegistry, state: SystemState,
                 channel: Optional[events.EventChannel] = None,
                 timeout: Optional[float] = None,
                 metrics: Optional[MetricsManager] = None,
                 responders: Tuple[str, ...] = SECONDARY_RESPONDERS):
        self.registry = registry
        self.state = state
        self.channel = channel
        self.timeout = timeout
        self.metrics = metrics or metrics_manager
        self.responders = responders
        self.logger = logging.getLogger("emergency")

    async def handle_emergency(self, emergency_type: str,
                               data: Optional[Dict[str, Any]] = None) -> EmergencyOutcome:
        data = dict(data or {})
        now = datetime.now(timezone.utc).isoformat()
        self.logger.critical(f"Emergency detected: {emergency_type}")

        self.state.emergency_mode = True
        self.state.last_emergency_type = emergency_type
        self.state.last_emergency_at = now
        self.metrics.record_emergency(emergency_type)

        outcome = EmergencyOutcome(emergency_type=emergency_type)

        guardian_failure = await self._notify(GUARDIAN_ID, {
            "type": "emergency_protocol",
            "emergencyType": emergency_type,
            "data": data,
            "timestamp": now,
        }, emergency_type)
        if guardian_failure is None:
            outcome.guardian_notified = True
        else:
            outcome.failures.append(guardian_failure)

        message = {
            "type": "system_emergency",
            "emergencyType": emergency_type,
            "data": data,
            "timestamp": now,
        }
        present = []
        for agent_id in self.responders:
            if self.registry.has_agent(agent_id):
                present.append(agent_id)
            else:
                self.logger.warning(f"Emergency responder '{agent_id}' not registered, skipping")
                outcome.skipped.append(agent_id)

        results = await asyncio.gather(
            *(self._notify(agent_id, message, emergency_type) for agent_id in present),
            return_exceptions=True,
        )
        for agent_id, result in zip(present, results):
            if result is None:
                outcome.notified.append(agent_id)
            elif isinstance(result, EmergencyHandlingFailure):
                outcome.failures.append(result)
            else:
                outcome.failures.append(self._failure(agent_id, emergency_type, str(result), result))

        if self.channel:
            self.channel.publish(events.SystemEmergency(
                emergency_type=emergency_type, data=data, timestamp=now,
            ))
        return outcome

    async def _notify(self, agent_id: str, message: Dict[str, Any],
                      emergency_type: str) -> Optional[EmergencyHandlingFailure]:
        """Deliver one notification. Returns the failure instead of raising it."""
        agent = self.registry.get_agent(agent_id)
        if agent is None:
            return self._failure(agent_id, emergency_type, "agent not registered")
        try:
            response = await agent.process_message(message, timeout=self.timeout)
        except Exception as e:
            return self._failure(agent_id, emergency_type, str(e), e)
        if isinstance(response, dict) and response.get("success") is False:
            return self._failure(agent_id, emergency_type,
                                 str(response.get("error") or "agent reported failure"))
        return None

    def _failure(self, agent_id: str, emergency_type: str, details: str,
                 cause: Optional[BaseException] = None) -> EmergencyHandlingFailure:
        failure = EmergencyHandlingFailure(agent_id, emergency_type, details, cause=cause)
        self.metrics.record_notification_failure(agent_id)
        self.logger.error(str(failure))
        return failure

    def clear_emergency(self, cleared_by: str, reason: str = "") -> bool:
        """Administrative clear. Returns False when emergency mode was not active."""
        if not self.state.emergency_mode:
            return False
        self.state.emergency_mode = False
        self.state.emergency_cleared_by = cleared_by
        self.state.emergency_cleared_at = datetime.now(timezone.utc).isoformat()
        self.metrics.set_emergency_mode(False)
        self.logger.warning(f"Emergency mode cleared by {cleared_by}: {reason or 'no reason given'}")
        return True
