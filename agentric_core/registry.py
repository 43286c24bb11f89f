"""
Agent registry.

Owns every AgentInstance. Agents are added only during the initialization
phase; ``freeze()`` closes that phase and the registry is read-only afterwards,
so routing and health snapshots read it without locking.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from . import events
from .agents.base import (
    AgentConfig,
    AgentImplementation,
    AgentInstance,
    AgentRole,
    AgentStatus,
)
from .agents.builtin import DefaultAgent
from .config import BLACK_BOX_TYPE, GUARDIAN_TYPE
from .exceptions import DuplicateAgentError, ValidationError

# Only the immutable Guardian and Black Box may carry these types
RESERVED_TYPES = (GUARDIAN_TYPE, BLACK_BOX_TYPE)


class AgentRegistry:
    """Write-once collection of agents, keyed by stable id."""

    def __init__(self, channel: Optional[events.EventChannel] = None,
                 default_priority: int = 5):
        self.channel = channel
        self.default_priority = default_priority
        self.logger = logging.getLogger("agent_registry")
        self._agents: Dict[str, AgentInstance] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True
        self.logger.info(f"Registry frozen with {len(self._agents)} agents")

    def create_agent(self, agent_id: str, config: Mapping[str, Any],
                     implementation: Optional[AgentImplementation] = None,
                     role: AgentRole = AgentRole.DEPARTMENTAL,
                     immutable: bool = False) -> AgentInstance:
        """Validate ``config`` and register a new active agent.

        Raises:
            ValidationError: malformed config, missing name, bad priority,
                reserved type on a mutable agent, or frozen registry.
            DuplicateAgentError: ``agent_id`` is already registered.
        """
        if self._frozen:
            raise ValidationError(f"Registry is frozen; cannot register '{agent_id}'",
                                  context={"agent_id": agent_id})
        if not agent_id:
            raise ValidationError("Agent id is required")
        if agent_id in self._agents:
            raise DuplicateAgentError(agent_id)
        if not isinstance(config, Mapping):
            raise ValidationError(f"Agent '{agent_id}' config must be a mapping, "
                                  f"got {type(config).__name__}",
                                  context={"agent_id": agent_id})
        if not config.get("name"):
            raise ValidationError(f"Agent '{agent_id}' config is missing 'name'",
                                  context={"agent_id": agent_id})
        if not immutable and config.get("type") in RESERVED_TYPES:
            raise ValidationError(f"Type '{config['type']}' is reserved for immutable agents "
                                  f"(got it for '{agent_id}')",
                                  context={"agent_id": agent_id, "type": config["type"]})

        if immutable:
            # Guardian and Black Box always outrank everything else
            config = {**config, "priority": 0}
        try:
            agent_config = AgentConfig.from_dict(config, self.default_priority)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Agent '{agent_id}' config is malformed: {e}",
                                  context={"agent_id": agent_id}, cause=e) from e
        if not immutable and agent_config.priority <= 0:
            raise ValidationError(
                f"Priority 0 is reserved for immutable agents (got {agent_config.priority} for '{agent_id}')",
                context={"agent_id": agent_id, "priority": agent_config.priority},
            )

        agent = AgentInstance(
            agent_id,
            agent_config,
            implementation or DefaultAgent(),
            role=role,
            immutable=immutable,
            status_listener=self._on_status_change,
        )
        self._agents[agent_id] = agent
        agent.update_status(AgentStatus.ACTIVE)

        self.logger.info(f"Registered agent: {agent.name} [{agent_id}] "
                         f"role={role.value} priority={agent.priority} immutable={immutable}")
        return agent

    def _on_status_change(self, agent: AgentInstance, previous: AgentStatus,
                          status: AgentStatus) -> None:
        if self.channel:
            self.channel.publish(events.AgentStatusUpdate(
                agent_id=agent.id, status=status.value, previous_status=previous.value,
            ))

    # ── Reads ────────────────────────────────────────────────────────────

    def get_agent(self, agent_id: str) -> Optional[AgentInstance]:
        return self._agents.get(agent_id)

    def has_agent(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def list_agents(self) -> List[AgentInstance]:
        return list(self._agents.values())

    def find_by_type(self, agent_type: str) -> List[AgentInstance]:
        return [a for a in self._agents.values() if a.type == agent_type]

    def counts(self) -> Dict[str, int]:
        agents = self._agents.values()
        return {
            "total": len(self._agents),
            "active": sum(1 for a in agents if a.status == AgentStatus.ACTIVE),
            "immutable": sum(1 for a in agents if a.immutable),
            "departmental": sum(1 for a in agents if a.role == AgentRole.DEPARTMENTAL),
        }

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents
