"""
Agent records and the implementation contract.

Architecture:
    AgentOrchestrator
        -> AgentRegistry (write-once collection of AgentInstance)
            -> AgentInstance (record: config, status, metadata)
                -> AgentImplementation (behavior: process_message)

An AgentInstance owns a frozen AgentConfig; its status is the only thing that
changes after creation. Concrete behavior (NLP, retrieval, wearables...) lives
in the AgentImplementation supplied for each agent id.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional

from ..exceptions import AgentTimeoutError, ImmutableAgentError


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS & DATA STRUCTURES
# ══════════════════════════════════════════════════════════════════════════════

class AgentStatus(Enum):
    """Agent lifecycle status."""
    INITIALIZING = "initializing"
    ACTIVE = "active"
    SHUTTING_DOWN = "shutting_down"
    ERROR = "error"


class AgentRole(Enum):
    """Where an agent sits in the initialization order."""
    IMMUTABLE = "immutable"
    DEPARTMENTAL = "departmental"
    STUDENT_FACING = "student_facing"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class AgentConfig:
    """Read-only agent configuration."""
    name: str
    type: str
    priority: int
    capabilities: FrozenSet[str] = frozenset()
    specializations: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], default_priority: int = 5) -> "AgentConfig":
        priority = data.get("priority")
        return cls(
            name=data["name"],
            type=data.get("type", "department"),
            priority=default_priority if priority is None else int(priority),
            capabilities=frozenset(data.get("capabilities") or ()),
            specializations=MappingProxyType(dict(data.get("specializations") or {})),
        )


@dataclass
class AgentMetadata:
    """Runtime bookkeeping for an agent."""
    created_at: str = field(default_factory=_utcnow)
    last_active: str = field(default_factory=_utcnow)
    interaction_count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_response_time: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.interaction_count == 0:
            return 1.0
        return self.success_count / self.interaction_count

    @property
    def avg_response_time(self) -> float:
        if self.interaction_count == 0:
            return 0.0
        return self.total_response_time / self.interaction_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "createdAt": self.created_at,
            "lastActive": self.last_active,
            "interactionCount": self.interaction_count,
            "successRate": round(self.success_rate, 4),
            "errorCount": self.error_count,
        }


# ══════════════════════════════════════════════════════════════════════════════
# IMPLEMENTATION CONTRACT
# ══════════════════════════════════════════════════════════════════════════════

class AgentImplementation(ABC):
    """Behavior contract for one agent.

    The orchestration core depends on nothing but ``process_message``. The
    message is a plain dict: either a routed envelope (``envelope.to_dict()``)
    or a control message with a ``type`` key (``ethical_review``,
    ``log_interaction``, ``emergency_protocol``, ``system_emergency``).

    Returns a dict carrying at least ``success``.
    """

    @abstractmethod
    async def process_message(self, agent: "AgentInstance", message: Dict[str, Any]) -> Dict[str, Any]:
        ...


# ══════════════════════════════════════════════════════════════════════════════
# AGENT INSTANCE
# ══════════════════════════════════════════════════════════════════════════════

StatusListener = Callable[["AgentInstance", AgentStatus, AgentStatus], None]

_READ_ONLY_ATTRS = frozenset({
    "id", "config", "name", "type", "priority", "capabilities",
    "specializations", "role", "immutable", "implementation", "status",
})


class AgentInstance:
    """A registered agent: immutable config, mutable status and metadata."""

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _READ_ONLY_ATTRS:
            raise ImmutableAgentError(self._id, name, immutable=self._immutable)
        super().__setattr__(name, value)

    def __init__(self, agent_id: str, config: AgentConfig,
                 implementation: AgentImplementation,
                 role: AgentRole = AgentRole.DEPARTMENTAL,
                 immutable: bool = False,
                 status_listener: Optional[StatusListener] = None):
        self._id = agent_id
        self._config = config
        self._implementation = implementation
        self._role = role
        self._immutable = immutable
        self._status = AgentStatus.INITIALIZING
        self._status_listener = status_listener
        self.metadata = AgentMetadata()
        self.logger = logging.getLogger(f"agent.{agent_id}")

    # ── Read-only configuration ──────────────────────────────────────────

    @property
    def id(self) -> str:
        return self._id

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def type(self) -> str:
        return self._config.type

    @property
    def priority(self) -> int:
        return self._config.priority

    @property
    def capabilities(self) -> FrozenSet[str]:
        return self._config.capabilities

    @property
    def specializations(self) -> Mapping[str, Any]:
        return self._config.specializations

    @property
    def role(self) -> AgentRole:
        return self._role

    @property
    def immutable(self) -> bool:
        return self._immutable

    @property
    def implementation(self) -> AgentImplementation:
        return self._implementation

    @property
    def status(self) -> AgentStatus:
        return self._status

    @property
    def is_active(self) -> bool:
        return self._status == AgentStatus.ACTIVE

    # ── Lifecycle ────────────────────────────────────────────────────────

    def update_status(self, status: AgentStatus) -> None:
        """The only post-creation mutation path."""
        previous = self._status
        self._status = status
        self.metadata.last_active = _utcnow()
        if self._status_listener and previous != status:
            self._status_listener(self, previous, status)

    # ── Messaging ────────────────────────────────────────────────────────

    async def process_message(self, message: Dict[str, Any],
                              timeout: Optional[float] = None) -> Dict[str, Any]:
        """Hand a message to the implementation, tracking metadata.

        Raises AgentTimeoutError when ``timeout`` (seconds) elapses first.
        """
        start = time.perf_counter()
        try:
            call = self._implementation.process_message(self, message)
            if timeout and timeout > 0:
                result = await asyncio.wait_for(call, timeout=timeout)
            else:
                result = await call
        except asyncio.TimeoutError as e:
            self._record(time.perf_counter() - start, success=False)
            self.logger.error(f"Agent {self._id} timed out after {timeout}s")
            raise AgentTimeoutError(self._id, timeout, cause=e) from e
        except Exception as e:
            self._record(time.perf_counter() - start, success=False)
            self.logger.error(f"Agent {self._id} failed to process message: {e}")
            raise

        if not isinstance(result, dict):
            result = {"success": True, "response": result}
        self._record(time.perf_counter() - start, success=bool(result.get("success", True)))
        return result

    def _record(self, elapsed: float, success: bool) -> None:
        self.metadata.interaction_count += 1
        self.metadata.total_response_time += elapsed
        self.metadata.last_active = _utcnow()
        if success:
            self.metadata.success_count += 1
        else:
            self.metadata.error_count += 1

    # ── Status & info ────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self._id,
            "name": self.name,
            "type": self.type,
            "role": self._role.value,
            "status": self._status.value,
            "priority": self.priority,
            "immutable": self._immutable,
            "capabilities": sorted(self.capabilities),
            "specializations": dict(self.specializations),
            "metadata": self.metadata.to_dict(),
        }

    def __repr__(self) -> str:
        return f"<AgentInstance {self._id} status={self._status.value} priority={self.priority}>"
