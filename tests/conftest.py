"""
Shared fixtures and test agent implementations.
"""

import asyncio
import copy
from typing import Any, Dict, List, Optional

import pytest

from agentric_core.agents.base import AgentImplementation, AgentRole
from agentric_core.agents.builtin import BlackBoxAgent
from agentric_core.audit import AuditLog
from agentric_core.config import (
    DEFAULT_AGENT_REGISTRY,
    AgentConfigProvider,
    AuditConfig,
    GuardianConfig,
    OrchestratorConfig,
)
from agentric_core.events import EventChannel
from agentric_core.gate import EthicalReviewGate
from agentric_core.orchestrator import AgentOrchestrator
from agentric_core.registry import AgentRegistry
from agentric_core.router import Router
from agentric_core.state import SystemState


# ══════════════════════════════════════════════════════════════════════════════
# TEST AGENTS
# ══════════════════════════════════════════════════════════════════════════════

class RecordingAgent(AgentImplementation):
    """Records every message; optionally delays, raises or returns a fixed response."""

    def __init__(self, response: Optional[Dict[str, Any]] = None,
                 error: Optional[BaseException] = None, delay: float = 0.0,
                 journal: Optional[List[str]] = None):
        self.response = response
        self.error = error
        self.delay = delay
        self.journal = journal
        self.messages: List[Dict[str, Any]] = []
        self.inflight = 0
        self.max_inflight = 0

    async def process_message(self, agent, message):
        self.messages.append(message)
        if self.journal is not None:
            self.journal.append(agent.id)
        self.inflight += 1
        self.max_inflight = max(self.max_inflight, self.inflight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
        finally:
            self.inflight -= 1
        if self.response is not None:
            return dict(self.response)
        return {"success": True, "handledBy": agent.id}

    @property
    def types(self) -> List[str]:
        return [_type_of(m) for m in self.messages]


def _type_of(message: Dict[str, Any]) -> str:
    if "type" in message:
        return message["type"]
    content = message.get("content")
    if isinstance(content, dict):
        return content.get("type", "")
    return ""


class StaticGuardian(AgentImplementation):
    """Guardian returning a fixed verdict for every review."""

    def __init__(self, verdict: Any = None, error: Optional[BaseException] = None,
                 delay: float = 0.0):
        self.verdict = {"success": True, "approved": True} if verdict is None else verdict
        self.error = error
        self.delay = delay
        self.reviews: List[Dict[str, Any]] = []

    async def process_message(self, agent, message):
        if message.get("type") == "ethical_review":
            self.reviews.append(message["data"])
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if message.get("type") == "ethical_review":
            return self.verdict
        return {"success": True}


class FailingBlackBox(AgentImplementation):
    def __init__(self, error: Optional[BaseException] = None):
        self.error = error

    async def process_message(self, agent, message):
        if self.error is not None:
            raise self.error
        return {"success": False}


# ══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_config():
    return OrchestratorConfig(
        agent_timeout=0.5,
        max_inflight_routings=0,
        health_check_interval=0,
        response_time_window=100,
        default_message_priority=5,
        default_agent_priority=5,
    )


@pytest.fixture
def channel():
    return EventChannel()


@pytest.fixture
def pipeline(channel, test_config):
    """Registry + gate + audit log + router, built by hand.

    Call ``pipeline(guardian=..., black_box=..., agents={id: impl})``.
    """

    def build(guardian: Optional[AgentImplementation] = None,
              black_box: Optional[AgentImplementation] = None,
              agents: Optional[Dict[str, AgentImplementation]] = None,
              config: Optional[OrchestratorConfig] = None,
              with_guardian: bool = True):
        cfg = config or test_config
        registry = AgentRegistry(channel)
        if with_guardian:
            registry.create_agent("guardian", {"name": "The Guardian", "type": "guardian"},
                                  guardian or StaticGuardian(), role=AgentRole.IMMUTABLE, immutable=True)
        registry.create_agent("blackBox", {"name": "The Black Box", "type": "black-box"},
                              black_box or BlackBoxAgent(), role=AgentRole.IMMUTABLE, immutable=True)
        for agent_id, impl in (agents or {}).items():
            registry.create_agent(agent_id, {"name": agent_id.title(), "priority": 3}, impl)

        state = SystemState()
        gate = EthicalReviewGate(registry, timeout=cfg.agent_timeout)
        audit_log = AuditLog(registry, timeout=cfg.agent_timeout)
        router = Router(registry, gate, audit_log, state, config=cfg)
        return registry, router, audit_log, state

    return build


@pytest.fixture
def registry_data():
    return copy.deepcopy(DEFAULT_AGENT_REGISTRY)


@pytest.fixture
def make_orchestrator(channel, test_config, registry_data):
    """Orchestrator over the default registry with the monitor disabled."""

    def build(data: Optional[Dict[str, Any]] = None,
              implementations: Optional[Dict[str, AgentImplementation]] = None,
              blocked_terms: Optional[List[str]] = None):
        return AgentOrchestrator(
            config_provider=AgentConfigProvider(data=data if data is not None else registry_data),
            implementations=implementations,
            config=test_config,
            audit=AuditConfig(audit_log_path="", audit_secret="test-secret", fsync=False),
            guardian=GuardianConfig(blocked_terms=blocked_terms if blocked_terms is not None
                                    else ["password", "home address"]),
            channel=channel,
        )

    return build
