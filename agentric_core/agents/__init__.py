"""
AgentricAI agents

Agent records (AgentInstance), the behavior contract every agent
implementation satisfies (AgentImplementation), and the built-in
implementations backing the Guardian, the Black Box and placeholder agents.
"""

from .base import (
    AgentConfig,
    AgentImplementation,
    AgentInstance,
    AgentMetadata,
    AgentRole,
    AgentStatus,
)

from .builtin import (
    BlackBoxAgent,
    DefaultAgent,
    GuardianAgent,
)


__all__ = [
    "AgentConfig", "AgentImplementation", "AgentInstance", "AgentMetadata",
    "AgentRole", "AgentStatus",
    "BlackBoxAgent", "DefaultAgent", "GuardianAgent",
]
