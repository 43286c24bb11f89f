"""
AgentricAI Orchestration Core - Centralized Configuration

Single source of truth for orchestration settings and the agent registry
snapshot. Environment-variable driven with safe defaults.
"""

import copy
import json
import os
import secrets
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List, Mapping, Optional, Dict, Any


# ══════════════════════════════════════════════════════════════════════════════
# ENVIRONMENT
# ══════════════════════════════════════════════════════════════════════════════

def _env(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = os.environ.get(key, str(default)).lower()
    return val in ("true", "1", "yes", "on")


def _env_int(key: str, default: int = 0) -> int:
    try:
        return int(os.environ.get(key, str(default)))
    except (ValueError, TypeError):
        return default


def _env_float(key: str, default: float = 0.0) -> float:
    try:
        return float(os.environ.get(key, str(default)))
    except (ValueError, TypeError):
        return default


def _env_list(key: str, default: str = "", sep: str = ",") -> List[str]:
    raw = os.environ.get(key, default)
    return [item.strip() for item in raw.split(sep) if item.strip()] if raw else []


# ══════════════════════════════════════════════════════════════════════════════
# BASE PATHS
# ══════════════════════════════════════════════════════════════════════════════

APP_DIR = Path(_env("AGENTRIC_APP_DIR", "."))
DATA_DIR = APP_DIR / "data"
LOGS_DIR = APP_DIR / "logs"


# ══════════════════════════════════════════════════════════════════════════════
# SERVER CONFIG
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ServerConfig:
    """HTTP adapter and logging configuration."""
    host: str = _env("AGENTRIC_HOST", "localhost")
    port: int = _env_int("AGENTRIC_PORT", 3000)
    debug: bool = _env_bool("AGENTRIC_DEBUG", False)
    log_level: str = _env("AGENTRIC_LOG_LEVEL", "INFO")
    log_format: str = _env("AGENTRIC_LOG_FORMAT", "json")
    log_file: str = _env("AGENTRIC_LOG_FILE", "")
    environment: str = _env("AGENTRIC_ENVIRONMENT", "development")
    admin_token: str = _env("AGENTRIC_ADMIN_TOKEN", "")


# ══════════════════════════════════════════════════════════════════════════════
# ORCHESTRATOR CONFIG
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class OrchestratorConfig:
    """Routing, timeout and monitoring configuration."""
    # Upper bound for any single agent process_message call
    agent_timeout: float = _env_float("AGENTRIC_AGENT_TIMEOUT", 30.0)
    # 0 means unbounded
    max_inflight_routings: int = _env_int("AGENTRIC_MAX_INFLIGHT_ROUTINGS", 0)
    # Seconds; 0 disables the periodic monitor
    health_check_interval: float = _env_float("AGENTRIC_HEALTH_CHECK_INTERVAL", 30.0)
    response_time_window: int = _env_int("AGENTRIC_RESPONSE_TIME_WINDOW", 1000)
    default_message_priority: int = _env_int("AGENTRIC_DEFAULT_MESSAGE_PRIORITY", 5)
    default_agent_priority: int = _env_int("AGENTRIC_DEFAULT_AGENT_PRIORITY", 5)


# ══════════════════════════════════════════════════════════════════════════════
# AUDIT CONFIG
# ══════════════════════════════════════════════════════════════════════════════

@dataclass
class AuditConfig:
    """Black Box audit trail configuration."""
    # Empty path keeps the trail in memory only
    audit_log_path: str = _env("AGENTRIC_AUDIT_LOG", "")
    audit_secret: str = _env("AGENTRIC_AUDIT_SECRET", "")
    fsync: bool = _env_bool("AGENTRIC_AUDIT_FSYNC", True)
    # Recent records kept in memory; the JSONL file holds the full trail
    memory_window: int = _env_int("AGENTRIC_AUDIT_MEMORY_WINDOW", 10000)

    def __post_init__(self):
        if not self.audit_secret:
            self.audit_secret = secrets.token_urlsafe(32)


# ══════════════════════════════════════════════════════════════════════════════
# GUARDIAN CONFIG
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class GuardianConfig:
    """Default Guardian review policy."""
    blocked_terms: List[str] = field(default_factory=lambda: _env_list(
        "AGENTRIC_GUARDIAN_BLOCKED_TERMS",
        "home address,password,credit card,meet in person,keep this secret",
    ))


# ══════════════════════════════════════════════════════════════════════════════
# AGENT REGISTRY
# ══════════════════════════════════════════════════════════════════════════════

GUARDIAN_ID = "guardian"
BLACK_BOX_ID = "blackBox"
STUDENT_AGENT_ID = "agentricAI"
COUNSELING_ID = "counseling"
PRINCIPAL_ID = "principal"
ADMIN_ID = "admin"
CURRICULUM_ID = "curriculum"

GUARDIAN_TYPE = "guardian"
BLACK_BOX_TYPE = "black-box"

DEFAULT_AGENT_REGISTRY: Dict[str, Dict[str, Any]] = {
    "immutableAgents": {
        GUARDIAN_ID: {
            "name": "The Guardian",
            "type": GUARDIAN_TYPE,
            "capabilities": ["ethical_review", "emergency_protocol"],
            "specializations": {"role": "ethical oversight"},
        },
        BLACK_BOX_ID: {
            "name": "The Black Box",
            "type": BLACK_BOX_TYPE,
            "capabilities": ["log_interaction"],
            "specializations": {"role": "audit trail"},
        },
    },
    "departmentalAgents": {
        PRINCIPAL_ID: {
            "name": "The Overseer", "type": "department", "priority": 1,
            "capabilities": ["oversight", "system_emergency"],
            "specializations": {"ethicalFailsafe": True},
        },
        "athletics": {
            "name": "The Coach", "type": "department", "priority": 3,
            "capabilities": ["departmental_query"],
            "specializations": {"motivationEngine": True},
        },
        "math": {
            "name": "The Mathematician", "type": "department", "priority": 2,
            "capabilities": ["departmental_query"],
            "specializations": {"adaptivePacing": True, "logicReasoning": True},
        },
        "science": {
            "name": "The Explorer", "type": "department", "priority": 2,
            "capabilities": ["departmental_query"],
            "specializations": {"experimentationMode": True},
        },
        "arts": {
            "name": "The Creator", "type": "department", "priority": 3,
            "capabilities": ["departmental_query"],
            "specializations": {"emotionalExpression": True},
        },
        COUNSELING_ID: {
            "name": "The Listener", "type": "department", "priority": 1,
            "capabilities": ["emotional_monitoring", "emergency_response", "system_emergency"],
            "specializations": {"crisisIntervention": True},
        },
        CURRICULUM_ID: {
            "name": "The Architect", "type": "department", "priority": 2,
            "capabilities": ["goal_processing"],
            "specializations": {"goalDecomposition": True},
        },
        ADMIN_ID: {
            "name": "The Interpreter", "type": "department", "priority": 2,
            "capabilities": ["admin_input"],
            "specializations": {"parentTeacherInterface": True},
        },
    },
    "studentFacingAgent": {
        STUDENT_AGENT_ID: {
            "name": "AgentricAI", "type": "student-facing", "priority": 3,
            "capabilities": ["student_interaction"],
            "specializations": {"emotionalResonance": True},
        },
    },
}


@dataclass(frozen=True)
class AgentRegistrySnapshot:
    """Read-only agent configuration, loaded once at startup."""
    immutable_agents: Dict[str, Dict[str, Any]]
    departmental_agents: Dict[str, Dict[str, Any]]
    student_facing_agent: Dict[str, Dict[str, Any]]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentRegistrySnapshot":
        """Copy ``data`` into a snapshot.

        Raises:
            ValueError: the document or one of its sections is not a mapping.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"agent registry must be an object, got {type(data).__name__}")
        data = copy.deepcopy(data)
        sections = {}
        for key in ("immutableAgents", "departmentalAgents", "studentFacingAgent"):
            section = data.get(key, {})
            if not isinstance(section, Mapping):
                raise ValueError(f"'{key}' must be an object, got {type(section).__name__}")
            sections[key] = dict(section)
        return cls(
            immutable_agents=sections["immutableAgents"],
            departmental_agents=sections["departmentalAgents"],
            student_facing_agent=sections["studentFacingAgent"],
        )


class AgentConfigProvider:
    """Loads the agent registry snapshot from a JSON file or the built-in default."""

    def __init__(self, path: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        self.path = path if path is not None else _env("AGENTRIC_AGENT_REGISTRY", "")
        self._data = data
        self._snapshot: Optional[AgentRegistrySnapshot] = None

    def load(self) -> AgentRegistrySnapshot:
        if self._snapshot is None:
            if self._data is not None:
                raw = self._data
            elif self.path:
                with open(self.path, "r", encoding="utf-8") as fh:
                    raw = json.load(fh)
            else:
                raw = DEFAULT_AGENT_REGISTRY
            self._snapshot = AgentRegistrySnapshot.from_dict(raw)
        return self._snapshot


# ══════════════════════════════════════════════════════════════════════════════
# GLOBAL CONFIG INSTANCE
# ══════════════════════════════════════════════════════════════════════════════

server_config = ServerConfig()
orchestrator_config = OrchestratorConfig()
audit_config = AuditConfig()
guardian_config = GuardianConfig()


def get_all_configs() -> Dict[str, Any]:
    """Return all configuration as a serializable dictionary."""
    return {
        "server": {k: v for k, v in asdict(server_config).items()
                   if k not in ("admin_token",)},
        "orchestrator": asdict(orchestrator_config),
        "audit": {k: v for k, v in asdict(audit_config).items()
                  if k not in ("audit_secret",)},
        "guardian": asdict(guardian_config),
    }
