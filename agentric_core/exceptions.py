"""
AgentricAI Orchestration Core - Exception Hierarchy

Every failure mode of the orchestration core has a dedicated exception class
with context, recovery hints, and severity classification. Routing failures
are converted into structured results via ``to_dict()``; fatal failures
propagate to the caller.
"""

from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime, timezone


# ══════════════════════════════════════════════════════════════════════════════
# SEVERITY CLASSIFICATION
# ══════════════════════════════════════════════════════════════════════════════

class ExceptionSeverity(Enum):
    """Severity levels for exceptions."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    FATAL = "fatal"


class RecoveryAction(Enum):
    """Recommended recovery actions."""
    RETRY = "retry"
    SKIP = "skip"
    ABORT = "abort"
    ESCALATE = "escalate"
    RECONFIGURE = "reconfigure"
    MANUAL_INTERVENTION = "manual_intervention"


# ══════════════════════════════════════════════════════════════════════════════
# BASE EXCEPTION
# ══════════════════════════════════════════════════════════════════════════════

class AgentricError(Exception):
    """
    Base exception for all orchestration core errors.
    Provides structured context, severity, and recovery guidance.
    """

    def __init__(
        self,
        message: str,
        severity: ExceptionSeverity = ExceptionSeverity.ERROR,
        recovery: RecoveryAction = RecoveryAction.ABORT,
        recovery_hint: str = "",
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        retryable: bool = False,
        error_code: str = "AGENTRIC-0000",
    ):
        super().__init__(message)
        self.severity = severity
        self.recovery = recovery
        self.recovery_hint = recovery_hint
        self.context = context or {}
        self.cause = cause
        self.retryable = retryable
        self.error_code = error_code
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging and API responses."""
        return {
            "error_code": self.error_code,
            "severity": self.severity.value,
            "message": str(self),
            "recovery_action": self.recovery.value,
            "recovery_hint": self.recovery_hint,
            "retryable": self.retryable,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "timestamp": self.timestamp,
            "exception_type": self.__class__.__name__,
        }

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} [{self.error_code}] "
            f"severity={self.severity.value} "
            f"message='{str(self)[:80]}'>"
        )


# ══════════════════════════════════════════════════════════════════════════════
# REGISTRY EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════════════

class ValidationError(AgentricError):
    """Malformed or conflicting agent configuration."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "AGENTRIC-VAL-0000")
        kwargs.setdefault("severity", ExceptionSeverity.WARNING)
        kwargs.setdefault("recovery", RecoveryAction.RECONFIGURE)
        super().__init__(message, **kwargs)


class DuplicateAgentError(ValidationError):
    """An agent id is already registered."""

    def __init__(self, agent_id: str, **kwargs):
        kwargs.setdefault("error_code", "AGENTRIC-VAL-0001")
        kwargs.setdefault("context", {"agent_id": agent_id})
        kwargs.setdefault("recovery_hint", "Agent ids are unique and cannot be overwritten.")
        super().__init__(f"Agent '{agent_id}' is already registered", **kwargs)


class ImmutableAgentError(ValidationError):
    """Attempt to alter agent configuration after creation."""

    def __init__(self, agent_id: str, attribute: str = "", immutable: bool = False, **kwargs):
        kwargs.setdefault("error_code", "AGENTRIC-VAL-0002")
        kwargs.setdefault("severity", ExceptionSeverity.CRITICAL if immutable else ExceptionSeverity.WARNING)
        kwargs.setdefault("recovery", RecoveryAction.ABORT)
        kwargs.setdefault("context", {"agent_id": agent_id, "attribute": attribute, "immutable": immutable})
        kind = "immutable agent" if immutable else "agent"
        super().__init__(
            f"Cannot modify '{attribute}' of {kind} '{agent_id}': configuration is read-only", **kwargs
        )


class NotFoundError(AgentricError):
    """Unknown target agent id."""

    def __init__(self, agent_id: str, **kwargs):
        kwargs.setdefault("error_code", "AGENTRIC-RTE-0001")
        kwargs.setdefault("severity", ExceptionSeverity.WARNING)
        kwargs.setdefault("recovery", RecoveryAction.SKIP)
        kwargs.setdefault("context", {"agent_id": agent_id})
        super().__init__(f"Target agent '{agent_id}' not found", **kwargs)


# ══════════════════════════════════════════════════════════════════════════════
# ROUTING EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════════════

class EthicalRejection(AgentricError):
    """The Guardian did not approve an envelope. An expected control outcome."""

    def __init__(self, envelope_id: str, reason: str = "", **kwargs):
        kwargs.setdefault("error_code", "AGENTRIC-ETH-0001")
        kwargs.setdefault("severity", ExceptionSeverity.INFO)
        kwargs.setdefault("recovery", RecoveryAction.SKIP)
        kwargs.setdefault("context", {"envelope_id": envelope_id, "reason": reason})
        super().__init__(f"Message blocked by Guardian: {reason or 'not approved'}", **kwargs)
        self.reason = reason


class AgentTimeoutError(AgentricError):
    """An agent did not answer within the configured timeout."""

    def __init__(self, agent_id: str, timeout_seconds: float, **kwargs):
        kwargs.setdefault("error_code", "AGENTRIC-RTE-0002")
        kwargs.setdefault("recovery", RecoveryAction.RETRY)
        kwargs.setdefault("retryable", True)
        kwargs.setdefault("context", {"agent_id": agent_id, "timeout": timeout_seconds})
        super().__init__(f"Agent '{agent_id}' timed out after {timeout_seconds}s", **kwargs)


class SystemUnavailableError(AgentricError):
    """Routing was refused because the orchestrator is not operational."""

    def __init__(self, status: str, **kwargs):
        kwargs.setdefault("error_code", "AGENTRIC-RTE-0005")
        kwargs.setdefault("severity", ExceptionSeverity.WARNING)
        kwargs.setdefault("recovery", RecoveryAction.MANUAL_INTERVENTION if status == "error"
                          else RecoveryAction.RETRY)
        kwargs.setdefault("retryable", status != "error")
        kwargs.setdefault("context", {"status": status})
        super().__init__(f"Orchestrator is not operational (status={status})", **kwargs)
        self.status = status


class AuditPersistenceFailure(AgentricError):
    """An audit record could not be persisted. Always fatal."""

    def __init__(self, envelope_id: str, details: str = "", **kwargs):
        kwargs.setdefault("error_code", "AGENTRIC-AUD-0001")
        kwargs.setdefault("severity", ExceptionSeverity.FATAL)
        kwargs.setdefault("recovery", RecoveryAction.MANUAL_INTERVENTION)
        kwargs.setdefault("recovery_hint", "The audit trail is incomplete. Halt routing and inspect the Black Box.")
        kwargs.setdefault("context", {"envelope_id": envelope_id})
        super().__init__(f"Audit record for envelope {envelope_id} not persisted: {details}", **kwargs)


# ══════════════════════════════════════════════════════════════════════════════
# LIFECYCLE EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════════════

class InitializationFailure(AgentricError):
    """Agent creation failed during startup."""

    def __init__(self, agent_id: str, details: str = "", fatal: bool = True, **kwargs):
        kwargs.setdefault("error_code", "AGENTRIC-INI-0001" if fatal else "AGENTRIC-INI-0002")
        kwargs.setdefault("severity", ExceptionSeverity.FATAL if fatal else ExceptionSeverity.ERROR)
        kwargs.setdefault("recovery", RecoveryAction.ABORT if fatal else RecoveryAction.SKIP)
        kwargs.setdefault("context", {"agent_id": agent_id, "fatal": fatal})
        super().__init__(f"Failed to initialize agent '{agent_id}': {details}", **kwargs)
        self.agent_id = agent_id
        self.fatal = fatal


class EmergencyHandlingFailure(AgentricError):
    """A single emergency notifier failed. Does not block sibling notifiers."""

    def __init__(self, agent_id: str, emergency_type: str, details: str = "", **kwargs):
        kwargs.setdefault("error_code", "AGENTRIC-EMG-0001")
        kwargs.setdefault("severity", ExceptionSeverity.CRITICAL)
        kwargs.setdefault("recovery", RecoveryAction.ESCALATE)
        kwargs.setdefault("context", {"agent_id": agent_id, "emergency_type": emergency_type})
        super().__init__(
            f"Emergency notification '{emergency_type}' to '{agent_id}' failed: {details}", **kwargs
        )
        self.agent_id = agent_id
