"""
Message envelopes, priority rules and routing results.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .config import COUNSELING_ID, GUARDIAN_ID
from .registry import AgentRegistry

GUARDIAN_MESSAGE_PRIORITY = 1
COUNSELING_MESSAGE_PRIORITY = 2


@dataclass
class EnvelopeMetadata:
    ethical_review: bool = False
    student_visible: bool = False
    system_generated: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "ethicalReview": self.ethical_review,
            "studentVisible": self.student_visible,
            "systemGenerated": self.system_generated,
        }


@dataclass
class MessageEnvelope:
    """Wrapper carrying content plus routing and audit metadata."""
    sender: str
    recipient: str
    content: Any
    priority: int
    envelope_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    metadata: EnvelopeMetadata = field(default_factory=EnvelopeMetadata)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.envelope_id,
            "from": self.sender,
            "to": self.recipient,
            "content": self.content,
            "timestamp": self.timestamp,
            "priority": self.priority,
            "metadata": self.metadata.to_dict(),
        }


def message_priority(registry: AgentRegistry, from_id: str, to_id: str,
                     default: int = 5) -> int:
    """Derive envelope priority (lower is more urgent).

    Messages touching the Guardian or Counseling jump the queue; otherwise the
    more urgent endpoint wins. Unregistered endpoints (students, parents)
    get ``default``.
    """
    if GUARDIAN_ID in (from_id, to_id):
        return GUARDIAN_MESSAGE_PRIORITY
    if COUNSELING_ID in (from_id, to_id):
        return COUNSELING_MESSAGE_PRIORITY

    sender = registry.get_agent(from_id)
    target = registry.get_agent(to_id)
    if not sender or not target:
        return default
    return min(sender.priority, target.priority)


class RoutingOutcome(Enum):
    """How a routing attempt ended."""
    DELIVERED = "delivered"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class RoutingResult:
    """Structured routing result returned to callers instead of raising."""
    success: bool
    envelope_id: str
    outcome: RoutingOutcome
    response: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def rejected(self) -> bool:
        return self.outcome == RoutingOutcome.REJECTED

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": self.success,
            "envelopeId": self.envelope_id,
            "outcome": self.outcome.value,
        }
        if self.response is not None:
            result["response"] = self.response
        if self.reason is not None:
            result["reason"] = self.reason
        if self.error is not None:
            result["error"] = self.error
        return result
