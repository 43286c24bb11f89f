"""
Ethical review gate over the Guardian agent.

Fail-closed: anything other than an explicit ``approved: True`` from an active
Guardian (absence, inactivity, exceptions, timeouts, malformed verdicts) is a
rejection.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .agents.base import AgentInstance
from .config import GUARDIAN_ID
from .envelope import MessageEnvelope
from .exceptions import AgentricError
from .registry import AgentRegistry


@dataclass(frozen=True)
class ReviewVerdict:
    approved: bool
    reason: Optional[str] = None
    # Set when the verdict comes from a Guardian failure rather than a decision
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"approved": self.approved, "reason": self.reason, "error": self.error}


class EthicalReviewGate:
    """Asks the Guardian to approve each envelope."""

    def __init__(self, registry: AgentRegistry, timeout: Optional[float] = None,
                 guardian_id: str = GUARDIAN_ID):
        self.registry = registry
        self.timeout = timeout
        self.guardian_id = guardian_id
        self.logger = logging.getLogger("ethical_review_gate")

    @property
    def guardian(self) -> Optional[AgentInstance]:
        return self.registry.get_agent(self.guardian_id)

    async def review(self, envelope: MessageEnvelope) -> ReviewVerdict:
        guardian = self.guardian
        if guardian is None or not guardian.is_active:
            self.logger.error(f"Guardian unavailable, blocking envelope {envelope.envelope_id}")
            return ReviewVerdict(False, "guardian unavailable")

        try:
            verdict = await guardian.process_message(
                {"type": "ethical_review", "data": envelope.to_dict()},
                timeout=self.timeout,
            )
        except AgentricError as e:
            self.logger.error(f"Guardian review failed for {envelope.envelope_id}: {e}")
            return ReviewVerdict(False, "guardian review failed", e.to_dict())
        except Exception as e:
            self.logger.error(f"Guardian review failed for {envelope.envelope_id}: {e}")
            return ReviewVerdict(False, "guardian review failed",
                                 {"message": str(e), "exception_type": type(e).__name__})

        if not isinstance(verdict, dict) or verdict.get("approved") is not True:
            reason = verdict.get("reason") if isinstance(verdict, dict) else None
            return ReviewVerdict(False, reason or "not approved by guardian")

        return ReviewVerdict(True, verdict.get("reason"))
