"""
Audit log over the Black Box agent.

One record per routing attempt, approved or not, keyed by envelope id. The
Black Box must confirm every write; if it cannot, AuditPersistenceFailure is
raised and never swallowed.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from .agents.base import AgentInstance
from .config import BLACK_BOX_ID
from .envelope import MessageEnvelope
from .exceptions import AuditPersistenceFailure
from .registry import AgentRegistry


@dataclass(frozen=True)
class AuditRecord:
    envelope_id: str
    sender: str
    recipient: str
    outcome: str
    reason: Optional[str]
    envelope: Dict[str, Any]
    recorded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    entry_hash: Optional[str] = None


class AuditLog:
    """Append-only audit trail persisted through the Black Box.

    Keeps an index of the most recent ``max_records`` records for lookup by
    envelope id; the Black Box holds the complete trail.
    """

    def __init__(self, registry: AgentRegistry, timeout: Optional[float] = None,
                 black_box_id: str = BLACK_BOX_ID, max_records: int = 10000):
        self.registry = registry
        self.timeout = timeout
        self.black_box_id = black_box_id
        self.logger = logging.getLogger("audit_log")
        self.total_recorded = 0
        self._records: Deque[AuditRecord] = deque(maxlen=max(1, max_records))
        self._index: Dict[str, AuditRecord] = {}

    @property
    def black_box(self) -> Optional[AgentInstance]:
        return self.registry.get_agent(self.black_box_id)

    async def record(self, envelope: MessageEnvelope, outcome: str,
                     reason: Optional[str] = None) -> AuditRecord:
        """Persist one routing attempt.

        Raises:
            AuditPersistenceFailure: the Black Box is missing or did not confirm.
        """
        black_box = self.black_box
        if black_box is None:
            raise self._failure(envelope, "black box not registered")

        snapshot = envelope.to_dict()
        try:
            ack = await black_box.process_message(
                {"type": "log_interaction", "data": snapshot,
                 "outcome": {"status": outcome, "reason": reason}},
                timeout=self.timeout,
            )
        except Exception as e:
            raise self._failure(envelope, str(e), cause=e) from e

        if not isinstance(ack, dict) or not ack.get("success"):
            raise self._failure(envelope, "black box did not confirm the write")

        entry = AuditRecord(
            envelope_id=envelope.envelope_id,
            sender=envelope.sender,
            recipient=envelope.recipient,
            outcome=outcome,
            reason=reason,
            envelope=snapshot,
            entry_hash=ack.get("entry_hash"),
        )
        if len(self._records) == self._records.maxlen:
            self._index.pop(self._records[0].envelope_id, None)
        self._records.append(entry)
        self._index[envelope.envelope_id] = entry
        self.total_recorded += 1
        return entry

    def _failure(self, envelope: MessageEnvelope, details: str,
                 cause: Optional[BaseException] = None) -> AuditPersistenceFailure:
        self.logger.critical(f"Audit persistence failed for {envelope.envelope_id}: {details}")
        return AuditPersistenceFailure(envelope.envelope_id, details, cause=cause)

    def get_record(self, envelope_id: str) -> Optional[AuditRecord]:
        return self._index.get(envelope_id)

    def records(self) -> List[AuditRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)
