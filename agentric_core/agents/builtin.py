"""
Built-in agent implementations.

GuardianAgent and BlackBoxAgent back the two immutable agents; DefaultAgent is
the acknowledging stand-in used for every other agent id until a concrete
implementation is supplied.
"""

import asyncio
import json
import logging
import os
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

from .base import AgentImplementation, AgentInstance
from ..integrity import GENESIS, AuditChain


def _message_type(message: Dict[str, Any]) -> str:
    if "type" in message:
        return str(message["type"])
    content = message.get("content")
    if isinstance(content, dict) and "type" in content:
        return str(content["type"])
    return "message"


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


class DefaultAgent(AgentImplementation):
    """Acknowledges every message."""

    async def process_message(self, agent: AgentInstance, message: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "success": True,
            "response": f"{agent.name} processed message: {_message_type(message)}",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class GuardianAgent(AgentImplementation):
    """Ethical oversight: term-based review policy and emergency protocol."""

    def __init__(self, blocked_terms: Optional[List[str]] = None):
        self.blocked_terms = [t.lower() for t in (blocked_terms or []) if t]
        self.emergencies: List[Dict[str, Any]] = []
        self.logger = logging.getLogger("guardian")

    async def process_message(self, agent: AgentInstance, message: Dict[str, Any]) -> Dict[str, Any]:
        msg_type = message.get("type")
        if msg_type == "ethical_review":
            return self.review(message.get("data") or {})
        if msg_type == "emergency_protocol":
            self.emergencies.append(message)
            self.logger.critical(f"Emergency protocol engaged: {message.get('emergencyType')}")
            return {"success": True, "acknowledged": True}
        return {"success": True, "response": f"{agent.name} noted: {_message_type(message)}"}

    def review(self, envelope: Dict[str, Any]) -> Dict[str, Any]:
        text = _as_text(envelope.get("content", "")).lower()
        for term in self.blocked_terms:
            if term in text:
                return {"success": True, "approved": False,
                        "reason": f"content references restricted topic '{term}'"}
        return {"success": True, "approved": True}


class BlackBoxAgent(AgentImplementation):
    """Append-only, hash-chained audit trail with optional JSONL persistence.

    Only the most recent ``memory_window`` entries stay in memory. With a
    file configured, ``verify`` checks the whole trail on disk; otherwise it
    checks the in-memory window from the last evicted entry onward.
    """

    def __init__(self, audit_log_path: str = "", secret: str = "", fsync: bool = True,
                 memory_window: int = 10000):
        self.audit_log_path = audit_log_path
        self.fsync = fsync
        self.chain = AuditChain(secret)
        self.entries: Deque[Dict[str, Any]] = deque(maxlen=max(1, memory_window))
        self._anchor = GENESIS
        self._write_lock = asyncio.Lock()
        self.logger = logging.getLogger("black_box")
        if audit_log_path:
            Path(audit_log_path).parent.mkdir(parents=True, exist_ok=True)
            if os.path.exists(audit_log_path):
                self._resume()

    async def process_message(self, agent: AgentInstance, message: Dict[str, Any]) -> Dict[str, Any]:
        if message.get("type") != "log_interaction":
            return {"success": True, "response": f"{agent.name} noted: {_message_type(message)}"}

        # Chain order must match file order
        async with self._write_lock:
            head = self.chain.head
            entry = self.chain.create_entry({
                "envelope": message.get("data"),
                "outcome": message.get("outcome"),
            })
            if self.audit_log_path:
                try:
                    await asyncio.to_thread(self._persist, entry)
                except OSError:
                    self.chain.rewind(head)
                    raise
            if len(self.entries) == self.entries.maxlen:
                self._anchor = self.entries[0]["hash"]
            self.entries.append(entry)
        return {"success": True, "entry_hash": entry["hash"]}

    def _persist(self, entry: Dict[str, Any]) -> None:
        with open(self.audit_log_path, "a", encoding="utf-8") as fh:
            fh.write(json.dumps(entry, default=str) + "\n")
            fh.flush()
            if self.fsync:
                os.fsync(fh.fileno())

    def _resume(self) -> None:
        trail = self._load_trail()
        if trail:
            self.chain.rewind(trail[-1]["hash"])
            self.logger.info(f"Resuming audit trail at entry {len(trail)}")

    def _load_trail(self) -> List[Dict[str, Any]]:
        with open(self.audit_log_path, "r", encoding="utf-8") as fh:
            return [json.loads(line) for line in fh if line.strip()]

    def verify(self) -> bool:
        if self.audit_log_path and os.path.exists(self.audit_log_path):
            valid, checked = self.chain.verify_chain(self._load_trail())
        else:
            valid, checked = self.chain.verify_chain(list(self.entries), start=self._anchor)
        if not valid:
            self.logger.error(f"Audit chain broken at entry {checked}")
        return valid
