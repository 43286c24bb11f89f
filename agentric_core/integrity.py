"""
Audit trail integrity - HMAC hash chaining

Each entry's signature covers the previous entry's signature, so removing,
reordering or editing any entry breaks verification of everything after it.
"""

import hashlib
import hmac
import json
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

GENESIS = "GENESIS"


def hmac_sign(message: str, secret: str, algorithm: str = "sha256") -> str:
    """Create HMAC signature for a message."""
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        getattr(hashlib, algorithm)
    ).hexdigest()


def _canonical(entry: Dict[str, Any]) -> str:
    return json.dumps(entry, sort_keys=True, default=str)


class AuditChain:
    """Tamper-evident chain of audit entries."""

    def __init__(self, secret: str = ""):
        self.secret = secret or secrets.token_urlsafe(32)
        self._prev_hash = GENESIS

    @property
    def head(self) -> str:
        return self._prev_hash

    def rewind(self, head: str) -> None:
        """Reset the chain head after an entry failed to persist."""
        self._prev_hash = head

    def create_entry(self, event_data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new chain entry and advance the chain head."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": event_data,
            "prev_hash": self._prev_hash,
            "nonce": secrets.token_hex(8),
        }
        entry["hash"] = hmac_sign(_canonical(entry), self.secret)
        self._prev_hash = entry["hash"]
        return entry

    def verify_chain(self, entries: List[Dict[str, Any]],
                     start: str = GENESIS) -> Tuple[bool, int]:
        """
        Verify integrity of a chain of entries.
        ``start`` is the hash the first entry must point back to.
        Returns (is_valid, index of first bad entry or number checked).
        """
        prev_hash = start
        for i, entry in enumerate(entries):
            if entry.get("prev_hash") != prev_hash:
                return False, i

            body = {
                "timestamp": entry.get("timestamp"),
                "data": entry.get("data"),
                "prev_hash": entry.get("prev_hash"),
                "nonce": entry.get("nonce", ""),
            }
            expected = hmac_sign(_canonical(body), self.secret)
            if not hmac.compare_digest(entry.get("hash", ""), expected):
                return False, i

            prev_hash = entry["hash"]

        return True, len(entries)
