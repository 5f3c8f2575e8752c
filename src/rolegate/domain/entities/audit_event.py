"""Audit event - a Decision plus request metadata, hash-chained when stored."""

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from uuid import UUID

from rolegate.domain.entities.decision import Decision

GENESIS_HASH = "0" * 64


@dataclass(frozen=True)
class AuditEvent:
    """Append-only record of one decision.

    ``sequence``, ``previous_hash`` and ``hash`` are assigned when the event
    is persisted; each hash covers the event payload and the previous hash.
    """

    id: UUID
    decision: Decision
    latency_ms: float
    cache_hit: bool
    recorded_at: datetime
    caller_attributes: Mapping[str, str] = field(default_factory=dict)
    sequence: int | None = None
    previous_hash: str | None = None
    hash: str | None = None

    def payload(self) -> dict[str, object]:
        return {
            "id": str(self.id),
            "sequence": self.sequence,
            "decision": self.decision.to_dict(),
            "latency_ms": round(self.latency_ms, 3),
            "cache_hit": self.cache_hit,
            "recorded_at": self.recorded_at.isoformat(),
            "caller_attributes": dict(sorted(self.caller_attributes.items())),
        }

    def compute_hash(self, previous_hash: str) -> str:
        body = json.dumps(self.payload(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(f"{previous_hash}:{body}".encode("utf-8")).hexdigest()

    def sealed(self, sequence: int, previous_hash: str) -> "AuditEvent":
        """Copy with chain position and hash filled in."""
        positioned = replace(self, sequence=sequence, previous_hash=previous_hash)
        return replace(positioned, hash=positioned.compute_hash(previous_hash))

    def to_dict(self) -> dict[str, object]:
        data = self.payload()
        data["previous_hash"] = self.previous_hash
        data["hash"] = self.hash
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "AuditEvent":
        return cls(
            id=UUID(str(data["id"])),
            decision=Decision.from_dict(data["decision"]),
            latency_ms=float(data["latency_ms"]),
            cache_hit=bool(data["cache_hit"]),
            recorded_at=datetime.fromisoformat(str(data["recorded_at"])),
            caller_attributes=dict(data.get("caller_attributes") or {}),
            sequence=data.get("sequence"),
            previous_hash=data.get("previous_hash"),
            hash=data.get("hash"),
        )
