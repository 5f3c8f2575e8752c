"""Decision entity - immutable result of one authorization check."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from rolegate.domain.value_objects import Effect, ScopeContext


class DecisionReason(StrEnum):
    """Reasons a resolver attaches to its decisions."""

    GRANTED = "granted"
    EXPLICIT_DENY = "explicit deny"
    CONTEXTUAL_DENY = "denied by contextual rule"
    NO_MATCHING_GRANT = "no matching grant"
    EXPIRED_ASSIGNMENT = "expired assignment"
    PENDING_ASSIGNMENT = "assignment not yet active"
    SCOPE_NOT_COVERED = "scope not covered"
    MALFORMED_REQUEST = "malformed request"
    TIMEOUT = "resolution timeout"
    ERROR = "resolution error"


@dataclass(frozen=True)
class Decision:
    """Allow/Deny outcome with the rule that produced it."""

    user_id: str
    resource_type: str
    action: str
    scope_context: ScopeContext
    outcome: Effect
    reason: str
    matched_rule: str | None
    timestamp: datetime

    @property
    def allowed(self) -> bool:
        return self.outcome is Effect.ALLOW

    def to_dict(self) -> dict[str, object]:
        return {
            "user_id": self.user_id,
            "resource_type": self.resource_type,
            "action": self.action,
            "scope_context": self.scope_context.as_dict(),
            "outcome": self.outcome.value,
            "reason": self.reason,
            "matched_rule": self.matched_rule,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Decision":
        return cls(
            user_id=str(data["user_id"]),
            resource_type=str(data["resource_type"]),
            action=str(data["action"]),
            scope_context=ScopeContext.from_mapping(data.get("scope_context") or {}),
            outcome=Effect(data["outcome"]),
            reason=str(data["reason"]),
            matched_rule=data.get("matched_rule"),
            timestamp=datetime.fromisoformat(str(data["timestamp"])),
        )
