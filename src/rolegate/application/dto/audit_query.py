"""Audit log query filters and result page."""

from dataclasses import dataclass, field
from datetime import datetime

from rolegate.domain.entities import AuditEvent
from rolegate.domain.value_objects import Effect


@dataclass
class AuditQuery:
    """Filters for audit log reads. ``cursor`` is the last sequence seen."""

    user_id: str | None = None
    outcome: Effect | None = None
    since: datetime | None = None
    until: datetime | None = None
    cursor: str | None = None
    limit: int = 50

    def matches(self, event: AuditEvent) -> bool:
        decision = event.decision
        if self.user_id is not None and decision.user_id != self.user_id:
            return False
        if self.outcome is not None and decision.outcome is not self.outcome:
            return False
        if self.since is not None and decision.timestamp < self.since:
            return False
        if self.until is not None and decision.timestamp > self.until:
            return False
        return True

    @property
    def after_sequence(self) -> int:
        if not self.cursor:
            return 0
        try:
            return int(self.cursor)
        except ValueError:
            return 0


@dataclass
class AuditPage:
    """One page of audit events."""

    items: list[AuditEvent] = field(default_factory=list)
    next_cursor: str | None = None
