"""Assignment entity - user bound to a role within a scope and time window."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from rolegate.domain.exceptions import ValidationError
from rolegate.domain.value_objects import Scope


@dataclass(frozen=True)
class Assignment:
    """Active iff not revoked and now is within [valid_from, valid_until]."""

    id: UUID
    user_id: str
    role_id: str
    scope: Scope
    valid_from: datetime
    valid_until: datetime | None = None
    created_by: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    reason: str | None = None
    revoked_at: datetime | None = None
    revoked_by: str | None = None

    def __post_init__(self) -> None:
        if not self.user_id or not self.user_id.strip():
            raise ValidationError("assignment user_id is required")
        if not self.role_id or not self.role_id.strip():
            raise ValidationError("assignment role_id is required")
        if self.valid_from.tzinfo is None or (
            self.valid_until is not None and self.valid_until.tzinfo is None
        ):
            raise ValidationError("validity window must use timezone-aware datetimes")
        if self.valid_until is not None and self.valid_until < self.valid_from:
            raise ValidationError("valid_until must not be before valid_from")

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_active(self, now: datetime) -> bool:
        if self.is_revoked:
            return False
        if now < self.valid_from:
            return False
        return self.valid_until is None or now <= self.valid_until

    def is_expired(self, now: datetime) -> bool:
        return not self.is_revoked and self.valid_until is not None and now > self.valid_until

    def is_pending(self, now: datetime) -> bool:
        return not self.is_revoked and now < self.valid_from

    def is_live(self, now: datetime) -> bool:
        """Active now or scheduled to become active."""
        return self.is_active(now) or self.is_pending(now)
