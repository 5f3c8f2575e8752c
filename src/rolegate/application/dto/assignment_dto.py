"""Assignment DTOs."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from rolegate.domain.entities import Assignment
from rolegate.domain.exceptions import ValidationError
from rolegate.domain.value_objects import Scope


def _parse_datetime(value: object, name: str) -> datetime | None:
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO 8601 datetime") from None
    if parsed.tzinfo is None:
        raise ValidationError(f"{name} must include a timezone offset")
    return parsed


@dataclass
class AssignmentInput:
    """Input for assigning a role to a user."""

    user_id: str
    role_id: str
    scope: Scope
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    reason: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "AssignmentInput":
        try:
            user_id = str(data["user_id"]).strip()
            role_id = str(data["role_id"]).strip()
        except KeyError as e:
            raise ValidationError(f"Missing required field: {e}") from None
        raw_scope = data.get("scope")
        if raw_scope is not None and not isinstance(raw_scope, Mapping):
            raise ValidationError("malformed scope: expected an object")
        return cls(
            user_id=user_id,
            role_id=role_id,
            scope=Scope.from_dict(raw_scope) if raw_scope else Scope.organization(),
            valid_from=_parse_datetime(data.get("valid_from"), "valid_from"),
            valid_until=_parse_datetime(data.get("valid_until"), "valid_until"),
            reason=data.get("reason"),
        )


def assignment_to_dict(assignment: Assignment) -> dict[str, object]:
    """Serialise an assignment for API responses."""
    return {
        "id": str(assignment.id),
        "user_id": assignment.user_id,
        "role_id": assignment.role_id,
        "scope": assignment.scope.to_dict(),
        "valid_from": assignment.valid_from.isoformat(),
        "valid_until": assignment.valid_until.isoformat() if assignment.valid_until else None,
        "created_by": assignment.created_by,
        "created_at": assignment.created_at.isoformat(),
        "reason": assignment.reason,
        "revoked_at": assignment.revoked_at.isoformat() if assignment.revoked_at else None,
        "revoked_by": assignment.revoked_by,
    }
