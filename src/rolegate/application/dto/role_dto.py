"""Role DTOs."""

from collections.abc import Mapping
from dataclasses import dataclass

from rolegate.domain.entities import ContextualRule, PermissionEntry, Role
from rolegate.domain.exceptions import ValidationError


def _permissions(raw: object) -> tuple[PermissionEntry, ...]:
    if not isinstance(raw, list):
        raise ValidationError("permissions must be a list")
    return tuple(PermissionEntry.from_dict(p) for p in raw)


def _rules(raw: object) -> tuple[ContextualRule, ...]:
    if not isinstance(raw, list):
        raise ValidationError("contextual_rules must be a list")
    return tuple(ContextualRule.from_dict(r) for r in raw)


def _max_assignments(raw: object) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValidationError("max_assignments must be an integer")
    return raw


@dataclass
class RoleInput:
    """Input for creating a role."""

    id: str
    name: str
    description: str = ""
    parent_id: str | None = None
    permissions: tuple[PermissionEntry, ...] = ()
    contextual_rules: tuple[ContextualRule, ...] = ()
    max_assignments: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "RoleInput":
        try:
            return cls(
                id=str(data["id"]).strip(),
                name=str(data.get("name") or data["id"]).strip(),
                description=str(data.get("description") or ""),
                parent_id=data.get("parent_id") or None,
                permissions=_permissions(data.get("permissions") or []),
                contextual_rules=_rules(data.get("contextual_rules") or []),
                max_assignments=_max_assignments(data.get("max_assignments")),
            )
        except KeyError as e:
            raise ValidationError(f"Missing required field: {e}") from None


@dataclass
class RoleUpdate:
    """Partial update of a draft role; ``None`` leaves a field unchanged.

    ``parent_set`` distinguishes "clear the parent" from "keep the parent".
    """

    name: str | None = None
    description: str | None = None
    parent_id: str | None = None
    parent_set: bool = False
    permissions: tuple[PermissionEntry, ...] | None = None
    contextual_rules: tuple[ContextualRule, ...] | None = None
    max_assignments: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "RoleUpdate":
        return cls(
            name=str(data["name"]).strip() if data.get("name") is not None else None,
            description=(
                str(data["description"]) if data.get("description") is not None else None
            ),
            parent_id=data.get("parent_id") or None,
            parent_set="parent_id" in data,
            permissions=(
                _permissions(data["permissions"]) if data.get("permissions") is not None else None
            ),
            contextual_rules=(
                _rules(data["contextual_rules"])
                if data.get("contextual_rules") is not None
                else None
            ),
            max_assignments=_max_assignments(data.get("max_assignments")),
        )


def role_to_dict(role: Role) -> dict[str, object]:
    """Serialise a role for API responses."""
    return {
        "id": role.id,
        "name": role.name,
        "description": role.description,
        "parent_id": role.parent_id,
        "level": role.level,
        "status": role.status.value,
        "version": role.version,
        "is_system_role": role.is_system_role,
        "max_assignments": role.max_assignments,
        "permissions": [p.to_dict() for p in role.permissions],
        "contextual_rules": [r.to_dict() for r in role.contextual_rules],
        "created_by": role.created_by,
        "created_at": role.created_at.isoformat(),
        "updated_at": role.updated_at.isoformat(),
    }
