"""Role entity for RBAC."""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from rolegate.domain.entities.contextual_rule import ContextualRule
from rolegate.domain.entities.permission import PermissionEntry
from rolegate.domain.exceptions import ValidationError
from rolegate.domain.value_objects import RoleStatus


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Role:
    """Role with its own permissions, an optional parent and a lifecycle status.

    ``level`` is derived by the role graph (root roles are level 0) and is
    not trusted from input.
    """

    id: str
    name: str
    description: str = ""
    parent_id: str | None = None
    permissions: tuple[PermissionEntry, ...] = ()
    contextual_rules: tuple[ContextualRule, ...] = ()
    is_system_role: bool = False
    level: int = 0
    status: RoleStatus = RoleStatus.DRAFT
    version: int = 1
    max_assignments: int | None = None
    created_by: str = "system"
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValidationError("role id is required")
        if not self.name or not self.name.strip():
            raise ValidationError("role name is required")
        if self.parent_id is not None and self.parent_id == self.id:
            raise ValidationError("cycle detected: role cannot inherit from itself")
        if self.max_assignments is not None and self.max_assignments < 1:
            raise ValidationError("max_assignments must be positive")
        try:
            object.__setattr__(self, "status", RoleStatus(self.status))
        except ValueError:
            raise ValidationError(f"unknown role status {self.status!r}") from None
        object.__setattr__(self, "permissions", tuple(self.permissions))
        object.__setattr__(self, "contextual_rules", tuple(self.contextual_rules))
        rule_ids = [r.id for r in self.contextual_rules]
        if len(rule_ids) != len(set(rule_ids)):
            raise ValidationError(f"role {self.id}: duplicate contextual rule ids")

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def is_archived(self) -> bool:
        return self.status is RoleStatus.ARCHIVED
