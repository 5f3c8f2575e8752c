"""Role lifecycle status."""

from enum import StrEnum


class RoleStatus(StrEnum):
    """Draft -> Published -> Archived."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"

    def can_transition_to(self, target: "RoleStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[RoleStatus, frozenset[RoleStatus]] = {
    RoleStatus.DRAFT: frozenset({RoleStatus.DRAFT, RoleStatus.PUBLISHED}),
    RoleStatus.PUBLISHED: frozenset({RoleStatus.ARCHIVED}),
    RoleStatus.ARCHIVED: frozenset(),
}
