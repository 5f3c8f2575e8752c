"""Permission entries and their flattened, provenance-tagged form."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from rolegate.domain.exceptions import ValidationError
from rolegate.domain.value_objects import Effect, PermissionAction, ResourceType


def _coerce(enum_type, value, what: str):
    try:
        return enum_type(value)
    except ValueError:
        raise ValidationError(f"unknown {what} {value!r}") from None


@dataclass(frozen=True)
class PermissionEntry:
    """Resource type + set of actions with explicit polarity.

    ``conditions`` are predicate ids; the entry only applies when every one
    of them holds for the request context.
    """

    resource_type: ResourceType
    actions: frozenset[PermissionAction]
    effect: Effect = Effect.ALLOW
    conditions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "resource_type", _coerce(ResourceType, self.resource_type, "resource type")
        )
        if isinstance(self.actions, str):
            raise ValidationError("actions must be a collection, not a string")
        actions = frozenset(_coerce(PermissionAction, a, "action") for a in self.actions)
        if not actions:
            raise ValidationError("permission entry needs at least one action")
        object.__setattr__(self, "actions", actions)
        object.__setattr__(self, "effect", _coerce(Effect, self.effect, "effect"))
        conditions = tuple(str(c).strip() for c in self.conditions)
        if any(not c for c in conditions):
            raise ValidationError("blank condition reference")
        object.__setattr__(self, "conditions", conditions)

    @classmethod
    def allow(cls, resource_type: str, actions: Iterable[str], *conditions: str) -> "PermissionEntry":
        return cls(resource_type, frozenset(actions), Effect.ALLOW, conditions)

    @classmethod
    def deny(cls, resource_type: str, actions: Iterable[str], *conditions: str) -> "PermissionEntry":
        return cls(resource_type, frozenset(actions), Effect.DENY, conditions)

    def covers(self, resource_type: ResourceType, action: PermissionAction) -> bool:
        return self.resource_type.covers(resource_type) and action in self.actions

    def to_dict(self) -> dict[str, object]:
        return {
            "resource_type": self.resource_type.value,
            "actions": sorted(a.value for a in self.actions),
            "effect": self.effect.value,
            "conditions": list(self.conditions),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "PermissionEntry":
        try:
            return cls(
                resource_type=data["resource_type"],
                actions=frozenset(data["actions"]),
                effect=data.get("effect", Effect.ALLOW),
                conditions=tuple(data.get("conditions") or ()),
            )
        except (KeyError, TypeError) as e:
            raise ValidationError(f"malformed permission entry: {e}") from None


@dataclass(frozen=True)
class ResolvedPermission:
    """One (resource, action) outcome of role expansion with its provenance."""

    resource_type: ResourceType
    action: PermissionAction
    effect: Effect
    source_role_id: str | None
    inherited: bool = False
    conditions: tuple[str, ...] = ()
    rule_id: str | None = None

    @property
    def key(self) -> tuple[ResourceType, PermissionAction]:
        return (self.resource_type, self.action)

    @property
    def provenance(self) -> str:
        if self.rule_id is not None:
            return f"rule:{self.rule_id}"
        if self.inherited:
            return f"inherited-from:{self.source_role_id}"
        return "direct"

    def matches(self, resource_type: ResourceType, action: PermissionAction) -> bool:
        return self.action is action and self.resource_type.covers(resource_type)
