"""Contextual rules - runtime conditions that grant or revoke permissions."""

from collections.abc import Mapping
from dataclasses import dataclass, field

from rolegate.domain.entities.permission import PermissionEntry
from rolegate.domain.exceptions import ValidationError
from rolegate.domain.value_objects import Effect, TimeWindow


@dataclass(frozen=True)
class RuleCondition:
    """Holds when every part that is set holds; ``negate`` inverts the result."""

    time_window: TimeWindow | None = None
    locations: frozenset[str] = frozenset()
    predicate: str | None = None
    attributes: Mapping[str, str] = field(default_factory=dict)
    negate: bool = False

    def __post_init__(self) -> None:
        if (
            self.time_window is None
            and not self.locations
            and not self.predicate
            and not self.attributes
        ):
            raise ValidationError("contextual rule condition is empty")
        object.__setattr__(self, "locations", frozenset(self.locations))

    def to_dict(self) -> dict[str, object]:
        return {
            "time_window": self.time_window.to_dict() if self.time_window else None,
            "locations": sorted(self.locations),
            "predicate": self.predicate,
            "attributes": dict(self.attributes),
            "negate": self.negate,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "RuleCondition":
        window = data.get("time_window")
        return cls(
            time_window=(
                TimeWindow.parse(
                    window["start"],
                    window["end"],
                    tuple(window.get("weekdays") or ()),
                    window.get("timezone"),
                )
                if window
                else None
            ),
            locations=frozenset(data.get("locations") or ()),
            predicate=data.get("predicate"),
            attributes=dict(data.get("attributes") or {}),
            negate=bool(data.get("negate", False)),
        )


@dataclass(frozen=True)
class ContextualRule:
    """When ``condition`` holds, grant ``additional_permissions`` and revoke
    ``denied_permissions``."""

    id: str
    condition: RuleCondition
    additional_permissions: tuple[PermissionEntry, ...] = ()
    denied_permissions: tuple[PermissionEntry, ...] = ()

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValidationError("contextual rule id is required")
        if not self.additional_permissions and not self.denied_permissions:
            raise ValidationError(f"contextual rule {self.id} grants and denies nothing")
        if any(p.effect is not Effect.ALLOW for p in self.additional_permissions):
            raise ValidationError(f"contextual rule {self.id}: additional permissions must allow")
        object.__setattr__(self, "additional_permissions", tuple(self.additional_permissions))
        object.__setattr__(self, "denied_permissions", tuple(self.denied_permissions))

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "condition": self.condition.to_dict(),
            "additional_permissions": [p.to_dict() for p in self.additional_permissions],
            "denied_permissions": [p.to_dict() for p in self.denied_permissions],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "ContextualRule":
        try:
            return cls(
                id=str(data["id"]),
                condition=RuleCondition.from_dict(data["condition"]),
                additional_permissions=tuple(
                    PermissionEntry.from_dict(p) for p in data.get("additional_permissions") or ()
                ),
                denied_permissions=tuple(
                    PermissionEntry.from_dict(p) for p in data.get("denied_permissions") or ()
                ),
            )
        except (KeyError, TypeError) as e:
            raise ValidationError(f"malformed contextual rule: {e}") from None
