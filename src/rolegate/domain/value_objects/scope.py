"""Organizational scopes for assignments and permission requests."""

import hashlib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum

from rolegate.domain.exceptions import ValidationError


class ScopeType(StrEnum):
    """Scope levels, broadest first."""

    ORGANIZATION = "organization"
    DEPARTMENT = "department"
    PROJECT = "project"
    PERSONAL = "personal"

    @property
    def rank(self) -> int:
        return list(ScopeType).index(self)


def _parse_scope_type(value: object) -> ScopeType:
    try:
        return ScopeType(value)
    except ValueError:
        raise ValidationError(f"malformed scope: unknown scope type {value!r}") from None


@dataclass(frozen=True)
class Scope:
    """Boundary an assignment is restricted to.

    An organization scope without identifiers covers every organization.
    Narrower scopes must name at least one identifier.
    """

    type: ScopeType
    values: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", _parse_scope_type(self.type))
        values = frozenset(str(v).strip() for v in self.values)
        if "" in values:
            raise ValidationError("malformed scope: blank scope identifier")
        if not values and self.type is not ScopeType.ORGANIZATION:
            raise ValidationError(
                f"malformed scope: {self.type} scope requires at least one identifier"
            )
        object.__setattr__(self, "values", values)

    @classmethod
    def organization(cls, *ids: str) -> "Scope":
        return cls(ScopeType.ORGANIZATION, frozenset(ids))

    @classmethod
    def of(cls, scope_type: ScopeType | str, ids: Iterable[str]) -> "Scope":
        return cls(_parse_scope_type(scope_type), frozenset(ids))

    def contains(self, context: "ScopeContext") -> bool:
        """True if a request made in ``context`` falls inside this scope.

        The request must name an identifier at this scope's level that is one
        of the scope's identifiers. Requests that do not name that level are
        not contained (fail-closed), except for the unbounded organization
        scope which contains everything.
        """
        if not self.values:
            return True
        requested = context.get(self.type)
        return requested is not None and requested in self.values

    def to_dict(self) -> dict[str, object]:
        return {"type": self.type.value, "values": sorted(self.values)}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Scope":
        try:
            raw_values = data.get("values") or []
            if isinstance(raw_values, str):
                raw_values = [raw_values]
            return cls.of(data["type"], [str(v) for v in raw_values])
        except (KeyError, TypeError) as e:
            raise ValidationError(f"malformed scope: {e}") from None


@dataclass(frozen=True)
class ScopeContext:
    """Scope a permission request is made in, e.g. {"department": "08"}."""

    entries: tuple[tuple[ScopeType, str], ...] = ()

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str] | None) -> "ScopeContext":
        if not mapping:
            return cls()
        entries: list[tuple[ScopeType, str]] = []
        for key, value in mapping.items():
            scope_type = _parse_scope_type(key)
            ident = str(value).strip() if value is not None else ""
            if not ident:
                raise ValidationError(f"malformed scope: blank identifier for {scope_type}")
            entries.append((scope_type, ident))
        entries.sort(key=lambda e: e[0].rank)
        return cls(tuple(entries))

    def get(self, scope_type: ScopeType) -> str | None:
        for key, value in self.entries:
            if key is scope_type:
                return value
        return None

    @property
    def level(self) -> ScopeType:
        """Narrowest level named by the request (organization if empty)."""
        if not self.entries:
            return ScopeType.ORGANIZATION
        return self.entries[-1][0]

    def fingerprint(self) -> str:
        canonical = ";".join(f"{k.value}={v}" for k, v in self.entries)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]

    def as_dict(self) -> dict[str, str]:
        return {k.value: v for k, v in self.entries}
