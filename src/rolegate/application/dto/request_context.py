"""Request context evaluated by contextual rules."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class RequestContext:
    """Situational facts supplied by the caller for one check.

    ``now`` defaults to the resolver clock when omitted. ``flags`` are custom
    predicate ids the caller asserts as true; ``attributes`` is the identity
    attribute bag.
    """

    now: datetime | None = None
    location: str | None = None
    flags: frozenset[str] = frozenset()
    attributes: Mapping[str, str] = field(default_factory=dict)

    def at(self, now: datetime) -> "RequestContext":
        return RequestContext(
            now=now,
            location=self.location,
            flags=frozenset(self.flags),
            attributes=self.attributes,
        )
