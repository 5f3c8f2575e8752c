"""Invalidation events published after role and assignment writes."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RolesChanged:
    """Roles whose effective permissions may differ after a write."""

    role_ids: frozenset[str]


@dataclass(frozen=True)
class AssignmentsChanged:
    """Users (and the roles they were bound to) touched by an assignment write."""

    user_ids: frozenset[str]
    role_ids: frozenset[str] = frozenset()


InvalidationEvent = RolesChanged | AssignmentsChanged
Handler = Callable[[InvalidationEvent], None]


class InvalidationBus:
    """Synchronous publish/subscribe channel between writers and caches."""

    def __init__(self) -> None:
        self._subscribers: list[Handler] = []
        self.version = 0

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register ``handler``; returns a callable that unsubscribes it."""
        self._subscribers.append(handler)

        def unsubscribe() -> None:
            if handler in self._subscribers:
                self._subscribers.remove(handler)

        return unsubscribe

    def publish(self, event: InvalidationEvent) -> None:
        self.version += 1
        for handler in list(self._subscribers):
            try:
                handler(event)
            except Exception:
                # Entries stay bounded by the cache TTL.
                logger.exception("Invalidation handler failed for %r", event)
