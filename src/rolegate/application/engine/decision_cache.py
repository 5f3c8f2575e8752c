"""Decision cache - TTL map of resolved decisions with explicit invalidation."""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from rolegate.application.engine.events import (
    AssignmentsChanged,
    InvalidationBus,
    InvalidationEvent,
    RolesChanged,
)
from rolegate.domain.entities import Decision

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5.0


@dataclass(frozen=True)
class CacheKey:
    """(user, resource type, action, scope fingerprint)."""

    user_id: str
    resource_type: str
    action: str
    scope: str


@dataclass(frozen=True)
class _Entry:
    decision: Decision
    expires_at: float
    role_ids: frozenset[str]


class DecisionCache:
    """Memoises decisions for at most ``ttl_seconds``.

    Reads never take the lock; it only guards the reverse indexes used by
    invalidation. An entry removed while a read is in flight simply causes
    the next read to miss and recompute.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        bus: InvalidationBus | None = None,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 100_000,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[CacheKey, _Entry] = {}
        self._by_role: dict[str, set[CacheKey]] = {}
        self._by_user: dict[str, set[CacheKey]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        if bus is not None:
            bus.subscribe(self._on_event)

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey) -> Decision | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.expires_at <= self._clock():
            with self._lock:
                if self._entries.get(key) is entry:
                    self._remove(key)
            self.misses += 1
            return None
        self.hits += 1
        return entry.decision

    def put(
        self,
        key: CacheKey,
        decision: Decision,
        role_ids: Iterable[str] = (),
        ttl_seconds: float | None = None,
    ) -> None:
        """Store ``decision``; ``ttl_seconds`` can only shorten the default TTL."""
        ttl = self._ttl if ttl_seconds is None else min(ttl_seconds, self._ttl)
        if ttl <= 0:
            return
        roles = frozenset(role_ids)
        with self._lock:
            if key in self._entries:
                self._remove(key)
            elif len(self._entries) >= self._max_entries:
                self._evict()
            self._entries[key] = _Entry(decision, self._clock() + ttl, roles)
            self._by_user.setdefault(key.user_id, set()).add(key)
            for role_id in roles:
                self._by_role.setdefault(role_id, set()).add(key)

    def _remove(self, key: CacheKey) -> bool:
        """Drop ``key`` and its reverse index entries. Caller holds the lock."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        _discard(self._by_user, key.user_id, key)
        for role_id in entry.role_ids:
            _discard(self._by_role, role_id, key)
        return True

    def _evict(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if e.expires_at <= now]:
            self._remove(key)
        if len(self._entries) >= self._max_entries:
            # dicts keep insertion order; drop the oldest tenth
            for key in list(self._entries)[: max(1, self._max_entries // 10)]:
                self._remove(key)

    def invalidate(self, user_id: str) -> int:
        """Drop every entry for ``user_id``."""
        with self._lock:
            return self._drop(self._by_user.get(user_id, set()))

    def invalidate_role(self, role_id: str) -> int:
        """Drop every entry whose computation depended on ``role_id``."""
        with self._lock:
            return self._drop(self._by_role.get(role_id, set()))

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()
            self._by_role.clear()
            self._by_user.clear()

    def _drop(self, keys: set[CacheKey]) -> int:
        return sum(self._remove(key) for key in list(keys))

    def _on_event(self, event: InvalidationEvent) -> None:
        if isinstance(event, RolesChanged):
            dropped = sum(self.invalidate_role(r) for r in event.role_ids)
        elif isinstance(event, AssignmentsChanged):
            dropped = sum(self.invalidate(u) for u in event.user_ids)
        else:
            return
        if dropped:
            logger.debug("Invalidated %d cached decisions after %r", dropped, event)

    def stats(self) -> dict[str, int | float]:
        return {
            "entries": len(self._entries),
            "indexed_users": len(self._by_user),
            "indexed_roles": len(self._by_role),
            "hits": self.hits,
            "misses": self.misses,
            "ttl_seconds": self._ttl,
        }


def _discard(index: dict[str, set[CacheKey]], name: str, key: CacheKey) -> None:
    keys = index.get(name)
    if keys is None:
        return
    keys.discard(key)
    if not keys:
        del index[name]
