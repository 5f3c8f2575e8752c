"""Assignment store - user to role bindings with scope and validity window."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from uuid import UUID, uuid4

from rolegate.application.engine.events import AssignmentsChanged, InvalidationBus
from rolegate.application.engine.role_graph import RoleGraph
from rolegate.domain.entities import Assignment
from rolegate.domain.exceptions import Conflict, NotFound, ValidationError
from rolegate.domain.value_objects import Scope

logger = logging.getLogger(__name__)


def _overlaps(a: Assignment, b: Assignment) -> bool:
    a_end = a.valid_until or datetime.max.replace(tzinfo=UTC)
    b_end = b.valid_until or datetime.max.replace(tzinfo=UTC)
    return a.valid_from <= b_end and b.valid_from <= a_end


@dataclass
class _KeyLock:
    lock: asyncio.Lock
    holders: int = 0


class AssignmentStore:
    """In-memory index of assignments, written through to storage.

    Writes lock the affected role and user; readers take the current tuple
    for a user or role without locking.
    """

    def __init__(
        self,
        unit_of_work_factory: type,
        role_graph: RoleGraph,
        bus: InvalidationBus | None = None,
        clock: Callable[[], datetime] | None = None,
        enforce_unique: bool = True,
    ) -> None:
        self._uow_factory = unit_of_work_factory
        self._roles = role_graph
        self._bus = bus or InvalidationBus()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._enforce_unique = enforce_unique
        self._by_id: dict[UUID, Assignment] = {}
        self._by_user: dict[str, tuple[Assignment, ...]] = {}
        self._by_role: dict[str, tuple[Assignment, ...]] = {}
        self._locks: dict[str, _KeyLock] = {}

    async def load(self) -> None:
        """Rebuild the index from storage."""
        async with self._uow_factory() as uow:
            assignments = await uow.assignments.list_all()
        by_user: dict[str, list[Assignment]] = {}
        by_role: dict[str, list[Assignment]] = {}
        for a in assignments:
            by_user.setdefault(a.user_id, []).append(a)
            by_role.setdefault(a.role_id, []).append(a)
        self._by_id = {a.id: a for a in assignments}
        self._by_user = {k: tuple(v) for k, v in by_user.items()}
        self._by_role = {k: tuple(v) for k, v in by_role.items()}
        self._bus.publish(AssignmentsChanged(frozenset(by_user), frozenset(by_role)))
        logger.info("Loaded %d assignments", len(assignments))

    @asynccontextmanager
    async def _lock(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key``; it is forgotten once nobody holds or awaits it."""
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyLock(asyncio.Lock())
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[key]

    def _index(self, assignment: Assignment) -> None:
        self._by_id[assignment.id] = assignment
        self._by_user[assignment.user_id] = tuple(
            a for a in self._by_user.get(assignment.user_id, ()) if a.id != assignment.id
        ) + (assignment,)
        self._by_role[assignment.role_id] = tuple(
            a for a in self._by_role.get(assignment.role_id, ()) if a.id != assignment.id
        ) + (assignment,)

    # --- writes ---

    async def assign(
        self,
        user_id: str,
        role_id: str,
        scope: Scope | None = None,
        valid_from: datetime | None = None,
        valid_until: datetime | None = None,
        created_by: str | None = None,
        reason: str | None = None,
    ) -> Assignment:
        """Bind ``user_id`` to ``role_id``.

        Raises NotFound for an unknown role, ValidationError for an archived
        role or a malformed window, Conflict for an overlapping duplicate or
        when the role's assignment cap is reached.
        """
        now = self._clock()
        assignment = Assignment(
            id=uuid4(),
            user_id=user_id,
            role_id=role_id,
            scope=scope or Scope.organization(),
            valid_from=valid_from or now,
            valid_until=valid_until,
            created_by=created_by,
            created_at=now,
            reason=reason,
        )
        async with self._lock(f"role:{role_id}"), self._lock(f"user:{user_id}"):
            role = self._roles.get(role_id)
            if role.is_archived:
                raise ValidationError(f"role {role_id} is archived and cannot be assigned")
            if self._enforce_unique:
                for existing in self._by_user.get(user_id, ()):
                    if (
                        existing.role_id == role_id
                        and existing.scope == assignment.scope
                        and existing.is_live(now)
                        and _overlaps(existing, assignment)
                    ):
                        raise Conflict(
                            f"user {user_id} already holds role {role_id} in this scope "
                            f"(assignment {existing.id})"
                        )
            if role.max_assignments is not None:
                live = [a for a in self._by_role.get(role_id, ()) if a.is_live(now)]
                if len(live) >= role.max_assignments:
                    raise Conflict(
                        f"role {role_id} reached its limit of {role.max_assignments} assignments"
                    )
            async with self._uow_factory() as uow:
                await uow.assignments.create(assignment)
            self._index(assignment)
        self._bus.publish(AssignmentsChanged(frozenset({user_id}), frozenset({role_id})))
        logger.info(
            "Assigned role %s to user %s (%s) as %s",
            role_id,
            user_id,
            assignment.scope.type.value,
            assignment.id,
        )
        return assignment

    async def revoke(self, assignment_id: UUID, revoked_by: str | None = None) -> Assignment:
        current = self.get(assignment_id)
        async with self._lock(f"role:{current.role_id}"), self._lock(f"user:{current.user_id}"):
            current = self.get(assignment_id)
            if current.is_revoked:
                raise Conflict(f"assignment {assignment_id} is already revoked")
            revoked = replace(current, revoked_at=self._clock(), revoked_by=revoked_by)
            async with self._uow_factory() as uow:
                await uow.assignments.update(revoked)
            self._index(revoked)
        self._bus.publish(
            AssignmentsChanged(frozenset({revoked.user_id}), frozenset({revoked.role_id}))
        )
        logger.info("Revoked assignment %s (user %s)", assignment_id, revoked.user_id)
        return revoked

    async def delete_role(self, role_id: str) -> None:
        """Delete ``role_id`` from the graph if no live assignment holds it.

        Runs under the role's lock, so no assignment to it can be created
        between the check and the delete.
        """
        async with self._lock(f"role:{role_id}"):
            now = self._clock()
            await self._roles.delete_role(
                role_id,
                in_use=lambda rid: any(a.is_live(now) for a in self._by_role.get(rid, ())),
            )

    # --- reads ---

    def get(self, assignment_id: UUID) -> Assignment:
        assignment = self._by_id.get(assignment_id)
        if assignment is None:
            raise NotFound("Assignment", assignment_id)
        return assignment

    def assignments_for(self, user_id: str) -> list[Assignment]:
        return list(self._by_user.get(user_id, ()))

    async def active_assignments_for(
        self, user_id: str, now: datetime | None = None
    ) -> list[Assignment]:
        moment = now or self._clock()
        return [a for a in self._by_user.get(user_id, ()) if a.is_active(moment)]

    def assignments_by_role(self, role_id: str, include_revoked: bool = False) -> list[Assignment]:
        """Assignments bound to ``role_id``, for impact analysis."""
        return [
            a
            for a in self._by_role.get(role_id, ())
            if include_revoked or not a.is_revoked
        ]

    def list_assignments(
        self,
        user_id: str | None = None,
        role_id: str | None = None,
        include_revoked: bool = False,
    ) -> list[Assignment]:
        if user_id is not None:
            items = self._by_user.get(user_id, ())
            if role_id is not None:
                items = tuple(a for a in items if a.role_id == role_id)
        elif role_id is not None:
            items = self._by_role.get(role_id, ())
        else:
            items = tuple(self._by_id.values())
        return sorted(
            (a for a in items if include_revoked or not a.is_revoked),
            key=lambda a: (a.created_at, str(a.id)),
        )
