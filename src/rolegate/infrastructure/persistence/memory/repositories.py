"""In-memory repositories for development and tests."""

from uuid import UUID

from rolegate.application.dto.audit_query import AuditQuery
from rolegate.domain.entities import Assignment, AuditEvent, Role
from rolegate.domain.exceptions import Conflict


class InMemoryRoleRepository:
    """In-memory role repository."""

    def __init__(self) -> None:
        self._by_id: dict[str, Role] = {}

    async def get_by_id(self, role_id: str) -> Role | None:
        return self._by_id.get(role_id)

    async def list_all(self) -> list[Role]:
        return sorted(self._by_id.values(), key=lambda r: (r.level, r.id))

    async def save(self, role: Role) -> Role:
        self._by_id[role.id] = role
        return role

    async def delete(self, role_id: str) -> None:
        self._by_id.pop(role_id, None)


class InMemoryAssignmentRepository:
    """In-memory assignment repository."""

    def __init__(self) -> None:
        self._by_id: dict[UUID, Assignment] = {}

    async def get_by_id(self, assignment_id: UUID) -> Assignment | None:
        return self._by_id.get(assignment_id)

    async def list_all(self) -> list[Assignment]:
        return sorted(self._by_id.values(), key=lambda a: (a.created_at, str(a.id)))

    async def list_by_user(self, user_id: str) -> list[Assignment]:
        return [a for a in await self.list_all() if a.user_id == user_id]

    async def list_by_role(self, role_id: str) -> list[Assignment]:
        return [a for a in await self.list_all() if a.role_id == role_id]

    async def create(self, assignment: Assignment) -> Assignment:
        if assignment.id in self._by_id:
            raise Conflict(f"assignment {assignment.id} already exists")
        self._by_id[assignment.id] = assignment
        return assignment

    async def update(self, assignment: Assignment) -> None:
        self._by_id[assignment.id] = assignment


class InMemoryAuditRepository:
    """In-memory append-only audit store ordered by sequence."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def append_batch(self, events: list[AuditEvent]) -> None:
        self.events.extend(events)

    async def last(self) -> AuditEvent | None:
        return self.events[-1] if self.events else None

    async def list(self, query: AuditQuery) -> tuple[list[AuditEvent], str | None]:
        after = query.after_sequence
        matching = [e for e in self.events if e.sequence > after and query.matches(e)]
        page = matching[: query.limit + 1]
        items = page[: query.limit]
        next_cursor = str(items[-1].sequence) if len(page) > query.limit else None
        return items, next_cursor
