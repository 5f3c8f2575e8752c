"""PostgreSQL assignment repository implementation."""

from uuid import UUID

from psycopg import AsyncConnection
from psycopg.types.json import Jsonb

from rolegate.domain.entities import Assignment
from rolegate.domain.value_objects import Scope

_COLUMNS = (
    "id, user_id, role_id, scope_type, scope_values, valid_from, valid_until, "
    "created_by, created_at, reason, revoked_at, revoked_by"
)


def _row_to_assignment(r: tuple) -> Assignment:
    return Assignment(
        id=r[0],
        user_id=r[1],
        role_id=r[2],
        scope=Scope.of(r[3], r[4] or ()),
        valid_from=r[5],
        valid_until=r[6],
        created_by=r[7],
        created_at=r[8],
        reason=r[9],
        revoked_at=r[10],
        revoked_by=r[11],
    )


class PostgresAssignmentRepository:
    """Assignment repository implementation."""

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    async def get_by_id(self, assignment_id: UUID) -> Assignment | None:
        """Get assignment by id."""
        cur = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM assignment WHERE id = %s",
            (assignment_id,),
        )
        r = await cur.fetchone()
        if not r:
            return None
        return _row_to_assignment(r)

    async def list_all(self) -> list[Assignment]:
        """List all assignments, revoked ones included."""
        cur = await self._conn.execute(f"SELECT {_COLUMNS} FROM assignment ORDER BY created_at, id")
        rows = await cur.fetchall()
        return [_row_to_assignment(r) for r in rows]

    async def list_by_user(self, user_id: str) -> list[Assignment]:
        """List assignments of user."""
        cur = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM assignment WHERE user_id = %s ORDER BY created_at, id",
            (user_id,),
        )
        rows = await cur.fetchall()
        return [_row_to_assignment(r) for r in rows]

    async def list_by_role(self, role_id: str) -> list[Assignment]:
        """List assignments bound to role."""
        cur = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM assignment WHERE role_id = %s ORDER BY created_at, id",
            (role_id,),
        )
        rows = await cur.fetchall()
        return [_row_to_assignment(r) for r in rows]

    async def create(self, assignment: Assignment) -> Assignment:
        """Create assignment."""
        await self._conn.execute(
            f"INSERT INTO assignment ({_COLUMNS}) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)",
            (
                assignment.id,
                assignment.user_id,
                assignment.role_id,
                assignment.scope.type.value,
                Jsonb(sorted(assignment.scope.values)),
                assignment.valid_from,
                assignment.valid_until,
                assignment.created_by,
                assignment.created_at,
                assignment.reason,
                assignment.revoked_at,
                assignment.revoked_by,
            ),
        )
        return assignment

    async def update(self, assignment: Assignment) -> None:
        """Update validity window and revocation of assignment."""
        await self._conn.execute(
            "UPDATE assignment SET valid_from=%s, valid_until=%s, revoked_at=%s, revoked_by=%s "
            "WHERE id=%s",
            (
                assignment.valid_from,
                assignment.valid_until,
                assignment.revoked_at,
                assignment.revoked_by,
                assignment.id,
            ),
        )
