"""PostgreSQL role repository implementation."""

from psycopg import AsyncConnection
from psycopg.types.json import Jsonb

from rolegate.domain.entities import ContextualRule, PermissionEntry, Role

_COLUMNS = (
    "id, name, description, parent_id, permissions, contextual_rules, is_system_role, "
    "level, status, version, max_assignments, created_by, created_at, updated_at"
)


def _row_to_role(r: tuple) -> Role:
    return Role(
        id=r[0],
        name=r[1],
        description=r[2] or "",
        parent_id=r[3],
        permissions=tuple(PermissionEntry.from_dict(p) for p in r[4] or ()),
        contextual_rules=tuple(ContextualRule.from_dict(c) for c in r[5] or ()),
        is_system_role=r[6],
        level=r[7],
        status=r[8],
        version=r[9],
        max_assignments=r[10],
        created_by=r[11],
        created_at=r[12],
        updated_at=r[13],
    )


class PostgresRoleRepository:
    """Role repository implementation.

    Permissions and contextual rules are stored as jsonb on the role row;
    the hierarchy is the ``parent_id`` adjacency column.
    """

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    async def get_by_id(self, role_id: str) -> Role | None:
        """Get role by id."""
        cur = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM role WHERE id = %s",
            (role_id,),
        )
        r = await cur.fetchone()
        if not r:
            return None
        return _row_to_role(r)

    async def list_all(self) -> list[Role]:
        """List all roles."""
        cur = await self._conn.execute(f"SELECT {_COLUMNS} FROM role ORDER BY level, id")
        rows = await cur.fetchall()
        return [_row_to_role(r) for r in rows]

    async def save(self, role: Role) -> Role:
        """Insert or replace role."""
        await self._conn.execute(
            f"INSERT INTO role ({_COLUMNS}) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s) "
            "ON CONFLICT (id) DO UPDATE SET name=EXCLUDED.name, "
            "description=EXCLUDED.description, parent_id=EXCLUDED.parent_id, "
            "permissions=EXCLUDED.permissions, contextual_rules=EXCLUDED.contextual_rules, "
            "level=EXCLUDED.level, status=EXCLUDED.status, version=EXCLUDED.version, "
            "max_assignments=EXCLUDED.max_assignments, updated_at=EXCLUDED.updated_at",
            (
                role.id,
                role.name,
                role.description,
                role.parent_id,
                Jsonb([p.to_dict() for p in role.permissions]),
                Jsonb([c.to_dict() for c in role.contextual_rules]),
                role.is_system_role,
                role.level,
                role.status.value,
                role.version,
                role.max_assignments,
                role.created_by,
                role.created_at,
                role.updated_at,
            ),
        )
        return role

    async def delete(self, role_id: str) -> None:
        """Delete role."""
        await self._conn.execute("DELETE FROM role WHERE id = %s", (role_id,))
