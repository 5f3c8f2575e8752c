"""Role repository port."""

from typing import Protocol

from rolegate.domain.entities import Role


class RoleRepository(Protocol):
    """Port for role persistence (adjacency id -> parent_id plus permissions)."""

    async def get_by_id(self, role_id: str) -> Role | None: ...

    async def list_all(self) -> list[Role]: ...

    async def save(self, role: Role) -> Role: ...

    async def delete(self, role_id: str) -> None: ...
