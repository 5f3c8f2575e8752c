"""Assignment repository port."""

from typing import Protocol
from uuid import UUID

from rolegate.domain.entities import Assignment


class AssignmentRepository(Protocol):
    """Port for assignment persistence, indexed by user and by role."""

    async def get_by_id(self, assignment_id: UUID) -> Assignment | None: ...

    async def list_all(self) -> list[Assignment]: ...

    async def list_by_user(self, user_id: str) -> list[Assignment]: ...

    async def list_by_role(self, role_id: str) -> list[Assignment]: ...

    async def create(self, assignment: Assignment) -> Assignment: ...

    async def update(self, assignment: Assignment) -> None: ...
