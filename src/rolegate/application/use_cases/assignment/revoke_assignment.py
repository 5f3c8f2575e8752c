"""Revoke assignment use case."""

from uuid import UUID

from rolegate.application.engine.assignment_store import AssignmentStore
from rolegate.application.ports import PermissionChecker
from rolegate.domain.entities import Assignment
from rolegate.domain.exceptions import PermissionDenied
from rolegate.domain.value_objects import PermissionAction, ResourceType


class RevokeAssignmentUseCase:
    """Revoke an assignment; it stays on record with its revocation time."""

    def __init__(
        self,
        assignment_store: AssignmentStore,
        permission_checker: PermissionChecker,
    ) -> None:
        self._assignments = assignment_store
        self._permission_checker = permission_checker

    async def execute(self, actor_id: str, assignment_id: UUID) -> Assignment:
        """Revoke assignment. Actor must have users:assign."""
        allowed = await self._permission_checker.check(
            actor_id, ResourceType.USERS, PermissionAction.ASSIGN
        )
        if not allowed:
            raise PermissionDenied("User may not revoke assignments")
        return await self._assignments.revoke(assignment_id, revoked_by=actor_id)
