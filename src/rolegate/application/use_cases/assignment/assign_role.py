"""Assign role use case."""

from rolegate.application.dto.assignment_dto import AssignmentInput
from rolegate.application.engine.assignment_store import AssignmentStore
from rolegate.application.ports import PermissionChecker
from rolegate.domain.entities import Assignment
from rolegate.domain.exceptions import PermissionDenied
from rolegate.domain.value_objects import PermissionAction, ResourceType


class AssignRoleUseCase:
    """Bind a user to a role within a scope and validity window."""

    def __init__(
        self,
        assignment_store: AssignmentStore,
        permission_checker: PermissionChecker,
    ) -> None:
        self._assignments = assignment_store
        self._permission_checker = permission_checker

    async def execute(self, actor_id: str, assignment_input: AssignmentInput) -> Assignment:
        """Assign role to user. Actor must have users:assign."""
        allowed = await self._permission_checker.check(
            actor_id, ResourceType.USERS, PermissionAction.ASSIGN
        )
        if not allowed:
            raise PermissionDenied("User may not assign roles")
        return await self._assignments.assign(
            user_id=assignment_input.user_id,
            role_id=assignment_input.role_id,
            scope=assignment_input.scope,
            valid_from=assignment_input.valid_from,
            valid_until=assignment_input.valid_until,
            created_by=actor_id,
            reason=assignment_input.reason,
        )
