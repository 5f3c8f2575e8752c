"""Delete role use case."""

from rolegate.application.engine.assignment_store import AssignmentStore
from rolegate.application.engine.role_graph import RoleGraph
from rolegate.application.ports import PermissionChecker
from rolegate.domain.exceptions import PermissionDenied
from rolegate.domain.value_objects import PermissionAction, ResourceType


class DeleteRoleUseCase:
    """Delete a draft role nobody holds."""

    def __init__(
        self,
        role_graph: RoleGraph,
        assignment_store: AssignmentStore,
        permission_checker: PermissionChecker,
    ) -> None:
        self._roles = role_graph
        self._assignments = assignment_store
        self._permission_checker = permission_checker

    async def execute(self, actor_id: str, role_id: str) -> None:
        """Delete role. Actor must have roles:delete."""
        allowed = await self._permission_checker.check(
            actor_id, ResourceType.ROLES, PermissionAction.DELETE
        )
        if not allowed:
            raise PermissionDenied("User may not delete roles")
        self._roles.get(role_id)
        await self._assignments.delete_role(role_id)
