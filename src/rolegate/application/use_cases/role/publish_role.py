"""Publish role use case."""

from rolegate.application.engine.role_graph import RoleGraph
from rolegate.application.ports import PermissionChecker
from rolegate.domain.entities import Role
from rolegate.domain.exceptions import PermissionDenied
from rolegate.domain.value_objects import PermissionAction, ResourceType


class PublishRoleUseCase:
    """Move a draft role to published."""

    def __init__(self, role_graph: RoleGraph, permission_checker: PermissionChecker) -> None:
        self._roles = role_graph
        self._permission_checker = permission_checker

    async def execute(self, actor_id: str, role_id: str) -> Role:
        """Publish role. Actor must have roles:approve."""
        allowed = await self._permission_checker.check(
            actor_id, ResourceType.ROLES, PermissionAction.APPROVE
        )
        if not allowed:
            raise PermissionDenied("User may not publish roles")
        return await self._roles.publish_role(role_id)
