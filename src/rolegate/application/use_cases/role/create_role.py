"""Create role use case."""

from rolegate.application.dto.role_dto import RoleInput
from rolegate.application.engine.role_graph import RoleGraph
from rolegate.application.ports import PermissionChecker
from rolegate.domain.entities import Role
from rolegate.domain.exceptions import Conflict, PermissionDenied
from rolegate.domain.value_objects import PermissionAction, ResourceType, RoleStatus


class CreateRoleUseCase:
    """Create a draft role."""

    def __init__(self, role_graph: RoleGraph, permission_checker: PermissionChecker) -> None:
        self._roles = role_graph
        self._permission_checker = permission_checker

    async def execute(self, actor_id: str, role_input: RoleInput) -> Role:
        """Create role as draft. Actor must have roles:create."""
        allowed = await self._permission_checker.check(
            actor_id, ResourceType.ROLES, PermissionAction.CREATE
        )
        if not allowed:
            raise PermissionDenied("User may not create roles")

        if self._roles.find(role_input.id) is not None:
            raise Conflict(f"role {role_input.id} already exists")

        role = Role(
            id=role_input.id,
            name=role_input.name,
            description=role_input.description,
            parent_id=role_input.parent_id,
            permissions=role_input.permissions,
            contextual_rules=role_input.contextual_rules,
            max_assignments=role_input.max_assignments,
            status=RoleStatus.DRAFT,
            created_by=actor_id,
        )
        return await self._roles.add_or_update_role(role)
