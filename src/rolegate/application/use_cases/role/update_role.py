"""Update role use case."""

from dataclasses import replace

from rolegate.application.dto.role_dto import RoleUpdate
from rolegate.application.engine.role_graph import RoleGraph
from rolegate.application.ports import PermissionChecker
from rolegate.domain.entities import Role
from rolegate.domain.exceptions import PermissionDenied
from rolegate.domain.value_objects import PermissionAction, ResourceType


class UpdateRoleUseCase:
    """Edit a draft role's definition, including its parent."""

    def __init__(self, role_graph: RoleGraph, permission_checker: PermissionChecker) -> None:
        self._roles = role_graph
        self._permission_checker = permission_checker

    async def execute(self, actor_id: str, role_id: str, update: RoleUpdate) -> Role:
        """Apply ``update`` to role. Actor must have roles:update."""
        allowed = await self._permission_checker.check(
            actor_id, ResourceType.ROLES, PermissionAction.UPDATE
        )
        if not allowed:
            raise PermissionDenied("User may not update roles")

        current = self._roles.get(role_id)
        changes: dict[str, object] = {}
        if update.name is not None:
            changes["name"] = update.name
        if update.description is not None:
            changes["description"] = update.description
        if update.parent_set:
            changes["parent_id"] = update.parent_id
        if update.permissions is not None:
            changes["permissions"] = update.permissions
        if update.contextual_rules is not None:
            changes["contextual_rules"] = update.contextual_rules
        if update.max_assignments is not None:
            changes["max_assignments"] = update.max_assignments
        return await self._roles.add_or_update_role(replace(current, **changes))
