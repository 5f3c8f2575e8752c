"""Clone role use case."""

from rolegate.application.engine.role_graph import RoleGraph
from rolegate.application.ports import PermissionChecker
from rolegate.domain.entities import Role
from rolegate.domain.exceptions import Conflict, PermissionDenied
from rolegate.domain.value_objects import PermissionAction, ResourceType, RoleStatus


class CloneRoleUseCase:
    """Start a new draft role from an existing role's definition."""

    def __init__(self, role_graph: RoleGraph, permission_checker: PermissionChecker) -> None:
        self._roles = role_graph
        self._permission_checker = permission_checker

    async def execute(
        self,
        actor_id: str,
        source_id: str,
        new_id: str | None = None,
        name: str | None = None,
    ) -> Role:
        """Copy permissions, rules, parent and cap of ``source_id`` into a draft.

        The copy defaults to id ``<source>_copy`` and name ``<name> (Copy)``.
        Cloning a system role yields an ordinary custom role. Actor must have
        roles:create.
        """
        allowed = await self._permission_checker.check(
            actor_id, ResourceType.ROLES, PermissionAction.CREATE
        )
        if not allowed:
            raise PermissionDenied("User may not create roles")

        source = self._roles.get(source_id)
        role_id = (new_id or f"{source.id}_copy").strip()
        if self._roles.find(role_id) is not None:
            raise Conflict(f"role {role_id} already exists")

        clone = Role(
            id=role_id,
            name=name or f"{source.name} (Copy)",
            description=source.description,
            parent_id=source.parent_id,
            permissions=source.permissions,
            contextual_rules=source.contextual_rules,
            max_assignments=source.max_assignments,
            status=RoleStatus.DRAFT,
            created_by=actor_id,
        )
        return await self._roles.add_or_update_role(clone)
