"""Import role definition use case."""

import json

from rolegate.application.dto.role_dto import RoleInput
from rolegate.application.engine.role_graph import RoleGraph
from rolegate.application.ports import PermissionChecker
from rolegate.domain.entities import Role
from rolegate.domain.exceptions import Conflict, PermissionDenied, ValidationError
from rolegate.domain.value_objects import PermissionAction, ResourceType, RoleStatus


class ImportRoleUseCase:
    """Create a draft role from an exported JSON definition."""

    def __init__(self, role_graph: RoleGraph, permission_checker: PermissionChecker) -> None:
        self._roles = role_graph
        self._permission_checker = permission_checker

    async def execute(self, actor_id: str, document: str, new_id: str | None = None) -> Role:
        """Import ``document`` as a new draft. Actor must have roles:create.

        The import gets id ``<id>_imported`` unless ``new_id`` is given, and
        its parent is dropped: the source graph may not exist here.
        Status, version and system flag from the document are ignored.
        """
        allowed = await self._permission_checker.check(
            actor_id, ResourceType.ROLES, PermissionAction.CREATE
        )
        if not allowed:
            raise PermissionDenied("User may not create roles")

        try:
            data = json.loads(document)
        except json.JSONDecodeError as e:
            raise ValidationError(f"role definition is not valid JSON: {e}") from None
        if not isinstance(data, dict):
            raise ValidationError("role definition must be a JSON object")
        role_input = RoleInput.from_dict(data)

        role_id = (new_id or f"{role_input.id}_imported").strip()
        if self._roles.find(role_id) is not None:
            raise Conflict(f"role {role_id} already exists")

        role = Role(
            id=role_id,
            name=f"{role_input.name} (Imported)",
            description=role_input.description,
            permissions=role_input.permissions,
            contextual_rules=role_input.contextual_rules,
            max_assignments=role_input.max_assignments,
            status=RoleStatus.DRAFT,
            created_by=actor_id,
        )
        return await self._roles.add_or_update_role(role)
