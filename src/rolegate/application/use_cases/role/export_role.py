"""Export role definition use case."""

import json

from rolegate.application.dto.role_dto import role_to_dict
from rolegate.application.engine.role_graph import RoleGraph
from rolegate.application.ports import PermissionChecker
from rolegate.domain.exceptions import PermissionDenied
from rolegate.domain.value_objects import PermissionAction, ResourceType


class ExportRoleUseCase:
    """Serialise a role definition as pretty-printed JSON."""

    def __init__(self, role_graph: RoleGraph, permission_checker: PermissionChecker) -> None:
        self._roles = role_graph
        self._permission_checker = permission_checker

    async def execute(self, actor_id: str, role_id: str) -> str:
        """Role as JSON, readable by ImportRoleUseCase. Actor must have roles:read."""
        allowed = await self._permission_checker.check(
            actor_id, ResourceType.ROLES, PermissionAction.READ
        )
        if not allowed:
            raise PermissionDenied("User may not read roles")
        return json.dumps(role_to_dict(self._roles.get(role_id)), indent=2, sort_keys=True)
