"""Archive role use case."""

from dataclasses import dataclass

from rolegate.application.engine.assignment_store import AssignmentStore
from rolegate.application.engine.role_graph import RoleGraph
from rolegate.application.ports import PermissionChecker
from rolegate.domain.entities import Assignment, Role
from rolegate.domain.exceptions import PermissionDenied
from rolegate.domain.value_objects import PermissionAction, ResourceType


@dataclass
class ArchiveResult:
    """Archived role and the live assignments that still reference it."""

    role: Role
    impacted_assignments: list[Assignment]


class ArchiveRoleUseCase:
    """Archive a published role; existing assignments keep working."""

    def __init__(
        self,
        role_graph: RoleGraph,
        assignment_store: AssignmentStore,
        permission_checker: PermissionChecker,
    ) -> None:
        self._roles = role_graph
        self._assignments = assignment_store
        self._permission_checker = permission_checker

    async def execute(self, actor_id: str, role_id: str) -> ArchiveResult:
        """Archive role. Actor must have roles:approve."""
        allowed = await self._permission_checker.check(
            actor_id, ResourceType.ROLES, PermissionAction.APPROVE
        )
        if not allowed:
            raise PermissionDenied("User may not archive roles")
        role = await self._roles.archive_role(role_id)
        impacted = [
            a
            for rid in [role_id, *(r.id for r in self._roles.descendants(role_id))]
            for a in self._assignments.assignments_by_role(rid)
        ]
        return ArchiveResult(role=role, impacted_assignments=impacted)
