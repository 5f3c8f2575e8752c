"""Assignment API resources."""

from uuid import UUID

import falcon.asgi

from rolegate.application.dto.assignment_dto import AssignmentInput, assignment_to_dict
from rolegate.application.engine.assignment_store import AssignmentStore
from rolegate.application.ports import PermissionChecker
from rolegate.application.use_cases.assignment.assign_role import AssignRoleUseCase
from rolegate.application.use_cases.assignment.revoke_assignment import RevokeAssignmentUseCase
from rolegate.domain.exceptions import PermissionDenied, ValidationError
from rolegate.domain.value_objects import PermissionAction, ResourceType
from rolegate.interfaces.api.errors import read_json, require_user


class AssignmentsResource:
    """GET/POST /v1/assignments - list and create assignments."""

    def __init__(
        self,
        assignment_store: AssignmentStore,
        permission_checker: PermissionChecker,
        assign_role: AssignRoleUseCase,
    ) -> None:
        self._assignments = assignment_store
        self._permission_checker = permission_checker
        self._assign_role = assign_role

    async def on_get(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """List assignments by user_id and/or role_id. Own assignments are always visible."""
        user = require_user(req)
        user_id = req.get_param("user_id")
        role_id = req.get_param("role_id")
        include_revoked = req.get_param_as_bool("include_revoked") or False

        if user_id != user.user_id or role_id is not None:
            allowed = await self._permission_checker.check(
                user.user_id, ResourceType.USERS, PermissionAction.READ
            )
            if not allowed:
                raise PermissionDenied("User may not list other users' assignments")

        items = self._assignments.list_assignments(
            user_id=user_id, role_id=role_id, include_revoked=include_revoked
        )
        resp.media = {"items": [assignment_to_dict(a) for a in items]}
        resp.status = falcon.HTTP_200

    async def on_post(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """Assign role to user."""
        user = require_user(req)
        assignment_input = AssignmentInput.from_dict(await read_json(req))
        assignment = await self._assign_role.execute(user.user_id, assignment_input)
        resp.media = assignment_to_dict(assignment)
        resp.status = falcon.HTTP_201


class AssignmentResource:
    """DELETE /v1/assignments/{assignment_id} - revoke assignment."""

    def __init__(self, revoke_assignment: RevokeAssignmentUseCase) -> None:
        self._revoke = revoke_assignment

    async def on_delete(
        self,
        req: falcon.asgi.Request,
        resp: falcon.asgi.Response,
        assignment_id: str,
    ) -> None:
        """Revoke assignment; the record is kept with its revocation time."""
        user = require_user(req)
        try:
            parsed_id = UUID(assignment_id)
        except ValueError:
            raise ValidationError("Invalid assignment ID") from None
        assignment = await self._revoke.execute(user.user_id, parsed_id)
        resp.media = assignment_to_dict(assignment)
        resp.status = falcon.HTTP_200
