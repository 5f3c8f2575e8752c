"""Role API resources."""

import falcon.asgi

from rolegate.application.dto.assignment_dto import assignment_to_dict
from rolegate.application.dto.role_dto import RoleInput, RoleUpdate, role_to_dict
from rolegate.application.engine.role_graph import RoleGraph
from rolegate.application.ports import PermissionChecker
from rolegate.application.use_cases.role.archive_role import ArchiveRoleUseCase
from rolegate.application.use_cases.role.clone_role import CloneRoleUseCase
from rolegate.application.use_cases.role.create_role import CreateRoleUseCase
from rolegate.application.use_cases.role.delete_role import DeleteRoleUseCase
from rolegate.application.use_cases.role.export_role import ExportRoleUseCase
from rolegate.application.use_cases.role.import_role import ImportRoleUseCase
from rolegate.application.use_cases.role.publish_role import PublishRoleUseCase
from rolegate.application.use_cases.role.update_role import UpdateRoleUseCase
from rolegate.domain.exceptions import PermissionDenied, ValidationError
from rolegate.domain.value_objects import PermissionAction, ResourceType, RoleStatus
from rolegate.interfaces.api.errors import read_json, require_user


async def _require_roles_read(checker: PermissionChecker, user_id: str) -> None:
    if not await checker.check(user_id, ResourceType.ROLES, PermissionAction.READ):
        raise PermissionDenied("User may not read roles")


class RolesResource:
    """GET/POST /v1/roles - list and create roles."""

    def __init__(
        self,
        role_graph: RoleGraph,
        permission_checker: PermissionChecker,
        create_role: CreateRoleUseCase,
        import_role: ImportRoleUseCase,
    ) -> None:
        self._roles = role_graph
        self._permission_checker = permission_checker
        self._create_role = create_role
        self._import_role = import_role

    async def on_get(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """List roles, optionally by status; ``view=tree`` returns the hierarchy forest."""
        user = require_user(req)
        await _require_roles_read(self._permission_checker, user.user_id)

        if req.get_param("view") == "tree":
            resp.media = {"items": [n.to_dict() for n in self._roles.hierarchy_tree()]}
            resp.status = falcon.HTTP_200
            return

        status_param = req.get_param("status")
        try:
            status = RoleStatus(status_param) if status_param else None
        except ValueError:
            raise ValidationError(f"unknown role status {status_param!r}") from None
        resp.media = {"items": [role_to_dict(r) for r in self._roles.list_roles(status)]}
        resp.status = falcon.HTTP_200

    async def on_post(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """Create draft role."""
        user = require_user(req)
        role_input = RoleInput.from_dict(await read_json(req))
        role = await self._create_role.execute(user.user_id, role_input)
        resp.media = role_to_dict(role)
        resp.status = falcon.HTTP_201

    async def on_post_import(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """POST /v1/roles/import - body is an exported role definition; ``id`` overrides."""
        user = require_user(req)
        document = (await req.stream.read()).decode("utf-8", errors="replace")
        role = await self._import_role.execute(user.user_id, document, req.get_param("id"))
        resp.media = role_to_dict(role)
        resp.status = falcon.HTTP_201


class RoleResource:
    """GET/PATCH/DELETE /v1/roles/{role_id} and its lifecycle sub-routes."""

    def __init__(
        self,
        role_graph: RoleGraph,
        permission_checker: PermissionChecker,
        update_role: UpdateRoleUseCase,
        publish_role: PublishRoleUseCase,
        archive_role: ArchiveRoleUseCase,
        delete_role: DeleteRoleUseCase,
        clone_role: CloneRoleUseCase,
        export_role: ExportRoleUseCase,
    ) -> None:
        self._roles = role_graph
        self._permission_checker = permission_checker
        self._update_role = update_role
        self._publish_role = publish_role
        self._archive_role = archive_role
        self._delete_role = delete_role
        self._clone_role = clone_role
        self._export_role = export_role

    async def on_get(
        self, req: falcon.asgi.Request, resp: falcon.asgi.Response, role_id: str
    ) -> None:
        """Get role with its flattened effective permissions."""
        user = require_user(req)
        await _require_roles_read(self._permission_checker, user.user_id)
        role = self._roles.get(role_id)
        resp.media = {
            **role_to_dict(role),
            "effective_permissions": [
                {
                    "resource_type": p.resource_type.value,
                    "action": p.action.value,
                    "effect": p.effect.value,
                    "provenance": p.provenance,
                    "conditions": list(p.conditions),
                }
                for p in self._roles.effective_permissions(role_id)
            ],
        }
        resp.status = falcon.HTTP_200

    async def on_patch(
        self, req: falcon.asgi.Request, resp: falcon.asgi.Response, role_id: str
    ) -> None:
        """Update draft role."""
        user = require_user(req)
        update = RoleUpdate.from_dict(await read_json(req))
        role = await self._update_role.execute(user.user_id, role_id, update)
        resp.media = role_to_dict(role)
        resp.status = falcon.HTTP_200

    async def on_delete(
        self, req: falcon.asgi.Request, resp: falcon.asgi.Response, role_id: str
    ) -> None:
        """Delete draft role."""
        user = require_user(req)
        await self._delete_role.execute(user.user_id, role_id)
        resp.status = falcon.HTTP_204

    async def on_post_publish(
        self, req: falcon.asgi.Request, resp: falcon.asgi.Response, role_id: str
    ) -> None:
        """POST /v1/roles/{role_id}/publish."""
        user = require_user(req)
        role = await self._publish_role.execute(user.user_id, role_id)
        resp.media = role_to_dict(role)
        resp.status = falcon.HTTP_200

    async def on_post_archive(
        self, req: falcon.asgi.Request, resp: falcon.asgi.Response, role_id: str
    ) -> None:
        """POST /v1/roles/{role_id}/archive - returns impacted assignments."""
        user = require_user(req)
        result = await self._archive_role.execute(user.user_id, role_id)
        resp.media = {
            "role": role_to_dict(result.role),
            "impacted_assignments": [assignment_to_dict(a) for a in result.impacted_assignments],
        }
        resp.status = falcon.HTTP_200

    async def on_get_hierarchy(
        self, req: falcon.asgi.Request, resp: falcon.asgi.Response, role_id: str
    ) -> None:
        """GET /v1/roles/{role_id}/hierarchy - ancestors and descendant subtree."""
        user = require_user(req)
        await _require_roles_read(self._permission_checker, user.user_id)
        hierarchy = self._roles.role_hierarchy(role_id)
        resp.media = {
            "role": role_to_dict(hierarchy.role),
            "ancestors": [{"id": r.id, "name": r.name, "level": r.level} for r in hierarchy.ancestors],
            "chain": list(self._roles.hierarchy_chain(role_id)),
            "subtree": hierarchy.subtree.to_dict(),
        }
        resp.status = falcon.HTTP_200

    async def on_post_clone(
        self, req: falcon.asgi.Request, resp: falcon.asgi.Response, role_id: str
    ) -> None:
        """POST /v1/roles/{role_id}/clone - optional body {"id", "name"} for the copy."""
        user = require_user(req)
        body = await read_json(req, default={})
        role = await self._clone_role.execute(
            user.user_id, role_id, body.get("id"), body.get("name")
        )
        resp.media = role_to_dict(role)
        resp.status = falcon.HTTP_201

    async def on_get_export(
        self, req: falcon.asgi.Request, resp: falcon.asgi.Response, role_id: str
    ) -> None:
        """GET /v1/roles/{role_id}/export - JSON definition accepted by /v1/roles/import."""
        user = require_user(req)
        resp.text = await self._export_role.execute(user.user_id, role_id)
        resp.content_type = falcon.MEDIA_JSON
        resp.downloadable_as = f"{role_id}.json"
        resp.status = falcon.HTTP_200
