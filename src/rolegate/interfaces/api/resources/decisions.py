"""Permission check API resources."""

from datetime import datetime

import falcon.asgi

from rolegate.application.dto.request_context import RequestContext
from rolegate.application.engine.resolver import PermissionResolver
from rolegate.domain.exceptions import PermissionDenied, ValidationError
from rolegate.domain.value_objects import PermissionAction, ResourceType, ScopeType
from rolegate.interfaces.api.errors import read_json, require_user


def _request_context(raw: object, user) -> RequestContext:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError("context must be an object")
    now = raw.get("now")
    try:
        moment = datetime.fromisoformat(now) if now else None
    except (TypeError, ValueError):
        raise ValidationError("context.now must be an ISO 8601 datetime") from None
    attributes = dict(user.attributes)
    attributes.update({str(k): str(v) for k, v in (raw.get("attributes") or {}).items()})
    return RequestContext(
        now=moment,
        location=raw.get("location"),
        flags=frozenset(str(f) for f in raw.get("flags") or ()),
        attributes=attributes,
    )


async def _authorize_subject(checker: PermissionResolver, actor_id: str, user_id: str) -> None:
    """Checking someone else's permissions needs users:read."""
    if user_id == actor_id:
        return
    if not await checker.check(actor_id, ResourceType.USERS, PermissionAction.READ):
        raise PermissionDenied("User may not inspect other users' permissions")


class CheckResource:
    """POST /v1/check - decide one permission request."""

    def __init__(self, resolver: PermissionResolver) -> None:
        self._resolver = resolver

    async def on_post(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """Return the Decision; Deny is a normal 200 response."""
        user = require_user(req)
        body = await read_json(req)
        subject = str(body.get("user_id") or user.user_id)
        await _authorize_subject(self._resolver, user.user_id, subject)
        context = _request_context(body.get("context"), user)
        decision = await self._resolver.check_permission(
            subject,
            body.get("resource_type", ""),
            body.get("action", ""),
            scope_context=body.get("scope_context"),
            request_context=context,
            caller_attributes={"caller": user.user_id, **user.attributes},
        )
        resp.media = {"allowed": decision.allowed, **decision.to_dict()}
        resp.status = falcon.HTTP_200

    async def on_post_batch(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """POST /v1/check/batch - several checks for one user in one scope."""
        user = require_user(req)
        body = await read_json(req)
        checks = body.get("checks")
        if not isinstance(checks, list) or not all(isinstance(c, dict) for c in checks):
            raise ValidationError("checks must be a list of objects")
        subject = str(body.get("user_id") or user.user_id)
        await _authorize_subject(self._resolver, user.user_id, subject)
        decisions = await self._resolver.check_many(
            subject,
            [(c.get("resource_type", ""), c.get("action", "")) for c in checks],
            scope_context=body.get("scope_context"),
            request_context=_request_context(body.get("context"), user),
            caller_attributes={"caller": user.user_id, **user.attributes},
        )
        resp.media = {
            "items": [{"allowed": d.allowed, **d.to_dict()} for d in decisions],
            "any_allowed": any(d.allowed for d in decisions),
        }
        resp.status = falcon.HTTP_200


class EffectivePermissionsResource:
    """GET /v1/users/{user_id}/permissions - capability list for UI gating."""

    def __init__(self, resolver: PermissionResolver) -> None:
        self._resolver = resolver

    async def on_get(
        self,
        req: falcon.asgi.Request,
        resp: falcon.asgi.Response,
        user_id: str,
    ) -> None:
        """List allowed (resource_type, action) pairs; scope from query params."""
        user = require_user(req)
        await _authorize_subject(self._resolver, user.user_id, user_id)
        scope = {
            t.value: req.get_param(t.value)
            for t in ScopeType
            if req.get_param(t.value) is not None
        }
        pairs = await self._resolver.list_effective_permissions(
            user_id,
            scope_context=scope,
            request_context=RequestContext(attributes=dict(user.attributes))
            if user_id == user.user_id
            else None,
        )
        resp.media = {
            "user_id": user_id,
            "scope_context": scope,
            "items": [{"resource_type": r, "action": a} for r, a in sorted(pairs)],
        }
        resp.status = falcon.HTTP_200
