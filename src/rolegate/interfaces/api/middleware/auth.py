"""Auth middleware - resolves the calling identity for each request."""

from dataclasses import dataclass, field

import falcon.asgi

from rolegate.infrastructure.auth.keycloak_provider import KeycloakProvider

USER_ID_HEADER = "X-User-Id"


@dataclass
class RequestUser:
    """User from request context: identity and attribute bag, never roles."""

    user_id: str
    attributes: dict[str, str] = field(default_factory=dict)


class AuthMiddleware:
    """Middleware that sets req.context.user.

    With Keycloak configured the Bearer token is introspected. Without it the
    ``X-User-Id`` header is trusted, which is only meant for development and
    tests. Unauthenticated requests get ``None``.
    """

    def __init__(self, keycloak_provider: KeycloakProvider | None = None) -> None:
        self._keycloak = keycloak_provider

    async def process_request(
        self, req: falcon.asgi.Request, resp: falcon.asgi.Response
    ) -> None:
        """Extract user from Authorization or X-User-Id header."""
        req.context.user = None
        if self._keycloak is None:
            user_id = (req.get_header(USER_ID_HEADER) or "").strip()
            if user_id:
                req.context.user = RequestUser(user_id=user_id)
            return

        auth = req.get_header("Authorization")
        if auth and auth.startswith("Bearer "):
            user = self._keycloak.decode_token(auth[7:])
            if user:
                req.context.user = RequestUser(user_id=user.user_id, attributes=user.attributes)
