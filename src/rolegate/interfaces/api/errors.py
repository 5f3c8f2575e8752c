"""Map domain exceptions to HTTP responses."""

import logging

import falcon
import falcon.asgi

from rolegate.domain.exceptions import (
    Conflict,
    NotFound,
    PermissionDenied,
    RoleGateError,
    StorageUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS = (
    (ValidationError, falcon.HTTP_400),
    (PermissionDenied, falcon.HTTP_403),
    (NotFound, falcon.HTTP_404),
    (Conflict, falcon.HTTP_409),
    (StorageUnavailable, falcon.HTTP_503),
)


async def handle_domain_error(
    req: falcon.asgi.Request, resp: falcon.asgi.Response, ex: RoleGateError, params: dict
) -> None:
    """Render a RoleGateError as {"error": message} with its status."""
    for exc_type, status in _STATUS:
        if isinstance(ex, exc_type):
            resp.status = status
            break
    else:
        logger.error("Unhandled domain error on %s %s: %s", req.method, req.path, ex)
        resp.status = falcon.HTTP_500
    resp.media = {"error": str(ex)}


async def handle_unexpected_error(
    req: falcon.asgi.Request, resp: falcon.asgi.Response, ex: Exception, params: dict
) -> None:
    """Log and render any other exception as 500."""
    logger.exception("Unhandled error on %s %s", req.method, req.path)
    resp.status = falcon.HTTP_500
    resp.media = {"error": "Internal Server Error"}


def register_error_handlers(app: falcon.asgi.App) -> None:
    app.add_error_handler(Exception, handle_unexpected_error)
    app.add_error_handler(RoleGateError, handle_domain_error)


def require_user(req: falcon.asgi.Request):
    """Authenticated user or HTTP 401."""
    user = getattr(req.context, "user", None)
    if not user:
        raise falcon.HTTPUnauthorized(title="Unauthorized")
    return user


async def read_json(req: falcon.asgi.Request, default: dict | None = None) -> dict:
    """Request body as a JSON object, or ValidationError.

    With ``default`` an empty body yields it instead of an error.
    """
    try:
        body = await req.get_media(default_when_empty=default)
    except (falcon.MediaNotFoundError, falcon.MediaMalformedError):
        raise ValidationError("Invalid request body") from None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body
