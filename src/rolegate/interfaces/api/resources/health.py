"""Health check endpoints."""

import falcon.asgi

from rolegate.application.engine.engine import AuthorizationEngine


class HealthResource:
    """Health and readiness endpoints."""

    def __init__(self, engine: AuthorizationEngine | None = None) -> None:
        self._engine = engine

    async def on_get(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """GET /v1/health - liveness."""
        resp.media = {"status": "ok"}
        resp.status = falcon.HTTP_200

    async def on_get_ready(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """GET /v1/health/ready - readiness (roles loaded, audit writer running)."""
        if self._engine is None:
            resp.media = {"status": "ready"}
            resp.status = falcon.HTTP_200
            return

        audit = self._engine.audit_log
        checks = {
            "roles_loaded": bool(self._engine.role_graph.list_roles()),
            "audit_writer": audit.running,
        }
        ready = all(checks.values())
        resp.media = {
            "status": "ready" if ready else "not ready",
            "checks": checks,
            "audit": {
                "pending": audit.pending,
                "persisted": audit.persisted_count,
                "dropped": audit.dropped_count,
            },
            "cache": self._engine.cache.stats() if self._engine.cache else None,
        }
        resp.status = falcon.HTTP_200 if ready else falcon.HTTP_503
