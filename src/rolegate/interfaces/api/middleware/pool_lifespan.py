"""Lifespan middleware - opens storage and starts the engine with the ASGI server."""

import logging
from typing import Any

from psycopg_pool import AsyncConnectionPool

from rolegate.application.engine.engine import AuthorizationEngine
from rolegate.application.engine.system_roles import SYSTEM_ROLES

logger = logging.getLogger(__name__)


class PoolLifespanMiddleware:
    """Middleware that opens the connection pool on startup and closes on shutdown."""

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    async def process_startup(
        self, scope: dict[str, Any], event: dict[str, Any]
    ) -> None:
        """Open pool when ASGI server starts."""
        await self._pool.open()

    async def process_shutdown(
        self, scope: dict[str, Any], event: dict[str, Any]
    ) -> None:
        """Close pool when ASGI server shuts down."""
        await self._pool.close()


class EngineLifespanMiddleware:
    """Middleware that loads engine state on startup and drains the audit log on shutdown.

    Listed after PoolLifespanMiddleware so the pool is open before loading
    and still open while the audit writer drains.
    """

    def __init__(
        self,
        engine: AuthorizationEngine,
        seed_system_roles: bool = True,
        bootstrap_admin: str | None = None,
    ) -> None:
        self._engine = engine
        self._seed = seed_system_roles
        self._bootstrap_admin = bootstrap_admin

    async def process_startup(
        self, scope: dict[str, Any], event: dict[str, Any]
    ) -> None:
        """Load roles and assignments, seed built-in roles, start the audit writer."""
        await self._engine.start(
            seed_roles=SYSTEM_ROLES if self._seed else None,
            bootstrap_admin=self._bootstrap_admin,
        )
        logger.info("Authorization engine started")

    async def process_shutdown(
        self, scope: dict[str, Any], event: dict[str, Any]
    ) -> None:
        """Stop the audit writer after draining buffered events."""
        await self._engine.aclose()
        logger.info("Authorization engine stopped")
