"""Application entry point and composition root."""

import logging

from falcon.asgi import App

from rolegate.application.engine.engine import AuthorizationEngine
from rolegate.config import Settings, configure_logging, get_settings
from rolegate.infrastructure.auth.keycloak_provider import KeycloakProvider
from rolegate.infrastructure.persistence.memory.unit_of_work import create_memory_uow_factory
from rolegate.infrastructure.persistence.postgres.connection import create_pool
from rolegate.infrastructure.persistence.postgres.unit_of_work import create_uow_factory
from rolegate.interfaces.api.app import create_app
from rolegate.interfaces.api.middleware.auth import AuthMiddleware
from rolegate.interfaces.api.middleware.pool_lifespan import (
    EngineLifespanMiddleware,
    PoolLifespanMiddleware,
)

logger = logging.getLogger(__name__)


def build_engine(settings: Settings, unit_of_work_factory) -> AuthorizationEngine:
    return AuthorizationEngine.build(
        unit_of_work_factory,
        max_depth=settings.role_max_depth,
        cache_ttl_seconds=settings.cache_ttl_seconds,
        resolution_timeout_seconds=settings.resolution_timeout_seconds,
        audit_buffer_size=settings.audit_buffer_size,
        audit_batch_size=settings.audit_batch_size,
        audit_retry_attempts=settings.audit_retry_attempts,
        audit_retry_max_wait=settings.audit_retry_max_wait_seconds,
        risk_denial_threshold=settings.risk_denial_threshold,
        risk_diversity_threshold=settings.risk_diversity_threshold,
    )


def create_rolegate_app(settings: Settings | None = None) -> App:
    """Composition root - build Falcon app with all dependencies."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    middleware: list = []
    if settings.database_url:
        pool = create_pool(
            settings.database_url,
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
            timeout=settings.database_pool_timeout_seconds,
        )
        uow_factory = create_uow_factory(pool)
        middleware.append(PoolLifespanMiddleware(pool))
    else:
        logger.warning("ROLEGATE_DATABASE_URL not set; state is kept in memory only")
        uow_factory = create_memory_uow_factory()

    keycloak = (
        KeycloakProvider(
            server_url=settings.keycloak_url,
            realm=settings.keycloak_realm,
            client_id=settings.keycloak_client_id,
            client_secret=settings.keycloak_client_secret,
        )
        if settings.keycloak_url
        else None
    )
    if keycloak is None:
        if settings.environment == "production":
            raise RuntimeError("ROLEGATE_KEYCLOAK_URL is required in production")
        logger.warning("Keycloak not configured; trusting the X-User-Id header")

    engine = build_engine(settings, uow_factory)
    middleware.extend(
        [
            EngineLifespanMiddleware(
                engine,
                seed_system_roles=settings.seed_system_roles,
                bootstrap_admin=settings.bootstrap_admin_user or None,
            ),
            AuthMiddleware(keycloak),
        ]
    )
    return create_app(engine, middleware)


def main() -> None:
    """CLI entry point - run uvicorn server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_rolegate_app(settings),
        host="0.0.0.0",
        port=8000,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
