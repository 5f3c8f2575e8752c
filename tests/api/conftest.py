"""Fixtures for API tests."""

import asyncio

import pytest
from falcon.testing import TestClient

from rolegate.application.engine.system_roles import SYSTEM_ROLES
from rolegate.interfaces.api.app import create_app
from rolegate.interfaces.api.middleware.auth import AuthMiddleware

ROOT = {"X-User-Id": "root"}
CLERK = {"X-User-Id": "clerk-1"}


async def _prepare(engine) -> None:
    await engine.role_graph.seed_system_roles(SYSTEM_ROLES)
    await engine.assignment_store.assign("root", "super_admin", created_by="system")
    await engine.assignment_store.assign("clerk-1", "user", created_by="system")


@pytest.fixture
def api_engine(engine):
    """Engine with built-in roles, a super admin ``root`` and a plain ``clerk-1``."""
    asyncio.run(_prepare(engine))
    return engine


@pytest.fixture
def app(api_engine):
    """Falcon ASGI app; identity comes from the X-User-Id header."""
    return create_app(api_engine, [AuthMiddleware()])


@pytest.fixture
def client(app) -> TestClient:
    """Falcon ASGI test client."""
    return TestClient(app)
