"""Pytest fixtures for rolegate tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import pytest

from rolegate.application.dto.audit_query import AuditQuery
from rolegate.application.engine.engine import AuthorizationEngine
from rolegate.domain.entities import AuditEvent, PermissionEntry, Role
from rolegate.domain.exceptions import StorageUnavailable
from rolegate.domain.value_objects import RoleStatus
from rolegate.infrastructure.persistence.memory.repositories import InMemoryAuditRepository
from rolegate.infrastructure.persistence.memory.unit_of_work import (
    InMemoryUnitOfWork,
    create_memory_uow_factory,
)

T0 = datetime(2024, 3, 4, 10, 0, tzinfo=UTC)  # a Monday


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeMonotonic:
    """Monotonic clock for cache TTL tests."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


def make_role(
    role_id: str,
    *permissions: PermissionEntry,
    parent_id: str | None = None,
    status: RoleStatus = RoleStatus.DRAFT,
    **kwargs,
) -> Role:
    """Role with sensible defaults for tests."""
    return Role(
        id=role_id,
        name=kwargs.pop("name", role_id.replace("_", " ").title()),
        parent_id=parent_id,
        permissions=permissions,
        status=status,
        **kwargs,
    )


async def add_published(engine: AuthorizationEngine, role: Role) -> Role:
    """Store ``role`` as draft and publish it."""
    await engine.role_graph.add_or_update_role(role)
    return await engine.role_graph.publish_role(role.id)


# --- Fake repositories ---


class FlakyAuditRepository(InMemoryAuditRepository):
    """Audit repository whose first ``failures`` batch writes fail."""

    def __init__(self, failures: int = 0) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def append_batch(self, events: list[AuditEvent]) -> None:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise StorageUnavailable("audit store is down")
        await super().append_batch(events)


async def stored_events(uow: InMemoryUnitOfWork) -> list[AuditEvent]:
    items, _ = await uow.audit_events.list(AuditQuery(limit=10_000))
    return items


# --- Fixtures ---


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_uow() -> InMemoryUnitOfWork:
    """Shared in-memory repositories for one test."""
    return InMemoryUnitOfWork()


@pytest.fixture
def uow_factory(memory_uow):
    """Factory returning async context manager over the shared InMemoryUnitOfWork."""
    return create_memory_uow_factory(memory_uow)


@pytest.fixture
def flaky_uow_factory():
    """Factory whose audit repository fails its first two writes."""
    uow = InMemoryUnitOfWork()
    uow.audit_events = FlakyAuditRepository(failures=2)

    @asynccontextmanager
    async def _factory() -> AsyncIterator[InMemoryUnitOfWork]:
        yield uow

    _factory.uow = uow
    return _factory


@pytest.fixture
def engine(uow_factory, clock) -> AuthorizationEngine:
    """Engine over in-memory storage with a fixed clock; the audit writer is not started."""
    return AuthorizationEngine.build(
        uow_factory,
        max_depth=4,
        audit_retry_attempts=2,
        audit_retry_min_wait=0,
        audit_retry_max_wait=0.01,
        risk_denial_threshold=4,
        risk_diversity_threshold=2,
        clock=clock,
    )


@pytest.fixture
def mock_permission_checker():
    """AsyncMock for PermissionChecker - returns True by default."""
    from unittest.mock import AsyncMock

    mock = AsyncMock()
    mock.check.return_value = True
    return mock
