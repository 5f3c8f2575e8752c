"""In-memory Unit of Work - writes apply immediately, there is no rollback."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from rolegate.infrastructure.persistence.memory.repositories import (
    InMemoryAssignmentRepository,
    InMemoryAuditRepository,
    InMemoryRoleRepository,
)


class InMemoryUnitOfWork:
    """Shares one set of repositories across every unit of work."""

    def __init__(self) -> None:
        self.roles = InMemoryRoleRepository()
        self.assignments = InMemoryAssignmentRepository()
        self.audit_events = InMemoryAuditRepository()

    async def commit(self) -> None:
        pass

    async def rollback(self) -> None:
        pass


def create_memory_uow_factory(uow: InMemoryUnitOfWork | None = None) -> object:
    """Create UnitOfWork factory backed by process memory."""
    shared = uow or InMemoryUnitOfWork()

    @asynccontextmanager
    async def factory() -> AsyncIterator[InMemoryUnitOfWork]:
        yield shared

    return factory
