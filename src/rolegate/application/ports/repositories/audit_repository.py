"""Audit event repository port."""

from typing import Protocol

from rolegate.application.dto.audit_query import AuditQuery
from rolegate.domain.entities import AuditEvent


class AuditRepository(Protocol):
    """Append-only, sequence-ordered store of audit events.

    Implementations raise StorageUnavailable when the backend cannot be
    reached so the writer can retry.
    """

    async def append_batch(self, events: list[AuditEvent]) -> None: ...

    async def last(self) -> AuditEvent | None: ...

    async def list(self, query: AuditQuery) -> tuple[list[AuditEvent], str | None]: ...
