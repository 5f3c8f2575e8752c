"""Export audit log use case."""

from rolegate.application.dto.audit_query import AuditQuery
from rolegate.application.engine.audit_log import AuditLog
from rolegate.application.ports import PermissionChecker
from rolegate.domain.exceptions import PermissionDenied
from rolegate.domain.value_objects import PermissionAction, ResourceType


class ExportAuditLogUseCase:
    """Render persisted audit events as CSV or JSON."""

    def __init__(self, audit_log: AuditLog, permission_checker: PermissionChecker) -> None:
        self._audit = audit_log
        self._permission_checker = permission_checker

    async def execute(self, actor_id: str, fmt: str, query: AuditQuery | None = None) -> str:
        """Export events matching ``query``. Actor must have audit:export."""
        allowed = await self._permission_checker.check(
            actor_id, ResourceType.AUDIT, PermissionAction.EXPORT
        )
        if not allowed:
            raise PermissionDenied("User may not export the audit log")
        return await self._audit.export(fmt, query)
