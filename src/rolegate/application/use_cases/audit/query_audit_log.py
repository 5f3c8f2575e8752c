"""Audit log read use cases."""

from datetime import timedelta

from rolegate.application.dto.audit_query import AuditPage, AuditQuery
from rolegate.application.engine.audit_log import AuditLog
from rolegate.application.engine.audit_report import SecurityReport
from rolegate.application.ports import PermissionChecker
from rolegate.domain.exceptions import PermissionDenied
from rolegate.domain.value_objects import PermissionAction, ResourceType


class QueryAuditLogUseCase:
    """Audit queries, risk scores and security reports. Actor must have audit:read."""

    def __init__(self, audit_log: AuditLog, permission_checker: PermissionChecker) -> None:
        self._audit = audit_log
        self._permission_checker = permission_checker

    async def _authorize(self, actor_id: str) -> None:
        allowed = await self._permission_checker.check(
            actor_id, ResourceType.AUDIT, PermissionAction.READ
        )
        if not allowed:
            raise PermissionDenied("User may not read the audit log")

    async def execute(self, actor_id: str, query: AuditQuery) -> AuditPage:
        await self._authorize(actor_id)
        return await self._audit.query(query)

    async def risk_score(self, actor_id: str, user_id: str, window: timedelta) -> int:
        await self._authorize(actor_id)
        return await self._audit.risk_score(user_id, window)

    async def security_report(self, actor_id: str, window: timedelta) -> SecurityReport:
        await self._authorize(actor_id)
        return await self._audit.security_report(window)
