"""Audit log API resources."""

from datetime import datetime, timedelta

import falcon.asgi

from rolegate.application.dto.audit_query import AuditQuery
from rolegate.application.use_cases.audit.export_audit_log import ExportAuditLogUseCase
from rolegate.application.use_cases.audit.query_audit_log import QueryAuditLogUseCase
from rolegate.domain.exceptions import ValidationError
from rolegate.domain.value_objects import Effect
from rolegate.interfaces.api.errors import require_user

_CONTENT_TYPES = {"csv": "text/csv; charset=utf-8", "json": falcon.MEDIA_JSON}


def _parse_time(req: falcon.asgi.Request, name: str) -> datetime | None:
    raw = req.get_param(name)
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO 8601 datetime") from None


def _window(req: falcon.asgi.Request, default_hours: int) -> timedelta:
    hours = req.get_param_as_int("window_hours", min_value=1) or default_hours
    return timedelta(hours=hours)


def _query_from_request(req: falcon.asgi.Request) -> AuditQuery:
    outcome = req.get_param("outcome")
    try:
        parsed_outcome = Effect(outcome) if outcome else None
    except ValueError:
        raise ValidationError(f"unknown outcome {outcome!r}") from None
    limit = req.get_param_as_int("limit") or 50
    return AuditQuery(
        user_id=req.get_param("user_id"),
        outcome=parsed_outcome,
        since=_parse_time(req, "since"),
        until=_parse_time(req, "until"),
        cursor=req.get_param("cursor"),
        limit=min(max(limit, 1), 500),
    )


class AuditResource:
    """GET /v1/audit, /v1/audit/export and /v1/audit/report."""

    def __init__(
        self,
        query_audit_log: QueryAuditLogUseCase,
        export_audit_log: ExportAuditLogUseCase,
    ) -> None:
        self._query = query_audit_log
        self._export = export_audit_log

    async def on_get(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """Page through persisted audit events."""
        user = require_user(req)
        page = await self._query.execute(user.user_id, _query_from_request(req))
        resp.media = {
            "items": [e.to_dict() for e in page.items],
            "next_cursor": page.next_cursor,
        }
        resp.status = falcon.HTTP_200

    async def on_get_export(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """Export matching events; ``format`` is csv (default) or json."""
        user = require_user(req)
        fmt = (req.get_param("format") or "csv").lower()
        body = await self._export.execute(user.user_id, fmt, _query_from_request(req))
        resp.content_type = _CONTENT_TYPES[fmt]
        resp.downloadable_as = f"audit.{fmt}"
        resp.text = body
        resp.status = falcon.HTTP_200

    async def on_get_report(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        """Security report over the last ``window_hours`` (default 7 days)."""
        user = require_user(req)
        report = await self._query.security_report(user.user_id, _window(req, 24 * 7))
        resp.media = report.to_dict()
        resp.status = falcon.HTTP_200


class AuditRiskResource:
    """GET /v1/audit/risk/{user_id} - anomaly score 0-100."""

    def __init__(self, query_audit_log: QueryAuditLogUseCase) -> None:
        self._query = query_audit_log

    async def on_get(
        self,
        req: falcon.asgi.Request,
        resp: falcon.asgi.Response,
        user_id: str,
    ) -> None:
        """Risk score over the last ``window_hours`` (default 24)."""
        user = require_user(req)
        window = _window(req, 24)
        score = await self._query.risk_score(user.user_id, user_id, window)
        resp.media = {
            "user_id": user_id,
            "window_hours": int(window.total_seconds() // 3600),
            "risk_score": score,
        }
        resp.status = falcon.HTTP_200
