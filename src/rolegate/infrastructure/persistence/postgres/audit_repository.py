"""PostgreSQL audit event repository implementation."""

from psycopg import AsyncConnection
from psycopg.types.json import Jsonb

from rolegate.application.dto.audit_query import AuditQuery
from rolegate.domain.entities import AuditEvent


class PostgresAuditRepository:
    """Append-only audit store ordered by sequence.

    The full event body is kept as jsonb so stored hashes can be recomputed;
    user, outcome and decision time are copied into columns for filtering.
    """

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    async def append_batch(self, events: list[AuditEvent]) -> None:
        """Insert sealed events."""
        async with self._conn.cursor() as cur:
            await cur.executemany(
                "INSERT INTO audit_event "
                "(sequence, id, user_id, outcome, decided_at, body, previous_hash, hash) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s)",
                [
                    (
                        e.sequence,
                        e.id,
                        e.decision.user_id,
                        e.decision.outcome.value,
                        e.decision.timestamp,
                        Jsonb(e.to_dict()),
                        e.previous_hash,
                        e.hash,
                    )
                    for e in events
                ],
            )

    async def last(self) -> AuditEvent | None:
        """Event with the highest sequence."""
        cur = await self._conn.execute(
            "SELECT body FROM audit_event ORDER BY sequence DESC LIMIT 1"
        )
        r = await cur.fetchone()
        if not r:
            return None
        return AuditEvent.from_dict(r[0])

    async def list(self, query: AuditQuery) -> tuple[list[AuditEvent], str | None]:
        """List events with cursor pagination (cursor is the last sequence seen)."""
        conditions = ["sequence > %s"]
        _params: list[object] = [query.after_sequence]
        if query.user_id is not None:
            conditions.append("user_id = %s")
            _params.append(query.user_id)
        if query.outcome is not None:
            conditions.append("outcome = %s")
            _params.append(query.outcome.value)
        if query.since is not None:
            conditions.append("decided_at >= %s")
            _params.append(query.since)
        if query.until is not None:
            conditions.append("decided_at <= %s")
            _params.append(query.until)
        where = " AND ".join(conditions)
        params = tuple(_params) + (query.limit + 1,)
        cur = await self._conn.execute(
            f"SELECT body FROM audit_event WHERE {where} ORDER BY sequence LIMIT %s",
            params,
        )
        rows = await cur.fetchall()
        events = [AuditEvent.from_dict(r[0]) for r in rows[: query.limit]]
        next_cursor = str(events[-1].sequence) if len(rows) > query.limit else None
        return events, next_cursor
