"""Audit log - bounded async buffer in front of an append-only, hash-chained store.

``append`` never blocks the caller: events go into a bounded buffer and a
background task writes them in batches. When the buffer is full the oldest
event is dropped and counted. Storage failures are retried with exponential
backoff; a batch that still fails goes back to the front of the buffer.
"""

import asyncio
import csv
import io
import json
import logging
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from uuid import uuid4

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from rolegate.application.dto.audit_query import AuditPage, AuditQuery
from rolegate.application.engine.audit_report import SecurityReport, build_security_report
from rolegate.application.engine.metrics import (
    AUDIT_BUFFERED,
    AUDIT_DROPPED,
    AUDIT_PERSISTED,
    AUDIT_WRITE_FAILURES,
)
from rolegate.domain.entities import GENESIS_HASH, AuditEvent, Decision
from rolegate.domain.exceptions import StorageUnavailable, ValidationError
from rolegate.domain.value_objects import Effect

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = (
    "sequence",
    "id",
    "timestamp",
    "user_id",
    "resource_type",
    "action",
    "scope_context",
    "outcome",
    "reason",
    "matched_rule",
    "latency_ms",
    "cache_hit",
    "previous_hash",
    "hash",
)


class ExportFormat(StrEnum):
    CSV = "csv"
    JSON = "json"


@dataclass
class ChainVerification:
    """Result of walking the stored hash chain."""

    ok: bool
    checked: int
    broken_at: int | None = None


class AuditLog:
    """Records every decision and serves audit queries, exports and risk scores."""

    def __init__(
        self,
        unit_of_work_factory: type,
        buffer_size: int = 10_000,
        batch_size: int = 100,
        retry_attempts: int = 5,
        retry_min_wait: float = 0.5,
        retry_max_wait: float = 30.0,
        risk_denial_threshold: int = 10,
        risk_diversity_threshold: int = 5,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if buffer_size < 1 or batch_size < 1:
            raise ValidationError("audit buffer and batch sizes must be positive")
        self._uow_factory = unit_of_work_factory
        self._buffer_size = buffer_size
        self._batch_size = batch_size
        self._retry_attempts = retry_attempts
        self._retry_min_wait = retry_min_wait
        self._retry_max_wait = retry_max_wait
        self._denial_threshold = risk_denial_threshold
        self._diversity_threshold = risk_diversity_threshold
        self._clock = clock or (lambda: datetime.now(UTC))
        self._buffer: deque[AuditEvent] = deque()
        self._wakeup = asyncio.Event()
        self._write_lock = asyncio.Lock()
        self._worker: asyncio.Task | None = None
        self._closing = False
        self._head_hash: str | None = None
        self._sequence = 0
        self.dropped_count = 0
        self.persisted_count = 0

    @property
    def pending(self) -> int:
        return len(self._buffer)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    # --- write path ---

    def record(
        self,
        decision: Decision,
        latency_ms: float,
        cache_hit: bool,
        caller_attributes: Mapping[str, str] | None = None,
    ) -> AuditEvent:
        event = AuditEvent(
            id=uuid4(),
            decision=decision,
            latency_ms=latency_ms,
            cache_hit=cache_hit,
            recorded_at=self._clock(),
            caller_attributes=dict(caller_attributes or {}),
        )
        self.append(event)
        return event

    def append(self, event: AuditEvent) -> None:
        """Buffer ``event`` for persistence; drops the oldest event when full."""
        self._buffer.append(event)
        self._trim()
        AUDIT_BUFFERED.set(len(self._buffer))
        self._wakeup.set()

    def _trim(self) -> None:
        dropped = 0
        while len(self._buffer) > self._buffer_size:
            self._buffer.popleft()
            dropped += 1
        if dropped:
            self.dropped_count += dropped
            AUDIT_DROPPED.inc(dropped)
            logger.warning(
                "Audit buffer full; dropped %d event(s), %d dropped in total",
                dropped,
                self.dropped_count,
            )

    async def start(self) -> None:
        if self.running:
            return
        self._closing = False
        self._worker = asyncio.create_task(self._run(), name="rolegate-audit-writer")
        logger.info("Audit writer started (buffer %d, batch %d)", self._buffer_size, self._batch_size)

    async def aclose(self, timeout: float = 10.0) -> None:
        """Stop the writer after draining what it can within ``timeout`` seconds."""
        if self._worker is None:
            return
        self._closing = True
        self._wakeup.set()
        try:
            await asyncio.wait_for(self._worker, timeout=timeout)
        except TimeoutError:
            logger.error("Audit writer did not drain in %.1fs; %d events lost", timeout, self.pending)
        finally:
            self._worker = None

    async def flush(self) -> int:
        """Persist everything buffered now. Raises StorageUnavailable if storage stays down."""
        written = 0
        while self._buffer:
            written += await self._flush_batch()
        return written

    async def _run(self) -> None:
        while not (self._closing and not self._buffer):
            if not self._buffer:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            try:
                await self._flush_batch()
            except Exception as e:
                AUDIT_WRITE_FAILURES.inc()
                if isinstance(e, StorageUnavailable):
                    logger.error("Audit store unavailable, %d events buffered: %s", self.pending, e)
                else:
                    logger.exception("Audit batch write failed, %d events buffered", self.pending)
                if self._closing:
                    return
                self._wakeup.clear()
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=self._retry_max_wait)
                except TimeoutError:
                    pass

    async def _flush_batch(self) -> int:
        async with self._write_lock:
            count = min(self._batch_size, len(self._buffer))
            batch = [self._buffer.popleft() for _ in range(count)]
            if not batch:
                return 0
            try:
                await self._write_with_retry(batch)
            except Exception:
                self._buffer.extendleft(reversed(batch))
                self._trim()
                raise
            finally:
                AUDIT_BUFFERED.set(len(self._buffer))
            return len(batch)

    async def _write_with_retry(self, batch: list[AuditEvent]) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(
                multiplier=self._retry_min_wait,
                min=self._retry_min_wait,
                max=self._retry_max_wait,
            ),
            retry=retry_if_exception_type(StorageUnavailable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self._write(batch)

    async def _write(self, batch: list[AuditEvent]) -> None:
        async with self._uow_factory() as uow:
            if self._head_hash is None:
                last = await uow.audit_events.last()
                self._sequence = last.sequence if last is not None else 0
                self._head_hash = last.hash if last is not None else GENESIS_HASH
            sequence = self._sequence
            previous = self._head_hash
            sealed: list[AuditEvent] = []
            for event in batch:
                sequence += 1
                event = event.sealed(sequence, previous)
                previous = event.hash
                sealed.append(event)
            await uow.audit_events.append_batch(sealed)
        # chain head only moves once the batch is committed
        self._sequence = sequence
        self._head_hash = previous
        self.persisted_count += len(sealed)
        AUDIT_PERSISTED.inc(len(sealed))

    # --- read path ---

    async def query(self, query: AuditQuery) -> AuditPage:
        """Page through persisted events in sequence order."""
        if query.limit < 1:
            raise ValidationError("limit must be positive")
        async with self._uow_factory() as uow:
            items, next_cursor = await uow.audit_events.list(query)
        return AuditPage(items=items, next_cursor=next_cursor)

    async def _collect(self, query: AuditQuery) -> list[AuditEvent]:
        events: list[AuditEvent] = []
        page_query = AuditQuery(
            user_id=query.user_id,
            outcome=query.outcome,
            since=query.since,
            until=query.until,
            cursor=query.cursor,
            limit=500,
        )
        while True:
            page = await self.query(page_query)
            events.extend(page.items)
            if page.next_cursor is None:
                return events
            page_query.cursor = page.next_cursor

    async def risk_score(self, user_id: str, window: timedelta = timedelta(hours=24)) -> int:
        """Score 0-100 from denial frequency (60 points) and denied resource diversity (40)."""
        since = self._clock() - window
        denials = await self._collect(AuditQuery(user_id=user_id, outcome=Effect.DENY, since=since))
        if not denials:
            return 0
        frequency = min(1.0, len(denials) / self._denial_threshold)
        resources = {e.decision.resource_type for e in denials}
        diversity = min(1.0, len(resources) / self._diversity_threshold)
        return max(0, min(100, round(60 * frequency + 40 * diversity)))

    async def export(self, fmt: str, query: AuditQuery | None = None) -> str:
        """Render matching events as CSV or JSON."""
        try:
            export_format = ExportFormat(fmt)
        except ValueError:
            raise ValidationError(f"unsupported export format {fmt!r}") from None
        events = await self._collect(query or AuditQuery())
        if export_format is ExportFormat.JSON:
            return json.dumps([e.to_dict() for e in events], indent=2)

        out = io.StringIO()
        writer = csv.writer(out)
        writer.writerow(EXPORT_COLUMNS)
        for e in events:
            d = e.decision
            writer.writerow(
                [
                    e.sequence,
                    e.id,
                    d.timestamp.isoformat(),
                    d.user_id,
                    d.resource_type,
                    d.action,
                    json.dumps(d.scope_context.as_dict(), sort_keys=True),
                    d.outcome.value,
                    d.reason,
                    d.matched_rule or "",
                    f"{e.latency_ms:.3f}",
                    "true" if e.cache_hit else "false",
                    e.previous_hash,
                    e.hash,
                ]
            )
        return out.getvalue()

    async def verify_chain(self) -> ChainVerification:
        """Recompute every stored hash; reports the first sequence that does not match."""
        previous = GENESIS_HASH
        checked = 0
        for event in await self._collect(AuditQuery()):
            if event.previous_hash != previous or event.compute_hash(previous) != event.hash:
                logger.error("Audit chain broken at sequence %s", event.sequence)
                return ChainVerification(ok=False, checked=checked, broken_at=event.sequence)
            previous = event.hash
            checked += 1
        return ChainVerification(ok=True, checked=checked)

    async def security_report(self, window: timedelta = timedelta(days=7)) -> SecurityReport:
        now = self._clock()
        since = now - window
        events = await self._collect(AuditQuery(since=since))
        return build_security_report(
            events,
            since=since,
            generated_at=now,
            denial_threshold=self._denial_threshold,
        )
