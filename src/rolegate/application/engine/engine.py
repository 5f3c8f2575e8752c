"""Wiring of the engine components around one invalidation bus."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from rolegate.application.engine.assignment_store import AssignmentStore
from rolegate.application.engine.audit_log import AuditLog
from rolegate.application.engine.context_evaluator import ContextEvaluator
from rolegate.application.engine.decision_cache import DecisionCache
from rolegate.application.engine.events import InvalidationBus
from rolegate.application.engine.resolver import PermissionResolver
from rolegate.application.engine.role_graph import RoleGraph
from rolegate.application.engine.system_roles import SYSTEM_ROLES
from rolegate.domain.entities import Role

logger = logging.getLogger(__name__)


@dataclass
class AuthorizationEngine:
    """Role graph, assignment store, cache, audit log and resolver sharing one bus."""

    bus: InvalidationBus
    role_graph: RoleGraph
    assignment_store: AssignmentStore
    context_evaluator: ContextEvaluator
    cache: DecisionCache | None
    audit_log: AuditLog
    resolver: PermissionResolver

    @classmethod
    def build(
        cls,
        unit_of_work_factory: type,
        max_depth: int = 10,
        cache_ttl_seconds: float = 5.0,
        resolution_timeout_seconds: float | None = 0.5,
        audit_buffer_size: int = 10_000,
        audit_batch_size: int = 100,
        audit_retry_attempts: int = 5,
        audit_retry_min_wait: float = 0.5,
        audit_retry_max_wait: float = 30.0,
        risk_denial_threshold: int = 10,
        risk_diversity_threshold: int = 5,
        context_evaluator: ContextEvaluator | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "AuthorizationEngine":
        clock = clock or (lambda: datetime.now(UTC))
        bus = InvalidationBus()
        role_graph = RoleGraph(unit_of_work_factory, bus=bus, max_depth=max_depth, clock=clock)
        assignment_store = AssignmentStore(
            unit_of_work_factory, role_graph, bus=bus, clock=clock
        )
        cache = DecisionCache(cache_ttl_seconds, bus=bus) if cache_ttl_seconds > 0 else None
        audit_log = AuditLog(
            unit_of_work_factory,
            buffer_size=audit_buffer_size,
            batch_size=audit_batch_size,
            retry_attempts=audit_retry_attempts,
            retry_min_wait=audit_retry_min_wait,
            retry_max_wait=audit_retry_max_wait,
            risk_denial_threshold=risk_denial_threshold,
            risk_diversity_threshold=risk_diversity_threshold,
            clock=clock,
        )
        evaluator = context_evaluator or ContextEvaluator()
        resolver = PermissionResolver(
            role_graph,
            assignment_store,
            audit_log,
            context_evaluator=evaluator,
            cache=cache,
            timeout_seconds=resolution_timeout_seconds,
            clock=clock,
        )
        return cls(bus, role_graph, assignment_store, evaluator, cache, audit_log, resolver)

    async def start(
        self,
        seed_roles: Iterable[Role] | None = SYSTEM_ROLES,
        bootstrap_admin: str | None = None,
    ) -> None:
        """Load state from storage, seed built-in roles and start the audit writer."""
        await self.role_graph.load()
        if seed_roles:
            await self.role_graph.seed_system_roles(seed_roles)
        await self.assignment_store.load()
        if bootstrap_admin and not self.assignment_store.assignments_for(bootstrap_admin):
            await self.assignment_store.assign(
                bootstrap_admin,
                "super_admin",
                created_by="system",
                reason="bootstrap administrator",
            )
            logger.warning("Granted super_admin to bootstrap user %s", bootstrap_admin)
        await self.resolver.start()

    async def aclose(self) -> None:
        await self.resolver.aclose()
