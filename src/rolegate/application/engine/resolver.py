"""Permission resolver - turns (user, resource, action, scope) into a Decision.

Every path returns a Decision; expected failures become Deny with a reason.
Only caller cancellation escapes, and then nothing is cached or audited.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from rolegate.application.dto.request_context import RequestContext
from rolegate.application.engine.assignment_store import AssignmentStore
from rolegate.application.engine.audit_log import AuditLog
from rolegate.application.engine.context_evaluator import ContextEvaluator
from rolegate.application.engine.decision_cache import CacheKey, DecisionCache
from rolegate.application.engine.metrics import CACHE_LOOKUPS, DECISIONS, RESOLUTION_DURATION
from rolegate.application.engine.role_graph import RoleGraph
from rolegate.domain.entities import Assignment, Decision, DecisionReason, ResolvedPermission
from rolegate.domain.exceptions import ValidationError
from rolegate.domain.value_objects import Effect, PermissionAction, ResourceType, ScopeContext

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 0.5


@dataclass(frozen=True)
class _Request:
    user_id: str
    resource_type: ResourceType
    action: PermissionAction
    scope: ScopeContext


@dataclass
class _Resolution:
    outcome: Effect
    reason: DecisionReason
    matched_rule: str | None = None
    cacheable: bool = True
    ttl_seconds: float | None = None
    role_ids: set[str] = field(default_factory=set)


def _matched_rule(assignment: Assignment, permission: ResolvedPermission) -> str:
    return f"assignment:{assignment.id}/role:{assignment.role_id}/{permission.provenance}"


def _normalize(
    user_id: str,
    resource_type: str | ResourceType,
    action: str | PermissionAction,
    scope_context: ScopeContext | Mapping[str, str] | None,
) -> _Request:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("user_id is required")
    try:
        resource = ResourceType(resource_type)
    except ValueError:
        raise ValidationError(f"unknown resource type {resource_type!r}") from None
    try:
        permission_action = PermissionAction(action)
    except ValueError:
        raise ValidationError(f"unknown action {action!r}") from None
    if isinstance(scope_context, ScopeContext):
        scope = scope_context
    elif scope_context is None or isinstance(scope_context, Mapping):
        scope = ScopeContext.from_mapping(scope_context)
    else:
        raise ValidationError("malformed scope: expected a mapping of scope type to id")
    return _Request(user_id.strip(), resource, permission_action, scope)


class PermissionResolver:
    """Resolves permission checks against the role graph and assignment store.

    Construct one per process with its collaborators; call ``start`` before
    serving and ``aclose`` on shutdown to drain the audit writer.
    """

    def __init__(
        self,
        role_graph: RoleGraph,
        assignment_store: AssignmentStore,
        audit_log: AuditLog,
        context_evaluator: ContextEvaluator | None = None,
        cache: DecisionCache | None = None,
        timeout_seconds: float | None = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._roles = role_graph
        self._assignments = assignment_store
        self._audit = audit_log
        self._evaluator = context_evaluator or ContextEvaluator()
        self._cache = cache
        self._timeout = timeout_seconds
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def cache(self) -> DecisionCache | None:
        return self._cache

    @property
    def audit_log(self) -> AuditLog:
        return self._audit

    async def start(self) -> None:
        await self._audit.start()

    async def aclose(self) -> None:
        await self._audit.aclose()

    async def check(
        self,
        user_id: str,
        resource_type: str,
        action: str,
        scope_context: Mapping[str, str] | None = None,
    ) -> bool:
        decision = await self.check_permission(user_id, resource_type, action, scope_context)
        return decision.allowed

    async def check_many(
        self,
        user_id: str,
        checks: Iterable[tuple[str, str]],
        scope_context: ScopeContext | Mapping[str, str] | None = None,
        request_context: RequestContext | None = None,
        caller_attributes: Mapping[str, str] | None = None,
    ) -> list[Decision]:
        """Decide each (resource, action) for one user in order; each is audited."""
        return [
            await self.check_permission(
                user_id, resource, action, scope_context, request_context, caller_attributes
            )
            for resource, action in checks
        ]

    async def has_any_permission(
        self,
        user_id: str,
        resource_type: str | ResourceType,
        scope_context: ScopeContext | Mapping[str, str] | None = None,
        request_context: RequestContext | None = None,
    ) -> bool:
        """True if the user may perform at least one action on ``resource_type``.

        Used for UI gating like the listing, so it is not audited.
        """
        try:
            resource = ResourceType(resource_type)
        except ValueError:
            raise ValidationError(f"unknown resource type {resource_type!r}") from None
        pairs = await self.list_effective_permissions(user_id, scope_context, request_context)
        return any(r == resource.value for r, _ in pairs)

    async def check_permission(
        self,
        user_id: str,
        resource_type: str | ResourceType,
        action: str | PermissionAction,
        scope_context: ScopeContext | Mapping[str, str] | None = None,
        request_context: RequestContext | None = None,
        caller_attributes: Mapping[str, str] | None = None,
    ) -> Decision:
        """Decide one request and record exactly one audit event for it."""
        started = time.perf_counter()
        now = self._clock()
        try:
            request = _normalize(user_id, resource_type, action, scope_context)
        except ValidationError as e:
            logger.info("Malformed permission check for %r: %s", user_id, e)
            decision = Decision(
                user_id=str(user_id or ""),
                resource_type=str(resource_type),
                action=str(action),
                scope_context=ScopeContext(),
                outcome=Effect.DENY,
                reason=DecisionReason.MALFORMED_REQUEST,
                matched_rule=None,
                timestamp=now,
            )
            return self._finish(decision, started, False, caller_attributes)

        key = CacheKey(
            request.user_id,
            request.resource_type.value,
            request.action.value,
            request.scope.fingerprint(),
        )
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                CACHE_LOOKUPS.labels("hit").inc()
                decision = replace(cached, timestamp=now)
                return self._finish(decision, started, True, caller_attributes)
            CACHE_LOOKUPS.labels("miss").inc()

        context = request_context or RequestContext()
        if context.now is None:
            context = context.at(now)

        try:
            async with asyncio.timeout(self._timeout):
                resolution = await self._resolve(request, context, now)
        except TimeoutError:
            logger.warning(
                "Permission check timed out after %ss: %s %s:%s",
                self._timeout,
                request.user_id,
                request.resource_type.value,
                request.action.value,
            )
            resolution = _Resolution(Effect.DENY, DecisionReason.TIMEOUT, cacheable=False)
        except Exception:
            logger.exception(
                "Permission check failed: %s %s:%s",
                request.user_id,
                request.resource_type.value,
                request.action.value,
            )
            resolution = _Resolution(Effect.DENY, DecisionReason.ERROR, cacheable=False)

        decision = Decision(
            user_id=request.user_id,
            resource_type=request.resource_type.value,
            action=request.action.value,
            scope_context=request.scope,
            outcome=resolution.outcome,
            reason=resolution.reason,
            matched_rule=resolution.matched_rule,
            timestamp=now,
        )
        RESOLUTION_DURATION.observe(time.perf_counter() - started)
        if self._cache is not None and resolution.cacheable:
            self._cache.put(key, decision, resolution.role_ids, resolution.ttl_seconds)
        return self._finish(decision, started, False, caller_attributes)

    def _finish(
        self,
        decision: Decision,
        started: float,
        cache_hit: bool,
        caller_attributes: Mapping[str, str] | None,
    ) -> Decision:
        latency_ms = (time.perf_counter() - started) * 1000
        DECISIONS.labels(decision.outcome.value, decision.reason).inc()
        self._audit.record(decision, latency_ms, cache_hit, caller_attributes)
        return decision

    async def _qualifying(
        self, request: _Request, now: datetime
    ) -> tuple[list[Assignment], list[Assignment]]:
        """Active assignments and the subset whose scope contains the request.

        Assignments whose role is no longer in the graph grant nothing.
        """
        active = []
        for assignment in await self._assignments.active_assignments_for(request.user_id, now):
            if self._roles.find(assignment.role_id) is None:
                logger.warning(
                    "Assignment %s references unknown role %s; ignoring it",
                    assignment.id,
                    assignment.role_id,
                )
                continue
            active.append(assignment)
        active.sort(key=lambda a: (a.created_at, str(a.id)))
        in_scope = [a for a in active if a.scope.contains(request.scope)]
        return active, in_scope

    def _candidates(
        self, assignment: Assignment, context: RequestContext
    ) -> tuple[list[ResolvedPermission], bool]:
        """Permissions granted through ``assignment`` for ``context``."""
        permissions = self._roles.effective_permissions(assignment.role_id)
        if not self._roles.is_context_sensitive(assignment.role_id):
            return permissions, False
        rules = self._roles.contextual_rules(assignment.role_id)
        return self._evaluator.apply(permissions, rules, context), True

    async def _resolve(
        self, request: _Request, context: RequestContext, now: datetime
    ) -> _Resolution:
        active, in_scope = await self._qualifying(request, now)
        role_ids: set[str] = set()
        context_sensitive = False
        allow: tuple[Assignment, ResolvedPermission] | None = None
        deny: tuple[Assignment, ResolvedPermission] | None = None

        for assignment in in_scope:
            role_ids.update(self._roles.hierarchy_chain(assignment.role_id))
            candidates, sensitive = self._candidates(assignment, context)
            context_sensitive = context_sensitive or sensitive
            for permission in candidates:
                if not permission.matches(request.resource_type, request.action):
                    continue
                if permission.effect is Effect.DENY:
                    deny = deny or (assignment, permission)
                else:
                    allow = allow or (assignment, permission)

        if deny is not None:
            assignment, permission = deny
            reason = (
                DecisionReason.CONTEXTUAL_DENY
                if permission.rule_id is not None
                else DecisionReason.EXPLICIT_DENY
            )
            resolution = _Resolution(Effect.DENY, reason, _matched_rule(assignment, permission))
        elif allow is not None:
            assignment, permission = allow
            resolution = _Resolution(
                Effect.ALLOW, DecisionReason.GRANTED, _matched_rule(assignment, permission)
            )
        else:
            resolution = _Resolution(
                Effect.DENY, self._default_reason(request, active, in_scope, now)
            )

        resolution.role_ids = role_ids
        resolution.cacheable = not context_sensitive
        resolution.ttl_seconds = self._ttl_cap(request.user_id, now)
        return resolution

    def _default_reason(
        self,
        request: _Request,
        active: list[Assignment],
        in_scope: list[Assignment],
        now: datetime,
    ) -> DecisionReason:
        if in_scope:
            return DecisionReason.NO_MATCHING_GRANT
        inactive = [
            a
            for a in self._assignments.assignments_for(request.user_id)
            if not a.is_revoked and not a.is_active(now) and a.scope.contains(request.scope)
        ]
        if any(a.is_expired(now) for a in inactive):
            return DecisionReason.EXPIRED_ASSIGNMENT
        if any(a.is_pending(now) for a in inactive):
            return DecisionReason.PENDING_ASSIGNMENT
        if active:
            return DecisionReason.SCOPE_NOT_COVERED
        return DecisionReason.NO_MATCHING_GRANT

    def _ttl_cap(self, user_id: str, now: datetime) -> float | None:
        """Seconds until the user's next assignment boundary, if any."""
        boundaries = []
        for a in self._assignments.assignments_for(user_id):
            if a.is_active(now) and a.valid_until is not None:
                boundaries.append(a.valid_until)
            elif a.is_pending(now):
                boundaries.append(a.valid_from)
        if not boundaries:
            return None
        return (min(boundaries) - now).total_seconds()

    async def list_effective_permissions(
        self,
        user_id: str,
        scope_context: ScopeContext | Mapping[str, str] | None = None,
        request_context: RequestContext | None = None,
    ) -> set[tuple[str, str]]:
        """Every (resource, action) pair the user would be allowed in this scope.

        Wildcard grants expand to every concrete resource type. Not audited.
        A malformed user id or scope raises ValidationError; a lookup that
        exceeds the resolution timeout yields the empty set.
        """
        now = self._clock()
        request = _normalize(user_id, ResourceType.ANY, PermissionAction.READ, scope_context)
        context = request_context or RequestContext()
        if context.now is None:
            context = context.at(now)
        try:
            async with asyncio.timeout(self._timeout):
                _, in_scope = await self._qualifying(request, now)
        except TimeoutError:
            logger.warning(
                "Listing permissions for %s timed out after %ss", request.user_id, self._timeout
            )
            return set()

        allowed: set[tuple[ResourceType, PermissionAction]] = set()
        denied: set[tuple[ResourceType, PermissionAction]] = set()
        for assignment in in_scope:
            candidates, _ = self._candidates(assignment, context)
            for permission in candidates:
                resources = (
                    ResourceType.concrete()
                    if permission.resource_type is ResourceType.ANY
                    else [permission.resource_type]
                )
                target = denied if permission.effect is Effect.DENY else allowed
                target.update((r, permission.action) for r in resources)
        return {(r.value, a.value) for r, a in allowed - denied}
