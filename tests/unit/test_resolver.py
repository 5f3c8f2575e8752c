"""Unit tests for PermissionResolver."""

import asyncio
import logging
from dataclasses import replace
from datetime import timedelta
from uuid import uuid4

import pytest

from rolegate.application.dto.audit_query import AuditQuery
from rolegate.application.dto.request_context import RequestContext
from rolegate.application.engine.decision_cache import DecisionCache
from rolegate.application.engine.engine import AuthorizationEngine
from rolegate.application.engine.resolver import PermissionResolver
from rolegate.domain.entities import (
    Assignment,
    ContextualRule,
    DecisionReason,
    PermissionEntry,
    RuleCondition,
)
from rolegate.domain.exceptions import ValidationError
from rolegate.domain.value_objects import Effect, Scope, TimeWindow

from tests.conftest import FakeMonotonic, add_published, make_role


async def _slow_lookup(user_id, now=None):
    await asyncio.sleep(1.0)
    return []


# --- Scenarios ---


@pytest.mark.asyncio
async def test_department_scoped_grant(engine) -> None:
    """A department assignment allows inside that department only."""
    await add_published(engine, make_role("store_manager", PermissionEntry.allow("tickets", ["close"])))
    await engine.assignment_store.assign("U1", "store_manager", scope=Scope.of("department", ["08"]))
    resolver = engine.resolver

    inside = await resolver.check_permission("U1", "tickets", "close", {"department": "08"})
    outside = await resolver.check_permission("U1", "tickets", "close", {"department": "10"})

    assert inside.outcome is Effect.ALLOW
    assert inside.reason == DecisionReason.GRANTED
    assert inside.matched_rule.endswith("/role:store_manager/direct")
    assert outside.outcome is Effect.DENY
    assert outside.reason == DecisionReason.SCOPE_NOT_COVERED
    assert outside.matched_rule is None


@pytest.mark.asyncio
async def test_effective_permissions_include_inherited(engine) -> None:
    await add_published(engine, make_role("employee", PermissionEntry.allow("documents", ["read"])))
    await add_published(
        engine,
        make_role("manager", PermissionEntry.allow("documents", ["write"]), parent_id="employee"),
    )
    await engine.assignment_store.assign("U2", "manager")

    pairs = await engine.resolver.list_effective_permissions("U2", {"project": "anything"})

    assert {("documents", "read"), ("documents", "write")} <= pairs
    decision = await engine.resolver.check_permission("U2", "documents", "read")
    assert decision.matched_rule.endswith("/role:manager/inherited-from:employee")


@pytest.mark.asyncio
async def test_expired_assignment_is_denied_with_reason(engine, clock) -> None:
    await add_published(engine, make_role("clerk", PermissionEntry.allow("documents", ["read"])))
    await engine.assignment_store.assign(
        "U3",
        "clerk",
        valid_from=clock.now - timedelta(days=30),
        valid_until=clock.now - timedelta(days=1),
    )

    decision = await engine.resolver.check_permission("U3", "documents", "read")

    assert decision.outcome is Effect.DENY
    assert decision.reason == "expired assignment"


@pytest.mark.asyncio
async def test_pending_assignment_is_denied_with_reason(engine, clock) -> None:
    await add_published(engine, make_role("clerk", PermissionEntry.allow("documents", ["read"])))
    await engine.assignment_store.assign("U4", "clerk", valid_from=clock.now + timedelta(days=1))

    decision = await engine.resolver.check_permission("U4", "documents", "read")

    assert decision.reason == DecisionReason.PENDING_ASSIGNMENT


@pytest.mark.asyncio
async def test_business_hours_contextual_deny(engine, clock) -> None:
    outside_hours = ContextualRule(
        id="contractor-hours",
        condition=RuleCondition(time_window=TimeWindow.parse("09:00", "17:00"), negate=True),
        denied_permissions=(PermissionEntry.deny("documents", ["read"]),),
    )
    await add_published(
        engine,
        make_role(
            "contractor",
            PermissionEntry.allow("documents", ["read"]),
            contextual_rules=(outside_hours,),
        ),
    )
    await engine.assignment_store.assign("U5", "contractor")
    evening = clock.now.replace(hour=20)
    noon = clock.now.replace(hour=12)

    late = await engine.resolver.check_permission(
        "U5", "documents", "read", request_context=RequestContext(now=evening)
    )
    midday = await engine.resolver.check_permission(
        "U5", "documents", "read", request_context=RequestContext(now=noon)
    )

    assert late.outcome is Effect.DENY
    assert late.reason == DecisionReason.CONTEXTUAL_DENY
    assert late.matched_rule.endswith("rule:contractor-hours")
    assert midday.outcome is Effect.ALLOW
    # context-dependent decisions are never cached
    assert len(engine.cache) == 0


# --- Combination rules ---


@pytest.mark.asyncio
async def test_deny_wins_across_roles(engine) -> None:
    await add_published(engine, make_role("editor", PermissionEntry.allow("documents", ["delete"])))
    await add_published(engine, make_role("restricted", PermissionEntry.deny("documents", ["delete"])))
    await engine.assignment_store.assign("U6", "editor")
    await engine.assignment_store.assign("U6", "restricted")

    decision = await engine.resolver.check_permission("U6", "documents", "delete")

    assert decision.outcome is Effect.DENY
    assert decision.reason == DecisionReason.EXPLICIT_DENY
    assert "/role:restricted/" in decision.matched_rule


@pytest.mark.asyncio
async def test_wildcard_grant_and_listing(engine) -> None:
    await add_published(
        engine,
        make_role(
            "reader",
            PermissionEntry.allow("*", ["read"]),
            PermissionEntry.deny("audit", ["read"]),
        ),
    )
    await engine.assignment_store.assign("U7", "reader")

    assert await engine.resolver.check("U7", "calendar", "read")
    assert not await engine.resolver.check("U7", "audit", "read")
    pairs = await engine.resolver.list_effective_permissions("U7")
    assert ("calendar", "read") in pairs
    assert ("audit", "read") not in pairs
    assert ("*", "read") not in pairs


@pytest.mark.asyncio
async def test_no_assignment_is_no_matching_grant(engine) -> None:
    decision = await engine.resolver.check_permission("nobody", "documents", "read")
    assert decision.outcome is Effect.DENY
    assert decision.reason == DecisionReason.NO_MATCHING_GRANT


@pytest.mark.asyncio
async def test_malformed_request_is_denied_and_audited(engine) -> None:
    bad_resource = await engine.resolver.check_permission("U1", "spaceships", "read")
    bad_scope = await engine.resolver.check_permission("U1", "documents", "read", {"galaxy": "x"})
    blank_user = await engine.resolver.check_permission("", "documents", "read")

    for decision in (bad_resource, bad_scope, blank_user):
        assert decision.outcome is Effect.DENY
        assert decision.reason == DecisionReason.MALFORMED_REQUEST
    assert engine.audit_log.pending == 3


# --- Conditional entries ---


@pytest.mark.asyncio
async def test_conditional_deny_applies_when_condition_holds(engine) -> None:
    await add_published(
        engine,
        make_role(
            "analyst",
            PermissionEntry.allow("reports", ["read", "export"]),
            PermissionEntry.deny("reports", ["export"], "off_network"),
        ),
    )
    await engine.assignment_store.assign("C1", "analyst")
    resolver = engine.resolver

    away = await resolver.check_permission(
        "C1", "reports", "export", request_context=RequestContext(flags=frozenset({"off_network"}))
    )
    office = await resolver.check_permission("C1", "reports", "export")

    assert away.outcome is Effect.DENY
    assert away.reason == DecisionReason.EXPLICIT_DENY
    assert away.matched_rule.endswith("/role:analyst/direct")
    assert office.outcome is Effect.ALLOW
    assert office.reason == DecisionReason.GRANTED
    assert len(engine.cache) == 0


@pytest.mark.asyncio
async def test_conditional_allow_applies_only_when_condition_holds(engine) -> None:
    await add_published(
        engine, make_role("nurse", PermissionEntry.allow("clients", ["read"], "on_shift"))
    )
    await engine.assignment_store.assign("C2", "nurse")
    resolver = engine.resolver

    on_shift = await resolver.check_permission(
        "C2", "clients", "read", request_context=RequestContext(flags=frozenset({"on_shift"}))
    )
    off_shift = await resolver.check_permission("C2", "clients", "read")

    assert on_shift.outcome is Effect.ALLOW
    assert on_shift.reason == DecisionReason.GRANTED
    assert off_shift.outcome is Effect.DENY
    assert off_shift.reason == DecisionReason.NO_MATCHING_GRANT


@pytest.mark.asyncio
async def test_listing_applies_conditional_entries(engine) -> None:
    await add_published(
        engine,
        make_role(
            "field_agent",
            PermissionEntry.allow("reports", ["read", "export"]),
            PermissionEntry.deny("reports", ["export"], "off_network"),
            PermissionEntry.allow("clients", ["read"], "on_shift"),
        ),
    )
    await engine.assignment_store.assign("C3", "field_agent")
    resolver = engine.resolver

    plain = await resolver.list_effective_permissions("C3")
    flagged = await resolver.list_effective_permissions(
        "C3", request_context=RequestContext(flags=frozenset({"off_network", "on_shift"}))
    )

    assert plain == {("reports", "read"), ("reports", "export")}
    assert flagged == {("reports", "read"), ("clients", "read")}


@pytest.mark.asyncio
async def test_inherited_conditional_deny_applies(engine) -> None:
    await add_published(
        engine, make_role("base", PermissionEntry.deny("documents", ["delete"], "locked_down"))
    )
    await add_published(
        engine,
        make_role("editor", PermissionEntry.allow("documents", ["delete"]), parent_id="base"),
    )
    await engine.assignment_store.assign("C4", "editor")

    decision = await engine.resolver.check_permission(
        "C4", "documents", "delete", request_context=RequestContext(flags=frozenset({"locked_down"}))
    )

    assert decision.outcome is Effect.DENY
    assert decision.matched_rule.endswith("/role:editor/inherited-from:base")


# --- Batch checks ---


@pytest.mark.asyncio
async def test_check_many_keeps_order_and_audits_each(engine) -> None:
    await add_published(engine, make_role("clerk", PermissionEntry.allow("documents", ["read"])))
    await engine.assignment_store.assign("B1", "clerk")

    decisions = await engine.resolver.check_many(
        "B1", [("documents", "write"), ("documents", "read"), ("spaceships", "read")]
    )

    assert [d.action for d in decisions] == ["write", "read", "read"]
    assert [d.allowed for d in decisions] == [False, True, False]
    assert decisions[2].reason == DecisionReason.MALFORMED_REQUEST
    assert engine.audit_log.pending == 3


@pytest.mark.asyncio
async def test_check_many_of_nothing_is_empty(engine) -> None:
    assert await engine.resolver.check_many("B2", []) == []
    assert engine.audit_log.pending == 0


@pytest.mark.asyncio
async def test_has_any_permission(engine) -> None:
    await add_published(engine, make_role("reader", PermissionEntry.allow("reports", ["read"])))
    await engine.assignment_store.assign("B3", "reader", scope=Scope.of("department", ["08"]))
    resolver = engine.resolver

    assert await resolver.has_any_permission("B3", "reports", {"department": "08"})
    assert not await resolver.has_any_permission("B3", "reports", {"department": "10"})
    assert not await resolver.has_any_permission("B3", "users", {"department": "08"})
    assert engine.audit_log.pending == 0
    with pytest.raises(ValidationError):
        await resolver.has_any_permission("B3", "spaceships")


# --- Stale assignments ---


@pytest.mark.asyncio
async def test_assignment_to_unknown_role_grants_nothing(
    engine, memory_uow, clock, caplog
) -> None:
    await add_published(engine, make_role("clerk", PermissionEntry.allow("documents", ["read"])))
    await engine.assignment_store.assign("S1", "clerk")
    await memory_uow.assignments.create(
        Assignment(
            id=uuid4(),
            user_id="S1",
            role_id="ghost",
            scope=Scope.organization(),
            valid_from=clock.now - timedelta(days=1),
        )
    )
    await engine.assignment_store.load()

    with caplog.at_level(logging.WARNING, logger="rolegate.application.engine.resolver"):
        documents = await engine.resolver.check_permission("S1", "documents", "read")
        reports = await engine.resolver.check_permission("S1", "reports", "read")
    pairs = await engine.resolver.list_effective_permissions("S1")

    assert documents.outcome is Effect.ALLOW
    assert reports.outcome is Effect.DENY
    assert reports.reason == DecisionReason.NO_MATCHING_GRANT
    assert pairs == {("documents", "read")}
    assert "unknown role ghost" in caplog.text


# --- Caching and auditing ---


@pytest.mark.asyncio
async def test_repeated_checks_are_identical_and_audited_once_each(engine) -> None:
    await add_published(engine, make_role("clerk", PermissionEntry.allow("documents", ["read"])))
    await engine.assignment_store.assign("U8", "clerk")

    first = await engine.resolver.check_permission(
        "U8", "documents", "read", caller_attributes={"ip": "10.0.0.1"}
    )
    assert engine.audit_log.pending == 1
    second = await engine.resolver.check_permission("U8", "documents", "read")
    assert engine.audit_log.pending == 2

    assert first == second
    await engine.audit_log.flush()
    page = await engine.audit_log.query(AuditQuery())
    assert [e.cache_hit for e in page.items] == [False, True]
    assert page.items[0].caller_attributes == {"ip": "10.0.0.1"}


@pytest.mark.asyncio
async def test_role_change_is_visible_on_next_check(engine) -> None:
    role = await engine.role_graph.add_or_update_role(
        make_role("draft_role", PermissionEntry.allow("reports", ["read"]))
    )
    await engine.assignment_store.assign("U9", "draft_role")
    assert await engine.resolver.check("U9", "reports", "read")
    assert len(engine.cache) == 1

    await engine.role_graph.add_or_update_role(
        replace(role, permissions=(PermissionEntry.allow("reports", ["write"]),))
    )

    assert len(engine.cache) == 0
    assert not await engine.resolver.check("U9", "reports", "read")


@pytest.mark.asyncio
async def test_revocation_is_visible_on_next_check(engine) -> None:
    await add_published(engine, make_role("clerk", PermissionEntry.allow("documents", ["read"])))
    assignment = await engine.assignment_store.assign("U10", "clerk")
    assert await engine.resolver.check("U10", "documents", "read")

    await engine.assignment_store.revoke(assignment.id)

    assert not await engine.resolver.check("U10", "documents", "read")


@pytest.mark.asyncio
async def test_cached_allow_never_outlives_assignment(engine, clock) -> None:
    monotonic = FakeMonotonic()
    cache = DecisionCache(ttl_seconds=60.0, clock=monotonic)
    resolver = PermissionResolver(
        engine.role_graph, engine.assignment_store, engine.audit_log, cache=cache, clock=clock
    )
    await add_published(engine, make_role("temp", PermissionEntry.allow("tasks", ["read"])))
    await engine.assignment_store.assign("U11", "temp", valid_until=clock.now + timedelta(seconds=2))

    assert await resolver.check("U11", "tasks", "read")
    monotonic.value += 3
    clock.advance(seconds=3)

    decision = await resolver.check_permission("U11", "tasks", "read")
    assert decision.reason == DecisionReason.EXPIRED_ASSIGNMENT


# --- Degradation ---


@pytest.mark.asyncio
async def test_timeout_denies_and_is_not_cached(uow_factory, clock, monkeypatch) -> None:
    engine = AuthorizationEngine.build(uow_factory, resolution_timeout_seconds=0.05, clock=clock)
    monkeypatch.setattr(engine.assignment_store, "active_assignments_for", _slow_lookup)

    decision = await engine.resolver.check_permission("U12", "documents", "read")

    assert decision.outcome is Effect.DENY
    assert decision.reason == "resolution timeout"
    assert len(engine.cache) == 0
    assert engine.audit_log.pending == 1


@pytest.mark.asyncio
async def test_caller_cancellation_writes_nothing(uow_factory, clock, monkeypatch) -> None:
    engine = AuthorizationEngine.build(uow_factory, resolution_timeout_seconds=5.0, clock=clock)
    monkeypatch.setattr(engine.assignment_store, "active_assignments_for", _slow_lookup)

    task = asyncio.create_task(engine.resolver.check_permission("U13", "documents", "read"))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(engine.cache) == 0
    assert engine.audit_log.pending == 0


@pytest.mark.asyncio
async def test_unexpected_error_denies(engine, monkeypatch) -> None:
    await add_published(engine, make_role("clerk", PermissionEntry.allow("documents", ["read"])))
    await engine.assignment_store.assign("U14", "clerk")

    def explode(role_id):
        raise RuntimeError("corrupt snapshot")

    monkeypatch.setattr(engine.role_graph, "effective_permissions", explode)
    decision = await engine.resolver.check_permission("U14", "documents", "read")

    assert decision.outcome is Effect.DENY
    assert decision.reason == DecisionReason.ERROR
    assert len(engine.cache) == 0


@pytest.mark.asyncio
async def test_listing_timeout_yields_empty_set(uow_factory, clock, monkeypatch) -> None:
    engine = AuthorizationEngine.build(uow_factory, resolution_timeout_seconds=0.05, clock=clock)
    monkeypatch.setattr(engine.assignment_store, "active_assignments_for", _slow_lookup)

    assert await engine.resolver.list_effective_permissions("U15") == set()
    assert not await engine.resolver.has_any_permission("U15", "documents")
