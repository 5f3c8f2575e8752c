"""Unit tests for RoleGraph."""

from dataclasses import replace

import pytest

from rolegate.application.engine.events import InvalidationBus, RolesChanged
from rolegate.application.engine.role_graph import RoleGraph
from rolegate.application.engine.system_roles import SYSTEM_ROLES
from rolegate.domain.entities import PermissionEntry
from rolegate.domain.exceptions import Conflict, NotFound, ValidationError
from rolegate.domain.value_objects import Effect, PermissionAction, ResourceType, RoleStatus

from tests.conftest import make_role


@pytest.fixture
def bus() -> InvalidationBus:
    return InvalidationBus()


@pytest.fixture
def graph(uow_factory, bus, clock) -> RoleGraph:
    return RoleGraph(uow_factory, bus=bus, max_depth=4, clock=clock)


async def _chain(graph: RoleGraph, *ids: str) -> None:
    parent = None
    for role_id in ids:
        await graph.add_or_update_role(make_role(role_id, parent_id=parent))
        parent = role_id


@pytest.mark.asyncio
async def test_child_inherits_parent_permissions(graph) -> None:
    """Effective permissions of a child are a superset of its parent's."""
    await graph.add_or_update_role(
        make_role("employee", PermissionEntry.allow("documents", ["read"]))
    )
    await graph.add_or_update_role(
        make_role("lead", PermissionEntry.allow("tickets", ["close"]), parent_id="employee")
    )

    granted = graph.granted_pairs("lead")
    assert graph.granted_pairs("employee") <= granted
    assert granted == {("documents", "read"), ("tickets", "close")}
    inherited = [p for p in graph.effective_permissions("lead") if p.inherited]
    assert [p.provenance for p in inherited] == ["inherited-from:employee"]
    assert graph.find("lead").level == 1


@pytest.mark.asyncio
async def test_ancestor_deny_removes_descendant_allow(graph) -> None:
    await graph.add_or_update_role(
        make_role("base", PermissionEntry.deny("tickets", ["delete"]))
    )
    await graph.add_or_update_role(
        make_role("child", PermissionEntry.allow("tickets", ["delete", "read"]), parent_id="base")
    )

    effective = graph.effective_permissions("child")
    delete = [p for p in effective if p.action is PermissionAction.DELETE]
    assert [p.effect for p in delete] == [Effect.DENY]
    assert ("tickets", "read") in graph.granted_pairs("child")
    assert ("tickets", "delete") not in graph.granted_pairs("child")


@pytest.mark.asyncio
async def test_wildcard_deny_removes_specific_allow(graph) -> None:
    await graph.add_or_update_role(
        make_role(
            "locked",
            PermissionEntry.allow("reports", ["export", "read"]),
            PermissionEntry.deny("*", ["export"]),
        )
    )
    assert graph.granted_pairs("locked") == {("reports", "read")}


@pytest.mark.asyncio
async def test_closer_allow_shadows_inherited_allow(graph) -> None:
    await graph.add_or_update_role(make_role("root", PermissionEntry.allow("documents", ["read"])))
    await graph.add_or_update_role(
        make_role("leaf", PermissionEntry.allow("documents", ["read"]), parent_id="root")
    )
    reads = [
        p
        for p in graph.effective_permissions("leaf")
        if p.key == (ResourceType.DOCUMENTS, PermissionAction.READ)
    ]
    assert len(reads) == 1
    assert reads[0].provenance == "direct"


@pytest.mark.asyncio
async def test_cycle_is_rejected_and_graph_unchanged(graph, memory_uow) -> None:
    await _chain(graph, "a", "b", "c")
    before = graph.find("a")

    with pytest.raises(ValidationError, match="cycle detected"):
        await graph.add_or_update_role(replace(before, parent_id="c"))

    assert graph.find("a").parent_id is None
    assert graph.hierarchy_chain("c") == ("c", "b", "a")
    assert (await memory_uow.roles.get_by_id("a")).parent_id is None


@pytest.mark.asyncio
async def test_self_parent_is_a_cycle(graph) -> None:
    with pytest.raises(ValidationError, match="cycle detected"):
        await graph.add_or_update_role(make_role("solo", parent_id="solo"))


@pytest.mark.asyncio
async def test_depth_limit(graph) -> None:
    await _chain(graph, "l0", "l1", "l2", "l3")

    with pytest.raises(ValidationError, match="max depth exceeded"):
        await graph.add_or_update_role(make_role("l4", parent_id="l3"))
    assert graph.find("l4") is None


@pytest.mark.asyncio
async def test_reparenting_subtree_checks_its_height(graph) -> None:
    await _chain(graph, "x0", "x1", "x2")
    await _chain(graph, "y0", "y1")

    with pytest.raises(ValidationError, match="max depth exceeded"):
        await graph.add_or_update_role(replace(graph.get("y0"), parent_id="x2"))

    await graph.add_or_update_role(replace(graph.get("y0"), parent_id="x0"))
    assert graph.find("y1").level == 2
    assert graph.hierarchy_chain("y1") == ("y1", "y0", "x0")


@pytest.mark.asyncio
async def test_unknown_parent_is_not_found(graph) -> None:
    with pytest.raises(NotFound, match="ghost"):
        await graph.add_or_update_role(make_role("orphan", parent_id="ghost"))


@pytest.mark.asyncio
async def test_writes_publish_role_and_descendants(graph, bus) -> None:
    events: list = []
    bus.subscribe(events.append)
    await _chain(graph, "p", "q", "r")
    events.clear()

    await graph.add_or_update_role(
        replace(graph.get("p"), permissions=(PermissionEntry.allow("tasks", ["read"]),))
    )

    assert events == [RolesChanged(frozenset({"p", "q", "r"}))]
    assert ("tasks", "read") in graph.granted_pairs("r")


@pytest.mark.asyncio
async def test_lifecycle_draft_published_archived(graph) -> None:
    role = await graph.add_or_update_role(make_role("temp"))
    assert role.status is RoleStatus.DRAFT
    assert role.version == 1

    edited = await graph.add_or_update_role(replace(role, description="edited"))
    assert edited.version == 2

    published = await graph.publish_role("temp")
    assert published.status is RoleStatus.PUBLISHED
    with pytest.raises(ValidationError, match="only draft roles can be edited"):
        await graph.add_or_update_role(replace(published, description="again"))

    archived = await graph.archive_role("temp")
    assert archived.status is RoleStatus.ARCHIVED
    with pytest.raises(ValidationError, match="cannot move"):
        await graph.publish_role("temp")


@pytest.mark.asyncio
async def test_new_role_must_be_draft(graph) -> None:
    with pytest.raises(ValidationError, match="draft"):
        await graph.add_or_update_role(make_role("eager", status=RoleStatus.PUBLISHED))


@pytest.mark.asyncio
async def test_system_roles_are_seeded_and_immutable(graph) -> None:
    created = await graph.seed_system_roles(SYSTEM_ROLES)
    assert {r.id for r in created} == {"super_admin", "admin", "manager", "user", "guest"}
    assert await graph.seed_system_roles(SYSTEM_ROLES) == []

    admin = graph.get("admin")
    assert admin.is_system_role
    assert admin.status is RoleStatus.PUBLISHED
    with pytest.raises(ValidationError, match="immutable"):
        await graph.add_or_update_role(replace(admin, is_system_role=False, description="x"))
    with pytest.raises(ValidationError, match="immutable"):
        await graph.archive_role("admin")
    with pytest.raises(ValidationError, match="immutable"):
        await graph.delete_role("admin")


@pytest.mark.asyncio
async def test_delete_role(graph, memory_uow) -> None:
    await _chain(graph, "parent", "child")

    with pytest.raises(Conflict, match="child roles"):
        await graph.delete_role("parent")

    await graph.delete_role("child")
    assert graph.find("child") is None
    assert await memory_uow.roles.get_by_id("child") is None

    await graph.publish_role("parent")
    with pytest.raises(ValidationError, match="archive it instead"):
        await graph.delete_role("parent")


@pytest.mark.asyncio
async def test_load_restores_graph_from_storage(graph, uow_factory, bus, clock) -> None:
    await _chain(graph, "one", "two")

    reloaded = RoleGraph(uow_factory, bus=bus, clock=clock)
    await reloaded.load()

    assert reloaded.hierarchy_chain("two") == ("two", "one")


@pytest.mark.asyncio
async def test_hierarchy_views(graph) -> None:
    await _chain(graph, "top", "mid", "bottom")
    await graph.add_or_update_role(make_role("side", parent_id="top"))

    tree = [node.to_dict() for node in graph.hierarchy_tree()]
    assert tree[0]["id"] == "top"
    assert [c["id"] for c in tree[0]["children"]] == ["mid", "side"]

    hierarchy = graph.role_hierarchy("mid")
    assert [r.id for r in hierarchy.ancestors] == ["top"]
    assert [c.role.id for c in hierarchy.subtree.children] == ["bottom"]
    assert [r.id for r in graph.descendants("top")] == ["mid", "side", "bottom"]


@pytest.mark.asyncio
async def test_permission_diff(graph) -> None:
    await graph.add_or_update_role(make_role("viewer", PermissionEntry.allow("reports", ["read"])))
    await graph.add_or_update_role(
        make_role("editor", PermissionEntry.allow("reports", ["read", "write"]))
    )
    diff = graph.permission_diff("viewer", "editor")
    assert diff.added == {("reports", "write")}
    assert diff.removed == set()
