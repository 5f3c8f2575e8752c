"""Role graph - role definitions, inheritance edges and effective permissions.

Readers work on an immutable snapshot and never take a lock. Writers
serialise on one lock (acyclicity is a whole-graph property), validate the
candidate graph, persist, then swap the snapshot in a single assignment and
publish a RolesChanged event for the written role and its descendants.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from rolegate.application.engine.events import InvalidationBus, RolesChanged
from rolegate.domain.entities import ContextualRule, ResolvedPermission, Role
from rolegate.domain.exceptions import Conflict, NotFound, ValidationError
from rolegate.domain.value_objects import Effect, PermissionAction, ResourceType, RoleStatus

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10


@dataclass
class RoleNode:
    """Role with its child subtree."""

    role: Role
    children: list["RoleNode"] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.role.id,
            "name": self.role.name,
            "level": self.role.level,
            "status": self.role.status.value,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass
class RoleHierarchy:
    """A role, its ancestors (nearest first) and its descendant subtree."""

    role: Role
    ancestors: list[Role]
    subtree: RoleNode


@dataclass
class PermissionDiff:
    """Granted (resource, action) pairs gained and lost moving between roles."""

    added: set[tuple[str, str]]
    removed: set[tuple[str, str]]


@dataclass
class _Snapshot:
    roles: dict[str, Role]
    children: dict[str, frozenset[str]]
    chains: dict[str, tuple[str, ...]] = field(default_factory=dict)
    effective: dict[str, tuple[ResolvedPermission, ...]] = field(default_factory=dict)

    @classmethod
    def build(cls, roles: dict[str, Role]) -> "_Snapshot":
        children: dict[str, set[str]] = {}
        for role in roles.values():
            if role.parent_id is not None:
                children.setdefault(role.parent_id, set()).add(role.id)
        return cls(roles, {k: frozenset(v) for k, v in children.items()})

    def chain(self, role_id: str) -> tuple[str, ...]:
        cached = self.chains.get(role_id)
        if cached is not None:
            return cached
        chain: list[str] = []
        current: str | None = role_id
        while current is not None:
            if current in chain:
                raise ValidationError(f"cycle detected at role {current}")
            role = self.roles.get(current)
            if role is None:
                raise NotFound("Role", current)
            chain.append(current)
            current = role.parent_id
        result = tuple(chain)
        self.chains[role_id] = result
        return result

    def descendants(self, role_id: str) -> list[str]:
        found: list[str] = []
        queue = sorted(self.children.get(role_id, ()))
        while queue:
            child = queue.pop(0)
            found.append(child)
            queue.extend(sorted(self.children.get(child, ())))
        return found

    def height(self, role_id: str) -> int:
        """Longest parent->child path below ``role_id`` (0 for a leaf)."""
        kids = self.children.get(role_id, ())
        if not kids:
            return 0
        return 1 + max(self.height(k) for k in kids)


def _is_denied(
    permission: ResolvedPermission,
    denied: set[tuple[ResourceType, PermissionAction]],
) -> bool:
    return (
        permission.key in denied
        or (ResourceType.ANY, permission.action) in denied
    )


class RoleGraph:
    """Holds role definitions and resolves inheritance."""

    def __init__(
        self,
        unit_of_work_factory: type,
        bus: InvalidationBus | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._uow_factory = unit_of_work_factory
        self._bus = bus or InvalidationBus()
        self._max_depth = max_depth
        self._clock = clock or (lambda: datetime.now(UTC))
        self._snapshot = _Snapshot.build({})
        self._write_lock = asyncio.Lock()

    @property
    def max_depth(self) -> int:
        return self._max_depth

    # --- loading ---

    async def load(self) -> None:
        """Replace the in-memory graph with every role in storage."""
        async with self._uow_factory() as uow:
            roles = await uow.roles.list_all()
        snapshot = _Snapshot.build({r.id: r for r in roles})
        for role_id in snapshot.roles:
            depth = len(snapshot.chain(role_id))
            if depth > self._max_depth:
                raise ValidationError(
                    f"max depth exceeded: stored role {role_id} has depth {depth}"
                )
        async with self._write_lock:
            self._snapshot = snapshot
        self._bus.publish(RolesChanged(frozenset(snapshot.roles)))
        logger.info("Loaded %d roles", len(snapshot.roles))

    async def seed_system_roles(self, roles: Iterable[Role]) -> list[Role]:
        """Store missing system roles as published and immutable."""
        created: list[Role] = []
        async with self._write_lock:
            for role in roles:
                if role.id in self._snapshot.roles:
                    continue
                now = self._clock()
                seeded = replace(
                    role,
                    is_system_role=True,
                    status=RoleStatus.PUBLISHED,
                    version=1,
                    created_at=now,
                    updated_at=now,
                )
                created.append(await self._commit(seeded))
        if created:
            logger.info("Seeded system roles: %s", ", ".join(r.id for r in created))
        return created

    # --- reads ---

    def find(self, role_id: str) -> Role | None:
        return self._snapshot.roles.get(role_id)

    def get(self, role_id: str) -> Role:
        role = self._snapshot.roles.get(role_id)
        if role is None:
            raise NotFound("Role", role_id)
        return role

    def list_roles(self, status: RoleStatus | None = None) -> list[Role]:
        roles = self._snapshot.roles.values()
        if status is not None:
            roles = [r for r in roles if r.status is status]
        return sorted(roles, key=lambda r: (r.level, r.id))

    def hierarchy_chain(self, role_id: str) -> tuple[str, ...]:
        """Role id followed by its ancestors up to the root."""
        return self._snapshot.chain(role_id)

    def effective_permissions(self, role_id: str) -> list[ResolvedPermission]:
        """Flattened permissions for ``role_id``, most specific first.

        An unconditional entry closer to the role shadows an inherited one on
        the same (resource, action). An unconditional Deny anywhere in the
        chain removes every unconditional Allow for that tuple. Conditional
        entries are kept for the context evaluator.
        """
        return list(self._expand(self._snapshot, role_id))

    def _expand(self, snapshot: _Snapshot, role_id: str) -> tuple[ResolvedPermission, ...]:
        cached = snapshot.effective.get(role_id)
        if cached is not None:
            return cached
        ordered: list[ResolvedPermission] = []
        allowed: set[tuple[ResourceType, PermissionAction]] = set()
        denied: set[tuple[ResourceType, PermissionAction]] = set()
        for depth, rid in enumerate(snapshot.chain(role_id)):
            for entry in snapshot.roles[rid].permissions:
                for action in sorted(entry.actions):
                    resolved = ResolvedPermission(
                        resource_type=entry.resource_type,
                        action=action,
                        effect=entry.effect,
                        source_role_id=rid,
                        inherited=depth > 0,
                        conditions=entry.conditions,
                    )
                    if entry.conditions:
                        ordered.append(resolved)
                    elif entry.effect is Effect.DENY:
                        if resolved.key not in denied:
                            denied.add(resolved.key)
                            ordered.append(resolved)
                    elif resolved.key not in allowed:
                        allowed.add(resolved.key)
                        ordered.append(resolved)
        result = tuple(
            p
            for p in ordered
            if p.conditions or p.effect is Effect.DENY or not _is_denied(p, denied)
        )
        snapshot.effective[role_id] = result
        return result

    def contextual_rules(self, role_id: str) -> tuple[ContextualRule, ...]:
        """Rules along the chain: the role's own first, then its ancestors'."""
        snapshot = self._snapshot
        rules: list[ContextualRule] = []
        for rid in snapshot.chain(role_id):
            rules.extend(snapshot.roles[rid].contextual_rules)
        return tuple(rules)

    def is_context_sensitive(self, role_id: str) -> bool:
        """True if decisions for this role depend on the request context."""
        snapshot = self._snapshot
        for rid in snapshot.chain(role_id):
            role = snapshot.roles[rid]
            if role.contextual_rules or any(p.conditions for p in role.permissions):
                return True
        return False

    def granted_pairs(self, role_id: str) -> set[tuple[str, str]]:
        """Unconditionally allowed (resource, action) pairs for the role."""
        return {
            (p.resource_type.value, p.action.value)
            for p in self.effective_permissions(role_id)
            if p.effect is Effect.ALLOW and not p.conditions
        }

    def permission_diff(self, from_role_id: str, to_role_id: str) -> PermissionDiff:
        before = self.granted_pairs(from_role_id)
        after = self.granted_pairs(to_role_id)
        return PermissionDiff(added=after - before, removed=before - after)

    def children(self, role_id: str) -> list[Role]:
        snapshot = self._snapshot
        self.get(role_id)
        return [snapshot.roles[c] for c in sorted(snapshot.children.get(role_id, ()))]

    def descendants(self, role_id: str) -> list[Role]:
        snapshot = self._snapshot
        self.get(role_id)
        return [snapshot.roles[d] for d in snapshot.descendants(role_id)]

    def hierarchy_tree(self) -> list[RoleNode]:
        """Forest of every role, rooted at roles without a parent."""
        snapshot = self._snapshot
        roots = sorted(r.id for r in snapshot.roles.values() if r.parent_id is None)
        return [self._node(snapshot, rid) for rid in roots]

    def role_hierarchy(self, role_id: str) -> RoleHierarchy:
        snapshot = self._snapshot
        role = self.get(role_id)
        chain = snapshot.chain(role_id)
        return RoleHierarchy(
            role=role,
            ancestors=[snapshot.roles[rid] for rid in chain[1:]],
            subtree=self._node(snapshot, role_id),
        )

    def _node(self, snapshot: _Snapshot, role_id: str) -> RoleNode:
        return RoleNode(
            role=snapshot.roles[role_id],
            children=[
                self._node(snapshot, c) for c in sorted(snapshot.children.get(role_id, ()))
            ],
        )

    # --- writes ---

    async def add_or_update_role(self, role: Role) -> Role:
        """Create a draft role or replace a draft role's definition.

        Raises ValidationError on cycles, excessive depth, edits to system or
        non-draft roles; NotFound if the parent does not exist. The graph is
        unchanged when a write is rejected.
        """
        async with self._write_lock:
            existing = self._snapshot.roles.get(role.id)
            now = self._clock()
            if role.is_system_role:
                raise ValidationError("system roles are seeded, not created or edited")
            if existing is None:
                if role.status is not RoleStatus.DRAFT:
                    raise ValidationError("new roles must be created as draft")
                stored = replace(role, version=1, created_at=now, updated_at=now)
            else:
                if existing.is_system_role:
                    raise ValidationError(f"system role {role.id} is immutable")
                if existing.status is not RoleStatus.DRAFT:
                    raise ValidationError(
                        f"role {role.id} is {existing.status.value}; only draft roles can be edited"
                    )
                if role.status is not existing.status:
                    raise ValidationError("role status changes through publish or archive")
                stored = replace(
                    role,
                    version=existing.version + 1,
                    created_by=existing.created_by,
                    created_at=existing.created_at,
                    updated_at=now,
                )
            return await self._commit(stored)

    async def publish_role(self, role_id: str) -> Role:
        return await self._transition(role_id, RoleStatus.PUBLISHED)

    async def archive_role(self, role_id: str) -> Role:
        return await self._transition(role_id, RoleStatus.ARCHIVED)

    async def _transition(self, role_id: str, target: RoleStatus) -> Role:
        async with self._write_lock:
            existing = self.get(role_id)
            if existing.is_system_role:
                raise ValidationError(f"system role {role_id} is immutable")
            if not existing.status.can_transition_to(target) or existing.status is target:
                raise ValidationError(
                    f"role {role_id} cannot move from {existing.status.value} to {target.value}"
                )
            updated = replace(
                existing,
                status=target,
                version=existing.version + 1,
                updated_at=self._clock(),
            )
            return await self._commit(updated)

    async def delete_role(
        self, role_id: str, in_use: Callable[[str], bool] | None = None
    ) -> None:
        """Delete a draft, non-system role without children.

        ``in_use`` is consulted under the write lock; a role it reports as
        still held is not deleted.
        """
        async with self._write_lock:
            snapshot = self._snapshot
            existing = self.get(role_id)
            if existing.is_system_role:
                raise ValidationError(f"system role {role_id} is immutable")
            if existing.status is not RoleStatus.DRAFT:
                raise ValidationError(
                    f"role {role_id} is {existing.status.value}; archive it instead of deleting"
                )
            if snapshot.children.get(role_id):
                raise Conflict(f"role {role_id} has child roles")
            if in_use is not None and in_use(role_id):
                raise Conflict(f"role {role_id} still has live assignments")
            async with self._uow_factory() as uow:
                await uow.roles.delete(role_id)
            roles = dict(snapshot.roles)
            del roles[role_id]
            self._snapshot = self._carry_over(snapshot, _Snapshot.build(roles), {role_id})
        self._bus.publish(RolesChanged(frozenset({role_id})))
        logger.info("Deleted role %s", role_id)

    async def _commit(self, role: Role) -> Role:
        """Validate ``role`` against the current graph, persist and swap.

        Caller holds the write lock.
        """
        snapshot = self._snapshot
        if role.parent_id is not None:
            if role.parent_id not in snapshot.roles:
                raise NotFound("Role", role.parent_id)
            ancestors = snapshot.chain(role.parent_id)
            if role.id in ancestors:
                raise ValidationError(
                    f"cycle detected: {role.parent_id} already inherits from {role.id}"
                )
            level = len(ancestors)
        else:
            level = 0

        height = snapshot.height(role.id) if role.id in snapshot.roles else 0
        if level + height + 1 > self._max_depth:
            raise ValidationError(
                f"max depth exceeded: role {role.id} would reach depth "
                f"{level + height + 1} (limit {self._max_depth})"
            )

        roles = dict(snapshot.roles)
        roles[role.id] = replace(role, level=level)
        candidate = _Snapshot.build(roles)
        affected = [role.id, *candidate.descendants(role.id)]
        changed = [roles[role.id]]
        for rid in affected[1:]:
            new_level = len(candidate.chain(rid)) - 1
            if roles[rid].level != new_level:
                roles[rid] = replace(roles[rid], level=new_level)
                changed.append(roles[rid])
        candidate = _Snapshot.build(roles)

        async with self._uow_factory() as uow:
            for item in changed:
                await uow.roles.save(item)

        self._snapshot = self._carry_over(snapshot, candidate, set(affected))
        self._bus.publish(RolesChanged(frozenset(affected)))
        logger.info(
            "Stored role %s v%d (%s, level %d, %d roles affected)",
            role.id,
            role.version,
            role.status.value,
            level,
            len(affected),
        )
        return roles[role.id]

    @staticmethod
    def _carry_over(old: _Snapshot, new: _Snapshot, affected: set[str]) -> _Snapshot:
        """Keep memoised chains and expansions that do not touch ``affected``."""
        for rid, chain in old.chains.items():
            if rid in new.roles and not affected.intersection(chain):
                new.chains[rid] = chain
        for rid, expansion in old.effective.items():
            if rid in new.chains:
                new.effective[rid] = expansion
        return new
