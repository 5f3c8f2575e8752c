"""Context evaluator - applies contextual rules to expanded role permissions."""

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from datetime import UTC, datetime

from rolegate.application.dto.request_context import RequestContext
from rolegate.domain.entities import ContextualRule, ResolvedPermission, RuleCondition
from rolegate.domain.value_objects import Effect, PermissionAction, ResourceType

logger = logging.getLogger(__name__)

Predicate = Callable[[RequestContext], bool]


class ContextEvaluator:
    """Evaluates rule conditions and entry conditions against a request context.

    Custom predicate ids resolve first from the caller's ``flags`` and then
    from the registry of named predicates. Unknown predicates do not hold.
    """

    def __init__(self, predicates: Mapping[str, Predicate] | None = None) -> None:
        self._predicates: dict[str, Predicate] = dict(predicates or {})

    def register(self, predicate_id: str, predicate: Predicate) -> None:
        self._predicates[predicate_id] = predicate

    def predicate_holds(self, predicate_id: str, context: RequestContext) -> bool:
        if predicate_id in context.flags:
            return True
        predicate = self._predicates.get(predicate_id)
        if predicate is None:
            return False
        try:
            return bool(predicate(context))
        except Exception:
            logger.exception("Predicate %s failed; treating as not satisfied", predicate_id)
            return False

    def condition_holds(self, condition: RuleCondition, context: RequestContext) -> bool:
        now = context.now or datetime.now(UTC)
        result = True
        if condition.time_window is not None and not condition.time_window.contains(now):
            result = False
        if result and condition.locations and context.location not in condition.locations:
            result = False
        if result and condition.predicate and not self.predicate_holds(condition.predicate, context):
            result = False
        if result and condition.attributes:
            result = all(
                context.attributes.get(key) == value
                for key, value in condition.attributes.items()
            )
        return not result if condition.negate else result

    def apply(
        self,
        permissions: Iterable[ResolvedPermission],
        rules: Iterable[ContextualRule],
        context: RequestContext,
    ) -> list[ResolvedPermission]:
        """Adjust an expanded permission list for ``context``.

        Entries whose conditions do not hold are dropped; those that hold are
        returned with their conditions cleared, as settled. Matching rules run
        in declaration order: their denied entries become Deny candidates and
        remove Allows for the same (resource, action); their additions are
        added unless an earlier matching rule already denied that pair.
        """
        result = [
            replace(p, conditions=()) if p.conditions else p
            for p in permissions
            if all(self.predicate_holds(c, context) for c in p.conditions)
        ]
        denied: dict[tuple[ResourceType, PermissionAction], ResolvedPermission] = {}
        added: list[ResolvedPermission] = []
        for rule in rules:
            if not self.condition_holds(rule.condition, context):
                continue
            for entry in rule.denied_permissions:
                for action in sorted(entry.actions):
                    denied.setdefault(
                        (entry.resource_type, action),
                        ResolvedPermission(
                            resource_type=entry.resource_type,
                            action=action,
                            effect=Effect.DENY,
                            source_role_id=None,
                            rule_id=rule.id,
                        ),
                    )
            for entry in rule.additional_permissions:
                if not all(self.predicate_holds(c, context) for c in entry.conditions):
                    continue
                for action in sorted(entry.actions):
                    if (entry.resource_type, action) in denied or (
                        ResourceType.ANY,
                        action,
                    ) in denied:
                        continue
                    added.append(
                        ResolvedPermission(
                            resource_type=entry.resource_type,
                            action=action,
                            effect=Effect.ALLOW,
                            source_role_id=None,
                            rule_id=rule.id,
                        )
                    )
        if not denied:
            return result + added

        def revoked(p: ResolvedPermission) -> bool:
            return p.effect is Effect.ALLOW and (
                p.key in denied or (ResourceType.ANY, p.action) in denied
            )

        kept = [p for p in result + added if not revoked(p)]
        return kept + list(denied.values())
