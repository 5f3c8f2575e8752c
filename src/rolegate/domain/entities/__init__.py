"""Domain entities."""

from rolegate.domain.entities.assignment import Assignment
from rolegate.domain.entities.audit_event import GENESIS_HASH, AuditEvent
from rolegate.domain.entities.contextual_rule import ContextualRule, RuleCondition
from rolegate.domain.entities.decision import Decision, DecisionReason
from rolegate.domain.entities.permission import PermissionEntry, ResolvedPermission
from rolegate.domain.entities.role import Role

__all__ = [
    "GENESIS_HASH",
    "Assignment",
    "AuditEvent",
    "ContextualRule",
    "Decision",
    "DecisionReason",
    "PermissionEntry",
    "ResolvedPermission",
    "Role",
    "RuleCondition",
]
