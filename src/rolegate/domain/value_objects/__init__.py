"""Domain value objects."""

from rolegate.domain.value_objects.effect import Effect
from rolegate.domain.value_objects.permission_action import PermissionAction
from rolegate.domain.value_objects.resource_type import ResourceType
from rolegate.domain.value_objects.role_status import RoleStatus
from rolegate.domain.value_objects.scope import Scope, ScopeContext, ScopeType
from rolegate.domain.value_objects.time_window import TimeWindow

__all__ = [
    "Effect",
    "PermissionAction",
    "ResourceType",
    "RoleStatus",
    "Scope",
    "ScopeContext",
    "ScopeType",
    "TimeWindow",
]
