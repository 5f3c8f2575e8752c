"""Built-in roles seeded on first start."""

from rolegate.domain.entities import PermissionEntry, Role
from rolegate.domain.value_objects import PermissionAction, RoleStatus

ALL_ACTIONS = [a.value for a in PermissionAction]

SYSTEM_ROLES: tuple[Role, ...] = (
    Role(
        id="super_admin",
        name="Super Administrator",
        description="Full system access with all permissions",
        permissions=(PermissionEntry.allow("*", ALL_ACTIONS),),
        is_system_role=True,
        status=RoleStatus.PUBLISHED,
    ),
    Role(
        id="admin",
        name="Administrator",
        description="Administrative access with most permissions",
        permissions=(
            PermissionEntry.allow("users", ["read", "create", "update", "assign"]),
            PermissionEntry.allow("roles", ["read", "create", "update", "approve", "delete"]),
            PermissionEntry.allow("audit", ["read", "export"]),
            PermissionEntry.allow("settings", ["configure"]),
        ),
        is_system_role=True,
        status=RoleStatus.PUBLISHED,
    ),
    Role(
        id="manager",
        name="Manager",
        description="Departmental management access",
        permissions=(
            PermissionEntry.allow("tasks", ["read", "create", "update", "assign"]),
            PermissionEntry.allow("reports", ["read"]),
            PermissionEntry.allow("analytics", ["read"]),
        ),
        is_system_role=True,
        status=RoleStatus.PUBLISHED,
    ),
    Role(
        id="user",
        name="User",
        description="Standard user access",
        permissions=(
            PermissionEntry.allow("tasks", ["read", "update"]),
            PermissionEntry.allow("documents", ["read", "create"]),
            PermissionEntry.allow("calendar", ["read"]),
        ),
        is_system_role=True,
        status=RoleStatus.PUBLISHED,
    ),
    Role(
        id="guest",
        name="Guest",
        description="Limited read-only access",
        permissions=(
            PermissionEntry.allow("documents", ["read"]),
            PermissionEntry.allow("reports", ["read"]),
        ),
        is_system_role=True,
        status=RoleStatus.PUBLISHED,
    ),
)
