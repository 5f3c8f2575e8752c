"""Permission actions for RBAC."""

from enum import StrEnum


class PermissionAction(StrEnum):
    """Fixed vocabulary of actions a permission entry can name."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    WRITE = "write"
    DELETE = "delete"
    APPROVE = "approve"
    ASSIGN = "assign"
    EXPORT = "export"
    IMPORT = "import"
    CONFIGURE = "configure"
    AUDIT = "audit"
    CLOSE = "close"
