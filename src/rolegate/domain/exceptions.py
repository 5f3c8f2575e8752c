"""Domain exceptions."""


class RoleGateError(Exception):
    """Base exception for rolegate."""

    pass


class ValidationError(RoleGateError):
    """Validation failed for input data (cycle, depth, scope, lifecycle)."""

    pass


class NotFound(RoleGateError):
    """Requested role, assignment or user was not found."""

    def __init__(self, kind: str, identifier: object) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class Conflict(RoleGateError):
    """Write conflicts with existing state (duplicate assignment, role in use)."""

    pass


class PermissionDenied(RoleGateError):
    """Actor is not allowed to perform an administrative operation."""

    pass


class ResolutionTimeout(RoleGateError):
    """Permission resolution exceeded its time bound."""

    pass


class StorageUnavailable(RoleGateError):
    """Backing store could not be reached."""

    pass
