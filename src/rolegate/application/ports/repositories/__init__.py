"""Repository ports."""

from rolegate.application.ports.repositories.assignment_repository import (
    AssignmentRepository,
)
from rolegate.application.ports.repositories.audit_repository import AuditRepository
from rolegate.application.ports.repositories.role_repository import RoleRepository

__all__ = [
    "AssignmentRepository",
    "AuditRepository",
    "RoleRepository",
]
