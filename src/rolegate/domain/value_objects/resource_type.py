"""Resource types guarded by permissions."""

from enum import StrEnum


class ResourceType(StrEnum):
    """Resource tags. ANY matches every resource type."""

    ANY = "*"
    DOCUMENTS = "documents"
    TASKS = "tasks"
    TICKETS = "tickets"
    CLIENTS = "clients"
    REPORTS = "reports"
    ANALYTICS = "analytics"
    USERS = "users"
    ROLES = "roles"
    SETTINGS = "settings"
    AUDIT = "audit"
    CALENDAR = "calendar"
    PROJECTS = "projects"
    ASSETS = "assets"
    WORKFLOWS = "workflows"
    INTEGRATIONS = "integrations"

    def covers(self, other: "ResourceType") -> bool:
        """True if this tag matches ``other`` (exactly or as wildcard)."""
        return self is ResourceType.ANY or self is other

    @classmethod
    def concrete(cls) -> list["ResourceType"]:
        return [r for r in cls if r is not cls.ANY]
