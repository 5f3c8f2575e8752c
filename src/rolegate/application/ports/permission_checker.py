"""Permission checker port - boolean authorization used by admin use cases."""

from collections.abc import Mapping
from typing import Protocol


class PermissionChecker(Protocol):
    """Port for checking whether a user may act on a resource type."""

    async def check(
        self,
        user_id: str,
        resource_type: str,
        action: str,
        scope_context: Mapping[str, str] | None = None,
    ) -> bool: ...
