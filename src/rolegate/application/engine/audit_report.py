"""Security report built from a window of audit events."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from rolegate.domain.entities import AuditEvent
from rolegate.domain.value_objects import Effect

HIGH_DENIAL_RATE = 0.3
MEDIUM_DENIAL_RATE = 0.15


@dataclass
class UserActivity:
    user_id: str
    total: int = 0
    granted: int = 0
    denied: int = 0
    resources: set[str] = field(default_factory=set)
    last_activity: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "user_id": self.user_id,
            "total": self.total,
            "granted": self.granted,
            "denied": self.denied,
            "distinct_resources": len(self.resources),
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
        }


@dataclass
class ResourceAccess:
    resource_type: str
    total: int = 0
    granted: int = 0
    denied: int = 0
    users: set[str] = field(default_factory=set)
    last_access: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "resource_type": self.resource_type,
            "total": self.total,
            "granted": self.granted,
            "denied": self.denied,
            "distinct_users": len(self.users),
            "last_access": self.last_access.isoformat() if self.last_access else None,
        }


@dataclass
class SecurityReport:
    """Access summary for a reporting window."""

    generated_at: datetime
    since: datetime
    total_checks: int
    denied_checks: int
    risk_level: str
    violations: list[str]
    users: list[UserActivity]
    resources: list[ResourceAccess]
    recommendations: list[str]

    @property
    def denial_rate(self) -> float:
        if not self.total_checks:
            return 0.0
        return self.denied_checks / self.total_checks

    def to_dict(self) -> dict[str, object]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "since": self.since.isoformat(),
            "total_checks": self.total_checks,
            "denied_checks": self.denied_checks,
            "denial_rate": round(self.denial_rate, 4),
            "risk_level": self.risk_level,
            "violations": self.violations,
            "users": [u.to_dict() for u in self.users],
            "resources": [r.to_dict() for r in self.resources],
            "recommendations": self.recommendations,
        }


def risk_level(denial_rate: float) -> str:
    if denial_rate > HIGH_DENIAL_RATE:
        return "high"
    if denial_rate > MEDIUM_DENIAL_RATE:
        return "medium"
    return "low"


def build_security_report(
    events: Iterable[AuditEvent],
    since: datetime,
    generated_at: datetime,
    denial_threshold: int,
) -> SecurityReport:
    """Summarise ``events``; users with more than ``denial_threshold`` denials are violations."""
    users: dict[str, UserActivity] = {}
    resources: dict[str, ResourceAccess] = {}
    total = denied = 0
    for event in events:
        d = event.decision
        total += 1
        user = users.setdefault(d.user_id, UserActivity(d.user_id))
        resource = resources.setdefault(d.resource_type, ResourceAccess(d.resource_type))
        user.total += 1
        resource.total += 1
        user.resources.add(d.resource_type)
        resource.users.add(d.user_id)
        if d.outcome is Effect.DENY:
            denied += 1
            user.denied += 1
            resource.denied += 1
        else:
            user.granted += 1
            resource.granted += 1
        if user.last_activity is None or d.timestamp > user.last_activity:
            user.last_activity = d.timestamp
        if resource.last_access is None or d.timestamp > resource.last_access:
            resource.last_access = d.timestamp

    violations = sorted(u.user_id for u in users.values() if u.denied > denial_threshold)
    rate = denied / total if total else 0.0
    level = risk_level(rate)

    recommendations: list[str] = []
    if violations:
        recommendations.append(
            f"Review access for {len(violations)} user(s) with more than "
            f"{denial_threshold} denied checks"
        )
    if level == "high":
        recommendations.append("Denial rate is high; review role assignments and grants")
    elif level == "medium":
        recommendations.append("Denial rate is elevated; monitor for misconfigured roles")
    hot = [r.resource_type for r in resources.values() if r.denied and r.denied * 2 > r.total]
    if hot:
        recommendations.append(
            "Most checks on " + ", ".join(sorted(hot)) + " are denied; confirm intended grants"
        )

    return SecurityReport(
        generated_at=generated_at,
        since=since,
        total_checks=total,
        denied_checks=denied,
        risk_level=level,
        violations=violations,
        users=sorted(users.values(), key=lambda u: (-u.denied, u.user_id)),
        resources=sorted(resources.values(), key=lambda r: (-r.total, r.resource_type)),
        recommendations=recommendations,
    )
