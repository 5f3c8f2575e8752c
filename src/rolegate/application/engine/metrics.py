"""Prometheus metrics emitted by the authorization engine."""

from prometheus_client import Counter, Gauge, Histogram

DECISIONS = Counter(
    "rolegate_decisions_total",
    "Authorization decisions returned to callers",
    ["outcome", "reason"],
)
CACHE_LOOKUPS = Counter(
    "rolegate_decision_cache_lookups_total",
    "Decision cache lookups",
    ["result"],
)
RESOLUTION_DURATION = Histogram(
    "rolegate_resolution_duration_seconds",
    "Time spent resolving uncached decisions",
)
AUDIT_DROPPED = Counter(
    "rolegate_audit_events_dropped_total",
    "Audit events dropped from a full buffer before being persisted",
)
AUDIT_PERSISTED = Counter(
    "rolegate_audit_events_persisted_total",
    "Audit events written to the audit store",
)
AUDIT_WRITE_FAILURES = Counter(
    "rolegate_audit_write_failures_total",
    "Audit batches that failed after all retries",
)
AUDIT_BUFFERED = Gauge(
    "rolegate_audit_buffered_events",
    "Audit events waiting to be persisted",
)
