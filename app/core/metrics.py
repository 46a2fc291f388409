from prometheus_client import Counter


booking_transitions_total = Counter(
    "booking_transitions_total",
    "Booking status transitions committed",
    ["from_status", "to_status", "migrated"],
)

billing_transitions_total = Counter(
    "billing_transitions_total",
    "Tenant billing status transitions committed",
    ["from_status", "to_status", "source"],
)

mirror_write_failures_total = Counter(
    "billing_mirror_write_failures_total",
    "Owner mirror writes that failed after the primary write committed",
    ["source"],
)

side_effect_failures_total = Counter(
    "side_effect_failures_total",
    "Detached side-effect tasks (audit, notification) that raised",
    ["task"],
)

reconciliation_suspended_total = Counter(
    "reconciliation_suspended_total",
    "Tenants suspended by reconciliation jobs",
    ["job"],
)
