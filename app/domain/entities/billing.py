from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class BillingStatus(str, Enum):
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


# Self-loops are field refreshes (webhook redelivery, repeated checkout verification).
ALLOWED_BILLING_TRANSITIONS: dict[BillingStatus, frozenset[BillingStatus]] = {
    BillingStatus.TRIALING: frozenset(
        {
            BillingStatus.TRIALING,
            BillingStatus.ACTIVE,
            BillingStatus.PAST_DUE,
            BillingStatus.SUSPENDED,
            BillingStatus.CANCELLED,
        }
    ),
    # A new trial checkout may land on a paying tenant
    BillingStatus.ACTIVE: frozenset(
        {
            BillingStatus.ACTIVE,
            BillingStatus.TRIALING,
            BillingStatus.PAST_DUE,
            BillingStatus.CANCELLED,
        }
    ),
    BillingStatus.PAST_DUE: frozenset(
        {
            BillingStatus.PAST_DUE,
            BillingStatus.TRIALING,
            BillingStatus.ACTIVE,
            BillingStatus.SUSPENDED,
            BillingStatus.CANCELLED,
        }
    ),
    BillingStatus.SUSPENDED: frozenset(
        {
            BillingStatus.SUSPENDED,
            BillingStatus.TRIALING,
            BillingStatus.ACTIVE,
            BillingStatus.CANCELLED,
        }
    ),
    # Reactivation happens only through a new checkout
    BillingStatus.CANCELLED: frozenset(
        {BillingStatus.CANCELLED, BillingStatus.TRIALING, BillingStatus.ACTIVE}
    ),
}

# Gateway subscription status -> billing status. Statuses not listed only refresh fields.
GATEWAY_STATUS_MAP: dict[str, BillingStatus] = {
    "trialing": BillingStatus.TRIALING,
    "active": BillingStatus.ACTIVE,
    "past_due": BillingStatus.PAST_DUE,
    "unpaid": BillingStatus.PAST_DUE,
    "canceled": BillingStatus.CANCELLED,
    "incomplete_expired": BillingStatus.CANCELLED,
}

GRACE_EXPIRED_REASON = "Payment past due - grace period expired"
TRIAL_EXPIRED_REASON = "Trial expired - payment required"
SUBSCRIPTION_CANCELLED_REASON = "Subscription canceled"


def parse_billing_status(value: str | None) -> BillingStatus:
    normalized = str(value or "").strip().lower()
    if normalized == "canceled":
        normalized = "cancelled"
    return BillingStatus(normalized)


def can_transition_billing(current: BillingStatus, target: BillingStatus) -> bool:
    return target in ALLOWED_BILLING_TRANSITIONS[current]


@dataclass(frozen=True)
class TenantBilling:
    tenant_id: str
    billing_status: BillingStatus
    plan: str | None = None
    plan_id: str | None = None
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    subscription_status: str | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    trial_end: datetime | None = None
    grace_until: datetime | None = None
    cancel_at_period_end: bool = False
    cancellation_requested_at: datetime | None = None
    suspended_reason: str | None = None
    suspended_at: datetime | None = None
    last_payment_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class BillingTransitionResult:
    tenant_id: str
    previous_status: BillingStatus
    status: BillingStatus
    mirrored: bool


@dataclass(frozen=True)
class CheckoutResult:
    tenant_id: str
    status: BillingStatus
    is_trialing: bool
    trial_end: datetime | None


@dataclass(frozen=True)
class ReconciliationReport:
    scanned: int = 0
    suspended: int = 0
    skipped: int = 0
    failed_batches: int = 0
    expiring_soon: tuple[str, ...] = ()
