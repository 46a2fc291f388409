from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    owner_ref: str | None
    payment_status: str | None
    status: str | None
    subscription_ref: str | None
    customer_ref: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid" or self.status == "complete"


@dataclass(frozen=True)
class GatewaySubscription:
    id: str
    status: str
    trial_end: datetime | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    customer_ref: str | None = None
    price_ref: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


def from_unix(value: Any) -> datetime | None:
    """Convert a gateway epoch-seconds value to an aware datetime; None for junk."""
    if value in (None, ""):
        return None
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def session_from_payload(data: dict[str, Any]) -> CheckoutSession:
    metadata = dict(data.get("metadata") or {})
    subscription = data.get("subscription")
    if isinstance(subscription, dict):
        subscription = subscription.get("id")
    customer = data.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")
    return CheckoutSession(
        id=str(data.get("id") or ""),
        owner_ref=metadata.get("firebaseUid") or data.get("client_reference_id"),
        payment_status=data.get("payment_status"),
        status=data.get("status"),
        subscription_ref=subscription,
        customer_ref=customer,
        metadata=metadata,
    )


def subscription_from_payload(data: dict[str, Any]) -> GatewaySubscription:
    items = ((data.get("items") or {}).get("data")) or []
    first_item = items[0] if items else {}
    price = first_item.get("price") or {}
    # Newer API versions moved the billing period onto subscription items
    period_start = data.get("current_period_start") or first_item.get("current_period_start")
    period_end = data.get("current_period_end") or first_item.get("current_period_end")
    customer = data.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")
    return GatewaySubscription(
        id=str(data.get("id") or ""),
        status=str(data.get("status") or ""),
        trial_end=from_unix(data.get("trial_end")),
        current_period_start=from_unix(period_start),
        current_period_end=from_unix(period_end),
        cancel_at_period_end=bool(data.get("cancel_at_period_end") or False),
        customer_ref=customer,
        price_ref=price.get("id"),
        metadata=dict(data.get("metadata") or {}),
    )
