"""
Mapping between loosely-typed store documents and typed entities.

Documents written by older clients use snake_case billing keys
(billing_status, grace_until, trial_end); those are read when the
camelCase key is absent, but only camelCase keys are written.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from app.domain.entities.billing import BillingStatus, TenantBilling, parse_billing_status
from app.domain.entities.booking import Booking, BookingPartition, BookingStatus, parse_booking_status


logger = logging.getLogger(__name__)

_LEGACY_BILLING_KEYS = {
    "billingStatus": "billing_status",
    "graceUntil": "grace_until",
    "trialEnd": "trial_end",
}


def to_datetime(value: Any) -> datetime | None:
    """Coerce datetimes, ISO strings and epoch seconds/millis to aware UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 10_000_000_000 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    to_dt = getattr(value, "to_datetime", None)
    if callable(to_dt):
        return to_datetime(to_dt())
    return None


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _optional_float(value: Any) -> float | None:
    try:
        return float(value) if value is not None and value != "" else None
    except (TypeError, ValueError):
        return None


def _optional_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None and value != "" else None
    except (TypeError, ValueError):
        return None


def booking_from_document(doc_id: str, data: dict[str, Any], partition: BookingPartition) -> Booking:
    try:
        status = parse_booking_status(data.get("status"))
    except ValueError:
        logger.warning(
            "Stored booking has unknown status; treating as Pending",
            extra={"booking_id": doc_id, "status": data.get("status")},
        )
        status = BookingStatus.PENDING

    return Booking(
        id=doc_id,
        owner_uid=str(data.get("ownerUid") or ""),
        status=status,
        partition=partition,
        booking_code=_optional_str(data.get("bookingCode")),
        staff_id=_optional_str(data.get("staffId")),
        staff_name=_optional_str(data.get("staffName")),
        customer_uid=_optional_str(data.get("customerUid")),
        client_name=_optional_str(data.get("client") or data.get("clientName")),
        client_email=_optional_str(data.get("clientEmail")),
        client_phone=_optional_str(data.get("clientPhone")),
        service_name=_optional_str(data.get("serviceName")),
        branch_id=_optional_str(data.get("branchId")),
        branch_name=_optional_str(data.get("branchName")),
        date=_optional_str(data.get("date")),
        time=_optional_str(data.get("time")),
        price=_optional_float(data.get("price")),
        duration=_optional_int(data.get("duration")),
        created_at=to_datetime(data.get("createdAt")),
        updated_at=to_datetime(data.get("updatedAt")),
        raw=dict(data),
    )


def _billing_value(data: dict[str, Any], key: str) -> Any:
    # A camelCase key that is present (even as None) shadows the legacy one
    if key in data or key not in _LEGACY_BILLING_KEYS:
        return data.get(key)
    return data.get(_LEGACY_BILLING_KEYS[key])


def billing_from_document(tenant_id: str, data: dict[str, Any]) -> TenantBilling:
    raw_status = _billing_value(data, "billingStatus")
    try:
        status = parse_billing_status(raw_status)
    except ValueError:
        # Pre-billing accounts and half-written signups have no usable status
        status = BillingStatus.ACTIVE if data.get("stripeSubscriptionId") else BillingStatus.TRIALING
        logger.warning(
            "Tenant has unknown billing status; using default",
            extra={"tenant_id": tenant_id, "status": raw_status, "default": status.value},
        )

    return TenantBilling(
        tenant_id=tenant_id,
        billing_status=status,
        plan=_optional_str(data.get("plan")),
        plan_id=_optional_str(data.get("planId")),
        stripe_customer_id=_optional_str(data.get("stripeCustomerId")),
        stripe_subscription_id=_optional_str(data.get("stripeSubscriptionId")),
        subscription_status=_optional_str(data.get("subscriptionStatus")),
        current_period_start=to_datetime(data.get("currentPeriodStart")),
        current_period_end=to_datetime(data.get("currentPeriodEnd")),
        trial_end=to_datetime(_billing_value(data, "trialEnd")),
        grace_until=to_datetime(_billing_value(data, "graceUntil")),
        cancel_at_period_end=bool(data.get("cancelAtPeriodEnd") or False),
        cancellation_requested_at=to_datetime(data.get("cancellationRequestedAt")),
        suspended_reason=_optional_str(data.get("suspendedReason")),
        suspended_at=to_datetime(data.get("suspendedAt")),
        last_payment_at=to_datetime(data.get("lastPaymentAt")),
        updated_at=to_datetime(data.get("updatedAt")),
    )
