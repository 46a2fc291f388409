"""
Tests for the billing state machine entry points: checkout verification,
cancellation scheduling and verified gateway events.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.application.dto.gateway import CheckoutSession, GatewaySubscription
from app.application.dto.gateway_event import GatewayEventDTO
from app.application.exceptions import (
    AlreadyScheduled,
    GatewayUnavailable,
    InvalidTransition,
    NotFound,
    PaymentIncomplete,
    Unauthorized,
    ValidationFailed,
)
from app.application.use_cases.billing_transition import MIRROR_COLLECTION, PRIMARY_COLLECTION
from app.domain.entities.billing import BillingStatus

from tests.conftest import NOW


def _paid_session(session_id: str = "cs_1", owner: str = "T1", subscription: str = "sub_1") -> CheckoutSession:
    return CheckoutSession(
        id=session_id,
        owner_ref=owner,
        payment_status="paid",
        status="complete",
        subscription_ref=subscription,
        customer_ref="cus_1",
        metadata={"planId": "pro", "planName": "Pro"},
    )


def _event(event_type: str, obj: dict, event_id: str = "evt_1") -> GatewayEventDTO:
    return GatewayEventDTO.model_validate({"id": event_id, "type": event_type, "data": {"object": obj}})


def test_checkout_with_trial_sets_trialing(store, gateway, billing_uc):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "cancelled"})
    trial_end = NOW + timedelta(days=14)
    gateway.add_session(_paid_session())
    gateway.add_subscription(GatewaySubscription(id="sub_1", status="trialing", trial_end=trial_end))

    result = billing_uc.confirm_checkout("cs_1", caller_uid="T1")

    assert result.status == BillingStatus.TRIALING
    assert result.is_trialing is True
    assert result.trial_end == trial_end
    doc = store.get(PRIMARY_COLLECTION, "T1")
    assert doc["billingStatus"] == "trialing"
    assert doc["stripeSubscriptionId"] == "sub_1"
    assert doc["stripeCustomerId"] == "cus_1"
    assert doc["planId"] == "pro"
    assert doc["graceUntil"] is None
    assert doc["suspendedAt"] is None


def test_checkout_without_trial_sets_active_and_clears_suspension(store, gateway, billing_uc):
    store.set(
        PRIMARY_COLLECTION,
        "T1",
        {"billingStatus": "suspended", "suspendedReason": "Trial expired - payment required", "suspendedAt": NOW},
    )
    gateway.add_session(_paid_session())
    gateway.add_subscription(GatewaySubscription(id="sub_1", status="active"))

    result = billing_uc.confirm_checkout("cs_1", caller_uid="T1")

    assert result.status == BillingStatus.ACTIVE
    doc = store.get(PRIMARY_COLLECTION, "T1")
    assert doc["billingStatus"] == "active"
    assert doc["suspendedReason"] is None
    assert doc["suspendedAt"] is None


def test_checkout_twice_is_idempotent(store, gateway, billing_uc, audit_log):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "trialing"})
    gateway.add_session(_paid_session())
    gateway.add_subscription(GatewaySubscription(id="sub_1", status="active"))

    billing_uc.confirm_checkout("cs_1", caller_uid="T1")
    first = store.get(PRIMARY_COLLECTION, "T1")
    billing_uc.confirm_checkout("cs_1", caller_uid="T1")

    assert store.get(PRIMARY_COLLECTION, "T1") == first
    assert len(audit_log.entries) == 1


def test_checkout_for_another_user_is_unauthorized(store, gateway, billing_uc):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "trialing"})
    gateway.add_session(_paid_session(owner="someone-else"))

    with pytest.raises(Unauthorized):
        billing_uc.confirm_checkout("cs_1", caller_uid="T1")

    assert store.get(PRIMARY_COLLECTION, "T1") == {"billingStatus": "trialing"}


def test_unpaid_checkout_is_payment_incomplete(store, gateway, billing_uc):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "trialing"})
    gateway.add_session(
        CheckoutSession(id="cs_1", owner_ref="T1", payment_status="unpaid", status="open", subscription_ref=None)
    )

    with pytest.raises(PaymentIncomplete):
        billing_uc.confirm_checkout("cs_1", caller_uid="T1")


def test_checkout_input_and_lookup_errors(gateway, billing_uc):
    with pytest.raises(ValidationFailed):
        billing_uc.confirm_checkout("", caller_uid="T1")
    with pytest.raises(NotFound):
        billing_uc.confirm_checkout("cs_unknown", caller_uid="T1")


def test_gateway_outage_surfaces_and_leaves_state(store, gateway, billing_uc):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "trialing"})
    gateway.available = False

    with pytest.raises(GatewayUnavailable):
        billing_uc.confirm_checkout("cs_1", caller_uid="T1")

    assert store.get(PRIMARY_COLLECTION, "T1") == {"billingStatus": "trialing"}


def test_schedule_cancellation_flags_subscription(store, gateway, billing_uc):
    period_end = NOW + timedelta(days=20)
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "active", "stripeSubscriptionId": "sub_1"})
    gateway.add_subscription(GatewaySubscription(id="sub_1", status="active", current_period_end=period_end))

    result = billing_uc.schedule_cancellation("T1", performed_by="T1")

    assert result.cancel_at_period_end is True
    assert result.current_period_end == period_end
    assert gateway.updates[0][1]["cancel_at_period_end"] is True
    doc = store.get(PRIMARY_COLLECTION, "T1")
    assert doc["cancelAtPeriodEnd"] is True
    assert doc["billingStatus"] == "active"

    with pytest.raises(AlreadyScheduled):
        billing_uc.schedule_cancellation("T1", performed_by="T1")
    assert len(gateway.updates) == 1


def test_payment_failed_sets_grace_once(store, billing_uc, clock):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "active", "stripeSubscriptionId": "sub_1"})
    invoice = {"id": "in_1", "subscription": "sub_1"}

    assert billing_uc.handle_gateway_event(_event("invoice.payment_failed", invoice, "evt_1")) == "applied"
    doc = store.get(PRIMARY_COLLECTION, "T1")
    assert doc["billingStatus"] == "past_due"
    assert doc["graceUntil"] == NOW + timedelta(days=7)

    clock.now = NOW + timedelta(days=3)
    billing_uc.handle_gateway_event(_event("invoice.payment_failed", invoice, "evt_2"))

    assert store.get(PRIMARY_COLLECTION, "T1")["graceUntil"] == NOW + timedelta(days=7)


def test_payment_succeeded_restores_active(store, billing_uc):
    store.set(
        PRIMARY_COLLECTION,
        "T1",
        {"billingStatus": "past_due", "graceUntil": NOW, "stripeSubscriptionId": "sub_1"},
    )

    result = billing_uc.handle_gateway_event(
        _event("invoice.payment_succeeded", {"subscription": "sub_1", "amount_paid": 2900})
    )

    assert result == "applied"
    doc = store.get(PRIMARY_COLLECTION, "T1")
    assert doc["billingStatus"] == "active"
    assert doc["graceUntil"] is None
    assert doc["lastPaymentAmount"] == 29.0


def test_subscription_deleted_cancels(store, billing_uc):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "active", "stripeSubscriptionId": "sub_1"})

    result = billing_uc.handle_gateway_event(
        _event("customer.subscription.deleted", {"id": "sub_1", "status": "canceled", "metadata": {}})
    )

    assert result == "applied"
    assert store.get(PRIMARY_COLLECTION, "T1")["billingStatus"] == "cancelled"


@pytest.mark.parametrize(
    "starting",
    [
        {"billingStatus": "active", "stripeSubscriptionId": "sub_old"},
        {"billingStatus": "past_due", "graceUntil": NOW + timedelta(days=3)},
    ],
    ids=["active", "past_due"],
)
def test_trial_checkout_converges_from_paying_states(store, gateway, billing_uc, starting):
    store.set(PRIMARY_COLLECTION, "T1", starting)
    gateway.add_session(_paid_session())
    gateway.add_subscription(GatewaySubscription(id="sub_1", status="trialing", trial_end=NOW + timedelta(days=14)))

    result = billing_uc.confirm_checkout("cs_1", caller_uid="T1")

    assert result.status == BillingStatus.TRIALING
    doc = store.get(PRIMARY_COLLECTION, "T1")
    assert doc["billingStatus"] == "trialing"
    assert doc["stripeSubscriptionId"] == "sub_1"
    assert doc["graceUntil"] is None


def test_checkout_completed_event_applies_to_active_tenant(store, gateway, billing_uc):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "active"})
    gateway.add_subscription(GatewaySubscription(id="sub_1", status="trialing", trial_end=NOW + timedelta(days=14)))

    result = billing_uc.handle_gateway_event(
        _event(
            "checkout.session.completed",
            {
                "id": "cs_1",
                "payment_status": "paid",
                "status": "complete",
                "subscription": "sub_1",
                "customer": "cus_1",
                "metadata": {"firebaseUid": "T1"},
            },
        )
    )

    assert result == "applied"
    doc = store.get(PRIMARY_COLLECTION, "T1")
    assert doc["billingStatus"] == "trialing"
    assert doc["stripeSubscriptionId"] == "sub_1"


def test_subscription_updated_to_trialing_applies_to_active_tenant(store, billing_uc):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "active", "stripeSubscriptionId": "sub_1"})

    result = billing_uc.handle_gateway_event(
        _event("customer.subscription.updated", {"id": "sub_1", "status": "trialing", "metadata": {"firebaseUid": "T1"}})
    )

    assert result == "applied"
    assert store.get(PRIMARY_COLLECTION, "T1")["billingStatus"] == "trialing"


def test_illegal_event_transition_is_skipped(store, billing_uc):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "cancelled", "stripeSubscriptionId": "sub_1"})

    # cancelled -> past_due is not in the table
    result = billing_uc.handle_gateway_event(
        _event("customer.subscription.updated", {"id": "sub_1", "status": "past_due", "metadata": {"firebaseUid": "T1"}})
    )

    assert result == "skipped"
    assert store.get(PRIMARY_COLLECTION, "T1")["billingStatus"] == "cancelled"


def test_unknown_tenant_and_unhandled_types_are_ignored(billing_uc):
    assert billing_uc.handle_gateway_event(_event("invoice.payment_failed", {"subscription": "sub_x"})) == "ignored"
    assert billing_uc.handle_gateway_event(_event("customer.created", {"id": "cus_1"})) == "ignored"


def test_direct_transition_rejects_illegal_target(store, billing_uc):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "active"})

    with pytest.raises(InvalidTransition):
        billing_uc.apply_transition("T1", BillingStatus.SUSPENDED, reason="manual", performed_by="admin", source="admin")


def test_mirror_is_updated_when_present(store, billing_uc):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "active", "stripeSubscriptionId": "sub_1"})
    store.set(MIRROR_COLLECTION, "T1", {"billingStatus": "active", "name": "Salon One"})

    result = billing_uc.handle_gateway_event(_event("invoice.payment_failed", {"subscription": "sub_1"}))

    assert result == "applied"
    mirror = store.get(MIRROR_COLLECTION, "T1")
    assert mirror["billingStatus"] == "past_due"
    assert mirror["name"] == "Salon One"


def test_mirror_failure_does_not_fail_primary(store, billing_uc, monkeypatch):
    store.set(PRIMARY_COLLECTION, "T1", {"billingStatus": "active", "stripeSubscriptionId": "sub_1"})
    store.set(MIRROR_COLLECTION, "T1", {"billingStatus": "active"})
    original_update = store.update

    def failing_update(collection, doc_id, fields):
        if collection == MIRROR_COLLECTION:
            raise RuntimeError("mirror unavailable")
        original_update(collection, doc_id, fields)

    monkeypatch.setattr(store, "update", failing_update)

    result = billing_uc.apply_transition(
        "T1", BillingStatus.PAST_DUE, reason="Payment failed", performed_by="system:stripe", source="webhook"
    )

    assert result.mirrored is False
    assert store.get(PRIMARY_COLLECTION, "T1")["billingStatus"] == "past_due"
    assert store.get(MIRROR_COLLECTION, "T1")["billingStatus"] == "active"


def test_legacy_snake_case_status_is_read(store, billing_uc):
    store.set(PRIMARY_COLLECTION, "T1", {"billing_status": "past_due", "grace_until": NOW})

    billing = billing_uc.load("T1")

    assert billing.billing_status == BillingStatus.PAST_DUE
    assert billing.grace_until == NOW
