from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from app.application.dto.gateway import CheckoutSession, session_from_payload, subscription_from_payload
from app.application.dto.gateway_event import GatewayEventDTO
from app.application.exceptions import (
    AlreadyScheduled,
    InvalidTransition,
    NotFound,
    PaymentIncomplete,
    Unauthorized,
    ValidationFailed,
)
from app.application.ports.document_store import DocumentStorePort
from app.application.ports.payment_gateway import PaymentGatewayPort
from app.application.use_cases.record_side_effects import SideEffectSink
from app.application.utils.clock import Clock, utc_now
from app.application.utils.record_mapping import billing_from_document
from app.core.metrics import billing_transitions_total, mirror_write_failures_total
from app.domain.entities.billing import (
    GATEWAY_STATUS_MAP,
    SUBSCRIPTION_CANCELLED_REASON,
    BillingStatus,
    BillingTransitionResult,
    CheckoutResult,
    TenantBilling,
    can_transition_billing,
)


PRIMARY_COLLECTION = "users"
MIRROR_COLLECTION = "owners"

GATEWAY_ACTOR = "system:stripe"


def transition_fields(
    target: BillingStatus,
    now: datetime,
    grace_until: datetime | None = None,
    suspended_reason: str | None = None,
    suspended_at: datetime | None = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Field set for moving a tenant to `target`.

    graceUntil is set only for past_due and suspendedAt/suspendedReason only
    for suspended; every other target clears them. Both the direct path and
    the reconciliation job write exactly this set to primary and mirror.
    """
    fields = dict(extra or {})
    fields["billingStatus"] = target.value
    fields["updatedAt"] = now

    if target == BillingStatus.PAST_DUE:
        if grace_until is None:
            raise ValueError("past_due requires a grace window")
        fields["graceUntil"] = grace_until
    else:
        fields["graceUntil"] = None

    if target == BillingStatus.SUSPENDED:
        fields["suspendedReason"] = suspended_reason or "Account suspended"
        fields["suspendedAt"] = suspended_at or now
    else:
        fields["suspendedReason"] = None
        fields["suspendedAt"] = None
    return fields


@dataclass(frozen=True)
class CancellationResult:
    tenant_id: str
    cancel_at_period_end: bool
    current_period_end: datetime | None


class BillingTransitionUseCase:
    def __init__(
        self,
        store: DocumentStorePort,
        gateway: PaymentGatewayPort,
        side_effects: SideEffectSink,
        grace_period_days: int = 7,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._side_effects = side_effects
        self._grace_period = timedelta(days=grace_period_days)
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    # Mutation routine shared by every entry point

    def load(self, tenant_id: str) -> TenantBilling:
        data = self._store.get(PRIMARY_COLLECTION, tenant_id)
        if data is None:
            raise NotFound("Tenant not found")
        return billing_from_document(tenant_id, data)

    def apply_transition(
        self,
        tenant_id: str,
        target: BillingStatus,
        reason: str,
        performed_by: str,
        source: str,
        extra_fields: dict[str, Any] | None = None,
        suspended_reason: str | None = None,
        idempotency_key: str | None = None,
    ) -> BillingTransitionResult:
        current = self.load(tenant_id)
        previous = current.billing_status
        if not can_transition_billing(previous, target):
            raise InvalidTransition(previous.value, target.value)

        now = self._clock()
        grace_until = None
        if target == BillingStatus.PAST_DUE:
            # Redelivered failures must not push the deadline out
            if previous == BillingStatus.PAST_DUE and current.grace_until is not None:
                grace_until = current.grace_until
            else:
                grace_until = now + self._grace_period

        staying_suspended = previous == BillingStatus.SUSPENDED and target == BillingStatus.SUSPENDED
        fields = transition_fields(
            target,
            now,
            grace_until=grace_until,
            suspended_reason=suspended_reason or (current.suspended_reason if staying_suspended else None),
            suspended_at=current.suspended_at if staying_suspended else None,
            extra=extra_fields,
        )

        self._store.update(PRIMARY_COLLECTION, tenant_id, fields)
        mirrored = self.write_mirror(tenant_id, fields, source)

        billing_transitions_total.labels(from_status=previous.value, to_status=target.value, source=source).inc()
        self._logger.info(
            "Billing transitioned",
            extra={"tenant_id": tenant_id, "status": f"{previous.value}->{target.value}", "source": source},
        )
        self._side_effects.billing_transitioned(
            tenant_id,
            previous,
            target,
            performed_by=performed_by,
            reason=reason,
            idempotency_key=idempotency_key,
        )
        return BillingTransitionResult(
            tenant_id=tenant_id,
            previous_status=previous,
            status=target,
            mirrored=mirrored,
        )

    def write_mirror(self, tenant_id: str, fields: dict[str, Any], source: str) -> bool:
        """Best-effort copy of `fields` onto the owner mirror. Returns True if written."""
        try:
            if not self._store.exists(MIRROR_COLLECTION, tenant_id):
                return False
            self._store.update(MIRROR_COLLECTION, tenant_id, fields)
            return True
        except Exception as e:
            mirror_write_failures_total.labels(source=source).inc()
            self._logger.error("Owner mirror update failed", extra={"tenant_id": tenant_id, "error": str(e)})
            return False

    # Entry point 1: checkout verification

    def confirm_checkout(self, session_ref: str, caller_uid: str) -> CheckoutResult:
        if not session_ref:
            raise ValidationFailed("Missing sessionId")

        session = self._gateway.retrieve_session(session_ref)
        if session is None:
            raise NotFound("Session not found")
        if session.owner_ref != caller_uid:
            raise Unauthorized("Session does not belong to this user")
        return self._converge_checkout(session, performed_by=caller_uid)

    def _converge_checkout(self, session: CheckoutSession, performed_by: str) -> CheckoutResult:
        if not session.is_paid:
            raise PaymentIncomplete(
                f"Payment not completed (status={session.status}, payment_status={session.payment_status})"
            )
        if not session.subscription_ref:
            raise PaymentIncomplete("No subscription in session")

        subscription = self._gateway.retrieve_subscription(session.subscription_ref)
        now = self._clock()
        is_trialing = subscription.status == "trialing" or (
            subscription.trial_end is not None and subscription.trial_end > now
        )
        target = BillingStatus.TRIALING if is_trialing else BillingStatus.ACTIVE

        extra: dict[str, Any] = {
            "stripeSubscriptionId": subscription.id,
            "subscriptionStatus": subscription.status,
            "cancelAtPeriodEnd": subscription.cancel_at_period_end,
            "trialEnd": subscription.trial_end if is_trialing else None,
        }
        customer_ref = session.customer_ref or subscription.customer_ref
        if customer_ref:
            extra["stripeCustomerId"] = customer_ref
        if subscription.price_ref:
            extra["stripePriceId"] = subscription.price_ref
        if subscription.current_period_start:
            extra["currentPeriodStart"] = subscription.current_period_start
        if subscription.current_period_end:
            extra["currentPeriodEnd"] = subscription.current_period_end
        if session.metadata.get("planId"):
            extra["planId"] = session.metadata["planId"]
        if session.metadata.get("planName"):
            extra["plan"] = session.metadata["planName"]

        tenant_id = str(session.owner_ref)
        self.apply_transition(
            tenant_id,
            target,
            reason=f"Checkout verified ({session.id})",
            performed_by=performed_by,
            source="checkout",
            extra_fields=extra,
            idempotency_key=f"checkout:{session.id}",
        )
        return CheckoutResult(
            tenant_id=tenant_id,
            status=target,
            is_trialing=is_trialing,
            trial_end=subscription.trial_end if is_trialing else None,
        )

    # Entry point 2: cancellation request

    def schedule_cancellation(self, tenant_id: str, performed_by: str) -> CancellationResult:
        """
        Flag the subscription to end at the close of the current period.

        billingStatus does not change here; the gateway's
        customer.subscription.deleted event moves the tenant to cancelled later.
        """
        current = self.load(tenant_id)
        if current.cancel_at_period_end:
            raise AlreadyScheduled("Subscription is already scheduled for cancellation")

        now = self._clock()
        period_end = current.current_period_end
        if current.stripe_subscription_id:
            subscription = self._gateway.retrieve_subscription(current.stripe_subscription_id)
            if not subscription.cancel_at_period_end:
                subscription = self._gateway.update_subscription(
                    current.stripe_subscription_id,
                    {"cancel_at_period_end": True, "metadata": {"cancelled_at": now.isoformat()}},
                )
            period_end = subscription.current_period_end or period_end

        fields: dict[str, Any] = {
            "cancelAtPeriodEnd": True,
            "cancellationRequestedAt": now,
            "updatedAt": now,
        }
        if period_end:
            fields["currentPeriodEnd"] = period_end

        self._store.update(PRIMARY_COLLECTION, tenant_id, fields)
        self.write_mirror(tenant_id, fields, source="cancellation")

        self._logger.info(
            "Cancellation scheduled",
            extra={"tenant_id": tenant_id, "current_period_end": period_end.isoformat() if period_end else None},
        )
        self._side_effects.billing_transitioned(
            tenant_id,
            current.billing_status,
            current.billing_status,
            performed_by=performed_by,
            reason="Cancellation scheduled at period end",
        )
        return CancellationResult(tenant_id=tenant_id, cancel_at_period_end=True, current_period_end=period_end)

    # Entry point 3: verified gateway events

    def handle_gateway_event(self, event: GatewayEventDTO) -> str:
        """
        Apply a verified webhook event. Returns "applied", "skipped" or "ignored".

        Unknown tenants, unhandled types and illegal transitions are logged and
        acknowledged so the gateway does not redeliver them forever.
        """
        handlers = {
            "checkout.session.completed": self._on_checkout_completed,
            "customer.subscription.created": self._on_subscription_updated,
            "customer.subscription.updated": self._on_subscription_updated,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.payment_succeeded": self._on_payment_succeeded,
            "invoice.paid": self._on_payment_succeeded,
            "invoice.payment_failed": self._on_payment_failed,
        }
        handler = handlers.get(event.type)
        if handler is None:
            self._logger.info("Unhandled gateway event", extra={"event_type": event.type})
            return "ignored"

        try:
            return handler(event)
        except InvalidTransition as e:
            self._logger.warning(
                "Skipping illegal billing transition from gateway event",
                extra={"event_type": event.type, "event_id": event.id, "reason": str(e)},
            )
            return "skipped"

    def _on_checkout_completed(self, event: GatewayEventDTO) -> str:
        session = session_from_payload(event.payload)
        if not session.owner_ref:
            self._logger.error("Checkout session has no owner reference", extra={"event_id": event.id})
            return "ignored"
        if not self._store.exists(PRIMARY_COLLECTION, session.owner_ref):
            self._logger.error("Checkout session for unknown tenant", extra={"tenant_id": session.owner_ref})
            return "ignored"
        try:
            self._converge_checkout(session, performed_by=GATEWAY_ACTOR)
        except PaymentIncomplete as e:
            # Async payment methods complete later with a separate event
            self._logger.info("Checkout not yet paid", extra={"event_id": event.id, "reason": str(e)})
            return "ignored"
        return "applied"

    def _on_subscription_updated(self, event: GatewayEventDTO) -> str:
        subscription = subscription_from_payload(event.payload)
        tenant_id = self._find_tenant(subscription.metadata.get("firebaseUid"), subscription.id)
        if tenant_id is None:
            return "ignored"

        current = self.load(tenant_id)
        target = GATEWAY_STATUS_MAP.get(subscription.status, current.billing_status)
        extra: dict[str, Any] = {
            "stripeSubscriptionId": subscription.id,
            "subscriptionStatus": subscription.status,
            "cancelAtPeriodEnd": subscription.cancel_at_period_end,
        }
        if subscription.price_ref:
            extra["stripePriceId"] = subscription.price_ref
        if subscription.current_period_start:
            extra["currentPeriodStart"] = subscription.current_period_start
        if subscription.current_period_end:
            extra["currentPeriodEnd"] = subscription.current_period_end
        if subscription.trial_end:
            extra["trialEnd"] = subscription.trial_end

        self.apply_transition(
            tenant_id,
            target,
            reason=f"Subscription {subscription.status}",
            performed_by=GATEWAY_ACTOR,
            source="webhook",
            extra_fields=extra,
            idempotency_key=f"event:{event.id}",
        )
        return "applied"

    def _on_subscription_deleted(self, event: GatewayEventDTO) -> str:
        subscription = subscription_from_payload(event.payload)
        tenant_id = self._find_tenant(subscription.metadata.get("firebaseUid"), subscription.id)
        if tenant_id is None:
            return "ignored"

        self.apply_transition(
            tenant_id,
            BillingStatus.CANCELLED,
            reason=SUBSCRIPTION_CANCELLED_REASON,
            performed_by=GATEWAY_ACTOR,
            source="webhook",
            extra_fields={"subscriptionStatus": "canceled", "cancelAtPeriodEnd": True},
            idempotency_key=f"event:{event.id}",
        )
        return "applied"

    def _on_payment_succeeded(self, event: GatewayEventDTO) -> str:
        subscription_ref = event.invoice_subscription_ref()
        if not subscription_ref:
            return "ignored"
        tenant_id = self._find_tenant(None, subscription_ref)
        if tenant_id is None:
            return "ignored"

        current = self.load(tenant_id)
        if current.billing_status in (BillingStatus.PAST_DUE, BillingStatus.SUSPENDED):
            target = BillingStatus.ACTIVE
        else:
            target = current.billing_status

        extra: dict[str, Any] = {"lastPaymentAt": self._clock()}
        amount_paid = event.payload.get("amount_paid")
        if isinstance(amount_paid, (int, float)):
            extra["lastPaymentAmount"] = amount_paid / 100

        self.apply_transition(
            tenant_id,
            target,
            reason="Payment succeeded",
            performed_by=GATEWAY_ACTOR,
            source="webhook",
            extra_fields=extra,
            idempotency_key=f"event:{event.id}",
        )
        return "applied"

    def _on_payment_failed(self, event: GatewayEventDTO) -> str:
        subscription_ref = event.invoice_subscription_ref()
        if not subscription_ref:
            return "ignored"
        tenant_id = self._find_tenant(None, subscription_ref)
        if tenant_id is None:
            return "ignored"

        current = self.load(tenant_id)
        if current.billing_status not in (BillingStatus.ACTIVE, BillingStatus.TRIALING, BillingStatus.PAST_DUE):
            self._logger.info(
                "Payment failure for tenant already out of good standing",
                extra={"tenant_id": tenant_id, "status": current.billing_status.value},
            )
            return "skipped"

        self.apply_transition(
            tenant_id,
            BillingStatus.PAST_DUE,
            reason="Payment failed",
            performed_by=GATEWAY_ACTOR,
            source="webhook",
            extra_fields={"lastPaymentFailedAt": self._clock()},
            idempotency_key=f"event:{event.id}",
        )
        return "applied"

    def _find_tenant(self, uid_hint: str | None, subscription_ref: str) -> str | None:
        if uid_hint and self._store.exists(PRIMARY_COLLECTION, uid_hint):
            return uid_hint
        matches = self._store.query(
            PRIMARY_COLLECTION,
            [("stripeSubscriptionId", "==", subscription_ref)],
            limit=1,
        )
        if not matches:
            self._logger.error("No tenant for subscription", extra={"subscription_id": subscription_ref})
            return None
        return matches[0].id
