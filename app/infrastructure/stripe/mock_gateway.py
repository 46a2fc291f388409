from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from app.application.dto.gateway import CheckoutSession, GatewaySubscription
from app.application.exceptions import GatewayUnavailable, NotFound
from app.application.ports.payment_gateway import PaymentGatewayPort


class MockPaymentGateway(PaymentGatewayPort):
    def __init__(self) -> None:
        self._sessions: dict[str, CheckoutSession] = {}
        self._subscriptions: dict[str, GatewaySubscription] = {}
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.available = True
        self._logger = logging.getLogger(__name__)

    def add_session(self, session: CheckoutSession) -> None:
        self._sessions[session.id] = session

    def add_subscription(self, subscription: GatewaySubscription) -> None:
        self._subscriptions[subscription.id] = subscription

    def retrieve_session(self, session_ref: str) -> CheckoutSession | None:
        self._check_available()
        return self._sessions.get(session_ref)

    def retrieve_subscription(self, subscription_ref: str) -> GatewaySubscription:
        self._check_available()
        subscription = self._subscriptions.get(subscription_ref)
        if subscription is None:
            raise NotFound(f"Subscription {subscription_ref} not found")
        return subscription

    def update_subscription(self, subscription_ref: str, fields: dict[str, Any]) -> GatewaySubscription:
        subscription = self.retrieve_subscription(subscription_ref)
        self.updates.append((subscription_ref, fields))
        metadata = {**subscription.metadata, **{k: str(v) for k, v in (fields.get("metadata") or {}).items()}}
        updated = replace(
            subscription,
            cancel_at_period_end=bool(fields.get("cancel_at_period_end", subscription.cancel_at_period_end)),
            metadata=metadata,
        )
        self._subscriptions[subscription_ref] = updated
        self._logger.info("Mock subscription update", extra={"subscription_id": subscription_ref})
        return updated

    def _check_available(self) -> None:
        if not self.available:
            raise GatewayUnavailable("Payment gateway unreachable")
