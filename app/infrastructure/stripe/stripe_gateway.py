from __future__ import annotations

import logging
from typing import Any

from app.application.dto.gateway import (
    CheckoutSession,
    GatewaySubscription,
    session_from_payload,
    subscription_from_payload,
)
from app.application.exceptions import NotFound
from app.application.ports.payment_gateway import PaymentGatewayPort
from app.infrastructure.stripe.stripe_client import StripeClient


class StripeGateway(PaymentGatewayPort):
    def __init__(self, client: StripeClient) -> None:
        self._client = client
        self._logger = logging.getLogger(__name__)

    def retrieve_session(self, session_ref: str) -> CheckoutSession | None:
        data = self._client.get(f"checkout/sessions/{session_ref}")
        if data is None:
            self._logger.info("Checkout session not found", extra={"session_id": session_ref})
            return None
        return session_from_payload(data)

    def retrieve_subscription(self, subscription_ref: str) -> GatewaySubscription:
        data = self._client.get(f"subscriptions/{subscription_ref}")
        if data is None:
            raise NotFound(f"Subscription {subscription_ref} not found")
        return subscription_from_payload(data)

    def update_subscription(self, subscription_ref: str, fields: dict[str, Any]) -> GatewaySubscription:
        data = self._client.post(f"subscriptions/{subscription_ref}", fields)
        self._logger.info(
            "Subscription updated",
            extra={"subscription_id": subscription_ref, "fields": sorted(fields)},
        )
        return subscription_from_payload(data)
