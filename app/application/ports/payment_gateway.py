from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from app.application.dto.gateway import CheckoutSession, GatewaySubscription


class PaymentGatewayPort(ABC):
    @abstractmethod
    def retrieve_session(self, session_ref: str) -> CheckoutSession | None:
        """Fetch a checkout session. Returns None if the gateway does not know it."""
        raise NotImplementedError

    @abstractmethod
    def retrieve_subscription(self, subscription_ref: str) -> GatewaySubscription:
        raise NotImplementedError

    @abstractmethod
    def update_subscription(self, subscription_ref: str, fields: dict[str, Any]) -> GatewaySubscription:
        """Update subscription fields (e.g. cancel_at_period_end). Returns the updated subscription."""
        raise NotImplementedError
