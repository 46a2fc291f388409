from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class GatewayEventData(BaseModel):
    object: dict[str, Any] = Field(default_factory=dict)


class GatewayEventDTO(BaseModel):
    id: str
    type: str
    created: int | None = None
    data: GatewayEventData = Field(default_factory=GatewayEventData)

    @property
    def payload(self) -> dict[str, Any]:
        return self.data.object

    def invoice_subscription_ref(self) -> str | None:
        obj = self.payload
        subscription = obj.get("subscription")
        if not subscription:
            # Newer API versions nest it under parent.subscription_details
            details = (obj.get("parent") or {}).get("subscription_details") or {}
            subscription = details.get("subscription")
        if isinstance(subscription, dict):
            subscription = subscription.get("id")
        return str(subscription) if subscription else None
