from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from app.api.v1.schemas import WebhookAckSchema
from app.api.v1.security import to_http_error
from app.application.dto.gateway_event import GatewayEventDTO
from app.application.exceptions import ServiceError
from app.application.use_cases.billing_transition import BillingTransitionUseCase
from app.core.config import settings
from app.infrastructure.stripe.webhook_verify import verify_stripe_signature
from app.wiring.dependencies import get_billing_transition_use_case


router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/webhooks/stripe", response_model=WebhookAckSchema)
async def stripe_webhook(
    request: Request,
    uc: BillingTransitionUseCase = Depends(get_billing_transition_use_case),
) -> WebhookAckSchema:
    body = await request.body()
    signature = request.headers.get("Stripe-Signature")
    if not verify_stripe_signature(
        body,
        signature,
        settings.STRIPE_WEBHOOK_SECRET,
        settings.ENV,
        tolerance_seconds=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
    ):
        logger.warning("Webhook signature verification failed", extra={"signature_present": bool(signature)})
        raise HTTPException(status_code=400, detail="Webhook signature verification failed")

    try:
        payload = json.loads(body.decode("utf-8")) if body else {}
        event = GatewayEventDTO.model_validate(payload)
    except (UnicodeDecodeError, json.JSONDecodeError, ValidationError):
        logger.exception("Failed to parse webhook body")
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    logger.info("Webhook received", extra={"event_type": event.type, "event_id": event.id})

    # Storage and gateway failures surface as non-2xx so the gateway redelivers
    try:
        result = await run_in_threadpool(uc.handle_gateway_event, event)
    except ServiceError as e:
        logger.error("Webhook processing failed", extra={"event_type": event.type, "error": str(e)})
        raise to_http_error(e)

    return WebhookAckSchema(result=result)
