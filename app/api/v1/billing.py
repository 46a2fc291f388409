from fastapi import APIRouter, Depends

from app.api.v1.schemas import (
    CancelResponseSchema,
    SubscriptionScheduleSchema,
    VerifySessionRequestSchema,
    VerifySessionResponseSchema,
)
from app.api.v1.security import enforce_rate_limit, get_caller, get_verified_token, to_http_error
from app.application.exceptions import ServiceError
from app.application.ports.identity import VerifiedToken
from app.application.ports.rate_limiter import RateLimiterPort
from app.application.use_cases.billing_transition import BillingTransitionUseCase
from app.application.use_cases.tenant_access import require_role
from app.domain.entities.caller import OWNER_ROLES, Caller
from app.wiring.dependencies import get_billing_transition_use_case, get_rate_limiter

router = APIRouter()


@router.post("/billing/verify-session", response_model=VerifySessionResponseSchema)
def verify_session(
    req: VerifySessionRequestSchema,
    token: VerifiedToken = Depends(get_verified_token),
    limiter: RateLimiterPort = Depends(get_rate_limiter),
    uc: BillingTransitionUseCase = Depends(get_billing_transition_use_case),
):
    enforce_rate_limit(limiter, "billing.verify-session", token.uid)
    try:
        result = uc.confirm_checkout(req.session_id, caller_uid=token.uid)
    except ServiceError as e:
        raise to_http_error(e)

    return VerifySessionResponseSchema(
        message="Subscription verified and status updated",
        status=result.status.value,
        is_trialing=result.is_trialing,
        trial_end=result.trial_end,
    )


@router.post("/billing/cancel", response_model=CancelResponseSchema)
def cancel_subscription(
    caller: Caller = Depends(get_caller),
    limiter: RateLimiterPort = Depends(get_rate_limiter),
    uc: BillingTransitionUseCase = Depends(get_billing_transition_use_case),
):
    enforce_rate_limit(limiter, "billing.cancel", caller.uid)
    try:
        require_role(caller, OWNER_ROLES)
        result = uc.schedule_cancellation(caller.owner_uid, performed_by=caller.uid)
    except ServiceError as e:
        raise to_http_error(e)

    return CancelResponseSchema(
        message="Subscription cancelled. Access will continue until the end of your current billing period.",
        subscription=SubscriptionScheduleSchema(
            cancel_at_period_end=result.cancel_at_period_end,
            current_period_end=result.current_period_end,
        ),
    )
