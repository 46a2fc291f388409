import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException

from app.api.v1.schemas import ReconciliationResponseSchema
from app.api.v1.security import bearer_token, to_http_error
from app.application.exceptions import ServiceError
from app.application.use_cases.reconcile_billing import ReconcileBillingUseCase
from app.core.config import settings
from app.wiring.dependencies import get_reconcile_billing_use_case

router = APIRouter()
logger = logging.getLogger(__name__)


def require_cron_secret(token: str | None = Depends(bearer_token)) -> None:
    if not settings.CRON_SECRET:
        return
    if not token or not hmac.compare_digest(token, settings.CRON_SECRET):
        logger.warning("Scheduler call rejected")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.api_route(
    "/cron/suspend-overdue",
    methods=["GET", "POST"],
    response_model=ReconciliationResponseSchema,
    dependencies=[Depends(require_cron_secret)],
)
def suspend_overdue(uc: ReconcileBillingUseCase = Depends(get_reconcile_billing_use_case)):
    try:
        report = uc.suspend_overdue()
    except ServiceError as e:
        raise to_http_error(e)

    return ReconciliationResponseSchema(
        message=f"Suspended {report.suspended} accounts",
        scanned=report.scanned,
        suspended_count=report.suspended,
        skipped=report.skipped,
        failed_batches=report.failed_batches,
    )


@router.post(
    "/cron/check-trials",
    response_model=ReconciliationResponseSchema,
    dependencies=[Depends(require_cron_secret)],
)
def check_trials(uc: ReconcileBillingUseCase = Depends(get_reconcile_billing_use_case)):
    try:
        report = uc.expire_trials()
    except ServiceError as e:
        raise to_http_error(e)

    return ReconciliationResponseSchema(
        message="Trial expiration check completed",
        scanned=report.scanned,
        suspended_count=report.suspended,
        skipped=report.skipped,
        failed_batches=report.failed_batches,
        warning_user_ids=list(report.expiring_soon),
    )
