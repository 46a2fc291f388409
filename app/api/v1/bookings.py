from fastapi import APIRouter, Depends

from app.api.v1.schemas import BookingStatusResponseSchema, BookingStatusUpdateSchema
from app.api.v1.security import enforce_rate_limit, get_caller, to_http_error
from app.application.exceptions import ServiceError
from app.application.ports.rate_limiter import RateLimiterPort
from app.application.use_cases.booking_transition import BookingTransitionUseCase
from app.domain.entities.booking import StaffAssignment
from app.domain.entities.caller import Caller
from app.wiring.dependencies import get_booking_transition_use_case, get_rate_limiter

router = APIRouter()


@router.patch("/bookings/{booking_id}/status", response_model=BookingStatusResponseSchema)
def update_booking_status(
    booking_id: str,
    req: BookingStatusUpdateSchema,
    caller: Caller = Depends(get_caller),
    limiter: RateLimiterPort = Depends(get_rate_limiter),
    uc: BookingTransitionUseCase = Depends(get_booking_transition_use_case),
):
    enforce_rate_limit(limiter, "bookings.status", caller.uid)

    staff = None
    if req.staff_id is not None or req.staff_name is not None:
        staff = StaffAssignment(staff_id=req.staff_id, staff_name=req.staff_name)

    try:
        result = uc.request_transition(
            booking_id,
            req.status,
            caller_owner_uid=caller.owner_uid,
            staff_assignment=staff,
            performed_by=caller.uid,
            performed_by_role=caller.role,
        )
    except ServiceError as e:
        raise to_http_error(e)

    return BookingStatusResponseSchema(
        booking_id=result.booking_id,
        previous_status=result.previous_status.value,
        status=result.status.value,
        migrated=result.migrated,
    )
