from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelSchema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BookingStatusUpdateSchema(CamelSchema):
    status: str
    staff_id: str | None = None
    staff_name: str | None = None


class BookingStatusResponseSchema(CamelSchema):
    ok: bool = True
    booking_id: str
    previous_status: str
    status: str
    migrated: bool


class VerifySessionRequestSchema(CamelSchema):
    session_id: str = ""


class VerifySessionResponseSchema(CamelSchema):
    success: bool = True
    message: str
    status: str
    is_trialing: bool
    trial_end: datetime | None = None


class SubscriptionScheduleSchema(CamelSchema):
    cancel_at_period_end: bool
    current_period_end: datetime | None = None


class CancelResponseSchema(CamelSchema):
    success: bool = True
    message: str
    subscription: SubscriptionScheduleSchema


class ReconciliationResponseSchema(CamelSchema):
    success: bool = True
    message: str
    scanned: int
    suspended_count: int
    skipped: int
    failed_batches: int
    warning_user_ids: list[str] = Field(default_factory=list)


class WebhookAckSchema(CamelSchema):
    received: bool = True
    result: str
