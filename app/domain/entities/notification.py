from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Notification:
    booking_id: str
    owner_uid: str
    type: str  # "booking_confirmed", "booking_completed", "booking_canceled", "booking_status_changed"
    title: str
    message: str
    status: str
    created_at: datetime
    booking_code: str | None = None
    customer_uid: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    client_name: str | None = None
    staff_name: str | None = None
    service_name: str | None = None
    branch_name: str | None = None
    booking_date: str | None = None
    booking_time: str | None = None
    read: bool = False
