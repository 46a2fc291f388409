from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class BookingStatus(str, Enum):
    PENDING = "Pending"
    AWAITING_STAFF_APPROVAL = "AwaitingStaffApproval"
    PARTIALLY_APPROVED = "PartiallyApproved"
    STAFF_REJECTED = "StaffRejected"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_BOOKING_TRANSITIONS[self]


class BookingPartition(str, Enum):
    REQUESTS = "bookingRequests"
    CONFIRMED = "bookings"


ALLOWED_BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {
            BookingStatus.AWAITING_STAFF_APPROVAL,
            BookingStatus.CONFIRMED,
            BookingStatus.CANCELLED,
        }
    ),
    BookingStatus.AWAITING_STAFF_APPROVAL: frozenset(
        {
            BookingStatus.PARTIALLY_APPROVED,
            BookingStatus.CONFIRMED,
            BookingStatus.STAFF_REJECTED,
            BookingStatus.CANCELLED,
        }
    ),
    BookingStatus.PARTIALLY_APPROVED: frozenset(
        {
            BookingStatus.CONFIRMED,
            BookingStatus.STAFF_REJECTED,
            BookingStatus.CANCELLED,
        }
    ),
    BookingStatus.STAFF_REJECTED: frozenset(
        {
            BookingStatus.AWAITING_STAFF_APPROVAL,
            BookingStatus.PARTIALLY_APPROVED,
            BookingStatus.CANCELLED,
        }
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

_STATUS_ALIASES = {
    "pending": BookingStatus.PENDING,
    "awaitingstaffapproval": BookingStatus.AWAITING_STAFF_APPROVAL,
    "partiallyapproved": BookingStatus.PARTIALLY_APPROVED,
    "staffrejected": BookingStatus.STAFF_REJECTED,
    "confirmed": BookingStatus.CONFIRMED,
    "completed": BookingStatus.COMPLETED,
    "cancelled": BookingStatus.CANCELLED,
    "canceled": BookingStatus.CANCELLED,
}


def parse_booking_status(value: str | None) -> BookingStatus:
    """Parse a status leniently ("awaiting_staff_approval", "Canceled", ...).

    Raises ValueError for anything that is not a known status.
    """
    key = "".join(ch for ch in str(value or "").lower() if ch not in "_- ")
    try:
        return _STATUS_ALIASES[key]
    except KeyError:
        raise ValueError(f"Unknown booking status: {value!r}") from None


def can_transition(current: BookingStatus, requested: BookingStatus) -> bool:
    return requested in ALLOWED_BOOKING_TRANSITIONS[current]


@dataclass(frozen=True)
class StaffAssignment:
    staff_id: str | None = None
    staff_name: str | None = None

    def as_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if self.staff_id is not None:
            fields["staffId"] = self.staff_id
        if self.staff_name is not None:
            fields["staffName"] = self.staff_name
        return fields


@dataclass(frozen=True)
class Booking:
    id: str
    owner_uid: str
    status: BookingStatus
    partition: BookingPartition
    booking_code: str | None = None
    staff_id: str | None = None
    staff_name: str | None = None
    customer_uid: str | None = None
    client_name: str | None = None
    client_email: str | None = None
    client_phone: str | None = None
    service_name: str | None = None
    branch_id: str | None = None
    branch_name: str | None = None
    date: str | None = None  # YYYY-MM-DD
    time: str | None = None  # HH:mm
    price: float | None = None
    duration: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    # Raw document as stored; carried through migration untouched
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class BookingTransitionResult:
    booking_id: str
    previous_status: BookingStatus
    status: BookingStatus
    migrated: bool
