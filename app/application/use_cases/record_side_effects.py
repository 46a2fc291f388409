from __future__ import annotations

import logging
from dataclasses import dataclass

from app.application.ports.side_effects import AuditLogPort, NotificationSinkPort
from app.application.utils.clock import Clock, utc_now
from app.application.utils.detached import DetachedTaskRunner
from app.domain.entities.audit import AuditEntry
from app.domain.entities.billing import BillingStatus
from app.domain.entities.booking import Booking, BookingStatus
from app.domain.entities.notification import Notification


_HIDDEN_STAFF_NAMES = {"Any Available", "Any Staff", "Multiple Staff"}


@dataclass(frozen=True)
class NotificationContent:
    title: str
    message: str
    type: str


def build_customer_notification_content(
    status: BookingStatus,
    booking_code: str | None = None,
    staff_name: str | None = None,
    service_name: str | None = None,
    booking_date: str | None = None,
    booking_time: str | None = None,
) -> NotificationContent:
    """Customer-facing wording per status. Internal workflow states are never named."""
    code = f" ({booking_code})" if booking_code else ""
    when = f" on {booking_date} at {booking_time}" if booking_date and booking_time else ""
    service = f" for {service_name}" if service_name else ""
    staff = f" with {staff_name}" if staff_name and staff_name not in _HIDDEN_STAFF_NAMES else ""
    details = f"{service}{staff}"

    if status == BookingStatus.PENDING:
        return NotificationContent(
            "Booking Request Received",
            f"Your booking request{code}{details} has been received successfully! "
            "We'll confirm your appointment soon.",
            "booking_status_changed",
        )
    if status in (BookingStatus.AWAITING_STAFF_APPROVAL, BookingStatus.PARTIALLY_APPROVED):
        return NotificationContent(
            "Booking Being Processed",
            f"Your booking request{code}{details}{when} is being processed. "
            "We'll notify you once it's confirmed.",
            "booking_status_changed",
        )
    if status == BookingStatus.STAFF_REJECTED:
        return NotificationContent(
            "Booking Being Rescheduled",
            f"Your booking{code}{details}{when} is being rescheduled. "
            "We'll notify you with updated details soon.",
            "booking_status_changed",
        )
    if status == BookingStatus.CONFIRMED:
        return NotificationContent(
            "Booking Confirmed",
            f"Your booking{code}{details}{when} has been confirmed. We look forward to seeing you!",
            "booking_confirmed",
        )
    if status == BookingStatus.COMPLETED:
        return NotificationContent(
            "Booking Completed",
            f"Your booking{code}{details} has been completed. Thank you for visiting us!",
            "booking_completed",
        )
    if status == BookingStatus.CANCELLED:
        return NotificationContent(
            "Booking Canceled",
            f"Your booking{code}{details}{when} has been canceled. "
            "Please contact us if you have any questions.",
            "booking_canceled",
        )
    return NotificationContent(
        "Booking Status Updated",
        f"Your booking{code} status has been updated to {status.value}.",
        "booking_status_changed",
    )


class SideEffectSink:
    """
    Audit and notification side effects of committed transitions.

    Everything here is submitted to the detached runner: the audit write and
    the notification are independent tasks, and neither can fail the
    transition that triggered it.
    """

    def __init__(
        self,
        audit_log: AuditLogPort,
        notifications: NotificationSinkPort,
        runner: DetachedTaskRunner,
        clock: Clock = utc_now,
    ) -> None:
        self._audit_log = audit_log
        self._notifications = notifications
        self._runner = runner
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def booking_transitioned(
        self,
        booking: Booking,
        previous: BookingStatus,
        status: BookingStatus,
        performed_by: str,
        performed_by_role: str | None = None,
        staff_name: str | None = None,
        migrated: bool = False,
    ) -> None:
        now = self._clock()
        entry = AuditEntry(
            owner_uid=booking.owner_uid,
            action=f"Booking status changed: {previous.value} -> {status.value}",
            action_type="status_change",
            entity_type="booking",
            entity_id=booking.id,
            performed_by=performed_by,
            performed_by_role=performed_by_role,
            previous_value=previous.value,
            new_value=status.value,
            timestamp=now,
            metadata={"bookingCode": booking.booking_code, "migrated": migrated},
        )
        self._runner.submit("audit", self._audit_log.record, entry)

        content = build_customer_notification_content(
            status,
            booking_code=booking.booking_code,
            staff_name=staff_name or booking.staff_name,
            service_name=booking.service_name,
            booking_date=booking.date,
            booking_time=booking.time,
        )
        notification = Notification(
            booking_id=booking.id,
            owner_uid=booking.owner_uid,
            type=content.type,
            title=content.title,
            message=content.message,
            status=status.value,
            created_at=now,
            booking_code=booking.booking_code,
            customer_uid=booking.customer_uid,
            customer_email=booking.client_email,
            customer_phone=booking.client_phone,
            client_name=booking.client_name,
            staff_name=staff_name or booking.staff_name,
            service_name=booking.service_name,
            branch_name=booking.branch_name,
            booking_date=booking.date,
            booking_time=booking.time,
        )
        self._runner.submit("notification", self._notifications.enqueue, notification)

    def billing_transitioned(
        self,
        tenant_id: str,
        previous: BillingStatus,
        status: BillingStatus,
        performed_by: str,
        reason: str,
        idempotency_key: str | None = None,
    ) -> None:
        entry = AuditEntry(
            owner_uid=tenant_id,
            action=reason,
            action_type="status_change" if previous != status else "update",
            entity_type="billing",
            entity_id=tenant_id,
            performed_by=performed_by,
            previous_value=previous.value,
            new_value=status.value,
            timestamp=self._clock(),
            idempotency_key=idempotency_key,
        )
        self._runner.submit("audit", self._audit_log.record, entry)
