from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from app.application.ports.side_effects import NotificationSinkPort
from app.application.use_cases.record_side_effects import SideEffectSink, build_customer_notification_content
from app.application.utils.detached import DetachedTaskRunner
from app.domain.entities.billing import BillingStatus
from app.domain.entities.booking import Booking, BookingPartition, BookingStatus
from app.infrastructure.side_effects.store_sinks import (
    AUDIT_COLLECTION,
    NOTIFICATIONS_COLLECTION,
    StoreAuditLog,
    StoreNotificationSink,
)


def _booking() -> Booking:
    return Booking(
        id="B1",
        owner_uid="O1",
        status=BookingStatus.CONFIRMED,
        partition=BookingPartition.CONFIRMED,
        booking_code="BK-1",
        client_name="Jane",
        client_email="jane@example.com",
        service_name="Color",
        date="2025-03-12",
        time="09:00",
    )


def test_confirmed_content():
    content = build_customer_notification_content(
        BookingStatus.CONFIRMED,
        booking_code="BK-1",
        staff_name="Sam",
        service_name="Color",
        booking_date="2025-03-12",
        booking_time="09:00",
    )

    assert content.type == "booking_confirmed"
    assert content.title == "Booking Confirmed"
    assert "(BK-1) for Color with Sam on 2025-03-12 at 09:00" in content.message


def test_placeholder_staff_names_are_hidden():
    content = build_customer_notification_content(BookingStatus.CANCELLED, staff_name="Any Available")

    assert content.type == "booking_canceled"
    assert "Any Available" not in content.message


def test_internal_states_are_not_named_to_customers():
    for status in (BookingStatus.AWAITING_STAFF_APPROVAL, BookingStatus.PARTIALLY_APPROVED, BookingStatus.STAFF_REJECTED):
        content = build_customer_notification_content(status)
        assert status.value not in content.message
        assert content.type == "booking_status_changed"


class _BrokenSink(NotificationSinkPort):
    def enqueue(self, notification):
        raise RuntimeError("notification backend down")


def test_failing_sink_never_reaches_the_caller(store, clock):
    sink = SideEffectSink(
        audit_log=StoreAuditLog(store),
        notifications=_BrokenSink(),
        runner=DetachedTaskRunner(),
        clock=clock,
    )

    sink.booking_transitioned(_booking(), BookingStatus.AWAITING_STAFF_APPROVAL, BookingStatus.CONFIRMED, performed_by="O1")

    # The audit task still ran
    assert len(store.query(AUDIT_COLLECTION, [("entityId", "==", "B1")])) == 1


def test_store_sinks_write_documents(store, clock):
    sink = SideEffectSink(
        audit_log=StoreAuditLog(store),
        notifications=StoreNotificationSink(store),
        runner=DetachedTaskRunner(),
        clock=clock,
    )

    sink.booking_transitioned(_booking(), BookingStatus.AWAITING_STAFF_APPROVAL, BookingStatus.CONFIRMED, performed_by="O1")

    [notification] = store.query(NOTIFICATIONS_COLLECTION, [("bookingId", "==", "B1")])
    assert notification.data["type"] == "booking_confirmed"
    assert notification.data["ownerUid"] == "O1"
    assert notification.data["customerEmail"] == "jane@example.com"
    assert notification.data["read"] is False
    assert "customerPhone" not in notification.data


def test_keyed_audit_entries_are_written_once(store, clock):
    sink = SideEffectSink(
        audit_log=StoreAuditLog(store),
        notifications=StoreNotificationSink(store),
        runner=DetachedTaskRunner(),
        clock=clock,
    )

    for _ in range(2):
        sink.billing_transitioned(
            "T1",
            BillingStatus.PAST_DUE,
            BillingStatus.SUSPENDED,
            performed_by="system:reconciliation",
            reason="Payment past due - grace period expired",
            idempotency_key="grace_period:T1:unset",
        )

    entries = store.query(AUDIT_COLLECTION, [("entityId", "==", "T1")])
    assert [e.id for e in entries] == ["grace_period:T1:unset"]
    assert entries[0].data["actionType"] == "status_change"


def test_executor_runner_isolates_failures():
    executor = ThreadPoolExecutor(max_workers=1)
    runner = DetachedTaskRunner(executor)
    results = []

    def boom():
        raise RuntimeError("boom")

    runner.submit("boom", boom)
    runner.submit("ok", results.append, 1)
    runner.shutdown(wait=True)

    assert results == [1]
