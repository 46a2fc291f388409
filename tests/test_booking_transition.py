"""
Tests for the booking lifecycle: tenant isolation, the transition table and
the request -> confirmed partition migration.
"""

from __future__ import annotations

import pytest

from app.application.exceptions import Forbidden, InvalidTransition, NotFound, StorageError, ValidationFailed
from app.application.use_cases.booking_transition import BookingTransitionUseCase
from app.domain.entities.booking import (
    ALLOWED_BOOKING_TRANSITIONS,
    BookingPartition,
    BookingStatus,
    StaffAssignment,
    parse_booking_status,
)
from app.infrastructure.store.memory_store import MemoryDocumentStore

REQUESTS = BookingPartition.REQUESTS.value
CONFIRMED = BookingPartition.CONFIRMED.value


def _booking(status: str, owner: str = "O1", **extra) -> dict:
    return {
        "ownerUid": owner,
        "status": status,
        "bookingCode": "BK-1001",
        "client": "Jane Doe",
        "clientEmail": "jane@example.com",
        "serviceName": "Haircut",
        "date": "2025-03-12",
        "time": "10:30",
        **extra,
    }


def test_confirm_migrates_to_confirmed_partition(store, booking_uc, notifications):
    store.set(REQUESTS, "B1", _booking("AwaitingStaffApproval"))

    result = booking_uc.request_transition(
        "B1", "Confirmed", caller_owner_uid="O1", staff_assignment=StaffAssignment(staff_id="S9")
    )

    assert result.migrated is True
    assert result.previous_status == BookingStatus.AWAITING_STAFF_APPROVAL
    assert store.get(REQUESTS, "B1") is None
    confirmed = store.get(CONFIRMED, "B1")
    assert confirmed["status"] == "Confirmed"
    assert confirmed["staffId"] == "S9"
    assert confirmed["bookingCode"] == "BK-1001"
    assert "confirmedAt" in confirmed
    assert [n.type for n in notifications.notifications] == ["booking_confirmed"]


def test_other_tenant_is_forbidden_and_nothing_changes(store, booking_uc, audit_log, notifications):
    store.set(REQUESTS, "B1", _booking("AwaitingStaffApproval"))
    before = store.get(REQUESTS, "B1")

    with pytest.raises(Forbidden):
        booking_uc.request_transition("B1", "Confirmed", caller_owner_uid="O2")

    assert store.get(REQUESTS, "B1") == before
    assert store.get(CONFIRMED, "B1") is None
    assert audit_log.entries == []
    assert notifications.notifications == []


def test_tenant_check_runs_before_transition_check(store, booking_uc):
    store.set(CONFIRMED, "B1", _booking("Completed"))

    with pytest.raises(Forbidden):
        booking_uc.request_transition("B1", "Cancelled", caller_owner_uid="O2")


def test_missing_booking_is_not_found(booking_uc):
    with pytest.raises(NotFound):
        booking_uc.request_transition("missing", "Confirmed", caller_owner_uid="O1")


@pytest.mark.parametrize("status", ["", "Approved", "done"])
def test_unknown_requested_status_is_rejected_before_loading(booking_uc, status):
    with pytest.raises(ValidationFailed):
        booking_uc.request_transition("B1", status, caller_owner_uid="O1")


def test_terminal_states_reject_every_transition(store, booking_uc):
    store.set(CONFIRMED, "B1", _booking("Cancelled"))

    for target in BookingStatus:
        with pytest.raises(InvalidTransition) as exc_info:
            booking_uc.request_transition("B1", target, caller_owner_uid="O1")
        assert str(exc_info.value) == f"Invalid transition Cancelled -> {target.value}"

    assert store.get(CONFIRMED, "B1")["status"] == "Cancelled"


@pytest.mark.parametrize(
    "current,requested,allowed",
    [
        (current, requested, requested in ALLOWED_BOOKING_TRANSITIONS[current])
        for current in BookingStatus
        for requested in BookingStatus
    ],
)
def test_transition_table_is_enforced(store, booking_uc, current, requested, allowed):
    partition = CONFIRMED if current in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED) else REQUESTS
    store.set(partition, "B1", _booking(current.value))

    if allowed:
        result = booking_uc.request_transition("B1", requested, caller_owner_uid="O1")
        assert result.status == requested
    else:
        with pytest.raises(InvalidTransition):
            booking_uc.request_transition("B1", requested, caller_owner_uid="O1")


def test_non_confirm_transition_updates_in_place(store, booking_uc, notifications):
    store.set(REQUESTS, "B1", _booking("Pending"))

    result = booking_uc.request_transition("B1", "awaiting_staff_approval", caller_owner_uid="O1")

    assert result.migrated is False
    assert store.get(REQUESTS, "B1")["status"] == "AwaitingStaffApproval"
    assert store.get(CONFIRMED, "B1") is None
    assert notifications.notifications[0].type == "booking_status_changed"


def test_completing_a_confirmed_booking_stamps_completion(store, booking_uc, clock, notifications):
    store.set(CONFIRMED, "B1", _booking("Confirmed", staffName="Alex"))

    booking_uc.request_transition("B1", "Completed", caller_owner_uid="O1")

    doc = store.get(CONFIRMED, "B1")
    assert doc["status"] == "Completed"
    assert doc["completedAt"] == clock.now
    assert notifications.notifications[0].type == "booking_completed"
    assert "with Alex" in notifications.notifications[0].message


class _DeleteFailsOnce(MemoryDocumentStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail_next_delete = False

    def delete(self, collection: str, doc_id: str) -> None:
        if self.fail_next_delete:
            self.fail_next_delete = False
            raise StorageError("simulated crash between copy and delete")
        super().delete(collection, doc_id)


def test_confirm_retry_after_interrupted_migration(side_effects, clock):
    store = _DeleteFailsOnce()
    uc = BookingTransitionUseCase(store=store, side_effects=side_effects, clock=clock)
    store.set(REQUESTS, "B1", _booking("AwaitingStaffApproval"))
    store.fail_next_delete = True

    with pytest.raises(StorageError):
        uc.request_transition("B1", "Confirmed", caller_owner_uid="O1", staff_assignment=StaffAssignment("S9"))

    # Copy landed, source survived
    assert store.get(CONFIRMED, "B1")["status"] == "Confirmed"
    assert store.get(REQUESTS, "B1") is not None

    result = uc.request_transition("B1", "Confirmed", caller_owner_uid="O1")

    assert result.migrated is True
    assert store.get(REQUESTS, "B1") is None
    assert store.get(CONFIRMED, "B1")["staffId"] == "S9"


def test_half_migrated_booking_is_resolved_on_next_transition(store, booking_uc):
    store.set(REQUESTS, "B1", _booking("AwaitingStaffApproval"))
    store.set(CONFIRMED, "B1", _booking("Confirmed"))

    result = booking_uc.request_transition("B1", "Completed", caller_owner_uid="O1")

    assert result.previous_status == BookingStatus.CONFIRMED
    assert store.get(REQUESTS, "B1") is None
    assert store.get(CONFIRMED, "B1")["status"] == "Completed"


def test_audit_entry_records_actor_and_statuses(store, booking_uc, audit_log):
    store.set(REQUESTS, "B1", _booking("Pending"))

    booking_uc.request_transition(
        "B1", "Cancelled", caller_owner_uid="O1", performed_by="staff-7", performed_by_role="salon_admin"
    )

    entry = audit_log.entries[0]
    assert entry.entity_type == "booking"
    assert entry.performed_by == "staff-7"
    assert entry.performed_by_role == "salon_admin"
    assert (entry.previous_value, entry.new_value) == ("Pending", "Cancelled")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Canceled", BookingStatus.CANCELLED),
        ("cancelled", BookingStatus.CANCELLED),
        ("partially-approved", BookingStatus.PARTIALLY_APPROVED),
        ("STAFF_REJECTED", BookingStatus.STAFF_REJECTED),
    ],
)
def test_parse_booking_status_is_lenient(raw, expected):
    assert parse_booking_status(raw) == expected


def test_parse_booking_status_rejects_unknown():
    with pytest.raises(ValueError):
        parse_booking_status("Rescheduled")
