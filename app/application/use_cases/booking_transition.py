from __future__ import annotations

import logging
from dataclasses import replace

from app.application.exceptions import InvalidTransition, NotFound, ValidationFailed
from app.application.ports.document_store import DocumentStorePort
from app.application.use_cases.record_side_effects import SideEffectSink
from app.application.use_cases.tenant_access import ensure_tenant_access
from app.application.utils.clock import Clock, utc_now
from app.application.utils.record_mapping import booking_from_document
from app.core.metrics import booking_transitions_total
from app.domain.entities.booking import (
    Booking,
    BookingPartition,
    BookingStatus,
    BookingTransitionResult,
    StaffAssignment,
    can_transition,
    parse_booking_status,
)


_TRANSITION_STAMPS = {
    BookingStatus.CONFIRMED: "confirmedAt",
    BookingStatus.COMPLETED: "completedAt",
    BookingStatus.CANCELLED: "cancelledAt",
    BookingStatus.STAFF_REJECTED: "rejectedAt",
}


class BookingTransitionUseCase:
    def __init__(
        self,
        store: DocumentStorePort,
        side_effects: SideEffectSink,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._side_effects = side_effects
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def request_transition(
        self,
        booking_id: str,
        requested_status: str | BookingStatus,
        caller_owner_uid: str,
        staff_assignment: StaffAssignment | None = None,
        performed_by: str | None = None,
        performed_by_role: str | None = None,
    ) -> BookingTransitionResult:
        """
        Move a booking to `requested_status` on behalf of a tenant.

        Order matters: the tenant check and the transition-table check both run
        before anything is written. Confirming a booking that still sits in the
        requests partition copies it to the confirmed store and then deletes the
        source; both steps are safe to repeat.
        """
        if not booking_id:
            raise ValidationFailed("booking id is required")
        try:
            requested = (
                requested_status
                if isinstance(requested_status, BookingStatus)
                else parse_booking_status(requested_status)
            )
        except ValueError as e:
            raise ValidationFailed(str(e)) from e

        booking, confirmed_copy = self._load(booking_id)
        ensure_tenant_access(caller_owner_uid, booking.owner_uid)

        if confirmed_copy is not None and requested != BookingStatus.CONFIRMED:
            # Copy landed but the delete did not; the confirmed copy is the record now
            self._finish_migration(booking.id)
            booking = confirmed_copy
            ensure_tenant_access(caller_owner_uid, booking.owner_uid)

        previous = booking.status
        if not can_transition(previous, requested):
            raise InvalidTransition(previous.value, requested.value)

        now = self._clock()
        fields: dict[str, object] = {"status": requested.value, "updatedAt": now}
        stamp = _TRANSITION_STAMPS.get(requested)
        if stamp:
            fields[stamp] = now
        if staff_assignment is not None:
            fields.update(staff_assignment.as_fields())

        migrated = False
        if requested == BookingStatus.CONFIRMED and booking.partition == BookingPartition.REQUESTS:
            self._migrate(booking, fields)
            migrated = True
        else:
            self._store.update(booking.partition.value, booking.id, fields)

        booking_transitions_total.labels(
            from_status=previous.value, to_status=requested.value, migrated=str(migrated).lower()
        ).inc()
        self._logger.info(
            "Booking transitioned",
            extra={
                "booking_id": booking.id,
                "tenant_id": booking.owner_uid,
                "status": f"{previous.value}->{requested.value}",
                "migrated": migrated,
            },
        )

        assignment = staff_assignment or StaffAssignment()
        updated = replace(
            booking,
            status=requested,
            staff_id=assignment.staff_id if assignment.staff_id is not None else booking.staff_id,
            staff_name=assignment.staff_name if assignment.staff_name is not None else booking.staff_name,
            updated_at=now,
        )
        self._side_effects.booking_transitioned(
            updated,
            previous,
            requested,
            performed_by=performed_by or caller_owner_uid,
            performed_by_role=performed_by_role,
            staff_name=updated.staff_name,
            migrated=migrated,
        )

        return BookingTransitionResult(
            booking_id=booking.id,
            previous_status=previous,
            status=requested,
            migrated=migrated,
        )

    def _load(self, booking_id: str) -> tuple[Booking, Booking | None]:
        """
        Find the booking, requests partition first.

        Returns (booking, confirmed_copy); confirmed_copy is only set when the
        id exists in both partitions, i.e. an interrupted migration.
        """
        request_doc = self._store.get(BookingPartition.REQUESTS.value, booking_id)
        confirmed_doc = self._store.get(BookingPartition.CONFIRMED.value, booking_id)

        if request_doc is None and confirmed_doc is None:
            raise NotFound("Booking not found")

        if request_doc is None:
            return booking_from_document(booking_id, confirmed_doc, BookingPartition.CONFIRMED), None

        booking = booking_from_document(booking_id, request_doc, BookingPartition.REQUESTS)
        if confirmed_doc is None:
            return booking, None

        self._logger.warning("Booking present in both partitions", extra={"booking_id": booking_id})
        return booking, booking_from_document(booking_id, confirmed_doc, BookingPartition.CONFIRMED)

    def _migrate(self, booking: Booking, fields: dict[str, object]) -> None:
        destination = BookingPartition.CONFIRMED.value
        if self._store.exists(destination, booking.id):
            self._logger.info("Booking already copied to confirmed store", extra={"booking_id": booking.id})
        else:
            merged = {**booking.raw, **fields}
            self._store.set(destination, booking.id, merged)
        self._finish_migration(booking.id)

    def _finish_migration(self, booking_id: str) -> None:
        self._store.delete(BookingPartition.REQUESTS.value, booking_id)
