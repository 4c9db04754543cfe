from __future__ import annotations

import threading
from datetime import date, datetime

from app.application.exceptions import BookingNotFound, InvalidStatusTransition, SlotConflict
from app.application.ports.reservation_store import ReservationStorePort
from app.domain.entities.booking import Booking, BookingStatus


class MemoryReservationStore(ReservationStorePort):
    """
    Process-local reservation store. The (staff, date, time) uniqueness check
    and the insert happen under one lock, so concurrent callers in this
    process see exactly one winner.
    """

    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._lock = threading.Lock()

    def add(self, booking: Booking) -> Booking:
        with self._lock:
            for existing in self._bookings.values():
                if (
                    existing.status != BookingStatus.cancelled
                    and existing.staff_id == booking.staff_id
                    and existing.booking_date == booking.booking_date
                    and existing.booking_time == booking.booking_time
                ):
                    raise SlotConflict("Slot already booked")
            self._bookings[booking.id] = booking
            return booking

    def list_for_date(
        self,
        tenant_id: str,
        booking_date: date,
        staff_ids: list[str] | None = None,
    ) -> list[Booking]:
        with self._lock:
            bookings = list(self._bookings.values())
        wanted = set(staff_ids) if staff_ids is not None else None
        return sorted(
            (
                b
                for b in bookings
                if b.tenant_id == tenant_id
                and b.booking_date == booking_date
                and b.status != BookingStatus.cancelled
                and (wanted is None or b.staff_id in wanted)
            ),
            key=lambda b: (b.booking_time, b.staff_id),
        )

    def get(self, tenant_id: str, booking_id: str) -> Booking | None:
        booking = self._bookings.get(booking_id)
        if booking is None or booking.tenant_id != tenant_id:
            return None
        return booking

    def get_by_cancel_token(self, cancel_token: str) -> Booking | None:
        with self._lock:
            for booking in self._bookings.values():
                if booking.cancel_token == cancel_token:
                    return booking
        return None

    def update_status(
        self,
        booking_id: str,
        status: BookingStatus,
        updated_at: datetime,
        expected_status: BookingStatus | None = None,
    ) -> Booking:
        with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None:
                raise BookingNotFound("Booking not found")
            if expected_status is not None and booking.status != expected_status:
                raise InvalidStatusTransition(
                    f"Booking is {booking.status.value}, expected {expected_status.value}"
                )
            updated = booking.with_status(status, updated_at)
            self._bookings[booking_id] = updated
            return updated
