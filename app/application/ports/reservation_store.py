from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime

from app.domain.entities.booking import Booking, BookingStatus


class ReservationStorePort(ABC):
    @abstractmethod
    def add(self, booking: Booking) -> Booking:
        """
        Persist a new booking.
        Raises SlotConflict if a non-cancelled booking already holds the same
        (staff_id, booking_date, booking_time). Raises ReservationStoreError for
        any other write failure.
        """
        raise NotImplementedError

    @abstractmethod
    def list_for_date(
        self,
        tenant_id: str,
        booking_date: date,
        staff_ids: list[str] | None = None,
    ) -> list[Booking]:
        """List non-cancelled bookings on a date, optionally limited to some staff."""
        raise NotImplementedError

    @abstractmethod
    def get(self, tenant_id: str, booking_id: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def get_by_cancel_token(self, cancel_token: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def update_status(
        self,
        booking_id: str,
        status: BookingStatus,
        updated_at: datetime,
        expected_status: BookingStatus | None = None,
    ) -> Booking:
        """
        Set the status of an existing booking. Raises BookingNotFound if missing.
        When expected_status is given the write only happens if the stored
        status still equals it; otherwise InvalidStatusTransition is raised.
        """
        raise NotImplementedError
