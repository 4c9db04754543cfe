from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from app.application.exceptions import (
    BookingNotFound,
    CancellationNotAllowed,
    InvalidStatusTransition,
    ValidationError,
)
from app.application.ports.event_publisher import EventPublisherPort
from app.application.ports.reservation_store import ReservationStorePort
from app.application.utils.date_parser import appointment_start, hours_until
from app.domain.entities.booking import Booking, BookingStatus, can_transition


@dataclass(frozen=True)
class CancelResult:
    success: bool
    message: str
    booking: Booking | None = None


@dataclass(frozen=True)
class CancelLookup:
    booking: Booking
    cancel_allowed: bool
    cancel_message: str | None


def _cutoff_message(hours: int) -> str:
    unit = "hour" if hours == 1 else "hours"
    return (
        f"Cancellation is only allowed at least {hours} {unit} before your appointment. "
        "Please contact the business."
    )


class CancelBookingUseCase:
    """
    Customer self-service cancellation by cancel token.

    Cancelling frees the slot immediately; no availability check is needed.
    Repeating a cancellation is a success, an unknown token is not.
    """

    def __init__(
        self,
        reservations: ReservationStorePort,
        events: EventPublisherPort,
        timezone: ZoneInfo,
        cancel_by_hours: int = 24,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._reservations = reservations
        self._events = events
        self._timezone = timezone
        self._cancel_by_hours = max(0, cancel_by_hours)
        self._clock = clock or (lambda: datetime.now(self._timezone))
        self._logger = logging.getLogger(__name__)

    def execute(self, cancel_token: str) -> CancelResult:
        booking = self._find(cancel_token)

        if booking.status == BookingStatus.cancelled:
            return CancelResult(success=True, message="Already cancelled", booking=booking)

        if not can_transition(booking.status, BookingStatus.cancelled):
            raise InvalidStatusTransition(f"A {booking.status.value} booking cannot be cancelled")

        allowed, message = self._within_policy(booking)
        if not allowed:
            raise CancellationNotAllowed(message)

        try:
            cancelled = self._reservations.update_status(
                booking.id,
                BookingStatus.cancelled,
                self._clock(),
                expected_status=booking.status,
            )
        except InvalidStatusTransition:
            current = self._find(cancel_token)
            if current.status == BookingStatus.cancelled:
                return CancelResult(success=True, message="Already cancelled", booking=current)
            raise InvalidStatusTransition(f"A {current.status.value} booking cannot be cancelled") from None
        self._logger.info(
            "Booking cancelled",
            extra={"tenant_id": booking.tenant_id, "booking_id": booking.id, "staff_id": booking.staff_id},
        )
        _publish(self._events, self._logger, "booking.cancelled", cancelled)
        return CancelResult(success=True, message="Booking cancelled", booking=cancelled)

    def lookup(self, cancel_token: str) -> CancelLookup:
        booking = self._find(cancel_token)
        if booking.status == BookingStatus.cancelled:
            raise BookingNotFound("Booking not found or already cancelled")
        allowed, message = self._within_policy(booking)
        if allowed and not can_transition(booking.status, BookingStatus.cancelled):
            allowed, message = False, "This booking can no longer be cancelled."
        return CancelLookup(booking=booking, cancel_allowed=allowed, cancel_message=message)

    def _find(self, cancel_token: str) -> Booking:
        token = (cancel_token or "").strip()
        if not token:
            raise ValidationError("Missing cancel_token")
        booking = self._reservations.get_by_cancel_token(token)
        if booking is None:
            raise BookingNotFound("Booking not found")
        return booking

    def _within_policy(self, booking: Booking) -> tuple[bool, str | None]:
        starts_at = appointment_start(booking.booking_date, booking.booking_time, self._timezone)
        if hours_until(starts_at, self._clock()) < self._cancel_by_hours:
            return False, _cutoff_message(self._cancel_by_hours)
        return True, None


class BookingStatusUseCase:
    """Staff-side status changes (approve a pending request, mark a no-show)."""

    def __init__(
        self,
        reservations: ReservationStorePort,
        events: EventPublisherPort,
        timezone: ZoneInfo,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._reservations = reservations
        self._events = events
        self._clock = clock or (lambda: datetime.now(timezone))
        self._logger = logging.getLogger(__name__)

    def transition(self, tenant_id: str, booking_id: str, status: BookingStatus) -> Booking:
        booking = self._reservations.get(tenant_id, booking_id)
        if booking is None:
            raise BookingNotFound("Booking not found")
        if booking.status == status:
            return booking
        if not can_transition(booking.status, status):
            raise InvalidStatusTransition(
                f"Cannot change booking from {booking.status.value} to {status.value}"
            )
        updated = self._reservations.update_status(booking.id, status, self._clock(), expected_status=booking.status)
        self._logger.info(
            "Booking status changed",
            extra={"tenant_id": tenant_id, "booking_id": booking_id, "state": status.value},
        )
        _publish(self._events, self._logger, "booking.status_changed", updated)
        return updated


def _publish(events: EventPublisherPort, logger: logging.Logger, event_type: str, booking: Booking) -> None:
    try:
        events.publish(
            event_type,
            {
                "booking_id": booking.id,
                "tenant_id": booking.tenant_id,
                "staff_id": booking.staff_id,
                "booking_date": booking.booking_date.isoformat(),
                "booking_time": booking.booking_time,
                "status": booking.status.value,
                "customer_email": booking.customer.email,
            },
        )
    except Exception as e:
        logger.exception("Post-commit event failed", extra={"booking_id": booking.id, "error": str(e)})
