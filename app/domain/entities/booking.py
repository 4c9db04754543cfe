from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum


class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    no_show = "no_show"


ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.pending: frozenset({BookingStatus.confirmed, BookingStatus.cancelled}),
    BookingStatus.confirmed: frozenset({BookingStatus.cancelled, BookingStatus.no_show}),
    BookingStatus.cancelled: frozenset(),
    BookingStatus.no_show: frozenset(),
}

# Statuses that hold a (staff, date, time) slot.
ACTIVE_STATUSES = frozenset({BookingStatus.pending, BookingStatus.confirmed, BookingStatus.no_show})


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class Customer:
    name: str
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class Booking:
    id: str
    tenant_id: str
    service_id: str
    staff_id: str
    location_id: str | None
    customer: Customer
    booking_date: date
    booking_time: str  # "HH:MM"
    duration_minutes: int
    status: BookingStatus
    total_price: float
    cancel_token: str
    created_at: datetime
    updated_at: datetime
    payment_provider: str | None = None
    payment_reference: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def with_status(self, status: BookingStatus, updated_at: datetime) -> "Booking":
        return replace(self, status=status, updated_at=updated_at)
