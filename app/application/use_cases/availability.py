from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Iterable, Sequence
from zoneinfo import ZoneInfo

from app.application.exceptions import ValidationError
from app.application.ports.reservation_store import ReservationStorePort
from app.application.ports.schedule_store import ScheduleStorePort
from app.application.utils.date_parser import day_of_week_index, minutes_since_midnight
from app.application.utils.slot_generator import generate_slots
from app.domain.entities.booking import Booking
from app.domain.entities.service_catalog import Service, StaffMember, WeeklyAvailability
from app.domain.entities.slot import Slot

ANY_STAFF = "any"


def eligible_staff(service: Service, staff: Iterable[StaffMember]) -> list[StaffMember]:
    """Active staff of the service's tenant whose category matches, ordered by id."""
    return sorted(
        (
            member
            for member in staff
            if member.is_active
            and member.tenant_id == service.tenant_id
            and member.category == service.category
        ),
        key=lambda member: member.id,
    )


def staff_slot_times(target_date: date, windows: Iterable[WeeklyAvailability], duration_minutes: int) -> list[str]:
    dow = day_of_week_index(target_date)
    times: set[str] = set()
    for window in windows:
        if window.day_of_week != dow or not window.is_available:
            continue
        times.update(generate_slots(window.start_time, window.end_time, duration_minutes))
    return sorted(times)


def _busy_intervals(bookings: Iterable[Booking], staff_id: str, target_date: date) -> list[tuple[int, int]]:
    intervals = []
    for booking in bookings:
        if booking.staff_id != staff_id or booking.booking_date != target_date or not booking.is_active:
            continue
        start = minutes_since_midnight(booking.booking_time)
        intervals.append((start, start + max(booking.duration_minutes, 1)))
    return intervals


def _overlaps(slot_time: str, duration_minutes: int, busy: Sequence[tuple[int, int]]) -> bool:
    start = minutes_since_midnight(slot_time)
    end = start + duration_minutes
    return any(start < busy_end and busy_start < end for busy_start, busy_end in busy)


def _is_past(target_date: date, slot_time: str, now: datetime | None) -> bool:
    if now is None:
        return False
    today = now.date()
    if target_date != today:
        return target_date < today
    return minutes_since_midnight(slot_time) <= now.hour * 60 + now.minute


def merge_availability(
    target_date: date,
    service: Service,
    staff: Iterable[StaffMember],
    schedules: dict[str, list[WeeklyAvailability]],
    bookings: Iterable[Booking],
    staff_id: str = ANY_STAFF,
    now: datetime | None = None,
) -> list[Slot]:
    """
    Combine per-staff slot generation into one availability list.

    With a specific staff_id only that member is considered; with "any" every
    eligible member is, and each time lists the members free then. Taken times
    are returned with free=False rather than dropped.
    """
    duration = service.duration_minutes
    pool = eligible_staff(service, staff)
    if staff_id != ANY_STAFF:
        pool = [member for member in pool if member.id == staff_id]
        if not pool:
            return []

    bookings = list(bookings)
    free_by_time: dict[str, list[str]] = {}
    for member in pool:
        busy = _busy_intervals(bookings, member.id, target_date)
        for slot_time in staff_slot_times(target_date, schedules.get(member.id, []), duration):
            free_staff = free_by_time.setdefault(slot_time, [])
            if _overlaps(slot_time, duration, busy) or _is_past(target_date, slot_time, now):
                continue
            free_staff.append(member.id)

    return [
        Slot(
            time=slot_time,
            duration_minutes=duration,
            free=bool(staff_ids),
            eligible_staff_ids=tuple(sorted(staff_ids)),
        )
        for slot_time, staff_ids in sorted(free_by_time.items())
    ]


def rank_staff(candidates: Sequence[str], bookings: Iterable[Booking], policy: str = "first") -> list[str]:
    """
    Order candidate staff ids by assignment preference.
    "first": lexicographic. "least_booked": fewest live bookings in the given
    set, ties broken lexicographically.
    """
    ordered = sorted(candidates)
    if policy == "least_booked":
        counts = Counter(booking.staff_id for booking in bookings if booking.is_active)
        return sorted(ordered, key=lambda staff_id: counts[staff_id])
    if policy != "first":
        raise ValueError(f"Unknown staff assignment policy: {policy}")
    return ordered


@dataclass(frozen=True)
class AvailabilitySnapshot:
    service: Service
    slots: list[Slot]
    bookings: list[Booking]

    def find(self, slot_time: str) -> Slot | None:
        for slot in self.slots:
            if slot.time == slot_time:
                return slot
        return None


class GetAvailabilityUseCase:
    def __init__(
        self,
        schedules: ScheduleStorePort,
        reservations: ReservationStorePort,
        timezone: ZoneInfo,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._schedules = schedules
        self._reservations = reservations
        self._timezone = timezone
        self._clock = clock or (lambda: datetime.now(self._timezone))
        self._logger = logging.getLogger(__name__)

    def execute(self, tenant_id: str, service_id: str, target_date: date, staff_id: str = ANY_STAFF) -> list[Slot]:
        return self.snapshot(tenant_id, service_id, target_date, staff_id).slots

    def snapshot(
        self,
        tenant_id: str,
        service_id: str,
        target_date: date,
        staff_id: str = ANY_STAFF,
    ) -> AvailabilitySnapshot:
        service = self.load_service(tenant_id, service_id)

        pool = eligible_staff(service, self._schedules.list_staff(tenant_id))
        if staff_id != ANY_STAFF:
            pool = [member for member in pool if member.id == staff_id]

        schedules = {
            member.id: self._schedules.get_weekly_availability(tenant_id, member.id)
            for member in pool
        }
        bookings = (
            self._reservations.list_for_date(tenant_id, target_date, staff_ids=[m.id for m in pool])
            if pool
            else []
        )

        slots = merge_availability(
            target_date,
            service,
            pool,
            schedules,
            bookings,
            staff_id=staff_id,
            now=self._clock(),
        )
        self._logger.debug(
            "Availability computed",
            extra={
                "tenant_id": tenant_id,
                "service": service_id,
                "staff_id": staff_id,
                "free_count": sum(1 for s in slots if s.free),
            },
        )
        return AvailabilitySnapshot(service=service, slots=slots, bookings=bookings)

    def load_service(self, tenant_id: str, service_id: str) -> Service:
        service = self._schedules.get_service(tenant_id, service_id)
        if service is None or not service.is_active:
            raise ValidationError("Unknown or inactive service")
        return service
