from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import date, datetime, timezone

import pytest

from app.application.exceptions import BookingNotFound, InvalidStatusTransition, ReservationStoreError, SlotConflict
from app.application.use_cases.availability import GetAvailabilityUseCase
from app.domain.entities.booking import Booking, BookingStatus, Customer
from app.infrastructure.db import get_engine
from app.infrastructure.store.sql_store import SqlReservationStore

MONDAY = date(2030, 1, 7)
CREATED = datetime(2029, 12, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    engine = get_engine(f"sqlite:///{tmp_path / 'bookings.db'}")
    yield SqlReservationStore(engine, create_tables=True)
    engine.dispose()


def _booking(staff_id="s1", booking_time="10:00", tenant_id="t1", status=BookingStatus.confirmed):
    return Booking(
        id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        service_id="haircut",
        staff_id=staff_id,
        location_id="loc1",
        customer=Customer(name="Grace", email="grace@example.com", phone="0712345678"),
        booking_date=MONDAY,
        booking_time=booking_time,
        duration_minutes=60,
        status=status,
        total_price=50.0,
        cancel_token=uuid.uuid4().hex,
        created_at=CREATED,
        updated_at=CREATED,
        payment_provider="venue",
    )


def test_round_trip_by_id_and_token(store):
    booking = store.add(_booking())

    by_id = store.get("t1", booking.id)
    by_token = store.get_by_cancel_token(booking.cancel_token)

    assert by_id.id == booking.id
    assert by_id.customer == booking.customer
    assert by_id.booking_date == MONDAY
    assert by_id.status == BookingStatus.confirmed
    assert by_token.id == booking.id
    assert store.get("t2", booking.id) is None
    assert store.get_by_cancel_token("missing") is None


def test_second_live_booking_for_slot_conflicts(store):
    store.add(_booking())

    with pytest.raises(SlotConflict):
        store.add(_booking())

    assert len(store.list_for_date("t1", MONDAY)) == 1


def test_cancelled_row_does_not_hold_the_slot(store):
    first = store.add(_booking())
    store.update_status(first.id, BookingStatus.cancelled, CREATED)

    second = store.add(_booking())

    assert [b.id for b in store.list_for_date("t1", MONDAY)] == [second.id]


def test_other_constraint_failures_are_store_errors(store):
    booking = store.add(_booking())

    with pytest.raises(ReservationStoreError):
        store.add(replace(_booking(booking_time="11:00"), cancel_token=booking.cancel_token))


def test_list_filters_by_tenant_staff_and_orders_by_time(store):
    store.add(_booking(staff_id="s2", booking_time="11:00"))
    store.add(_booking(staff_id="s1", booking_time="11:00"))
    store.add(_booking(staff_id="s1", booking_time="09:00"))
    store.add(_booking(staff_id="s1", booking_time="15:00", tenant_id="t2"))

    everyone = store.list_for_date("t1", MONDAY)
    only_s2 = store.list_for_date("t1", MONDAY, staff_ids=["s2"])

    assert [(b.booking_time, b.staff_id) for b in everyone] == [("09:00", "s1"), ("11:00", "s1"), ("11:00", "s2")]
    assert [b.staff_id for b in only_s2] == ["s2"]
    assert store.list_for_date("t1", MONDAY, staff_ids=[]) == []


def test_update_status_of_missing_booking(store):
    with pytest.raises(BookingNotFound):
        store.update_status("missing", BookingStatus.cancelled, CREATED)
    with pytest.raises(BookingNotFound):
        store.update_status("missing", BookingStatus.cancelled, CREATED, expected_status=BookingStatus.confirmed)


def test_update_status_only_applies_to_expected_status(store):
    booking = store.add(_booking())
    store.update_status(booking.id, BookingStatus.cancelled, CREATED, expected_status=BookingStatus.confirmed)

    with pytest.raises(InvalidStatusTransition):
        store.update_status(booking.id, BookingStatus.no_show, CREATED, expected_status=BookingStatus.confirmed)

    assert store.get("t1", booking.id).status == BookingStatus.cancelled


def test_coordinator_on_sql_store(make_coordinator, schedules, clock, make_request, store):
    availability = GetAvailabilityUseCase(schedules, store, timezone=timezone.utc, clock=clock)
    coordinator = make_coordinator(availability=availability, reservations=store)

    first = coordinator.create_booking(make_request(staff_id="auto"))
    second = coordinator.create_booking(make_request(staff_id="auto"))

    assert {first.booking.staff_id, second.booking.staff_id} == {"s1", "s2"}
    with pytest.raises(SlotConflict):
        coordinator.create_booking(make_request(staff_id="s1"))
