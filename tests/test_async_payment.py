from __future__ import annotations

import threading
from datetime import date, timedelta, timezone

import pytest

from app.application.exceptions import (
    BookingNotFound,
    PaymentFailed,
    PaymentProviderError,
    PersistenceError,
    ReservationStoreError,
    ValidationError,
)
from app.application.use_cases.availability import GetAvailabilityUseCase
from app.domain.entities.payment import PaymentStatus
from app.infrastructure.payments.gateways import AsyncPushGateway, NoPaymentGateway
from app.infrastructure.payments.mock_clients import MockMobileMoneyClient
from app.infrastructure.store.memory_store import MemoryReservationStore

MONDAY = date(2030, 1, 7)


def _start(coordinator, make_request, **kwargs):
    outcome = coordinator.create_booking(make_request(provider="mobile", **kwargs))
    assert outcome.status == "awaiting_payment"
    return outcome.correlation_id


def test_push_parks_the_request_without_writing(coordinator, reservations, pending_payments, clock, make_request):
    outcome = coordinator.create_booking(make_request(provider="mobile"))

    assert outcome.status == "awaiting_payment"
    assert outcome.booking is None
    assert outcome.correlation_id == "ws_CO_mock_1"
    assert outcome.payment_deadline == clock.now + timedelta(seconds=120)
    assert reservations.list_for_date("t1", MONDAY) == []
    assert pending_payments.get("ws_CO_mock_1").state == "awaiting"


def test_confirm_while_pending_keeps_waiting(coordinator, mobile_client, make_request):
    correlation_id = _start(coordinator, make_request)

    result = coordinator.confirm_async_payment(correlation_id)

    assert result.status == "awaiting"
    assert result.paid is False
    assert mobile_client.poll_count(correlation_id) == 1


def test_success_books_exactly_once(coordinator, mobile_client, reservations, events, make_request):
    correlation_id = _start(coordinator, make_request)
    mobile_client.set_outcome(correlation_id, PaymentStatus.succeeded)

    first = coordinator.confirm_async_payment(correlation_id)
    second = coordinator.confirm_async_payment(correlation_id)

    assert first.status == "confirmed"
    assert first.paid is True
    assert first.booking.payment_reference == correlation_id
    assert second.status == "confirmed"
    assert second.booking.id == first.booking.id
    assert len(reservations.list_for_date("t1", MONDAY)) == 1
    assert events.types() == ["booking.confirmed"]
    # settled attempts are answered from the store, not the provider
    assert mobile_client.poll_count(correlation_id) == 1


def test_concurrent_confirms_create_one_booking(coordinator, mobile_client, reservations, make_request):
    correlation_id = _start(coordinator, make_request)
    mobile_client.set_outcome(correlation_id, PaymentStatus.succeeded)
    barrier = threading.Barrier(4)

    def confirm() -> None:
        barrier.wait()
        coordinator.confirm_async_payment(correlation_id)

    threads = [threading.Thread(target=confirm) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(reservations.list_for_date("t1", MONDAY)) == 1
    assert coordinator.confirm_async_payment(correlation_id).status == "confirmed"


def test_pooled_request_is_assigned_at_confirmation(coordinator, mobile_client, make_request):
    correlation_id = _start(coordinator, make_request, staff_id="auto")
    coordinator.create_booking(make_request(staff_id="s1", name="Walk In"))
    mobile_client.set_outcome(correlation_id, PaymentStatus.succeeded)

    result = coordinator.confirm_async_payment(correlation_id)

    assert result.status == "confirmed"
    assert result.booking.staff_id == "s2"


def test_declined_push_settles_as_failed(coordinator, mobile_client, reservations, make_request):
    correlation_id = _start(coordinator, make_request)
    mobile_client.set_outcome(correlation_id, PaymentStatus.failed)

    result = coordinator.confirm_async_payment(correlation_id)

    assert result.status == "failed"
    assert result.paid is False
    assert result.needs_reconciliation is False
    assert coordinator.confirm_async_payment(correlation_id).status == "failed"
    assert reservations.list_for_date("t1", MONDAY) == []


def test_push_without_phone_is_rejected_before_any_push(coordinator, mobile_client, make_request):
    with pytest.raises(ValidationError):
        coordinator.create_booking(make_request(provider="mobile", phone=None))
    assert mobile_client.poll_count("ws_CO_mock_1") == 0


def test_push_that_cannot_be_sent_fails(make_coordinator, make_request):
    class Unreachable(MockMobileMoneyClient):
        def initiate(self, amount, phone):
            raise PaymentProviderError("STK push failed")

    coordinator = make_coordinator(gateways={"mobile": AsyncPushGateway(Unreachable())})

    with pytest.raises(PaymentFailed):
        coordinator.create_booking(make_request(provider="mobile"))


def test_window_expires_without_payment(coordinator, clock, reconciliation, make_request):
    correlation_id = _start(coordinator, make_request)
    clock.advance(121)

    result = coordinator.confirm_async_payment(correlation_id)

    assert result.status == "expired"
    assert result.paid is False
    assert result.detail == "payment_timeout"
    assert reconciliation.list_open() == []


def test_success_after_expiry_is_never_booked(coordinator, clock, mobile_client, reservations, reconciliation, make_request):
    correlation_id = _start(coordinator, make_request)
    clock.advance(121)
    coordinator.confirm_async_payment(correlation_id)
    mobile_client.set_outcome(correlation_id, PaymentStatus.succeeded)

    result = coordinator.confirm_async_payment(correlation_id)

    assert result.status == "expired"
    assert result.paid is True
    assert result.needs_reconciliation is True
    assert reservations.list_for_date("t1", MONDAY) == []
    assert [e["reason"] for e in reconciliation.list_open()] == ["payment_after_window_closed"]

    # a repeat call does not record the same payment twice
    coordinator.confirm_async_payment(correlation_id)
    assert len(reconciliation.list_open()) == 1


def test_success_first_seen_past_deadline_is_reconciled(coordinator, clock, mobile_client, reservations, reconciliation, make_request):
    correlation_id = _start(coordinator, make_request)
    mobile_client.set_outcome(correlation_id, PaymentStatus.succeeded)
    clock.advance(600)

    result = coordinator.confirm_async_payment(correlation_id)

    assert result.status == "expired"
    assert result.paid is True
    assert reservations.list_for_date("t1", MONDAY) == []
    entries = reconciliation.list_open()
    assert [e["reason"] for e in entries] == ["payment_after_deadline"]
    assert entries[0]["correlation_id"] == correlation_id


def test_abandoned_attempt_is_not_booked_on_late_success(coordinator, mobile_client, reservations, reconciliation, make_request):
    correlation_id = _start(coordinator, make_request)

    abandoned = coordinator.abandon_async_payment(correlation_id)
    mobile_client.set_outcome(correlation_id, PaymentStatus.succeeded)
    late = coordinator.confirm_async_payment(correlation_id)

    assert abandoned.status == "abandoned"
    assert late.status == "expired"
    assert late.paid is True
    assert late.detail == "paid_after_abandoned"
    assert reservations.list_for_date("t1", MONDAY) == []
    assert [e["reason"] for e in reconciliation.list_open()] == ["payment_after_window_closed"]


def test_abandon_after_confirmation_is_a_no_op(coordinator, mobile_client, make_request):
    correlation_id = _start(coordinator, make_request)
    mobile_client.set_outcome(correlation_id, PaymentStatus.succeeded)
    coordinator.confirm_async_payment(correlation_id)

    result = coordinator.abandon_async_payment(correlation_id)

    assert result.status == "confirmed"
    assert result.booking is not None


def test_slot_taken_during_payment_goes_to_reconciliation(coordinator, mobile_client, reservations, reconciliation, make_request):
    correlation_id = _start(coordinator, make_request, staff_id="s1")
    coordinator.create_booking(make_request(staff_id="s1", name="Walk In"))
    mobile_client.set_outcome(correlation_id, PaymentStatus.succeeded)

    result = coordinator.confirm_async_payment(correlation_id)

    assert result.status == "conflict"
    assert result.paid is True
    assert result.needs_reconciliation is True
    assert len(reservations.list_for_date("t1", MONDAY)) == 1
    assert [e["reason"] for e in reconciliation.list_open()] == ["slot_conflict_after_payment"]


def test_write_failure_after_push_payment_is_recorded(make_coordinator, schedules, clock, mobile_client, reconciliation, make_request):
    class DownStore(MemoryReservationStore):
        def add(self, booking):
            raise ReservationStoreError("database unavailable")

    store = DownStore()
    availability = GetAvailabilityUseCase(schedules, store, timezone=timezone.utc, clock=clock)
    coordinator = make_coordinator(availability=availability, reservations=store)
    correlation_id = _start(coordinator, make_request)
    mobile_client.set_outcome(correlation_id, PaymentStatus.succeeded)

    with pytest.raises(PersistenceError):
        coordinator.confirm_async_payment(correlation_id)

    again = coordinator.confirm_async_payment(correlation_id)
    assert again.status == "persist_failed"
    assert again.needs_reconciliation is True
    assert [e["reason"] for e in reconciliation.list_open()] == ["persist_failed_after_payment"]


def test_unexpected_error_while_finalising_is_recorded(make_coordinator, schedules, clock, mobile_client, reconciliation, make_request):
    class ReadFailsOnce(MemoryReservationStore):
        armed = False

        def list_for_date(self, tenant_id, booking_date, staff_ids=None):
            if self.armed:
                self.armed = False
                raise RuntimeError("connection dropped")
            return super().list_for_date(tenant_id, booking_date, staff_ids)

    store = ReadFailsOnce()
    availability = GetAvailabilityUseCase(schedules, store, timezone=timezone.utc, clock=clock)
    coordinator = make_coordinator(availability=availability, reservations=store)
    correlation_id = _start(coordinator, make_request)
    mobile_client.set_outcome(correlation_id, PaymentStatus.succeeded)
    store.armed = True

    with pytest.raises(RuntimeError):
        coordinator.confirm_async_payment(correlation_id)

    again = coordinator.confirm_async_payment(correlation_id)
    assert again.status == "persist_failed"
    assert again.paid is True
    assert again.needs_reconciliation is True
    assert store.list_for_date("t1", MONDAY) == []
    entries = reconciliation.list_open()
    assert [e["reason"] for e in entries] == ["finalize_failed_after_payment"]
    assert entries[0]["correlation_id"] == correlation_id


def test_unknown_correlation_id(coordinator):
    with pytest.raises(BookingNotFound):
        coordinator.confirm_async_payment("ws_CO_unknown")
    with pytest.raises(BookingNotFound):
        coordinator.abandon_async_payment("ws_CO_unknown")
    with pytest.raises(BookingNotFound):
        coordinator.wait_for_async_payment("ws_CO_unknown")


def test_wait_polls_until_confirmed(make_coordinator, make_request):
    client = MockMobileMoneyClient(succeed_after_polls=3)
    coordinator = make_coordinator(gateways={"venue": NoPaymentGateway(), "mobile": AsyncPushGateway(client)})
    correlation_id = _start(coordinator, make_request)

    result = coordinator.wait_for_async_payment(correlation_id)

    assert result.status == "confirmed"
    assert client.poll_count(correlation_id) == 3


def test_wait_gives_up_and_abandons(coordinator, mobile_client, make_request):
    correlation_id = _start(coordinator, make_request)

    result = coordinator.wait_for_async_payment(correlation_id)

    assert result.status == "abandoned"
    assert mobile_client.poll_count(correlation_id) == 5


def test_wait_stops_when_cancelled(coordinator, mobile_client, make_request):
    correlation_id = _start(coordinator, make_request)
    cancel = threading.Event()
    cancel.set()

    result = coordinator.wait_for_async_payment(correlation_id, cancel_event=cancel)

    assert result.status == "abandoned"
    assert mobile_client.poll_count(correlation_id) == 1
