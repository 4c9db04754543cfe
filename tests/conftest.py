from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from app.application.use_cases.availability import GetAvailabilityUseCase
from app.application.use_cases.booking import BookingCoordinator, BookingRequest
from app.application.utils.polling import PaymentPoller
from app.domain.entities.booking import Customer
from app.domain.entities.payment import PaymentPlan
from app.domain.entities.service_catalog import Location, Service, StaffMember, WeeklyAvailability
from app.infrastructure.events.logging_publisher import RecordingEventPublisher
from app.infrastructure.payments.gateways import AsyncPushGateway, NoPaymentGateway, SyncCaptureGateway
from app.infrastructure.payments.mock_clients import MockCardClient, MockMobileMoneyClient
from app.infrastructure.store.memory_schedule_store import MemoryScheduleStore
from app.infrastructure.store.memory_store import MemoryReservationStore
from app.infrastructure.store.payment_store import MemoryPendingPaymentStore, MemoryReconciliationStore

TENANT = "t1"
UTC = timezone.utc

# 2030-01-01 is a Tuesday; MONDAY is six days later (day_of_week 1).
FIXED_NOW = datetime(2030, 1, 1, 8, 0, tzinfo=UTC)
MONDAY = date(2030, 1, 7)
SUNDAY = date(2030, 1, 6)


class FakeClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def build_schedule_store() -> MemoryScheduleStore:
    services = [
        Service(id="haircut", tenant_id=TENANT, name="Haircut", category="hair", duration_minutes=60, price=50.0),
        Service(id="trim", tenant_id=TENANT, name="Trim", category="hair", duration_minutes=30, price=20.0),
        Service(id="massage", tenant_id=TENANT, name="Massage", category="spa", duration_minutes=90, price=120.0),
        Service(id="retired", tenant_id=TENANT, name="Old", category="hair", duration_minutes=60, price=10.0, is_active=False),
    ]
    staff = [
        StaffMember(id="s1", tenant_id=TENANT, name="Ada", category="hair"),
        StaffMember(id="s2", tenant_id=TENANT, name="Bo", category="hair"),
        StaffMember(id="s3", tenant_id=TENANT, name="Cy", category="spa"),
        StaffMember(id="s4", tenant_id=TENANT, name="Di", category="hair", is_active=False),
    ]
    availability = [
        WeeklyAvailability(staff_id="s1", day_of_week=1, start_time="09:00", end_time="17:00"),
        WeeklyAvailability(staff_id="s2", day_of_week=1, start_time="09:00:00", end_time="17:00:00"),
        WeeklyAvailability(staff_id="s3", day_of_week=1, start_time="10:00", end_time="18:00"),
        WeeklyAvailability(staff_id="s4", day_of_week=1, start_time="09:00", end_time="17:00"),
        WeeklyAvailability(staff_id="s1", day_of_week=0, start_time="09:00", end_time="17:00", is_available=False),
    ]
    locations = [
        Location(id="loc1", tenant_id=TENANT, name="Main"),
        Location(id="closed", tenant_id=TENANT, name="Closed", is_active=False),
    ]
    return MemoryScheduleStore(services=services, staff=staff, availability=availability, locations=locations)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def schedules() -> MemoryScheduleStore:
    return build_schedule_store()


@pytest.fixture
def reservations() -> MemoryReservationStore:
    return MemoryReservationStore()


@pytest.fixture
def card_client() -> MockCardClient:
    return MockCardClient()


@pytest.fixture
def mobile_client() -> MockMobileMoneyClient:
    return MockMobileMoneyClient(succeed_after_polls=None)


@pytest.fixture
def events() -> RecordingEventPublisher:
    return RecordingEventPublisher()


@pytest.fixture
def reconciliation() -> MemoryReconciliationStore:
    return MemoryReconciliationStore()


@pytest.fixture
def pending_payments() -> MemoryPendingPaymentStore:
    return MemoryPendingPaymentStore()


@pytest.fixture
def availability(schedules, reservations, clock) -> GetAvailabilityUseCase:
    return GetAvailabilityUseCase(schedules=schedules, reservations=reservations, timezone=UTC, clock=clock)


@pytest.fixture
def make_coordinator(
    availability,
    schedules,
    reservations,
    card_client,
    mobile_client,
    pending_payments,
    reconciliation,
    events,
    clock,
) -> Callable[..., BookingCoordinator]:
    def _make(**overrides: Any) -> BookingCoordinator:
        kwargs: dict[str, Any] = {
            "availability": availability,
            "schedules": schedules,
            "reservations": reservations,
            "gateways": {
                "venue": NoPaymentGateway(),
                "card": SyncCaptureGateway(card_client),
                "mobile": AsyncPushGateway(mobile_client),
            },
            "pending_payments": pending_payments,
            "reconciliation": reconciliation,
            "events": events,
            "timezone": UTC,
            "clock": clock,
            "sleep": lambda _seconds: None,
            "poller": PaymentPoller(interval_seconds=0, max_attempts=5, sleep=lambda _seconds: None),
        }
        kwargs.update(overrides)
        return BookingCoordinator(**kwargs)

    return _make


@pytest.fixture
def coordinator(make_coordinator) -> BookingCoordinator:
    return make_coordinator()


def booking_request(
    staff_id: str = "s1",
    booking_time: str = "10:00",
    provider: str = "venue",
    correlation_ref: str | None = None,
    service_id: str = "haircut",
    booking_date: date = MONDAY,
    name: str = "Grace Hopper",
    email: str | None = "grace@example.com",
    phone: str | None = "0712345678",
    location_id: str | None = None,
) -> BookingRequest:
    return BookingRequest(
        tenant_id=TENANT,
        service_id=service_id,
        staff_id=staff_id,
        booking_date=booking_date,
        booking_time=booking_time,
        customer=Customer(name=name, email=email, phone=phone),
        payment=PaymentPlan(provider=provider, correlation_ref=correlation_ref),
        location_id=location_id,
    )


@pytest.fixture
def make_request() -> Callable[..., BookingRequest]:
    return booking_request
