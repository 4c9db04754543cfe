from __future__ import annotations

import logging
import re
import secrets
import threading
import time
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Callable, Mapping
from zoneinfo import ZoneInfo

from app.application.exceptions import (
    BookingError,
    BookingNotFound,
    PaymentFailed,
    PersistenceError,
    ReservationStoreError,
    SlotConflict,
    ValidationError,
)
from app.application.ports.event_publisher import EventPublisherPort
from app.application.ports.payment_gateway import PaymentGatewayPort
from app.application.ports.pending_payment_store import PendingPaymentStorePort
from app.application.ports.reconciliation import ReconciliationPort
from app.application.ports.reservation_store import ReservationStorePort
from app.application.ports.schedule_store import ScheduleStorePort
from app.application.use_cases.availability import ANY_STAFF, GetAvailabilityUseCase, rank_staff
from app.application.utils.date_parser import format_time_of_day, parse_time_of_day
from app.application.utils.polling import PaymentPoller
from app.domain.entities.booking import Booking, BookingStatus, Customer
from app.domain.entities.payment import PaymentAttempt, PaymentPlan, PaymentStatus, PendingPayment
from app.domain.entities.service_catalog import Service

POOLED_STAFF_IDS = frozenset({"auto", ANY_STAFF})

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AttemptState(str, Enum):
    selecting_slot = "selecting_slot"
    validating = "validating"
    awaiting_payment = "awaiting_payment"
    payment_succeeded = "payment_succeeded"
    payment_failed = "payment_failed"
    persisting = "persisting"
    confirmed = "confirmed"
    rejected = "rejected"


@dataclass(frozen=True)
class BookingRequest:
    tenant_id: str
    service_id: str
    staff_id: str  # explicit staff id, or "auto" for any professional
    booking_date: date
    booking_time: str
    customer: Customer
    payment: PaymentPlan
    location_id: str | None = None

    @property
    def pooled(self) -> bool:
        return self.staff_id in POOLED_STAFF_IDS


@dataclass(frozen=True)
class BookingOutcome:
    status: str  # "confirmed", "pending" or "awaiting_payment"
    booking: Booking | None = None
    correlation_id: str | None = None
    payment_deadline: datetime | None = None

    @property
    def booking_id(self) -> str | None:
        return self.booking.id if self.booking else None

    @property
    def cancel_token(self) -> str | None:
        return self.booking.cancel_token if self.booking else None


@dataclass(frozen=True)
class AsyncPaymentResult:
    paid: bool
    status: str  # "awaiting", "finalizing", "confirmed", "failed", "expired", "conflict", "abandoned", "persist_failed"
    booking: Booking | None = None
    detail: str | None = None

    @property
    def needs_reconciliation(self) -> bool:
        return self.paid and self.status in {"expired", "conflict", "persist_failed"}


class BookingCoordinator:
    """
    Turns a slot selection plus a payment plan into exactly one booking.

    The slot is re-checked against live reservations right before payment,
    payment is secured through the plan's gateway, and the row is written
    last. For asynchronous payments nothing is written until
    confirm_async_payment() observes success inside the payment window.
    """

    def __init__(
        self,
        availability: GetAvailabilityUseCase,
        schedules: ScheduleStorePort,
        reservations: ReservationStorePort,
        gateways: Mapping[str, PaymentGatewayPort],
        pending_payments: PendingPaymentStorePort,
        reconciliation: ReconciliationPort,
        events: EventPublisherPort,
        timezone: ZoneInfo,
        currency: str = "usd",
        pay_at_venue_enabled: bool = True,
        pay_at_venue_status: str = "confirmed",
        assignment_policy: str = "first",
        async_timeout_seconds: int = 120,
        persist_max_attempts: int = 3,
        persist_retry_base_seconds: float = 0.2,
        poller: PaymentPoller | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._availability = availability
        self._schedules = schedules
        self._reservations = reservations
        self._gateways = dict(gateways)
        self._pending = pending_payments
        self._reconciliation = reconciliation
        self._events = events
        self._timezone = timezone
        self._currency = currency
        self._pay_at_venue_enabled = pay_at_venue_enabled
        self._pay_at_venue_status = BookingStatus(pay_at_venue_status)
        self._assignment_policy = assignment_policy
        self._async_timeout = timedelta(seconds=async_timeout_seconds)
        self._persist_max_attempts = max(1, persist_max_attempts)
        self._persist_retry_base = persist_retry_base_seconds
        self._poller = poller or PaymentPoller()
        self._clock = clock or (lambda: datetime.now(self._timezone))
        self._sleep = sleep or time.sleep
        self._logger = logging.getLogger(__name__)

    # -- CreateBooking -------------------------------------------------

    def create_booking(self, request: BookingRequest) -> BookingOutcome:
        self._log_state(request, AttemptState.selecting_slot)
        self._log_state(request, AttemptState.validating)
        try:
            request, gateway = self._validate(request)
            service, candidates = self._claimable_staff(request)
        except BookingError as e:
            self._log_state(request, AttemptState.rejected, reason=type(e).__name__)
            raise

        attempt = PaymentAttempt(
            provider=request.payment.provider,
            amount=service.price,
            currency=self._currency,
            correlation_id=request.payment.correlation_ref,
            phone=request.customer.phone,
        )

        self._log_state(request, AttemptState.awaiting_payment, provider=attempt.provider)
        attempt = gateway.start(attempt)

        if attempt.status == PaymentStatus.failed:
            self._log_state(request, AttemptState.payment_failed, reason=attempt.detail)
            self._log_state(request, AttemptState.rejected, reason="PaymentFailed")
            raise PaymentFailed(attempt.detail or "Payment was not completed")

        if attempt.status == PaymentStatus.pending:
            return self._park(request, attempt)

        self._log_state(request, AttemptState.payment_succeeded, correlation_id=attempt.correlation_id)
        paid = gateway.collects_payment
        status = BookingStatus.confirmed if paid else self._pay_at_venue_status
        try:
            booking = self._claim(request, service, candidates, status, attempt, paid)
        except SlotConflict:
            if paid:
                self._reconciliation.record("slot_conflict_after_payment", self._reconciliation_data(request, attempt))
            self._log_state(request, AttemptState.rejected, reason="SlotConflict")
            raise
        except PersistenceError:
            self._log_state(request, AttemptState.rejected, reason="PersistenceError")
            raise

        self._log_state(request, AttemptState.confirmed, booking_id=booking.id, staff_id=booking.staff_id)
        return BookingOutcome(status=booking.status.value, booking=booking, correlation_id=attempt.correlation_id)

    # -- ConfirmAsyncPayment -------------------------------------------

    def confirm_async_payment(self, correlation_id: str) -> AsyncPaymentResult:
        """
        Poll the provider once for a parked payment and finalise it.
        Safe to call any number of times for the same correlation id.
        """
        pending = self._pending.get(correlation_id)
        if pending is None:
            raise BookingNotFound("Unknown payment reference")

        if pending.state in {"abandoned", "expired"} and not pending.paid:
            return self._check_late_success(pending)
        if pending.is_settled:
            return self._result(pending)

        gateway = self._gateway_for(pending.provider)
        status = gateway.check(correlation_id)
        now = self._clock()

        if status == PaymentStatus.pending:
            if now >= pending.deadline:
                self._settle(pending, replace(pending, state="expired", detail="payment_timeout"))
                return self._result(self._pending.get(correlation_id) or pending)
            return AsyncPaymentResult(paid=False, status="awaiting")

        if status == PaymentStatus.failed:
            self._settle(pending, replace(pending, state="failed", detail="payment_failed"))
            return self._result(self._pending.get(correlation_id) or pending)

        if now >= pending.deadline:
            late = replace(pending, state="expired", paid=True, detail="paid_after_deadline")
            if self._settle(pending, late):
                self._reconciliation.record("payment_after_deadline", self._pending_data(late))
            return self._result(self._pending.get(correlation_id) or late)

        finalizing = replace(pending, state="finalizing", paid=True)
        if not self._settle(pending, finalizing):
            return self._result(self._pending.get(correlation_id) or pending)

        return self._finalize(finalizing)

    def abandon_async_payment(self, correlation_id: str) -> AsyncPaymentResult:
        pending = self._pending.get(correlation_id)
        if pending is None:
            raise BookingNotFound("Unknown payment reference")
        if pending.state == "awaiting":
            self._settle(pending, replace(pending, state="abandoned", detail="abandoned_by_customer"))
            self._logger.info("Async payment abandoned", extra={"correlation_id": correlation_id})
        return self._result(self._pending.get(correlation_id) or pending)

    def wait_for_async_payment(
        self,
        correlation_id: str,
        cancel_event: threading.Event | None = None,
    ) -> AsyncPaymentResult:
        """
        Server-side poll loop for callers that cannot poll themselves.
        Bounded by the payment deadline and the poller's attempt cap; if it
        stops while still awaiting, the attempt is abandoned so a late
        success can never be booked.
        """
        pending = self._pending.get(correlation_id)
        if pending is None:
            raise BookingNotFound("Unknown payment reference")

        result, reason = self._poller.run(
            check=lambda: self.confirm_async_payment(correlation_id),
            is_done=lambda r: r.status != "awaiting",
            deadline=pending.deadline,
            clock=self._clock,
            cancel_event=cancel_event,
        )
        if result.status == "awaiting":
            self._logger.info(
                "Payment polling stopped",
                extra={"correlation_id": correlation_id, "reason": reason},
            )
            return self.abandon_async_payment(correlation_id)
        return result

    # -- validation ----------------------------------------------------

    def _validate(self, request: BookingRequest) -> tuple[BookingRequest, PaymentGatewayPort]:
        if not request.tenant_id or not request.service_id:
            raise ValidationError("tenant_id and service_id are required")
        if not request.staff_id:
            raise ValidationError("staff_id is required (use 'auto' for any professional)")

        name = (request.customer.name or "").strip()
        if not name:
            raise ValidationError("Customer name is required")
        email = (request.customer.email or "").strip() or None
        if email and not _EMAIL_RE.match(email):
            raise ValidationError("Invalid email address")
        phone = (request.customer.phone or "").strip() or None
        if phone and len(re.sub(r"\D", "", phone)) < 7:
            raise ValidationError("Invalid phone number")

        try:
            booking_time = format_time_of_day(parse_time_of_day(request.booking_time))
        except ValueError as e:
            raise ValidationError(str(e)) from None

        if request.booking_date < self._clock().date():
            raise ValidationError("Cannot book a date in the past")

        gateway = self._gateways.get(request.payment.provider)
        if gateway is None:
            raise ValidationError(f"Unsupported payment method: {request.payment.provider}")
        if not gateway.collects_payment and not self._pay_at_venue_enabled:
            raise ValidationError("Pay at venue is not available")
        if gateway.requires_phone and not phone:
            raise ValidationError("A phone number is required for this payment method")

        if request.location_id:
            location = self._schedules.get_location(request.tenant_id, request.location_id)
            if location is None or not location.is_active:
                raise ValidationError("Unknown or inactive location")

        normalized = replace(
            request,
            booking_time=booking_time,
            customer=Customer(name=name, email=email, phone=phone),
        )
        return normalized, gateway

    def _claimable_staff(self, request: BookingRequest) -> tuple[Service, list[str]]:
        """Re-derive availability for the exact time and return staff who can take it, best first."""
        staff_filter = ANY_STAFF if request.pooled else request.staff_id
        snapshot = self._availability.snapshot(
            request.tenant_id,
            request.service_id,
            request.booking_date,
            staff_filter,
        )
        slot = snapshot.find(request.booking_time)
        if slot is None:
            raise ValidationError("Requested time is not a bookable slot")
        if not slot.free:
            raise SlotConflict("The selected time is no longer available")
        candidates = rank_staff(slot.eligible_staff_ids, snapshot.bookings, self._assignment_policy)
        return snapshot.service, candidates

    # -- persistence ---------------------------------------------------

    def _claim(
        self,
        request: BookingRequest,
        service: Service,
        candidates: list[str],
        status: BookingStatus,
        attempt: PaymentAttempt,
        paid: bool,
    ) -> Booking:
        for staff_id in candidates:
            booking = self._build_booking(request, service, staff_id, status, attempt)
            self._log_state(request, AttemptState.persisting, staff_id=staff_id)
            try:
                booking = self._persist(booking, paid)
            except SlotConflict:
                self._logger.info(
                    "Slot taken while persisting",
                    extra={"tenant_id": request.tenant_id, "staff_id": staff_id},
                )
                continue
            self._publish_booked(booking)
            return booking
        raise SlotConflict("The selected time is no longer available")

    def _persist(self, booking: Booking, paid: bool) -> Booking:
        attempts = self._persist_max_attempts if paid else 1
        delay = self._persist_retry_base
        last_error: ReservationStoreError | None = None
        for attempt_no in range(1, attempts + 1):
            try:
                return self._reservations.add(booking)
            except ReservationStoreError as e:
                last_error = e
                self._logger.warning(
                    "Booking write failed",
                    extra={"booking_id": booking.id, "attempt": attempt_no, "error": str(e)},
                )
                if attempt_no < attempts:
                    self._sleep(delay)
                    delay *= 2

        if paid:
            self._reconciliation.record(
                "persist_failed_after_payment",
                {
                    "tenant_id": booking.tenant_id,
                    "booking_id": booking.id,
                    "staff_id": booking.staff_id,
                    "booking_date": booking.booking_date.isoformat(),
                    "booking_time": booking.booking_time,
                    "amount": booking.total_price,
                    "correlation_id": booking.payment_reference,
                },
            )
            self._logger.critical(
                "Paid booking could not be saved",
                extra={"booking_id": booking.id, "tenant_id": booking.tenant_id},
            )
        raise PersistenceError("Booking could not be saved") from last_error

    def _build_booking(
        self,
        request: BookingRequest,
        service: Service,
        staff_id: str,
        status: BookingStatus,
        attempt: PaymentAttempt,
    ) -> Booking:
        now = self._clock()
        return Booking(
            id=str(uuid.uuid4()),
            tenant_id=request.tenant_id,
            service_id=service.id,
            staff_id=staff_id,
            location_id=request.location_id,
            customer=request.customer,
            booking_date=request.booking_date,
            booking_time=request.booking_time,
            duration_minutes=service.duration_minutes,
            status=status,
            total_price=service.price,
            cancel_token=secrets.token_urlsafe(32),
            created_at=now,
            updated_at=now,
            payment_provider=attempt.provider,
            payment_reference=attempt.correlation_id,
        )

    # -- async payment internals ---------------------------------------

    def _park(self, request: BookingRequest, attempt: PaymentAttempt) -> BookingOutcome:
        if not attempt.correlation_id:
            self._log_state(request, AttemptState.rejected, reason="PaymentFailed")
            raise PaymentFailed("Payment provider returned no reference")

        now = self._clock()
        pending = PendingPayment(
            correlation_id=attempt.correlation_id,
            tenant_id=request.tenant_id,
            service_id=request.service_id,
            staff_id=request.staff_id,
            location_id=request.location_id,
            booking_date=request.booking_date,
            booking_time=request.booking_time,
            customer=request.customer,
            amount=attempt.amount,
            provider=attempt.provider,
            created_at=now,
            deadline=now + self._async_timeout,
        )
        self._pending.save(pending)
        self._logger.info(
            "Awaiting asynchronous payment",
            extra={"tenant_id": request.tenant_id, "correlation_id": attempt.correlation_id},
        )
        return BookingOutcome(
            status="awaiting_payment",
            correlation_id=attempt.correlation_id,
            payment_deadline=pending.deadline,
        )

    def _finalize(self, pending: PendingPayment) -> AsyncPaymentResult:
        request = BookingRequest(
            tenant_id=pending.tenant_id,
            service_id=pending.service_id,
            staff_id=pending.staff_id,
            booking_date=pending.booking_date,
            booking_time=pending.booking_time,
            customer=pending.customer,
            payment=PaymentPlan(provider=pending.provider, correlation_ref=pending.correlation_id),
            location_id=pending.location_id,
        )
        attempt = PaymentAttempt(
            provider=pending.provider,
            amount=pending.amount,
            currency=self._currency,
            correlation_id=pending.correlation_id,
            status=PaymentStatus.succeeded,
        )
        self._log_state(request, AttemptState.payment_succeeded, correlation_id=pending.correlation_id)

        try:
            service, candidates = self._claimable_staff(request)
            booking = self._claim(request, service, candidates, BookingStatus.confirmed, attempt, paid=True)
        except (SlotConflict, ValidationError) as e:
            conflict = replace(pending, state="conflict", detail=str(e))
            self._pending.save(conflict)
            self._reconciliation.record("slot_conflict_after_payment", self._pending_data(conflict))
            self._log_state(request, AttemptState.rejected, reason=type(e).__name__)
            return self._result(conflict)
        except PersistenceError:
            self._pending.save(replace(pending, state="persist_failed", detail="persist_failed"))
            self._log_state(request, AttemptState.rejected, reason="PersistenceError")
            raise
        except Exception as e:
            failed = replace(pending, state="persist_failed", detail="finalize_failed")
            self._pending.save(failed)
            self._reconciliation.record(
                "finalize_failed_after_payment",
                {**self._pending_data(failed), "error": str(e)},
            )
            self._logger.critical(
                "Paid booking could not be finalised",
                extra={"tenant_id": pending.tenant_id, "correlation_id": pending.correlation_id, "error": str(e)},
            )
            self._log_state(request, AttemptState.rejected, reason=type(e).__name__)
            raise

        confirmed = replace(pending, state="confirmed", booking_id=booking.id, cancel_token=booking.cancel_token)
        self._pending.save(confirmed)
        self._log_state(request, AttemptState.confirmed, booking_id=booking.id, staff_id=booking.staff_id)
        return AsyncPaymentResult(paid=True, status="confirmed", booking=booking)

    def _check_late_success(self, pending: PendingPayment) -> AsyncPaymentResult:
        status = self._gateway_for(pending.provider).check(pending.correlation_id)
        if status != PaymentStatus.succeeded:
            return self._result(pending)
        late = replace(pending, state="expired", paid=True, detail=f"paid_after_{pending.state}")
        if self._settle(pending, late):
            self._reconciliation.record("payment_after_window_closed", self._pending_data(late))
        return self._result(self._pending.get(pending.correlation_id) or late)

    def _settle(self, current: PendingPayment, settled: PendingPayment) -> bool:
        return self._pending.settle(current.correlation_id, current.state, settled)

    def _result(self, pending: PendingPayment) -> AsyncPaymentResult:
        booking = self._reservations.get(pending.tenant_id, pending.booking_id) if pending.booking_id else None
        return AsyncPaymentResult(paid=pending.paid, status=pending.state, booking=booking, detail=pending.detail)

    def _gateway_for(self, provider: str) -> PaymentGatewayPort:
        gateway = self._gateways.get(provider)
        if gateway is None:
            raise ValidationError(f"Unsupported payment method: {provider}")
        return gateway

    # -- side effects --------------------------------------------------

    def _publish_booked(self, booking: Booking) -> None:
        try:
            self._events.publish(
                f"booking.{booking.status.value}",
                {
                    "booking_id": booking.id,
                    "tenant_id": booking.tenant_id,
                    "service_id": booking.service_id,
                    "staff_id": booking.staff_id,
                    "booking_date": booking.booking_date.isoformat(),
                    "booking_time": booking.booking_time,
                    "customer_name": booking.customer.name,
                    "customer_email": booking.customer.email,
                    "customer_phone": booking.customer.phone,
                    "total_price": booking.total_price,
                },
            )
        except Exception as e:
            self._logger.exception("Post-commit event failed", extra={"booking_id": booking.id, "error": str(e)})

    def _log_state(self, request: BookingRequest, state: AttemptState, **extra: Any) -> None:
        self._logger.info(
            "Booking attempt %s",
            state.value,
            extra={"tenant_id": request.tenant_id, "state": state.value, **extra},
        )

    @staticmethod
    def _reconciliation_data(request: BookingRequest, attempt: PaymentAttempt) -> dict[str, Any]:
        return {
            "tenant_id": request.tenant_id,
            "service_id": request.service_id,
            "staff_id": request.staff_id,
            "booking_date": request.booking_date.isoformat(),
            "booking_time": request.booking_time,
            "amount": attempt.amount,
            "provider": attempt.provider,
            "correlation_id": attempt.correlation_id,
        }

    @staticmethod
    def _pending_data(pending: PendingPayment) -> dict[str, Any]:
        return {
            "tenant_id": pending.tenant_id,
            "service_id": pending.service_id,
            "staff_id": pending.staff_id,
            "booking_date": pending.booking_date.isoformat(),
            "booking_time": pending.booking_time,
            "amount": pending.amount,
            "provider": pending.provider,
            "correlation_id": pending.correlation_id,
            "customer_phone": pending.customer.phone,
        }
