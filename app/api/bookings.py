import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.schemas import (
    AsyncPaymentResponseSchema,
    AvailabilityResponseSchema,
    BookingSchema,
    CancelBookingRequestSchema,
    CancelBookingResponseSchema,
    CancelLookupResponseSchema,
    CreateBookingRequestSchema,
    CreateBookingResponseSchema,
    SlotSchema,
    StatusChangeRequestSchema,
)
from app.application.exceptions import (
    BookingNotFound,
    CancellationNotAllowed,
    InvalidStatusTransition,
    PaymentFailed,
    PersistenceError,
    SlotConflict,
    ValidationError,
)
from app.application.use_cases.availability import ANY_STAFF, GetAvailabilityUseCase
from app.application.use_cases.booking import AsyncPaymentResult, BookingCoordinator, BookingRequest
from app.application.use_cases.cancel_booking import BookingStatusUseCase, CancelBookingUseCase
from app.domain.entities.booking import Customer
from app.domain.entities.payment import PaymentPlan
from app.wiring.dependencies import (
    get_availability_use_case,
    get_booking_coordinator,
    get_booking_status_use_case,
    get_cancel_booking_use_case,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _to_http(e: Exception) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, CancellationNotAllowed):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, BookingNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (SlotConflict, InvalidStatusTransition)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, PaymentFailed):
        return HTTPException(status_code=402, detail=str(e))
    logger.error("Booking persistence failed", extra={"error": str(e)})
    return HTTPException(status_code=500, detail="Booking could not be saved; the business has been notified")


_HANDLED = (
    ValidationError,
    CancellationNotAllowed,
    BookingNotFound,
    SlotConflict,
    InvalidStatusTransition,
    PaymentFailed,
    PersistenceError,
)


@router.get(
    "/tenants/{tenant_id}/services/{service_id}/availability",
    response_model=AvailabilityResponseSchema,
)
def get_availability(
    tenant_id: str,
    service_id: str,
    date: date = Query(...),
    staff_id: str = Query(ANY_STAFF),
    uc: GetAvailabilityUseCase = Depends(get_availability_use_case),
):
    try:
        slots = uc.execute(tenant_id, service_id, date, staff_id)
    except _HANDLED as e:
        raise _to_http(e)

    return AvailabilityResponseSchema(
        service_id=service_id,
        date=date,
        staff_id=staff_id,
        slots=[
            SlotSchema(
                time=s.time,
                free=s.free,
                eligible_staff_ids=list(s.eligible_staff_ids),
                duration_minutes=s.duration_minutes,
            )
            for s in slots
        ],
    )


@router.post("/tenants/{tenant_id}/bookings", response_model=CreateBookingResponseSchema, status_code=201)
def create_booking(
    tenant_id: str,
    req: CreateBookingRequestSchema,
    uc: BookingCoordinator = Depends(get_booking_coordinator),
):
    request = BookingRequest(
        tenant_id=tenant_id,
        service_id=req.service_id,
        staff_id=req.staff_id,
        location_id=req.location_id,
        booking_date=req.date,
        booking_time=req.time,
        customer=Customer(name=req.customer.name, email=req.customer.email, phone=req.customer.phone),
        payment=PaymentPlan(provider=req.payment.provider, correlation_ref=req.payment.correlation_ref),
    )
    try:
        outcome = uc.create_booking(request)
    except _HANDLED as e:
        raise _to_http(e)

    return CreateBookingResponseSchema(
        status=outcome.status,
        booking_id=outcome.booking_id,
        staff_id=outcome.booking.staff_id if outcome.booking else None,
        cancel_token=outcome.cancel_token,
        correlation_id=outcome.correlation_id,
        payment_deadline=outcome.payment_deadline,
    )


def _payment_response(result: AsyncPaymentResult) -> AsyncPaymentResponseSchema:
    return AsyncPaymentResponseSchema(
        paid=result.paid,
        status=result.status,
        booking_id=result.booking.id if result.booking else None,
        cancel_token=result.booking.cancel_token if result.booking else None,
        needs_reconciliation=result.needs_reconciliation,
    )


@router.post("/payments/{correlation_id}/confirm", response_model=AsyncPaymentResponseSchema)
def confirm_async_payment(
    correlation_id: str,
    uc: BookingCoordinator = Depends(get_booking_coordinator),
):
    try:
        result = uc.confirm_async_payment(correlation_id)
    except _HANDLED as e:
        raise _to_http(e)
    return _payment_response(result)


@router.post("/payments/{correlation_id}/abandon", response_model=AsyncPaymentResponseSchema)
def abandon_async_payment(
    correlation_id: str,
    uc: BookingCoordinator = Depends(get_booking_coordinator),
):
    try:
        result = uc.abandon_async_payment(correlation_id)
    except _HANDLED as e:
        raise _to_http(e)
    return _payment_response(result)


@router.post("/bookings/cancel", response_model=CancelBookingResponseSchema)
def cancel_booking(
    req: CancelBookingRequestSchema,
    uc: CancelBookingUseCase = Depends(get_cancel_booking_use_case),
):
    try:
        result = uc.execute(req.cancel_token)
    except _HANDLED as e:
        raise _to_http(e)
    return CancelBookingResponseSchema(success=result.success, message=result.message)


@router.get("/bookings/by-cancel-token", response_model=CancelLookupResponseSchema)
def get_booking_by_cancel_token(
    token: str = Query(...),
    uc: CancelBookingUseCase = Depends(get_cancel_booking_use_case),
):
    try:
        lookup = uc.lookup(token)
    except _HANDLED as e:
        raise _to_http(e)
    return CancelLookupResponseSchema(
        booking=BookingSchema.from_entity(lookup.booking),
        cancel_allowed=lookup.cancel_allowed,
        cancel_message=lookup.cancel_message,
    )


@router.post("/tenants/{tenant_id}/bookings/{booking_id}/status", response_model=BookingSchema)
def change_booking_status(
    tenant_id: str,
    booking_id: str,
    req: StatusChangeRequestSchema,
    uc: BookingStatusUseCase = Depends(get_booking_status_use_case),
):
    try:
        booking = uc.transition(tenant_id, booking_id, req.status)
    except _HANDLED as e:
        raise _to_http(e)
    return BookingSchema.from_entity(booking)
