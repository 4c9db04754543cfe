import datetime as dt

from pydantic import BaseModel, Field

from app.domain.entities.booking import Booking, BookingStatus


class SlotSchema(BaseModel):
    time: str
    free: bool
    eligible_staff_ids: list[str] = Field(default_factory=list)
    duration_minutes: int


class AvailabilityResponseSchema(BaseModel):
    service_id: str
    date: dt.date
    staff_id: str
    slots: list[SlotSchema]


class CustomerSchema(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None


class PaymentPlanSchema(BaseModel):
    provider: str = "venue"
    correlation_ref: str | None = None


class CreateBookingRequestSchema(BaseModel):
    service_id: str
    staff_id: str = "auto"
    location_id: str | None = None
    date: dt.date
    time: str
    customer: CustomerSchema
    payment: PaymentPlanSchema = Field(default_factory=PaymentPlanSchema)


class BookingSchema(BaseModel):
    booking_id: str
    tenant_id: str
    service_id: str
    staff_id: str
    location_id: str | None = None
    date: dt.date
    time: str
    status: BookingStatus
    total_price: float
    customer_name: str

    @classmethod
    def from_entity(cls, booking: Booking) -> "BookingSchema":
        return cls(
            booking_id=booking.id,
            tenant_id=booking.tenant_id,
            service_id=booking.service_id,
            staff_id=booking.staff_id,
            location_id=booking.location_id,
            date=booking.booking_date,
            time=booking.booking_time,
            status=booking.status,
            total_price=booking.total_price,
            customer_name=booking.customer.name,
        )


class CreateBookingResponseSchema(BaseModel):
    status: str
    booking_id: str | None = None
    staff_id: str | None = None
    cancel_token: str | None = None
    correlation_id: str | None = None
    payment_deadline: dt.datetime | None = None


class AsyncPaymentResponseSchema(BaseModel):
    paid: bool
    status: str
    booking_id: str | None = None
    cancel_token: str | None = None
    needs_reconciliation: bool = False


class CancelBookingRequestSchema(BaseModel):
    cancel_token: str


class CancelBookingResponseSchema(BaseModel):
    success: bool
    message: str


class CancelLookupResponseSchema(BaseModel):
    booking: BookingSchema
    cancel_allowed: bool
    cancel_message: str | None = None


class StatusChangeRequestSchema(BaseModel):
    status: BookingStatus
