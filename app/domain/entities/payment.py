from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum

from app.domain.entities.booking import Customer


class PaymentStatus(str, Enum):
    pending = "pending"
    succeeded = "succeeded"
    failed = "failed"


@dataclass(frozen=True)
class PaymentPlan:
    provider: str  # registry tag: "venue", "stripe", "paypal", "mpesa", ...
    correlation_ref: str | None = None  # client-side checkout id for card/wallet capture


@dataclass(frozen=True)
class PaymentAttempt:
    provider: str
    amount: float
    currency: str
    correlation_id: str | None = None
    phone: str | None = None
    status: PaymentStatus = PaymentStatus.pending
    detail: str | None = None

    def settled(self, status: PaymentStatus, correlation_id: str | None = None, detail: str | None = None) -> "PaymentAttempt":
        return replace(
            self,
            status=status,
            correlation_id=correlation_id or self.correlation_id,
            detail=detail,
        )


@dataclass(frozen=True)
class PendingPayment:
    """Booking request parked while an asynchronous payment is outstanding."""

    correlation_id: str
    tenant_id: str
    service_id: str
    staff_id: str  # explicit id or "auto"
    location_id: str | None
    booking_date: date
    booking_time: str
    customer: Customer
    amount: float
    provider: str
    created_at: datetime
    deadline: datetime
    # "awaiting", "confirmed", "failed", "expired", "conflict", "abandoned"
    state: str = "awaiting"
    booking_id: str | None = None
    cancel_token: str | None = None
    paid: bool = False
    detail: str | None = None

    @property
    def is_settled(self) -> bool:
        return self.state != "awaiting"
