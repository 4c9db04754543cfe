from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.entities.payment import PaymentAttempt, PaymentStatus


class CardCapturePort(ABC):
    """Synchronous card/wallet capture against a checkout the customer already approved."""

    @abstractmethod
    def capture(self, amount: float, currency: str, correlation_ref: str) -> PaymentStatus:
        """Returns succeeded or failed, never pending."""
        raise NotImplementedError


class MobileMoneyPort(ABC):
    """Asynchronous push-then-poll payment (e.g. an STK push to the customer's phone)."""

    @abstractmethod
    def initiate(self, amount: float, phone: str) -> str:
        """Push a payment prompt. Returns the provider correlation id."""
        raise NotImplementedError

    @abstractmethod
    def poll(self, correlation_id: str) -> PaymentStatus:
        raise NotImplementedError


class PaymentGatewayPort(ABC):
    """
    Single capability the booking coordinator consumes.
    start() returns the attempt settled as succeeded/failed, or still pending
    with a correlation id when completion happens out of band.
    """

    collects_payment: bool = True
    requires_phone: bool = False

    @abstractmethod
    def start(self, attempt: PaymentAttempt) -> PaymentAttempt:
        raise NotImplementedError

    @abstractmethod
    def check(self, correlation_id: str) -> PaymentStatus:
        raise NotImplementedError
