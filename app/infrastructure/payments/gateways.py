from __future__ import annotations

import logging

from app.application.exceptions import PaymentProviderError
from app.application.ports.payment_gateway import CardCapturePort, MobileMoneyPort, PaymentGatewayPort
from app.domain.entities.payment import PaymentAttempt, PaymentStatus


class NoPaymentGateway(PaymentGatewayPort):
    """Pay at venue: nothing to secure up front."""

    collects_payment = False

    def start(self, attempt: PaymentAttempt) -> PaymentAttempt:
        return attempt.settled(PaymentStatus.succeeded, detail="no_payment_required")

    def check(self, correlation_id: str) -> PaymentStatus:
        return PaymentStatus.succeeded


class SyncCaptureGateway(PaymentGatewayPort):
    def __init__(self, client: CardCapturePort) -> None:
        self._client = client
        self._logger = logging.getLogger(__name__)

    def start(self, attempt: PaymentAttempt) -> PaymentAttempt:
        if not attempt.correlation_id:
            return attempt.settled(PaymentStatus.failed, detail="missing_checkout_reference")
        try:
            status = self._client.capture(attempt.amount, attempt.currency, attempt.correlation_id)
        except PaymentProviderError as e:
            self._logger.error(
                "Card capture failed",
                extra={"correlation_id": attempt.correlation_id, "provider": attempt.provider, "error": str(e)},
            )
            return attempt.settled(PaymentStatus.failed, detail=str(e))

        if status == PaymentStatus.pending:
            # Synchronous capture has no later check; anything short of success is a failure.
            status = PaymentStatus.failed
        return attempt.settled(status)

    def check(self, correlation_id: str) -> PaymentStatus:
        raise PaymentProviderError("Synchronous capture does not support polling")


class AsyncPushGateway(PaymentGatewayPort):
    requires_phone = True

    def __init__(self, client: MobileMoneyPort) -> None:
        self._client = client
        self._logger = logging.getLogger(__name__)

    def start(self, attempt: PaymentAttempt) -> PaymentAttempt:
        if not attempt.phone:
            return attempt.settled(PaymentStatus.failed, detail="missing_phone")
        try:
            correlation_id = self._client.initiate(attempt.amount, attempt.phone)
        except (PaymentProviderError, ValueError) as e:
            self._logger.error(
                "Payment push failed",
                extra={"provider": attempt.provider, "error": str(e)},
            )
            return attempt.settled(PaymentStatus.failed, detail=str(e))
        return attempt.settled(PaymentStatus.pending, correlation_id=correlation_id)

    def check(self, correlation_id: str) -> PaymentStatus:
        try:
            return self._client.poll(correlation_id)
        except PaymentProviderError as e:
            # Transient; the caller's deadline bounds how long this can stay pending.
            self._logger.warning(
                "Payment status query failed",
                extra={"correlation_id": correlation_id, "error": str(e)},
            )
            return PaymentStatus.pending
