from __future__ import annotations

import itertools
import logging
import threading

from app.application.ports.payment_gateway import CardCapturePort, MobileMoneyPort
from app.domain.entities.payment import PaymentStatus


class MockCardClient(CardCapturePort):
    def __init__(self, declined_refs: set[str] | None = None) -> None:
        self._declined = set(declined_refs or set())
        self.captured: list[tuple[float, str, str]] = []
        self._logger = logging.getLogger(__name__)

    def capture(self, amount: float, currency: str, correlation_ref: str) -> PaymentStatus:
        if correlation_ref in self._declined or correlation_ref.startswith("decline"):
            self._logger.info("Mock capture declined", extra={"correlation_id": correlation_ref})
            return PaymentStatus.failed
        self.captured.append((amount, currency, correlation_ref))
        self._logger.info("Mock capture succeeded", extra={"correlation_id": correlation_ref})
        return PaymentStatus.succeeded


class MockMobileMoneyClient(MobileMoneyPort):
    """
    In-process stand-in for an STK push provider.
    Outcomes can be scripted per correlation id; otherwise a payment succeeds
    after succeed_after_polls queries (None keeps it pending forever).
    """

    def __init__(self, succeed_after_polls: int | None = 2) -> None:
        self._succeed_after = succeed_after_polls
        self._counter = itertools.count(1)
        self._polls: dict[str, int] = {}
        self._outcomes: dict[str, PaymentStatus] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def initiate(self, amount: float, phone: str) -> str:
        with self._lock:
            correlation_id = f"ws_CO_mock_{next(self._counter)}"
            self._polls[correlation_id] = 0
        self._logger.info("Mock payment push sent", extra={"correlation_id": correlation_id})
        return correlation_id

    def set_outcome(self, correlation_id: str, status: PaymentStatus) -> None:
        with self._lock:
            self._outcomes[correlation_id] = status

    def poll(self, correlation_id: str) -> PaymentStatus:
        with self._lock:
            self._polls[correlation_id] = self._polls.get(correlation_id, 0) + 1
            if correlation_id in self._outcomes:
                return self._outcomes[correlation_id]
            if self._succeed_after is not None and self._polls[correlation_id] >= self._succeed_after:
                return PaymentStatus.succeeded
            return PaymentStatus.pending

    def poll_count(self, correlation_id: str) -> int:
        return self._polls.get(correlation_id, 0)
