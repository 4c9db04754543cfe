from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.entities.payment import PendingPayment


class PendingPaymentStorePort(ABC):
    @abstractmethod
    def save(self, pending: PendingPayment) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, correlation_id: str) -> PendingPayment | None:
        raise NotImplementedError

    @abstractmethod
    def settle(self, correlation_id: str, expected_state: str, settled: PendingPayment) -> bool:
        """
        Replace the record only if its current state equals expected_state.
        Returns False if another caller settled it first.
        """
        raise NotImplementedError
