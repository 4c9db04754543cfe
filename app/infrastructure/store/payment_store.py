from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any

from app.application.ports.pending_payment_store import PendingPaymentStorePort
from app.application.ports.reconciliation import ReconciliationPort
from app.domain.entities.payment import PendingPayment


class MemoryPendingPaymentStore(PendingPaymentStorePort):
    def __init__(self) -> None:
        self._pending: dict[str, PendingPayment] = {}
        self._lock = threading.Lock()

    def save(self, pending: PendingPayment) -> None:
        with self._lock:
            self._pending[pending.correlation_id] = pending

    def get(self, correlation_id: str) -> PendingPayment | None:
        with self._lock:
            return self._pending.get(correlation_id)

    def settle(self, correlation_id: str, expected_state: str, settled: PendingPayment) -> bool:
        with self._lock:
            current = self._pending.get(correlation_id)
            if current is None or current.state != expected_state:
                return False
            self._pending[correlation_id] = settled
            return True


class MemoryReconciliationStore(ReconciliationPort):
    def __init__(self) -> None:
        self._entries: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def record(self, reason: str, data: dict[str, Any]) -> None:
        entry = {"reason": reason, "recorded_at": datetime.now(timezone.utc).isoformat(), **data}
        with self._lock:
            self._entries.append(entry)
        self._logger.error("Manual reconciliation required", extra={"reason": reason, **_log_fields(data)})

    def list_open(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._entries)


def _log_fields(data: dict[str, Any]) -> dict[str, Any]:
    # LogRecord reserves some attribute names; keep only the ones the formatter shows.
    keys = ("tenant_id", "correlation_id", "booking_id", "staff_id")
    return {k: data[k] for k in keys if k in data}
