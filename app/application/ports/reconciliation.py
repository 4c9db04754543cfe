from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ReconciliationPort(ABC):
    """Sink for cases where money moved but no booking exists."""

    @abstractmethod
    def record(self, reason: str, data: dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_open(self) -> list[dict[str, Any]]:
        raise NotImplementedError
