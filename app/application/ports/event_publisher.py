from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class EventPublisherPort(ABC):
    @abstractmethod
    def publish(self, event_type: str, data: dict[str, Any]) -> None:
        """Fire-and-forget post-commit event (client upsert, notifications, loyalty)."""
        raise NotImplementedError
