from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from app.application.ports.event_publisher import EventPublisherPort


def build_event(event_type: str, data: dict[str, Any]) -> dict[str, Any]:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def to_json(event: dict[str, Any]) -> str:
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False, default=str)


class LoggingEventPublisher(EventPublisherPort):
    """Writes post-commit events to the log; downstream consumers tail it."""

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    def publish(self, event_type: str, data: dict[str, Any]) -> None:
        event = build_event(event_type, data)
        self._logger.info("Event published: %s", to_json(event), extra={"event_type": event_type})


class RecordingEventPublisher(EventPublisherPort):
    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def publish(self, event_type: str, data: dict[str, Any]) -> None:
        self.events.append(build_event(event_type, data))

    def types(self) -> list[str]:
        return [event["event_type"] for event in self.events]
