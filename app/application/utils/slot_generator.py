from __future__ import annotations

from datetime import time

from app.application.utils.date_parser import minutes_since_midnight, time_from_minutes


def generate_slots(start_time: str | time, end_time: str | time, duration_minutes: int) -> list[str]:
    """
    Pack back-to-back slots of duration_minutes into [start_time, end_time].

    A slot is emitted while slot_start + duration <= end_time; a trailing
    partial slot is dropped. Output is "HH:MM" strings in ascending order.
    """
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")

    start = minutes_since_midnight(start_time)
    end = minutes_since_midnight(end_time)

    slots: list[str] = []
    current = start
    while current + duration_minutes <= end:
        slots.append(time_from_minutes(current))
        current += duration_minutes
    return slots
