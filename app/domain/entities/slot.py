from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Slot:
    time: str  # "HH:MM"
    duration_minutes: int
    free: bool
    eligible_staff_ids: tuple[str, ...] = field(default_factory=tuple)
