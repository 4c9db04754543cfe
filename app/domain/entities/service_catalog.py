from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Service:
    id: str
    tenant_id: str
    name: str
    category: str
    duration_minutes: int
    price: float
    is_active: bool = True


@dataclass(frozen=True)
class StaffMember:
    id: str
    tenant_id: str
    name: str
    category: str  # must match Service.category to be eligible
    is_active: bool = True
    location_id: str | None = None


@dataclass(frozen=True)
class WeeklyAvailability:
    staff_id: str
    day_of_week: int  # 0 = Sunday ... 6 = Saturday
    start_time: str  # "HH:MM" or "HH:MM:SS"
    end_time: str
    is_available: bool = True


@dataclass(frozen=True)
class Location:
    id: str
    tenant_id: str
    name: str
    is_active: bool = True
