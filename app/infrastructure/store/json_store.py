from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from app.domain.entities.service_catalog import Location, Service, StaffMember, WeeklyAvailability
from app.infrastructure.store.memory_schedule_store import MemoryScheduleStore


class JsonScheduleStore(MemoryScheduleStore):
    """
    Schedule store backed by a catalog file:

        {"tenants": [{"id": ..., "services": [...], "locations": [...],
                      "staff": [{..., "availability": [...]}]}]}
    """

    def __init__(self, path: str = "./data/catalog.json") -> None:
        self._path = Path(path)
        self._logger = logging.getLogger(__name__)
        services, staff, availability, locations = self._load()
        super().__init__(services=services, staff=staff, availability=availability, locations=locations)

    def _load(self) -> tuple[list[Service], list[StaffMember], list[WeeklyAvailability], list[Location]]:
        services: list[Service] = []
        staff: list[StaffMember] = []
        availability: list[WeeklyAvailability] = []
        locations: list[Location] = []

        if not self._path.exists():
            self._logger.warning("Catalog file missing; starting empty", extra={"path": str(self._path)})
            return services, staff, availability, locations

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            self._logger.error("Catalog file unreadable; starting empty", extra={"path": str(self._path), "error": str(e)})
            return services, staff, availability, locations

        for tenant in data.get("tenants", []):
            tenant_id = str(tenant["id"])
            services.extend(_service(tenant_id, row) for row in tenant.get("services", []))
            locations.extend(_location(tenant_id, row) for row in tenant.get("locations", []))
            for row in tenant.get("staff", []):
                member = _staff(tenant_id, row)
                staff.append(member)
                availability.extend(_availability(member.id, a) for a in row.get("availability", []))

        self._logger.info(
            "Catalog loaded",
            extra={"path": str(self._path), "services": len(services), "staff": len(staff)},
        )
        return services, staff, availability, locations


def _service(tenant_id: str, row: dict[str, Any]) -> Service:
    return Service(
        id=str(row["id"]),
        tenant_id=tenant_id,
        name=row.get("name", ""),
        category=row["category"],
        duration_minutes=int(row["duration_minutes"]),
        price=float(row.get("price", 0)),
        is_active=bool(row.get("is_active", True)),
    )


def _staff(tenant_id: str, row: dict[str, Any]) -> StaffMember:
    return StaffMember(
        id=str(row["id"]),
        tenant_id=tenant_id,
        name=row.get("name", ""),
        category=row["category"],
        is_active=bool(row.get("is_active", True)),
        location_id=row.get("location_id"),
    )


def _availability(staff_id: str, row: dict[str, Any]) -> WeeklyAvailability:
    return WeeklyAvailability(
        staff_id=staff_id,
        day_of_week=int(row["day_of_week"]),
        start_time=row["start_time"],
        end_time=row["end_time"],
        is_available=bool(row.get("is_available", True)),
    )


def _location(tenant_id: str, row: dict[str, Any]) -> Location:
    return Location(
        id=str(row["id"]),
        tenant_id=tenant_id,
        name=row.get("name", ""),
        is_active=bool(row.get("is_active", True)),
    )
