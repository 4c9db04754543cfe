from __future__ import annotations

from typing import Iterable

from app.application.ports.schedule_store import ScheduleStorePort
from app.domain.entities.service_catalog import Location, Service, StaffMember, WeeklyAvailability


class MemoryScheduleStore(ScheduleStorePort):
    def __init__(
        self,
        services: Iterable[Service] = (),
        staff: Iterable[StaffMember] = (),
        availability: Iterable[WeeklyAvailability] = (),
        locations: Iterable[Location] = (),
    ) -> None:
        self._services = {(s.tenant_id, s.id): s for s in services}
        self._staff = {(s.tenant_id, s.id): s for s in staff}
        self._availability: dict[str, list[WeeklyAvailability]] = {}
        for row in availability:
            self._availability.setdefault(row.staff_id, []).append(row)
        self._locations = {(loc.tenant_id, loc.id): loc for loc in locations}

    def get_service(self, tenant_id: str, service_id: str) -> Service | None:
        return self._services.get((tenant_id, service_id))

    def list_staff(self, tenant_id: str) -> list[StaffMember]:
        return [member for (tid, _), member in self._staff.items() if tid == tenant_id]

    def get_staff(self, tenant_id: str, staff_id: str) -> StaffMember | None:
        return self._staff.get((tenant_id, staff_id))

    def get_weekly_availability(self, tenant_id: str, staff_id: str) -> list[WeeklyAvailability]:
        if (tenant_id, staff_id) not in self._staff:
            return []
        return list(self._availability.get(staff_id, []))

    def get_location(self, tenant_id: str, location_id: str) -> Location | None:
        return self._locations.get((tenant_id, location_id))
