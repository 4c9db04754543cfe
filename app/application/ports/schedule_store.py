from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.entities.service_catalog import Location, Service, StaffMember, WeeklyAvailability


class ScheduleStorePort(ABC):
    @abstractmethod
    def get_service(self, tenant_id: str, service_id: str) -> Service | None:
        """Get a service by id within a tenant."""
        raise NotImplementedError

    @abstractmethod
    def list_staff(self, tenant_id: str) -> list[StaffMember]:
        """List all staff members of a tenant, active or not."""
        raise NotImplementedError

    @abstractmethod
    def get_staff(self, tenant_id: str, staff_id: str) -> StaffMember | None:
        raise NotImplementedError

    @abstractmethod
    def get_weekly_availability(self, tenant_id: str, staff_id: str) -> list[WeeklyAvailability]:
        """Get every weekly availability row for a staff member."""
        raise NotImplementedError

    @abstractmethod
    def get_location(self, tenant_id: str, location_id: str) -> Location | None:
        raise NotImplementedError
