"""
Protocols describing the persistence collaborators needed by the engine.

Implementations return ``None`` for missing records and raise
``StoreError`` for I/O failures. Dependency inversion toward these protocols
keeps the orchestrator testable with in-memory stubs.
"""

from __future__ import annotations

from typing import List, Protocol

from pendulum import Date

from ..domain.models import Booking, BookingStatus, Service, StaffMember, WorkSchedule


class StaffStore(Protocol):
    """Read access to staff members."""

    async def get_by_id(self, staff_id: str) -> StaffMember | None:
        """Return one staff member or None."""

    async def list_by_tenant(self, tenant_id: str) -> List[StaffMember]:
        """Return every staff member of a tenant, active or not."""


class BookingStore(Protocol):
    """Read/write access to bookings."""

    async def list_by_date(self, tenant_id: str, day: Date) -> List[Booking]:
        """Return all bookings of a tenant on a date, any status."""

    async def list_by_staff_and_date(self, staff_id: str, day: Date) -> List[Booking]:
        """Return all bookings of a staff member on a date, any status."""

    async def list_by_tenant(self, tenant_id: str, status: BookingStatus | None = None) -> List[Booking]:
        """Return every booking of a tenant across dates, optionally only one status."""

    async def get_by_id(self, tenant_id: str, booking_id: str) -> Booking | None:
        """Return one booking or None."""

    async def create(self, booking: Booking) -> Booking:
        """Persist a new booking and return it with its assigned id."""

    async def update_status(self, tenant_id: str, booking_id: str, status: BookingStatus) -> None:
        """Change the status of an existing booking."""


class ServiceCatalog(Protocol):
    """Read access to a tenant's service catalog."""

    async def get_by_id(self, tenant_id: str, service_id: str) -> Service | None:
        """Return one service or None."""


class TenantDirectory(Protocol):
    """Tenant existence checks and tenant-wide opening hours."""

    async def exists(self, tenant_id: str) -> bool:
        """Return True if the tenant is known."""

    async def default_schedule(self, tenant_id: str) -> WorkSchedule | None:
        """Return the tenant's default weekly schedule or None if none is configured."""
