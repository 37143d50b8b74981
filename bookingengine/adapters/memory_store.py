"""
In-process document store for tests, demos and the CLI.

Data can be seeded from a JSON file using the same document shapes the
Firestore adapter reads, so both backends load identical records.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Tuple

from pendulum import Date

from ..domain.exceptions import StoreError
from ..domain.models import Booking, BookingStatus, Service, StaffMember, WorkSchedule

logger = logging.getLogger(__name__)


def _copy_staff(staff: StaffMember) -> StaffMember:
    return replace(staff, skills=list(staff.skills))


class MemoryTenantDirectory:
    def __init__(self):
        self.tenants: Dict[str, Dict[str, Any]] = {}
        self.schedules: Dict[str, WorkSchedule] = {}

    async def exists(self, tenant_id: str) -> bool:
        return tenant_id in self.tenants

    async def default_schedule(self, tenant_id: str) -> WorkSchedule | None:
        return self.schedules.get(tenant_id)


class MemoryServiceCatalog:
    def __init__(self):
        self.services: Dict[Tuple[str, str], Service] = {}

    async def get_by_id(self, tenant_id: str, service_id: str) -> Service | None:
        return self.services.get((tenant_id, service_id))


class MemoryStaffStore:
    """Staff records; returned as copies so callers cannot mutate stored state."""

    def __init__(self):
        self.staff: Dict[str, StaffMember] = {}

    async def get_by_id(self, staff_id: str) -> StaffMember | None:
        staff = self.staff.get(staff_id)
        return _copy_staff(staff) if staff else None

    async def list_by_tenant(self, tenant_id: str) -> List[StaffMember]:
        roster = [
            _copy_staff(staff)
            for staff in self.staff.values()
            if staff.tenant_id == tenant_id
        ]
        return sorted(roster, key=lambda s: s.name)


class MemoryBookingStore:
    """Bookings keyed by id; ids are generated on create when missing."""

    def __init__(self):
        self.bookings: Dict[str, Booking] = {}

    def put(self, booking: Booking) -> Booking:
        if not booking.id:
            booking = replace(booking, id=uuid.uuid4().hex[:20])
        self.bookings[booking.id] = replace(booking)
        return booking

    async def list_by_date(self, tenant_id: str, day: Date) -> List[Booking]:
        return [
            replace(booking)
            for booking in self.bookings.values()
            if booking.tenant_id == tenant_id and booking.date == day
        ]

    async def list_by_staff_and_date(self, staff_id: str, day: Date) -> List[Booking]:
        return [
            replace(booking)
            for booking in self.bookings.values()
            if booking.staff_id == staff_id and booking.date == day
        ]

    async def list_by_tenant(self, tenant_id: str, status: BookingStatus | None = None) -> List[Booking]:
        return [
            replace(booking)
            for booking in self.bookings.values()
            if booking.tenant_id == tenant_id and (status is None or booking.status is status)
        ]

    async def get_by_id(self, tenant_id: str, booking_id: str) -> Booking | None:
        booking = self.bookings.get(booking_id)
        if booking is None or booking.tenant_id != tenant_id:
            return None
        return replace(booking)

    async def create(self, booking: Booking) -> Booking:
        stored = self.put(booking)
        logger.debug("Stored booking %s", stored.id)
        return replace(stored)

    async def update_status(self, tenant_id: str, booking_id: str, status: BookingStatus) -> None:
        booking = self.bookings.get(booking_id)
        if booking is None or booking.tenant_id != tenant_id:
            raise StoreError(f"Booking {booking_id} does not exist")
        self.bookings[booking_id] = replace(booking, status=status)


class MemoryStore:
    """
    Bundles the four in-memory collaborators over one data set.

    ``staff``, ``bookings``, ``services`` and ``tenants`` implement the
    store protocols consumed by the orchestrator.
    """

    def __init__(self, data: Dict[str, Any] | None = None):
        self.tenants = MemoryTenantDirectory()
        self.services = MemoryServiceCatalog()
        self.staff = MemoryStaffStore()
        self.bookings = MemoryBookingStore()
        if data:
            self.load(data)

    @classmethod
    def from_json_file(cls, data_file: Path) -> "MemoryStore":
        """
        Load seed data from a JSON file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file is not a valid seed document
        """
        if not data_file.exists():
            raise FileNotFoundError(f"Data file not found: {data_file}")

        try:
            with open(data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {data_file}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Data file must contain an object at the root level.")

        return cls(data)

    def load(self, data: Dict[str, Any]) -> None:
        for tenant in data.get("tenants", []):
            schedule = tenant.get("defaultSchedule")
            self.add_tenant(
                tenant["email"],
                name=tenant.get("name", ""),
                schedule=WorkSchedule.from_availability(schedule.get("availability")) if schedule else None,
            )
        for service in data.get("services", []):
            self.add_service(Service.from_dict(service, tenant_id=service["enterpriseEmail"]))
        for staff in data.get("staff", []):
            self.add_staff(StaffMember.from_dict(staff))
        for booking in data.get("bookings", []):
            self.bookings.put(Booking.from_dict(booking))

    def dump(self) -> Dict[str, Any]:
        """Export every record in the seed document shape."""
        return {
            "tenants": [self._dump_tenant(email, info) for email, info in self.tenants.tenants.items()],
            "services": [
                {
                    "id": service.id,
                    "enterpriseEmail": service.tenant_id,
                    "name": service.name,
                    "price": service.base_price,
                    "duration": service.base_duration,
                    "isActive": service.is_active,
                }
                for service in self.services.services.values()
            ],
            "staff": [staff.to_dict() for staff in self.staff.staff.values()],
            "bookings": [booking.to_dict() for booking in self.bookings.bookings.values()],
        }

    def _dump_tenant(self, email: str, info: Dict[str, Any]) -> Dict[str, Any]:
        data = {"email": email, **info}
        schedule = self.tenants.schedules.get(email)
        if schedule is not None:
            data["defaultSchedule"] = {"isDefault": True, "availability": schedule.to_availability()}
        return data

    def save(self, data_file: Path) -> None:
        try:
            with open(data_file, "w", encoding="utf-8") as f:
                json.dump(self.dump(), f, indent=2, ensure_ascii=False)
        except OSError as exc:
            raise StoreError(f"Could not write data file {data_file}: {exc}") from exc

    def add_tenant(self, tenant_id: str, name: str = "", schedule: WorkSchedule | None = None) -> None:
        self.tenants.tenants[tenant_id] = {"name": name}
        if schedule is not None:
            self.tenants.schedules[tenant_id] = schedule

    def add_service(self, service: Service) -> Service:
        self.services.services[(service.tenant_id, service.id)] = service
        return service

    def add_staff(self, staff: StaffMember) -> StaffMember:
        self.staff.staff[staff.id] = _copy_staff(staff)
        return staff

    def remove_staff(self, staff_id: str) -> None:
        self.staff.staff.pop(staff_id, None)

    def add_booking(self, booking: Booking) -> Booking:
        return self.bookings.put(booking)
