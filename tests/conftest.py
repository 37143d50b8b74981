"""
Shared fixtures: a small salon tenant in the in-memory store.
"""

import pendulum
import pytest

from bookingengine.adapters.memory_store import MemoryStore
from bookingengine.domain.models import (
    Booking,
    BookingStatus,
    ClientInfo,
    DaySchedule,
    Service,
    Skill,
    StaffMember,
    WorkSchedule,
    parse_clock,
    parse_date,
    shift_clock,
)
from bookingengine.services.booking_orchestrator import BookingOrchestrator

TENANT = "studio@example.com"
OTHER_TENANT = "other@example.com"
MONDAY = "2024-11-25"
SUNDAY = "2024-11-24"

FIXED_NOW = pendulum.datetime(2024, 11, 20, 8, 0, tz="UTC")

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday")


def week(start="09:00", end="17:00", break_start="12:00", break_end="13:00", days=WEEKDAYS) -> WorkSchedule:
    day = DaySchedule(
        is_working=True,
        start=parse_clock(start),
        end=parse_clock(end),
        break_start=parse_clock(break_start) if break_start else None,
        break_end=parse_clock(break_end) if break_end else None,
    )
    return WorkSchedule(days={name: day for name in days})


def make_booking(
    start="14:00",
    duration=30,
    staff_id="anna",
    status=BookingStatus.CONFIRMED,
    day=MONDAY,
    booking_id=None,
    tenant_id=TENANT,
    service_id="haircut",
) -> Booking:
    start_time = parse_clock(start)
    return Booking(
        id=booking_id,
        tenant_id=tenant_id,
        service_id=service_id,
        date=parse_date(day),
        start_time=start_time,
        end_time=shift_clock(start_time, duration),
        duration=duration,
        status=status,
        client=ClientInfo(name="Jonas", phone="0151"),
        staff_id=staff_id,
        staff_name=staff_id.title() if staff_id else None,
    )


@pytest.fixture
def store() -> MemoryStore:
    store = MemoryStore()
    store.add_tenant(TENANT, name="Studio Nord", schedule=week(break_start=None, break_end=None))
    store.add_tenant(OTHER_TENANT, name="Elsewhere")

    store.add_service(Service(id="haircut", tenant_id=TENANT, name="Haircut", base_price=35.0, base_duration=30))
    store.add_service(Service(id="coloring", tenant_id=TENANT, name="Coloring", base_price=80.0, base_duration=90))
    store.add_service(Service(id="haircut", tenant_id=OTHER_TENANT, name="Haircut", base_price=20.0, base_duration=30))

    store.add_staff(
        StaffMember(
            id="anna",
            tenant_id=TENANT,
            name="Anna",
            email="anna@example.com",
            position="Stylist",
            skills=[
                Skill(service_id="haircut", experience_level="advanced"),
                Skill(service_id="coloring", duration_override=75, experience_level="expert"),
            ],
            work_schedule=week(),
        )
    )
    store.add_staff(
        StaffMember(
            id="ben",
            tenant_id=TENANT,
            name="Ben",
            position="Barber",
            skills=[
                Skill(service_id="haircut", duration_override=45, experience_level="beginner"),
                Skill(service_id="coloring", can_perform=False),
            ],
            work_schedule=week(start="10:00", end="18:00", break_start="13:00", break_end="13:30"),
        )
    )
    store.add_staff(
        StaffMember(
            id="carla",
            tenant_id=TENANT,
            name="Carla",
            is_active=False,
            skills=[Skill(service_id="haircut")],
            work_schedule=week(),
        )
    )
    store.add_staff(
        StaffMember(
            id="olga",
            tenant_id=OTHER_TENANT,
            name="Olga",
            skills=[Skill(service_id="haircut")],
            work_schedule=week(),
        )
    )
    return store


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def orchestrator(store) -> BookingOrchestrator:
    return BookingOrchestrator.from_store(store, now=lambda: FIXED_NOW)
