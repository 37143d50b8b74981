"""
Domain models for schedules, staff members, services and bookings.

Dates are calendar dates (``pendulum.Date``) and schedule times are naive
wall-clock ``datetime.time`` values; no time zone conversion happens here.
Concrete instants used for interval math are naive pendulum ``DateTime``s.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date as date_type, datetime, time
from enum import Enum
from typing import Any, Dict, List

import pendulum
from pendulum import Date, DateTime

from .exceptions import InvalidTransitionError

WEEKDAY_NAMES = [
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
]

# Numeric weekday keys in tenant schedules count from Sunday
SUNDAY_FIRST_WEEKDAYS = WEEKDAY_NAMES[-1:] + WEEKDAY_NAMES[:-1]

MINUTES_PER_DAY = 24 * 60


def parse_clock(value: str | time) -> time:
    """Parse an ``HH:MM`` wall-clock string into a ``time``."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid time '{value}', expected HH:MM") from exc


def format_clock(value: time) -> str:
    """Format a ``time`` as ``HH:MM``."""
    return value.strftime("%H:%M")


def parse_date(value: str | date_type) -> Date:
    """
    Parse a calendar date without a time-of-day component.

    Accepts ``YYYY-MM-DD`` strings as well as ``date``/``datetime`` objects.
    Parsing a bare date avoids weekday shifts caused by local-time parsing.
    """
    if isinstance(value, datetime):
        return pendulum.date(value.year, value.month, value.day)
    if isinstance(value, Date):
        return value
    if isinstance(value, date_type):
        return pendulum.date(value.year, value.month, value.day)
    try:
        return pendulum.from_format(value.strip(), "YYYY-MM-DD").date()
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


def clock_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def shift_clock(value: time, minutes: int) -> time:
    """
    Add minutes to a wall-clock time.

    Raises:
        ValueError: If the result falls past the end of the day
    """
    total = clock_to_minutes(value) + minutes
    if total < 0 or total >= MINUTES_PER_DAY:
        raise ValueError(
            f"{format_clock(value)} + {minutes} min does not fit in the same day"
        )
    return time(hour=total // 60, minute=total % 60)


def at(day: Date, clock: time) -> DateTime:
    """Combine a calendar date and a wall-clock time into a naive DateTime."""
    return pendulum.naive(day.year, day.month, day.day, clock.hour, clock.minute)


def _optional_clock(value: Any) -> time | None:
    if value is None or value == "":
        return None
    return parse_clock(value)


def _weekday_name(value: Any) -> str | None:
    text = str(value).strip().lower()
    if text in WEEKDAY_NAMES:
        return text
    if text.isdigit() and int(text) < 7:
        return SUNDAY_FIRST_WEEKDAYS[int(text)]
    return None


def _optional_instant(value: Any) -> DateTime | None:
    if value is None or value == "":
        return None
    if isinstance(value, DateTime):
        return value
    if isinstance(value, datetime):
        return pendulum.instance(value)
    return pendulum.parse(str(value))


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def on(cls, day: Date, start: time, end: time) -> "TimeRange":
        """Build a range for two wall-clock times on the same calendar day."""
        return cls(start=at(day, start), end=at(day, end))

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another. Touching ranges do not overlap."""
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeRange") -> bool:
        """Check if ``other`` lies entirely within this range."""
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f"{self.start.format('HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class DaySchedule:
    """Working hours of one weekday, with an optional break."""
    is_working: bool = False
    start: time | None = None
    end: time | None = None
    break_start: time | None = None
    break_end: time | None = None

    def has_hours(self) -> bool:
        """A working day needs both ends of its window, in order."""
        return (
            self.is_working
            and self.start is not None
            and self.end is not None
            and self.start < self.end
        )

    def window_on(self, day: Date) -> TimeRange | None:
        if not self.has_hours():
            return None
        return TimeRange.on(day, self.start, self.end)

    def break_on(self, day: Date) -> TimeRange | None:
        if self.break_start is None or self.break_end is None:
            return None
        if self.break_start >= self.break_end:
            return None
        return TimeRange.on(day, self.break_start, self.break_end)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DaySchedule":
        return cls(
            is_working=bool(data.get("isWorking", False)),
            start=_optional_clock(data.get("startTime")),
            end=_optional_clock(data.get("endTime")),
            break_start=_optional_clock(data.get("breakStart")),
            break_end=_optional_clock(data.get("breakEnd")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"isWorking": self.is_working}
        for key, value in (
            ("startTime", self.start),
            ("endTime", self.end),
            ("breakStart", self.break_start),
            ("breakEnd", self.break_end),
        ):
            if value is not None:
                data[key] = format_clock(value)
        return data


@dataclass(frozen=True)
class WorkSchedule:
    """Weekly schedule: one optional ``DaySchedule`` per weekday name."""
    days: Dict[str, DaySchedule] = field(default_factory=dict)

    def for_weekday(self, index: int) -> DaySchedule | None:
        """Look up a weekday by index (0=Monday, 6=Sunday)."""
        return self.days.get(WEEKDAY_NAMES[index])

    @classmethod
    def from_availability(cls, entries: List[Dict[str, Any]] | None) -> "WorkSchedule":
        """
        Build a weekly schedule from the ``availability`` list of a tenant schedule.

        Each entry names ``days`` (weekday names in any case, or "0" to "6"
        counted from Sunday) sharing one ``startTime``/``endTime`` window. The
        first entry naming a day wins; an entry without both times marks its
        days as closed.
        """
        days: Dict[str, DaySchedule] = {}
        for entry in entries or []:
            start = _optional_clock(entry.get("startTime"))
            end = _optional_clock(entry.get("endTime"))
            for raw in entry.get("days") or []:
                name = _weekday_name(raw)
                if name is None or name in days:
                    continue
                days[name] = DaySchedule(
                    is_working=start is not None and end is not None,
                    start=start,
                    end=end,
                )
        return cls(days=days)

    def to_availability(self) -> List[Dict[str, Any]]:
        return [
            {"days": [name], "startTime": format_clock(day.start), "endTime": format_clock(day.end)}
            for name, day in self.days.items()
            if day.has_hours()
        ]

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "WorkSchedule":
        days = {
            name: DaySchedule.from_dict(value)
            for name, value in (data or {}).items()
            if name in WEEKDAY_NAMES and value
        }
        return cls(days=days)

    def to_dict(self) -> Dict[str, Any]:
        return {name: day.to_dict() for name, day in self.days.items()}


@dataclass(frozen=True)
class Skill:
    """
    A staff member's capability for one service.

    ``experience_level`` is informational only and never affects computation.
    """
    service_id: str
    service_name: str = ""
    can_perform: bool = True
    duration_override: int | None = None
    experience_level: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Skill":
        override = data.get("estimatedDuration")
        return cls(
            service_id=str(data["productId"]),
            service_name=data.get("productName", ""),
            can_perform=data.get("canPerform") is not False,
            duration_override=int(override) if override else None,
            experience_level=data.get("experienceLevel", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "productId": self.service_id,
            "productName": self.service_name,
            "canPerform": self.can_perform,
            "experienceLevel": self.experience_level,
        }
        if self.duration_override:
            data["estimatedDuration"] = self.duration_override
        return data


@dataclass
class StaffMember:
    """A service provider with a weekly schedule and a list of skills."""
    id: str
    tenant_id: str
    name: str
    email: str = ""
    position: str = ""
    is_active: bool = True
    skills: List[Skill] = field(default_factory=list)
    work_schedule: WorkSchedule | None = None

    def skill_for(self, service_id: str) -> Skill | None:
        """
        Return the skill declared for a service, if any.

        The first performable entry wins over earlier entries marked
        ``canPerform: false``; with none performable the first entry is returned.
        """
        declared = [skill for skill in self.skills if skill.service_id == service_id]
        for skill in declared:
            if skill.can_perform:
                return skill
        return declared[0] if declared else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], staff_id: str | None = None) -> "StaffMember":
        schedule = data.get("workSchedule")
        return cls(
            id=str(staff_id or data["id"]),
            tenant_id=data.get("enterpriseEmail", ""),
            name=data.get("name", ""),
            email=data.get("email", ""),
            position=data.get("position", ""),
            is_active=data.get("isActive") is not False,
            skills=[Skill.from_dict(item) for item in data.get("skills") or []],
            work_schedule=WorkSchedule.from_dict(schedule) if schedule else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "enterpriseEmail": self.tenant_id,
            "name": self.name,
            "email": self.email,
            "position": self.position,
            "isActive": self.is_active,
            "skills": [skill.to_dict() for skill in self.skills],
        }
        if self.work_schedule is not None:
            data["workSchedule"] = self.work_schedule.to_dict()
        return data


@dataclass(frozen=True)
class Service:
    """A catalog entry: base price and default duration in minutes."""
    id: str
    tenant_id: str
    name: str
    base_price: float
    base_duration: int
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any], tenant_id: str, service_id: str | None = None) -> "Service":
        return cls(
            id=str(service_id or data["id"]),
            tenant_id=tenant_id,
            name=data.get("name", ""),
            base_price=float(data.get("price", 0)),
            base_duration=int(data.get("duration", 0)),
            is_active=data.get("isActive") is not False,
        )


@dataclass(frozen=True)
class ClientInfo:
    """Client identity fields; opaque to the engine."""
    name: str
    phone: str
    email: str = ""
    notes: str = ""


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def occupies_time(self) -> bool:
        """Cancelled bookings never take part in overlap checks."""
        return self is not BookingStatus.CANCELLED


# action -> (allowed source statuses, target status)
BOOKING_TRANSITIONS = {
    "confirm": (frozenset({BookingStatus.PENDING}), BookingStatus.CONFIRMED),
    "cancel": (
        frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED}),
        BookingStatus.CANCELLED,
    ),
    "complete": (frozenset({BookingStatus.CONFIRMED}), BookingStatus.COMPLETED),
}


def next_status(current: BookingStatus, action: str) -> BookingStatus:
    """
    Resolve the status reached by applying ``action`` to ``current``.

    Raises:
        InvalidTransitionError: If the action is unknown or not allowed
    """
    if action not in BOOKING_TRANSITIONS:
        raise InvalidTransitionError(f"Unknown booking action '{action}'")
    allowed, target = BOOKING_TRANSITIONS[action]
    if current not in allowed:
        raise InvalidTransitionError(
            f"Cannot {action} a booking that is {current.value}"
        )
    return target


@dataclass
class Booking:
    """
    A persisted appointment.

    ``duration`` and ``end_time`` are frozen at creation time and never
    recomputed from the catalog or the staff member's skills.
    """
    tenant_id: str
    service_id: str
    date: Date
    start_time: time
    end_time: time
    duration: int
    client: ClientInfo
    status: BookingStatus = BookingStatus.PENDING
    id: str | None = None
    service_name: str = ""
    service_price: float = 0.0
    base_duration: int | None = None
    staff_id: str | None = None
    staff_name: str | None = None
    created_at: DateTime | None = None
    updated_at: DateTime | None = None

    @property
    def time_range(self) -> TimeRange:
        return TimeRange.on(self.date, self.start_time, self.end_time)

    @property
    def occupies_time(self) -> bool:
        return self.status.occupies_time

    def transition(self, action: str, now: DateTime | None = None) -> "Booking":
        """Return a copy of this booking after applying a status action."""
        return replace(
            self,
            status=next_status(self.status, action),
            updated_at=now or pendulum.now("UTC"),
        )

    def __str__(self) -> str:
        return (
            f"{self.id or '<new>'} {self.date.to_date_string()} "
            f"{format_clock(self.start_time)}-{format_clock(self.end_time)} ({self.status.value})"
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], booking_id: str | None = None) -> "Booking":
        start = parse_clock(data["startTime"])
        duration = data.get("actualDuration") or data.get("productDuration")
        if data.get("endTime"):
            end = parse_clock(data["endTime"])
        elif duration:
            end = shift_clock(start, int(duration))
        else:
            raise ValueError("Booking record needs an endTime or a duration")
        if not duration:
            duration = clock_to_minutes(end) - clock_to_minutes(start)
        base_duration = data.get("productDuration")
        return cls(
            id=booking_id or data.get("id"),
            tenant_id=data.get("enterpriseEmail", ""),
            service_id=str(data["productId"]),
            service_name=data.get("productName", ""),
            service_price=float(data.get("productPrice", 0)),
            base_duration=int(base_duration) if base_duration else None,
            date=parse_date(data["date"]),
            start_time=start,
            end_time=end,
            duration=int(duration),
            status=BookingStatus(data.get("status", BookingStatus.PENDING.value)),
            client=ClientInfo(
                name=data.get("clientName", ""),
                phone=data.get("clientPhone", ""),
                email=data.get("clientEmail", ""),
                notes=data.get("notes", ""),
            ),
            staff_id=data.get("employeeId") or None,
            staff_name=data.get("employeeName") or None,
            created_at=_optional_instant(data.get("createdAt")),
            updated_at=_optional_instant(data.get("updatedAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "enterpriseEmail": self.tenant_id,
            "productId": self.service_id,
            "productName": self.service_name,
            "productPrice": self.service_price,
            "productDuration": self.base_duration or self.duration,
            "actualDuration": self.duration,
            "date": self.date.to_date_string(),
            "startTime": format_clock(self.start_time),
            "endTime": format_clock(self.end_time),
            "status": self.status.value,
            "clientName": self.client.name,
            "clientPhone": self.client.phone,
        }
        if self.id:
            data["id"] = self.id
        if self.client.email:
            data["clientEmail"] = self.client.email
        if self.client.notes:
            data["notes"] = self.client.notes
        if self.staff_id:
            data["employeeId"] = self.staff_id
            data["employeeName"] = self.staff_name or ""
        if self.created_at is not None:
            data["createdAt"] = self.created_at.to_iso8601_string()
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at.to_iso8601_string()
        return data


@dataclass(frozen=True)
class BookingRequest:
    """Input of ``create_booking``; ``staff_id`` is optional."""
    service_id: str
    date: Date
    start_time: time
    client: ClientInfo
    staff_id: str | None = None

    @classmethod
    def build(
        cls,
        *,
        service_id: str,
        date: str | date_type,
        start_time: str | time,
        client: ClientInfo,
        staff_id: str | None = None,
    ) -> "BookingRequest":
        """Normalise string inputs into a request."""
        return cls(
            service_id=service_id,
            date=parse_date(date),
            start_time=parse_clock(start_time),
            client=client,
            staff_id=staff_id or None,
        )


@dataclass(frozen=True)
class AvailableSlot:
    """
    A bookable candidate; transient, never persisted.
    """
    time_range: TimeRange
    duration: int

    @property
    def label(self) -> str:
        return self.time_range.start.format("HH:mm")

    @property
    def end_label(self) -> str:
        return self.time_range.end.format("HH:mm")


@dataclass
class StaffAvailability:
    """Outcome of a point-in-time availability check for one staff member."""
    staff_id: str
    available: bool
    reason: str
    conflicting_booking: Booking | None = None
    suggested_times: List[str] = field(default_factory=list)


@dataclass
class TenantAvailability:
    """Outcome of a point-in-time check against a tenant's default schedule."""
    tenant_id: str
    available: bool
    reason: str
    conflicting_booking: Booking | None = None
    suggested_times: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class AvailableStaff:
    """A staff member able to take a service at the requested time."""
    staff_id: str
    name: str
    email: str
    position: str
    experience_level: str
    effective_duration: int
    base_duration: int
    price: float


@dataclass
class StaffServiceSlots:
    """Free start times of one staff member for one service on one date."""
    staff_id: str
    staff_name: str
    service_id: str
    date: Date
    price: float
    base_duration: int
    effective_duration: int
    experience_level: str
    slots: List[str] = field(default_factory=list)

