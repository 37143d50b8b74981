"""
Resolve a staff member's working window for a calendar day.
"""

from __future__ import annotations

from datetime import date as date_type

from .models import DaySchedule, StaffMember, TimeRange, WorkSchedule, parse_date


class ScheduleResolver:
    """
    Maps a target date onto the staff member's weekly schedule.

    A day without hours is a normal outcome (``None``), never an error: the
    schedule may be missing, the weekday absent, flagged as not working, or
    lacking a start or end time.
    """

    def resolve(self, staff: StaffMember, day: str | date_type) -> DaySchedule | None:
        """
        Return the ``DaySchedule`` in effect on ``day`` or ``None`` if not working.

        Args:
            staff: Staff member whose schedule is consulted
            day: Calendar date (``YYYY-MM-DD`` or a date object)
        """
        return self.resolve_weekly(staff.work_schedule, day)

    def resolve_weekly(self, schedule: WorkSchedule | None, day: str | date_type) -> DaySchedule | None:
        """Same lookup for any weekly schedule, such as a tenant's default hours."""
        if schedule is None:
            return None

        target = parse_date(day)
        day_schedule = schedule.for_weekday(target.weekday())

        if day_schedule is None or not day_schedule.has_hours():
            return None

        return day_schedule

    def working_window(self, staff: StaffMember, day: str | date_type) -> TimeRange | None:
        day_schedule = self.resolve(staff, day)
        if day_schedule is None:
            return None
        return day_schedule.window_on(parse_date(day))

    def break_window(self, staff: StaffMember, day: str | date_type) -> TimeRange | None:
        day_schedule = self.resolve(staff, day)
        if day_schedule is None:
            return None
        return day_schedule.break_on(parse_date(day))

