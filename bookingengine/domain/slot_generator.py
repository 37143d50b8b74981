"""
Core business logic for generating bookable time slots.

Pure domain logic without any external dependencies (no store access, no I/O).
"""

from __future__ import annotations

from datetime import time
from typing import Iterable, List, Sequence

from pendulum import Date

from .models import AvailableSlot, Booking, DaySchedule, TimeRange, clock_to_minutes, parse_clock
from .conflict_checker import ConflictChecker

DEFAULT_GRANULARITY_MINUTES = 15


class SlotGenerator:
    """
    Generates the start times at which a service of a given duration fits.

    Algorithm:
    1. Take the working window for the day (none -> no slots)
    2. Walk candidate starts from window start to ``window end - duration``,
       stepping by the granularity
    3. Drop candidates intersecting the break window
    4. Drop candidates overlapping a non-cancelled booking
    5. Return the survivors in ascending order

    Granularity and duration are independent: a 45 minute service may start on
    any 15 minute boundary as long as all 45 minutes fit.
    """

    def __init__(
        self,
        granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
        conflict_checker: ConflictChecker | None = None,
    ):
        if granularity_minutes <= 0:
            raise ValueError("granularity_minutes must be greater than zero")
        self.granularity_minutes = granularity_minutes
        self.conflict_checker = conflict_checker or ConflictChecker()

    def generate(
        self,
        day_schedule: DaySchedule | None,
        day: Date,
        duration_minutes: int,
        bookings: Iterable[Booking] = (),
    ) -> List[AvailableSlot]:
        """
        Generate all free slots of ``duration_minutes`` on ``day``.

        Args:
            day_schedule: Resolved schedule for the day, or None if not working
            day: Calendar date the schedule applies to
            duration_minutes: Service duration
            bookings: Existing bookings of the staff member on that date

        Returns:
            Ordered list of AvailableSlot objects
        """
        if duration_minutes <= 0:
            raise ValueError(f"Service duration must be positive, got {duration_minutes}")

        if day_schedule is None:
            return []

        window = day_schedule.window_on(day)
        if window is None:
            return []

        break_range = day_schedule.break_on(day)
        busy = self.conflict_checker.occupied_ranges(bookings)

        slots: List[AvailableSlot] = []
        current = window.start
        last_start = window.end.subtract(minutes=duration_minutes)

        while current <= last_start:
            candidate = TimeRange(start=current, end=current.add(minutes=duration_minutes))

            if not self._hits_break(candidate, break_range) and not self._hits_busy(candidate, busy):
                slots.append(AvailableSlot(time_range=candidate, duration=duration_minutes))

            current = current.add(minutes=self.granularity_minutes)

        return slots

    def generate_labels(
        self,
        day_schedule: DaySchedule | None,
        day: Date,
        duration_minutes: int,
        bookings: Iterable[Booking] = (),
    ) -> List[str]:
        """Same as ``generate`` but formatted as ``HH:MM`` start times."""
        return [
            slot.label
            for slot in self.generate(day_schedule, day, duration_minutes, bookings)
        ]

    @staticmethod
    def nearest(labels: Sequence[str], requested: str | time, limit: int = 3) -> List[str]:
        """
        Pick the ``limit`` free start times closest to a requested time.

        Ties keep the earlier slot first.
        """
        target = clock_to_minutes(parse_clock(requested))
        ranked = sorted(
            labels,
            key=lambda label: (abs(clock_to_minutes(parse_clock(label)) - target), label),
        )
        return ranked[:limit]

    @staticmethod
    def _hits_break(candidate: TimeRange, break_range: TimeRange | None) -> bool:
        # any non-empty intersection with the break counts
        if break_range is None:
            return False
        return candidate.overlaps(break_range)

    @staticmethod
    def _hits_busy(candidate: TimeRange, busy: List[TimeRange]) -> bool:
        for busy_range in busy:
            if busy_range.start >= candidate.end:
                break
            if candidate.overlaps(busy_range):
                return True
        return False
