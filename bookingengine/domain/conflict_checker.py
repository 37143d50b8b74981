"""
Interval-overlap checks between candidate windows and existing bookings.
"""

from __future__ import annotations

from typing import Iterable, List

from pendulum import DateTime

from .exceptions import SchedulingConflictError
from .models import Booking, TimeRange, format_clock


def overlaps(
    candidate_start: DateTime,
    candidate_end: DateTime,
    existing_start: DateTime,
    existing_end: DateTime,
) -> bool:
    """
    Half-open interval overlap.

    A booking ending at 10:00 does not conflict with one starting at 10:00.
    """
    return candidate_start < existing_end and candidate_end > existing_start


class ConflictChecker:
    """
    Finds the first non-cancelled booking overlapping a candidate window.

    Callers choose the booking set: one staff member's bookings for the date,
    or every tenant booking for the date when no staff member is involved.
    """

    @staticmethod
    def occupied_ranges(bookings: Iterable[Booking]) -> List[TimeRange]:
        """Time ranges held by non-cancelled bookings, sorted by start."""
        return sorted(
            (booking.time_range for booking in bookings if booking.occupies_time),
            key=lambda r: r.start,
        )

    def find_conflict(self, candidate: TimeRange, bookings: Iterable[Booking]) -> Booking | None:
        active = sorted(
            (booking for booking in bookings if booking.occupies_time),
            key=lambda b: b.start_time,
        )
        for booking in active:
            existing = booking.time_range
            if overlaps(candidate.start, candidate.end, existing.start, existing.end):
                return booking
        return None

    def ensure_free(self, candidate: TimeRange, bookings: Iterable[Booking]) -> None:
        """
        Raises:
            SchedulingConflictError: With the first conflicting booking attached
        """
        conflict = self.find_conflict(candidate, bookings)
        if conflict is not None:
            raise SchedulingConflictError(
                f"{candidate} overlaps booking {conflict.id} "
                f"({format_clock(conflict.start_time)}-{format_clock(conflict.end_time)})",
                booking=conflict,
            )
