"""
Tests for interval overlap and conflict detection.
"""

import pendulum
import pytest
from datetime import time

from bookingengine.domain.conflict_checker import ConflictChecker, overlaps
from bookingengine.domain.exceptions import SchedulingConflictError
from bookingengine.domain.models import BookingStatus, TimeRange

from conftest import make_booking

DAY = pendulum.date(2024, 11, 25)


def at(hour, minute=0):
    return pendulum.naive(2024, 11, 25, hour, minute)


def window(start, end):
    return TimeRange.on(DAY, time(*start), time(*end))


class TestOverlaps:
    """Properties of the half-open overlap rule."""

    @pytest.mark.parametrize(
        "a,b",
        [
            ((9, 10), (9, 10)),
            ((9, 11), (10, 12)),
            ((9, 12), (10, 11)),
            ((10, 11), (9, 12)),
        ],
    )
    def test_intersecting_ranges_overlap_symmetrically(self, a, b):
        assert overlaps(at(a[0]), at(a[1]), at(b[0]), at(b[1]))
        assert overlaps(at(b[0]), at(b[1]), at(a[0]), at(a[1]))

    def test_touching_ranges_do_not_overlap(self):
        """[09:00, 10:00) and [10:00, 11:00) share no instant."""
        assert not overlaps(at(9), at(10), at(10), at(11))
        assert not overlaps(at(10), at(11), at(9), at(10))

    def test_disjoint_ranges(self):
        assert not overlaps(at(9), at(10), at(14), at(15))

    def test_non_empty_range_overlaps_itself(self):
        assert overlaps(at(9, 15), at(9, 30), at(9, 15), at(9, 30))


class TestConflictChecker:
    """Tests for ConflictChecker."""

    def test_detects_conflict_and_returns_booking(self):
        """A confirmed 14:00-14:30 booking blocks 14:15-14:45."""
        existing = make_booking(start="14:00", duration=30, booking_id="bk-1")
        checker = ConflictChecker()

        conflict = checker.find_conflict(window((14, 15), (14, 45)), [existing])

        assert conflict is existing

    def test_cancelled_bookings_are_ignored(self):
        existing = make_booking(start="14:00", duration=30, status=BookingStatus.CANCELLED)

        assert ConflictChecker().find_conflict(window((14, 0), (14, 30)), [existing]) is None

    def test_back_to_back_is_free(self):
        existing = make_booking(start="14:00", duration=30)

        assert ConflictChecker().find_conflict(window((14, 30), (15, 0)), [existing]) is None
        assert ConflictChecker().find_conflict(window((13, 30), (14, 0)), [existing]) is None

    def test_first_conflict_in_start_order(self):
        late = make_booking(start="11:00", duration=60, booking_id="late")
        early = make_booking(start="10:00", duration=30, booking_id="early")

        conflict = ConflictChecker().find_conflict(window((10, 0), (12, 0)), [late, early])

        assert conflict.id == "early"

    def test_ensure_free_raises_with_booking(self):
        existing = make_booking(start="14:00", duration=30, booking_id="bk-1")

        with pytest.raises(SchedulingConflictError) as exc_info:
            ConflictChecker().ensure_free(window((14, 15), (14, 45)), [existing])

        assert exc_info.value.booking.id == "bk-1"

    def test_occupied_ranges_sorted_without_cancelled(self):
        bookings = [
            make_booking(start="15:00"),
            make_booking(start="09:00", status=BookingStatus.CANCELLED),
            make_booking(start="10:00", status=BookingStatus.PENDING),
        ]

        ranges = ConflictChecker.occupied_ranges(bookings)

        assert [str(r) for r in ranges] == ["10:00 - 10:30", "15:00 - 15:30"]
