"""
Domain-specific exception hierarchy for the booking engine.

Domain code raises these; the orchestrator converts them into ``Rejected``
results at its boundary so no exception crosses the engine API.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Booking


class RejectionReason(str, Enum):
    """Machine-readable failure codes returned to the calling layer."""

    NOT_FOUND = "not_found"
    INACTIVE_RESOURCE = "inactive_resource"
    CAPABILITY_MISMATCH = "capability_mismatch"
    SCHEDULE_UNAVAILABLE = "schedule_unavailable"
    SCHEDULING_CONFLICT = "scheduling_conflict"
    INVALID_TRANSITION = "invalid_transition"
    UPSTREAM_FAILURE = "upstream_failure"
    INVALID_REQUEST = "invalid_request"


class BookingEngineError(Exception):
    """Base class for all engine-level errors."""

    reason: RejectionReason = RejectionReason.UPSTREAM_FAILURE


class NotFoundError(BookingEngineError):
    """Raised when a referenced tenant, staff member, service or booking does not exist."""

    reason = RejectionReason.NOT_FOUND


class InactiveResourceError(BookingEngineError):
    """Raised when a staff member exists but is marked inactive."""

    reason = RejectionReason.INACTIVE_RESOURCE


class CapabilityMismatchError(BookingEngineError):
    """Raised when a staff member cannot perform the requested service."""

    reason = RejectionReason.CAPABILITY_MISMATCH


class ScheduleUnavailableError(BookingEngineError):
    """Raised for non-working days, windows outside working hours or inside a break."""

    reason = RejectionReason.SCHEDULE_UNAVAILABLE


class SchedulingConflictError(BookingEngineError):
    """Raised when a requested window overlaps an existing non-cancelled booking."""

    reason = RejectionReason.SCHEDULING_CONFLICT

    def __init__(self, message: str, booking: "Booking") -> None:
        super().__init__(message)
        self.booking = booking


class InvalidTransitionError(BookingEngineError):
    """Raised when a booking status change is not allowed from its current status."""

    reason = RejectionReason.INVALID_TRANSITION


class InvalidRequestError(BookingEngineError):
    """Raised for malformed input such as an unparseable date or a non-positive duration."""

    reason = RejectionReason.INVALID_REQUEST


class StoreError(BookingEngineError):
    """Raised when a persistence collaborator fails (network or store error)."""

    reason = RejectionReason.UPSTREAM_FAILURE
