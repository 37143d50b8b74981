"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .conflict_checker import ConflictChecker, overlaps
from .exceptions import (
    BookingEngineError,
    CapabilityMismatchError,
    InactiveResourceError,
    InvalidRequestError,
    InvalidTransitionError,
    NotFoundError,
    RejectionReason,
    ScheduleUnavailableError,
    SchedulingConflictError,
    StoreError,
)
from .models import (
    AvailableSlot,
    AvailableStaff,
    Booking,
    BookingRequest,
    BookingStatus,
    ClientInfo,
    DaySchedule,
    Service,
    Skill,
    StaffAvailability,
    StaffMember,
    StaffServiceSlots,
    TenantAvailability,
    TimeRange,
    WorkSchedule,
)
from .results import Ok, Rejected, Result
from .schedule_resolver import ScheduleResolver
from .skill_matcher import MatchedStaff, SkillMatcher
from .slot_generator import SlotGenerator

__all__ = [
    "AvailableSlot",
    "AvailableStaff",
    "Booking",
    "BookingEngineError",
    "BookingRequest",
    "BookingStatus",
    "CapabilityMismatchError",
    "ClientInfo",
    "ConflictChecker",
    "DaySchedule",
    "InactiveResourceError",
    "InvalidRequestError",
    "InvalidTransitionError",
    "MatchedStaff",
    "NotFoundError",
    "Ok",
    "Rejected",
    "RejectionReason",
    "Result",
    "ScheduleResolver",
    "ScheduleUnavailableError",
    "SchedulingConflictError",
    "Service",
    "Skill",
    "SkillMatcher",
    "SlotGenerator",
    "StaffAvailability",
    "StaffMember",
    "StaffServiceSlots",
    "StoreError",
    "TenantAvailability",
    "TimeRange",
    "WorkSchedule",
    "overlaps",
]
