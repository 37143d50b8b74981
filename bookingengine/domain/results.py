"""
Tagged results returned across the engine boundary.

Every public orchestrator operation returns either ``Ok`` carrying a value or
``Rejected`` carrying a machine-readable reason. Presentation is left to the
calling layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from .exceptions import BookingEngineError, RejectionReason, SchedulingConflictError
from .models import Booking

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    detail: str = ""
    conflicting_booking: Booking | None = None

    @property
    def ok(self) -> bool:
        return False

    @property
    def retryable(self) -> bool:
        """Only upstream failures may be retried, and only by idempotent readers."""
        return self.reason is RejectionReason.UPSTREAM_FAILURE

    @classmethod
    def from_error(cls, error: BookingEngineError) -> "Rejected":
        booking = error.booking if isinstance(error, SchedulingConflictError) else None
        return cls(reason=error.reason, detail=str(error), conflicting_booking=booking)


Result = Union[Ok[T], Rejected]
