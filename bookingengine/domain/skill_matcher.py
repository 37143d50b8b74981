"""
Match staff members against the service they are asked to perform.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from .exceptions import CapabilityMismatchError, InactiveResourceError
from .models import Service, Skill, StaffMember


@dataclass(frozen=True)
class MatchedStaff:
    """A staff member paired with the skill that qualifies them."""
    staff: StaffMember
    skill: Skill

    def effective_duration(self, base_duration: int) -> int:
        """Staff-specific override if declared, else the service default."""
        return self.skill.duration_override or base_duration

    @staticmethod
    def price_for(service: Service) -> float:
        # Price is uniform per service; per-staff multipliers are not applied.
        return service.base_price


def can_perform(skill: Skill | None) -> bool:
    return skill is not None and skill.can_perform is not False


class SkillMatcher:
    """Filters a tenant roster down to active staff able to perform a service."""

    def match(self, service_id: str, roster: Iterable[StaffMember]) -> List[MatchedStaff]:
        """
        Keep staff that are active and declare a performable skill for the service.

        Roster order is preserved.
        """
        matched: List[MatchedStaff] = []
        for staff in roster:
            if not staff.is_active:
                continue
            skill = staff.skill_for(service_id)
            if can_perform(skill):
                matched.append(MatchedStaff(staff=staff, skill=skill))
        return matched

    def require_capability(self, staff: StaffMember, service_id: str) -> MatchedStaff:
        """
        Validate a single staff member for a service.

        Raises:
            InactiveResourceError: If the staff member is inactive
            CapabilityMismatchError: If the skill is missing or marked as not performable
        """
        if not staff.is_active:
            raise InactiveResourceError(f"Staff member {staff.id} is not active")

        skill = staff.skill_for(service_id)
        if not can_perform(skill):
            raise CapabilityMismatchError(
                f"Staff member {staff.id} cannot perform service {service_id}"
            )
        return MatchedStaff(staff=staff, skill=skill)
