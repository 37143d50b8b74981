"""
Service layer helpers that orchestrate stores, cache and domain logic.
"""

from .availability_cache import AvailabilityCache, TTLCache
from .booking_orchestrator import BookingOrchestrator, describe
from .stores import BookingStore, ServiceCatalog, StaffStore, TenantDirectory

__all__ = [
    "AvailabilityCache",
    "BookingOrchestrator",
    "BookingStore",
    "ServiceCatalog",
    "StaffStore",
    "TTLCache",
    "TenantDirectory",
    "describe",
]
