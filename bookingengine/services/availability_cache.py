"""
Process-local cache for generated slot lists, rosters and staff records.

The cache is a strict optimisation: losing it only costs latency. Writes
always re-check live booking data, so a stale entry can never let a
conflicting booking through.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Generic, Optional, TypeVar

from pendulum import Date

logger = logging.getLogger(__name__)

V = TypeVar("V")

# Stands in for the staff id in slot keys computed from a tenant's default hours
TENANT_SCOPE = "*"

Clock = Callable[[], float]


@dataclass
class CacheEntry(Generic[V]):
    value: V
    stored_at: float


class TTLCache(Generic[V]):
    """
    Key-value store whose entries expire a fixed number of seconds after insertion.

    Single-threaded asyncio access only; guard with a lock before sharing
    an instance across threads.
    """

    def __init__(self, ttl_seconds: float, clock: Clock = time.monotonic, name: str = "cache"):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be greater than zero")
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: Dict[str, CacheEntry[V]] = {}
        # Bumped by every invalidation; a computation that straddles one is not stored
        self.generation = 0

    def _live_entry(self, key: str) -> CacheEntry[V] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at < self.ttl_seconds:
            return entry
        del self._entries[key]
        return None

    def get(self, key: str, default: Optional[V] = None) -> Optional[V]:
        """Return a live value or ``default``; expired entries are evicted."""
        entry = self._live_entry(key)
        return entry.value if entry is not None else default

    def set(self, key: str, value: V) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    async def get_or_compute(self, key: str, compute: Callable[[], Awaitable[V]]) -> V:
        """
        Return the cached value for ``key`` or compute, store and return it.

        Exceptions raised by ``compute`` propagate and nothing is stored. A
        value whose computation overlapped an invalidation is returned but
        not stored.
        """
        entry = self._live_entry(key)
        if entry is not None:
            logger.debug("%s hit: %s", self.name, key)
            return entry.value

        logger.debug("%s miss: %s", self.name, key)
        generation = self.generation
        value = await compute()
        if generation == self.generation:
            self.set(key, value)
        else:
            logger.debug("%s skipped stale store: %s", self.name, key)
        return value

    def invalidate(self, key: str) -> bool:
        self.generation += 1
        return self._entries.pop(key, None) is not None

    def invalidate_matching(self, predicate: Callable[[str], bool]) -> int:
        """Drop every key accepted by ``predicate``; returns the number dropped."""
        self.generation += 1
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug("%s invalidated %d entries", self.name, len(doomed))
        return len(doomed)

    def invalidate_prefix(self, prefix: str) -> int:
        return self.invalidate_matching(lambda key: key.startswith(prefix))

    def clear(self) -> None:
        self.generation += 1
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def __len__(self) -> int:
        return len(self._entries)


class AvailabilityCache:
    """
    Two cache classes with their own TTLs.

    Slot lists change with every booking and expire quickly; rosters and
    staff records change less often and live longer. Invalidation is coarse
    (tenant or staff scoped) rather than a per-key diff.
    """

    def __init__(
        self,
        slot_ttl_seconds: float = 120,
        roster_ttl_seconds: float = 300,
        clock: Clock = time.monotonic,
    ):
        self.slots: TTLCache = TTLCache(slot_ttl_seconds, clock=clock, name="slots")
        self.rosters: TTLCache = TTLCache(roster_ttl_seconds, clock=clock, name="rosters")

    @staticmethod
    def slot_key(tenant_id: str, staff_id: str, day: Date, duration: int) -> str:
        return f"slots:{tenant_id}:{staff_id}:{day.to_date_string()}:{duration}"

    @staticmethod
    def roster_key(tenant_id: str, service_id: str) -> str:
        return f"roster:{tenant_id}:{service_id}"

    @staticmethod
    def staff_key(staff_id: str) -> str:
        return f"staff:{staff_id}"

    @staticmethod
    def schedule_key(tenant_id: str) -> str:
        return f"schedule:{tenant_id}"

    def staff_changed(self, tenant_id: str, staff_id: str | None = None) -> None:
        """
        React to a staff create/update/delete or a skill add/remove.

        Drops all of the tenant's rosters and, for a specific staff member,
        their record and every slot list computed for them.
        """
        self.rosters.invalidate_prefix(f"roster:{tenant_id}:")
        if staff_id:
            self.rosters.invalidate(self.staff_key(staff_id))
            self.slots.invalidate_prefix(f"slots:{tenant_id}:{staff_id}:")

    def bookings_changed(self, tenant_id: str, day: Date, staff_id: str | None = None) -> None:
        """
        React to a booking being created or changing status.

        Without a staff member every slot list of the tenant for that date goes.
        """
        if staff_id:
            # Tenant-wide slot lists count every booking of the tenant
            for scope in (staff_id, TENANT_SCOPE):
                self.slots.invalidate_prefix(f"slots:{tenant_id}:{scope}:{day.to_date_string()}:")
            return

        tenant_prefix = f"slots:{tenant_id}:"
        day_marker = f":{day.to_date_string()}:"
        self.slots.invalidate_matching(
            lambda key: key.startswith(tenant_prefix) and day_marker in key
        )

    def schedule_changed(self, tenant_id: str) -> None:
        """React to an edit of the tenant's default schedule."""
        self.rosters.invalidate(self.schedule_key(tenant_id))
        self.slots.invalidate_prefix(f"slots:{tenant_id}:{TENANT_SCOPE}:")

    def clear(self) -> None:
        self.slots.clear()
        self.rosters.clear()
