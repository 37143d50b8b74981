"""
Application service composing the scheduling domain with the stores.

The orchestrator receives every collaborator through its constructor (stores,
resolver, generator, matcher, checker and cache) and exposes the engine's
operations. Each operation is a coroutine returning ``Ok`` or ``Rejected``;
domain errors never escape.

Suspension points are the store calls only. The availability check and the
write in ``create_booking`` are separate awaits with no lock in between, so
two concurrent requests for the same window can both succeed. Closing that
window (uniqueness constraint, optimistic concurrency) belongs to the store.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from datetime import date as date_type, time
from typing import Awaitable, Callable, List, Tuple, TypeVar

import pendulum
from pendulum import Date, DateTime

from ..config import EngineConfig
from ..domain.conflict_checker import ConflictChecker
from ..domain.exceptions import (
    BookingEngineError,
    InactiveResourceError,
    InvalidRequestError,
    NotFoundError,
    ScheduleUnavailableError,
    SchedulingConflictError,
    StoreError,
)
from ..domain.models import (
    AvailableStaff,
    Booking,
    BookingRequest,
    BookingStatus,
    DaySchedule,
    Service,
    StaffAvailability,
    StaffMember,
    StaffServiceSlots,
    TenantAvailability,
    TimeRange,
    WorkSchedule,
    format_clock,
    parse_clock,
    parse_date,
    shift_clock,
)
from ..domain.results import Ok, Rejected, Result
from ..domain.schedule_resolver import ScheduleResolver
from ..domain.skill_matcher import MatchedStaff, SkillMatcher
from ..domain.slot_generator import SlotGenerator
from .availability_cache import TENANT_SCOPE, AvailabilityCache
from .stores import BookingStore, ServiceCatalog, StaffStore, TenantDirectory

logger = logging.getLogger(__name__)

T = TypeVar("T")

AVAILABLE = "available"


def engine_operation(func: Callable[..., Awaitable[Ok[T]]]) -> Callable[..., Awaitable[Result[T]]]:
    """Convert engine errors raised inside an operation into ``Rejected`` results."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except BookingEngineError as exc:
            logger.info("%s rejected: %s: %s", func.__name__, exc.reason.value, exc)
            return Rejected.from_error(exc)
        except ValueError as exc:
            logger.info("%s rejected invalid input: %s", func.__name__, exc)
            return Rejected.from_error(InvalidRequestError(str(exc)))

    return wrapper


class BookingOrchestrator:
    """
    Lists availability and creates bookings for a tenant's staff.

    Dependency inversion toward the store protocols makes it easy to plug in
    the Firestore adapter or the in-memory store used by tests.
    """

    def __init__(
        self,
        *,
        staff_store: StaffStore,
        booking_store: BookingStore,
        service_catalog: ServiceCatalog,
        tenant_directory: TenantDirectory,
        config: EngineConfig | None = None,
        schedule_resolver: ScheduleResolver | None = None,
        slot_generator: SlotGenerator | None = None,
        skill_matcher: SkillMatcher | None = None,
        conflict_checker: ConflictChecker | None = None,
        cache: AvailabilityCache | None = None,
        now: Callable[[], DateTime] | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self._staff_store = staff_store
        self._booking_store = booking_store
        self._service_catalog = service_catalog
        self._tenant_directory = tenant_directory
        self._conflict_checker = conflict_checker or ConflictChecker()
        self._schedule_resolver = schedule_resolver or ScheduleResolver()
        self._slot_generator = slot_generator or SlotGenerator(
            granularity_minutes=self.config.slot_granularity_minutes,
            conflict_checker=self._conflict_checker,
        )
        self._skill_matcher = skill_matcher or SkillMatcher()
        self.cache = cache or AvailabilityCache(
            slot_ttl_seconds=self.config.slot_cache_ttl_seconds,
            roster_ttl_seconds=self.config.roster_cache_ttl_seconds,
        )
        self._now = now or (lambda: pendulum.now("UTC"))

    @classmethod
    def from_store(cls, store, config: EngineConfig | None = None, **kwargs) -> "BookingOrchestrator":
        """
        Build an orchestrator around a store bundle.

        The bundle exposes ``staff``, ``bookings``, ``services`` and
        ``tenants`` attributes implementing the matching protocols.
        """
        return cls(
            staff_store=store.staff,
            booking_store=store.bookings,
            service_catalog=store.services,
            tenant_directory=store.tenants,
            config=config,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Exposed operations
    # ------------------------------------------------------------------

    @engine_operation
    async def generate_time_slots(
        self,
        staff_id: str,
        day: str | date_type,
        duration: int,
    ) -> Ok[List[str]]:
        """
        Free ``HH:MM`` start times of a staff member for a service duration.

        A non-working day yields an empty list. Results are cached per
        tenant/staff/date/duration for the slot TTL.
        """
        target = parse_date(day)
        self._require_positive(duration)

        staff = await self._load_staff(staff_id)
        if not staff.is_active:
            raise InactiveResourceError(f"Staff member {staff.id} is not active")

        labels = await self._slot_labels(staff, target, duration)
        return Ok(list(labels))

    @engine_operation
    async def is_staff_available_at(
        self,
        staff_id: str,
        day: str | date_type,
        start_time: str | time,
        duration: int,
    ) -> Ok[StaffAvailability]:
        """
        Check one window ``[start_time, start_time + duration)`` for a staff member.

        Unavailable results carry the machine reason, the conflicting booking
        if there is one, and the nearest free start times as suggestions.
        """
        target = parse_date(day)
        start = parse_clock(start_time)
        self._require_positive(duration)

        staff = await self._load_staff(staff_id)
        if not staff.is_active:
            raise InactiveResourceError(f"Staff member {staff.id} is not active")

        availability = await self._check_staff_at(staff, target, start, duration)

        if not availability.available and self.config.suggestion_count:
            labels = await self._slot_labels(staff, target, duration)
            availability.suggested_times = SlotGenerator.nearest(
                labels, start, limit=self.config.suggestion_count
            )

        return Ok(availability)

    @engine_operation
    async def list_available_staff_for_service(
        self,
        tenant_id: str,
        service_id: str,
        day: str | date_type,
        start_time: str | time,
        duration: int | None = None,
    ) -> Ok[List[AvailableStaff]]:
        """
        Staff able to perform a service and free at the requested time.

        ``duration`` defaults to the service's base duration; a staff member's
        skill override still replaces it for that candidate. Candidates are
        checked concurrently; a candidate whose check fails is left out, and
        only when every candidate fails is the failure surfaced.
        """
        target = parse_date(day)
        start = parse_clock(start_time)
        if duration is not None:
            self._require_positive(duration)

        await self._require_tenant(tenant_id)
        service = await self._load_service(tenant_id, service_id)
        requested = duration or self._base_duration(service)

        candidates = await self._matched_roster(tenant_id, service_id)
        if not candidates:
            return Ok([])

        outcomes = await asyncio.gather(
            *(self._check_candidate(match, service, target, start, requested) for match in candidates),
            return_exceptions=True,
        )

        available: List[AvailableStaff] = []
        failures: List[BookingEngineError] = []

        for match, outcome in zip(candidates, outcomes):
            if isinstance(outcome, BookingEngineError):
                logger.warning("Skipping staff %s for service %s: %s", match.staff.id, service_id, outcome)
                failures.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome is not None:
                available.append(outcome)

        if failures and len(failures) == len(candidates):
            raise StoreError(
                f"Availability check failed for all {len(candidates)} candidates: {failures[0]}"
            )

        return Ok(available)

    @engine_operation
    async def staff_slots_for_service(
        self,
        tenant_id: str,
        staff_id: str,
        service_id: str,
        day: str | date_type,
    ) -> Ok[StaffServiceSlots]:
        """Free start times of one staff member for a service, using their own duration."""
        target = parse_date(day)

        await self._require_tenant(tenant_id)
        service = await self._load_service(tenant_id, service_id)
        staff = await self._load_staff(staff_id)
        self._require_same_tenant(staff, tenant_id)

        match = self._skill_matcher.require_capability(staff, service.id)
        base_duration = self._base_duration(service)
        effective = match.effective_duration(base_duration)
        labels = await self._slot_labels(staff, target, effective)

        return Ok(
            StaffServiceSlots(
                staff_id=staff.id,
                staff_name=staff.name,
                service_id=service.id,
                date=target,
                price=match.price_for(service),
                base_duration=base_duration,
                effective_duration=effective,
                experience_level=match.skill.experience_level,
                slots=list(labels),
            )
        )

    @engine_operation
    async def tenant_time_slots(
        self,
        tenant_id: str,
        day: str | date_type,
        duration: int,
    ) -> Ok[List[str]]:
        """
        Free start times on the tenant's default schedule, for bookings without a staff member.

        Every non-cancelled booking of the tenant on that date blocks its
        window, whoever it is assigned to. A tenant without a default
        schedule is rejected as ``schedule_unavailable``; a closed day yields
        an empty list.
        """
        target = parse_date(day)
        self._require_positive(duration)

        await self._require_tenant(tenant_id)
        schedule = await self._default_schedule(tenant_id)

        labels = await self._tenant_slot_labels(tenant_id, schedule, target, duration)
        return Ok(list(labels))

    @engine_operation
    async def is_tenant_slot_available(
        self,
        tenant_id: str,
        day: str | date_type,
        start_time: str | time,
        duration: int,
    ) -> Ok[TenantAvailability]:
        """Check one window against the tenant's default hours and all its bookings."""
        target = parse_date(day)
        start = parse_clock(start_time)
        self._require_positive(duration)

        await self._require_tenant(tenant_id)
        schedule = await self._default_schedule(tenant_id)

        try:
            candidate = self._candidate(target, start, duration)
            day_schedule = self._schedule_resolver.resolve_weekly(schedule, target)
            self._ensure_within_day(day_schedule, target, candidate, f"Tenant {tenant_id}")
            bookings = await self._booking_store.list_by_date(tenant_id, target)
            self._conflict_checker.ensure_free(candidate, bookings)
        except (SchedulingConflictError, ScheduleUnavailableError) as exc:
            availability = TenantAvailability(
                tenant_id=tenant_id,
                available=False,
                reason=exc.reason.value,
                conflicting_booking=getattr(exc, "booking", None),
            )
            if self.config.suggestion_count:
                labels = await self._tenant_slot_labels(tenant_id, schedule, target, duration)
                availability.suggested_times = SlotGenerator.nearest(
                    labels, start, limit=self.config.suggestion_count
                )
            return Ok(availability)

        return Ok(TenantAvailability(tenant_id=tenant_id, available=True, reason=AVAILABLE))

    @engine_operation
    async def create_booking(self, tenant_id: str, request: BookingRequest) -> Ok[Booking]:
        """
        Validate and persist a new ``pending`` booking.

        Steps:
        1. Tenant and service must exist
        2. With a staff member: active, capable, working and free at the window,
           checked against that staff member's live bookings
        3. Without a staff member: free against every live tenant booking that day
        4. Persist with frozen duration/end time and denormalised staff name
        """
        await self._require_tenant(tenant_id)
        service = await self._load_service(tenant_id, request.service_id)
        base_duration = self._base_duration(service)

        staff: StaffMember | None = None
        if request.staff_id:
            # Always a live read: the write must not depend on cached staff data
            staff = await self._load_staff(request.staff_id, use_cache=False)
            self._require_same_tenant(staff, tenant_id)
            match = self._skill_matcher.require_capability(staff, service.id)
            duration = match.effective_duration(base_duration)
            candidate = self._candidate(request.date, request.start_time, duration)
            self._ensure_within_schedule(staff, request.date, candidate)
            existing = await self._booking_store.list_by_staff_and_date(staff.id, request.date)
        else:
            duration = base_duration
            candidate = self._candidate(request.date, request.start_time, duration)
            existing = await self._booking_store.list_by_date(tenant_id, request.date)

        self._conflict_checker.ensure_free(candidate, existing)

        now = self._now()
        booking = Booking(
            tenant_id=tenant_id,
            service_id=service.id,
            service_name=service.name,
            service_price=service.base_price,
            base_duration=base_duration,
            date=request.date,
            start_time=request.start_time,
            end_time=shift_clock(request.start_time, duration),
            duration=duration,
            status=BookingStatus.PENDING,
            client=request.client,
            staff_id=staff.id if staff else None,
            staff_name=staff.name if staff else None,
            created_at=now,
            updated_at=now,
        )

        created = await self._booking_store.create(booking)
        self.cache.bookings_changed(tenant_id, request.date, created.staff_id)
        logger.info("Created booking %s for tenant %s", created.id, tenant_id)
        return Ok(created)

    @engine_operation
    async def confirm_booking(self, tenant_id: str, booking_id: str) -> Ok[Booking]:
        return Ok(await self._transition(tenant_id, booking_id, "confirm"))

    @engine_operation
    async def cancel_booking(self, tenant_id: str, booking_id: str) -> Ok[Booking]:
        """Cancel a pending or confirmed booking; its window becomes free again."""
        return Ok(await self._transition(tenant_id, booking_id, "cancel"))

    @engine_operation
    async def complete_booking(self, tenant_id: str, booking_id: str) -> Ok[Booking]:
        return Ok(await self._transition(tenant_id, booking_id, "complete"))

    @engine_operation
    async def list_bookings(
        self,
        tenant_id: str,
        day: str | date_type | None = None,
        status: BookingStatus | str | None = None,
    ) -> Ok[List[Booking]]:
        """
        Bookings of a tenant, optionally narrowed to one date and/or one status.

        Without a date every booking of the tenant is considered. Results are
        ordered by date, then start time.
        """
        target = parse_date(day) if day else None
        wanted = BookingStatus(status) if status else None

        await self._require_tenant(tenant_id)
        if target is not None:
            bookings = await self._booking_store.list_by_date(tenant_id, target)
        else:
            bookings = await self._booking_store.list_by_tenant(tenant_id, wanted)
        if wanted is not None:
            bookings = [booking for booking in bookings if booking.status is wanted]
        return Ok(sorted(bookings, key=lambda b: (b.date, b.start_time)))

    def staff_changed(self, tenant_id: str, staff_id: str | None = None) -> None:
        """Hook for external staff/skill writes; drops affected cache entries."""
        self.cache.staff_changed(tenant_id, staff_id)

    def schedule_changed(self, tenant_id: str) -> None:
        """Hook for external edits of a tenant's default schedule."""
        self.cache.schedule_changed(tenant_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _require_tenant(self, tenant_id: str) -> None:
        if not tenant_id or not await self._tenant_directory.exists(tenant_id):
            raise NotFoundError(f"Tenant '{tenant_id}' not found")

    async def _load_service(self, tenant_id: str, service_id: str) -> Service:
        service = await self._service_catalog.get_by_id(tenant_id, service_id)
        if service is None:
            raise NotFoundError(f"Service '{service_id}' not found")
        return service

    async def _load_staff(self, staff_id: str, use_cache: bool = True) -> StaffMember:
        async def fetch() -> StaffMember:
            staff = await self._staff_store.get_by_id(staff_id)
            if staff is None:
                raise NotFoundError(f"Staff member '{staff_id}' not found")
            return staff

        if not use_cache:
            return await fetch()
        return await self.cache.rosters.get_or_compute(self.cache.staff_key(staff_id), fetch)

    async def _matched_roster(self, tenant_id: str, service_id: str) -> Tuple[MatchedStaff, ...]:
        async def fetch() -> Tuple[MatchedStaff, ...]:
            roster = await self._staff_store.list_by_tenant(tenant_id)
            return tuple(self._skill_matcher.match(service_id, roster))

        return await self.cache.rosters.get_or_compute(
            self.cache.roster_key(tenant_id, service_id), fetch
        )

    async def _slot_labels(self, staff: StaffMember, day: Date, duration: int) -> Tuple[str, ...]:
        async def compute() -> Tuple[str, ...]:
            day_schedule = self._schedule_resolver.resolve(staff, day)
            if day_schedule is None:
                return ()
            bookings = await self._booking_store.list_by_staff_and_date(staff.id, day)
            return tuple(self._slot_generator.generate_labels(day_schedule, day, duration, bookings))

        key = self.cache.slot_key(staff.tenant_id, staff.id, day, duration)
        return await self.cache.slots.get_or_compute(key, compute)

    async def _default_schedule(self, tenant_id: str) -> WorkSchedule:
        async def fetch() -> WorkSchedule:
            schedule = await self._tenant_directory.default_schedule(tenant_id)
            if schedule is None:
                raise ScheduleUnavailableError(f"No default schedule configured for tenant {tenant_id}")
            return schedule

        return await self.cache.rosters.get_or_compute(self.cache.schedule_key(tenant_id), fetch)

    async def _tenant_slot_labels(
        self,
        tenant_id: str,
        schedule: WorkSchedule,
        day: Date,
        duration: int,
    ) -> Tuple[str, ...]:
        async def compute() -> Tuple[str, ...]:
            day_schedule = self._schedule_resolver.resolve_weekly(schedule, day)
            if day_schedule is None:
                return ()
            bookings = await self._booking_store.list_by_date(tenant_id, day)
            return tuple(self._slot_generator.generate_labels(day_schedule, day, duration, bookings))

        key = self.cache.slot_key(tenant_id, TENANT_SCOPE, day, duration)
        return await self.cache.slots.get_or_compute(key, compute)

    async def _check_staff_at(
        self,
        staff: StaffMember,
        day: Date,
        start: time,
        duration: int,
    ) -> StaffAvailability:
        try:
            candidate = self._candidate(day, start, duration)
            self._ensure_within_schedule(staff, day, candidate)
            bookings = await self._booking_store.list_by_staff_and_date(staff.id, day)
            self._conflict_checker.ensure_free(candidate, bookings)
        except SchedulingConflictError as exc:
            return StaffAvailability(
                staff_id=staff.id,
                available=False,
                reason=exc.reason.value,
                conflicting_booking=exc.booking,
            )
        except ScheduleUnavailableError as exc:
            return StaffAvailability(staff_id=staff.id, available=False, reason=exc.reason.value)

        return StaffAvailability(staff_id=staff.id, available=True, reason=AVAILABLE)

    async def _check_candidate(
        self,
        match: MatchedStaff,
        service: Service,
        day: Date,
        start: time,
        requested: int,
    ) -> AvailableStaff | None:
        effective = match.skill.duration_override or requested
        availability = await self._check_staff_at(match.staff, day, start, effective)
        if not availability.available:
            return None

        staff = match.staff
        return AvailableStaff(
            staff_id=staff.id,
            name=staff.name,
            email=staff.email,
            position=staff.position,
            experience_level=match.skill.experience_level,
            effective_duration=effective,
            base_duration=self._base_duration(service),
            price=match.price_for(service),
        )

    async def _transition(self, tenant_id: str, booking_id: str, action: str) -> Booking:
        booking = await self._booking_store.get_by_id(tenant_id, booking_id)
        if booking is None:
            raise NotFoundError(f"Booking '{booking_id}' not found")

        updated = booking.transition(action, now=self._now())
        await self._booking_store.update_status(tenant_id, booking_id, updated.status)
        self.cache.bookings_changed(tenant_id, booking.date, booking.staff_id)
        logger.info("Booking %s %s -> %s", booking_id, booking.status.value, updated.status.value)
        return updated

    def _ensure_within_schedule(self, staff: StaffMember, day: Date, candidate: TimeRange) -> None:
        day_schedule = self._schedule_resolver.resolve(staff, day)
        self._ensure_within_day(day_schedule, day, candidate, f"Staff member {staff.id}")

    @staticmethod
    def _ensure_within_day(
        day_schedule: DaySchedule | None,
        day: Date,
        candidate: TimeRange,
        owner: str,
    ) -> None:
        """
        Raises:
            ScheduleUnavailableError: Not working, outside hours, or inside the break
        """
        if day_schedule is None:
            raise ScheduleUnavailableError(f"{owner} does not work on {day.to_date_string()}")

        window = day_schedule.window_on(day)
        if not window.contains(candidate):
            raise ScheduleUnavailableError(f"{candidate} is outside working hours {window}")

        break_range = day_schedule.break_on(day)
        if break_range is not None and candidate.overlaps(break_range):
            raise ScheduleUnavailableError(f"{candidate} falls into the break {break_range}")

    @staticmethod
    def _candidate(day: Date, start: time, duration: int) -> TimeRange:
        try:
            end = shift_clock(start, duration)
        except ValueError as exc:
            raise ScheduleUnavailableError(str(exc)) from exc
        return TimeRange.on(day, start, end)

    def _base_duration(self, service: Service) -> int:
        if service.base_duration and service.base_duration > 0:
            return service.base_duration
        return self.config.default_service_duration

    @staticmethod
    def _require_same_tenant(staff: StaffMember, tenant_id: str) -> None:
        # Other tenants' staff must look exactly like missing staff
        if staff.tenant_id != tenant_id:
            raise NotFoundError(f"Staff member '{staff.id}' not found")

    @staticmethod
    def _require_positive(duration: int) -> None:
        if duration is None or duration <= 0:
            raise InvalidRequestError(f"Duration must be positive, got {duration}")


def describe(result: Result) -> str:
    """One-line machine-oriented summary of a result, used in logs and the CLI."""
    if isinstance(result, Rejected):
        suffix = ""
        if result.conflicting_booking is not None:
            booking = result.conflicting_booking
            suffix = (
                f" [booking {booking.id} {format_clock(booking.start_time)}"
                f"-{format_clock(booking.end_time)}]"
            )
        return f"{result.reason.value}: {result.detail}{suffix}"
    return "ok"
