"""
Availability Resolver.

Merges recurring weekly rules with one-off blocked times into per-day open
intervals. PostgreSQL is the single source of truth; reads are lock-free and
go to the read replica when no session is supplied.

Resolution for one date and scope:
1. Select the weekly rule for the weekday. With a staff member only that
   member's rules count: no staff entry means unavailable (no fallback to
   business hours).
2. A closed rule (is_open=False) yields no intervals.
3. Subtract every blocked range touching the day. Business-wide blocks apply
   to every scope; staff blocks only to their staff member.

Usage:
    from scheduling.services.availability_service import resolve_availability

    days = await resolve_availability(
        business_id=uuid,
        start_date=date(2025, 6, 2),
        end_date=date(2025, 6, 8),
        staff_member_id=None,
    )
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_read_session
from database.models import AvailabilityRule, BlockedTime
from scheduling.intervals import Interval, clip_to_day, normalize, subtract, to_minutes
from scheduling.validators.booking_validators import validate_date_range
from shared.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayAvailability:
    """
    Resolved availability for one date and scope.

    Attributes:
        date: The calendar date
        intervals: Open intervals after blackout subtraction (minutes since midnight)
        base_intervals: Rule window before blackout subtraction
        blocked: Blackout ranges clipped to this date
        slot_duration_minutes: Slot granularity of the applicable rule
        max_bookings_per_slot: Capacity of the applicable rule
    """

    date: date
    intervals: list[Interval] = field(default_factory=list)
    base_intervals: list[Interval] = field(default_factory=list)
    blocked: list[Interval] = field(default_factory=list)
    slot_duration_minutes: int = 30
    max_bookings_per_slot: int = 1

    @property
    def is_open(self) -> bool:
        return bool(self.intervals)


def select_rule(
    rules: Sequence[AvailabilityRule],
    target_date: date,
    staff_member_id: UUID | None = None,
) -> AvailabilityRule | None:
    """
    Pick the weekly rule for a date within a scope.

    Only rules of the exact scope are considered: staff rules when a staff
    member is given, business rules (staff_member_id IS NULL) otherwise.
    """
    weekday = target_date.weekday()
    for rule in rules:
        if rule.day_of_week == weekday and rule.staff_member_id == staff_member_id:
            return rule
    return None


def blocks_for_scope(
    blocked_times: Sequence[BlockedTime],
    staff_member_id: UUID | None = None,
) -> list[BlockedTime]:
    """Business-wide blocks plus, for a staff scope, that member's own blocks."""
    return [
        b for b in blocked_times
        if b.staff_member_id is None or b.staff_member_id == staff_member_id
    ]


def resolve_day(
    target_date: date,
    rule: AvailabilityRule | None,
    blocked_times: Sequence[BlockedTime] = (),
) -> DayAvailability:
    """
    Resolve open intervals for a single date from its rule and blocks.

    Pure function: callers pass the rule already selected for the scope and
    the blocks already filtered to the scope.
    """
    settings = get_settings()
    if rule is None:
        return DayAvailability(
            date=target_date,
            slot_duration_minutes=settings.DEFAULT_SLOT_DURATION_MINUTES,
            max_bookings_per_slot=settings.DEFAULT_MAX_BOOKINGS_PER_SLOT,
        )

    if not rule.is_open:
        return DayAvailability(
            date=target_date,
            slot_duration_minutes=rule.slot_duration_minutes,
            max_bookings_per_slot=rule.max_bookings_per_slot,
        )

    start, end = to_minutes(rule.start_time), to_minutes(rule.end_time)
    if end <= start:
        # Overnight ranges are invalid configuration; rejected on write
        logger.warning(
            f"Skipping availability rule {rule.id} with end <= start "
            f"({rule.start_time} - {rule.end_time})",
            extra={"business_id": rule.business_id},
        )
        return DayAvailability(
            date=target_date,
            slot_duration_minutes=rule.slot_duration_minutes,
            max_bookings_per_slot=rule.max_bookings_per_slot,
        )

    base = [(start, end)]
    blocked = normalize(
        iv for iv in (clip_to_day(b.start_at, b.end_at, target_date) for b in blocked_times)
        if iv is not None
    )

    return DayAvailability(
        date=target_date,
        intervals=subtract(base, blocked),
        base_intervals=base,
        blocked=blocked,
        slot_duration_minutes=rule.slot_duration_minutes,
        max_bookings_per_slot=rule.max_bookings_per_slot,
    )


async def get_rules(
    session: AsyncSession,
    business_id: UUID,
    staff_member_id: UUID | None = None,
) -> list[AvailabilityRule]:
    """Weekly rules for exactly one scope."""
    scope_filter = (
        AvailabilityRule.staff_member_id == staff_member_id
        if staff_member_id is not None
        else AvailabilityRule.staff_member_id.is_(None)
    )
    result = await session.execute(
        select(AvailabilityRule)
        .where(and_(AvailabilityRule.business_id == business_id, scope_filter))
        .order_by(AvailabilityRule.day_of_week)
    )
    return list(result.scalars().all())


async def get_blocked_times(
    session: AsyncSession,
    business_id: UUID,
    start_date: date,
    end_date: date,
    staff_member_id: UUID | None = None,
) -> list[BlockedTime]:
    """Blocked ranges touching [start_date, end_date] that apply to the scope."""
    range_start = datetime.combine(start_date, time.min)
    range_end = datetime.combine(end_date + timedelta(days=1), time.min)

    scope_filter = BlockedTime.staff_member_id.is_(None)
    if staff_member_id is not None:
        scope_filter = or_(scope_filter, BlockedTime.staff_member_id == staff_member_id)

    result = await session.execute(
        select(BlockedTime).where(
            and_(
                BlockedTime.business_id == business_id,
                scope_filter,
                # Overlap check
                BlockedTime.start_at < range_end,
                BlockedTime.end_at > range_start,
            )
        )
    )
    return list(result.scalars().all())


async def resolve_availability(
    business_id: UUID,
    start_date: date,
    end_date: date,
    staff_member_id: UUID | None = None,
    session: Optional[AsyncSession] = None,
) -> list[DayAvailability]:
    """
    Resolve open intervals for every date in [start_date, end_date].

    Args:
        business_id: Business UUID
        start_date: First date (inclusive)
        end_date: Last date (inclusive)
        staff_member_id: Staff scope, or None for the business-wide pool
        session: Optional existing database session (the allocation path passes
            its locked primary session; otherwise the read replica is used)

    Returns:
        One DayAvailability per date, in date order

    Raises:
        BookingValidationError: If the date range is reversed or too long
    """
    validate_date_range(start_date, end_date, get_settings().MAX_SLOT_RANGE_DAYS)

    async def _fetch(sess: AsyncSession) -> list[DayAvailability]:
        rules = await get_rules(sess, business_id, staff_member_id)
        blocked_times = blocks_for_scope(
            await get_blocked_times(sess, business_id, start_date, end_date, staff_member_id),
            staff_member_id,
        )

        days = []
        current = start_date
        while current <= end_date:
            rule = select_rule(rules, current, staff_member_id)
            days.append(resolve_day(current, rule, blocked_times))
            current += timedelta(days=1)
        return days

    if session is not None:
        days = await _fetch(session)
    else:
        async with get_read_session() as sess:
            days = await _fetch(sess)

    logger.debug(
        f"Resolved availability for {len(days)} days "
        f"({sum(1 for d in days if d.is_open)} open)",
        extra={"business_id": business_id, "staff_member_id": staff_member_id},
    )
    return days
