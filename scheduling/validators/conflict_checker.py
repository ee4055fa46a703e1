"""
Conflict Checker.

Decides whether a candidate booking fits a scope's schedule. Checks run in
order and short-circuit on the first failure:

1. Candidate lies inside the rule window for the scope and date
   -> else OUTSIDE_AVAILABILITY
2. Candidate does not intersect any blocked range for the scope
   -> else BLOCKED
3. Overlapping active bookings in the same scope are below capacity
   -> else SLOT_FULL

Capacity is counted per exact scope: bookings with a staff member count
against that member, bookings without one count against the business pool.

Conflicts are expected outcomes: they are returned, and logged at INFO.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, time
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import ACTIVE_BOOKING_STATUSES, Booking
from scheduling.errors import ConflictReason
from scheduling.intervals import Interval, contains, overlaps, to_minutes
from scheduling.services.availability_service import DayAvailability, resolve_availability

logger = logging.getLogger(__name__)


@dataclass
class ConflictCheckResult:
    """
    Result of a conflict check.

    Attributes:
        reason: OK or the first failing check
        overlapping_bookings: Active bookings in scope overlapping the candidate
        capacity: max_bookings_per_slot of the applicable rule
    """

    reason: ConflictReason
    overlapping_bookings: int = 0
    capacity: int = 0

    @property
    def ok(self) -> bool:
        return self.reason == ConflictReason.OK


def booking_interval(booking: Booking) -> Interval:
    return (to_minutes(booking.start_time), to_minutes(booking.end_time))


def count_overlapping(candidate: Interval, bookings: Sequence[Interval]) -> int:
    return sum(1 for b in bookings if overlaps(candidate, b))


def evaluate_candidate(
    day: DayAvailability,
    candidate: Interval,
    overlapping_bookings: int,
) -> ConflictReason:
    """Pure ordered evaluation of the three checks."""
    if not contains(day.base_intervals, candidate):
        return ConflictReason.OUTSIDE_AVAILABILITY
    if any(overlaps(candidate, blocked) for blocked in day.blocked):
        return ConflictReason.BLOCKED
    if overlapping_bookings >= day.max_bookings_per_slot:
        return ConflictReason.SLOT_FULL
    return ConflictReason.OK


async def get_active_bookings(
    session: AsyncSession,
    business_id: UUID,
    start_date: date,
    end_date: date,
    staff_member_id: UUID | None = None,
    exclude_booking_id: UUID | None = None,
) -> list[Booking]:
    """
    Active bookings (pending, confirmed, modification_pending) in one scope.

    A modification-pending booking is matched on its original slot; its
    proposal holds no capacity until confirmed.
    """
    scope_filter = (
        Booking.staff_member_id == staff_member_id
        if staff_member_id is not None
        else Booking.staff_member_id.is_(None)
    )
    conditions = [
        Booking.business_id == business_id,
        scope_filter,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.booking_date >= start_date,
        Booking.booking_date <= end_date,
    ]
    if exclude_booking_id is not None:
        conditions.append(Booking.id != exclude_booking_id)

    result = await session.execute(
        select(Booking).where(and_(*conditions)).order_by(Booking.booking_date, Booking.start_time)
    )
    return list(result.scalars().all())


async def check_conflict(
    session: AsyncSession,
    business_id: UUID,
    booking_date: date,
    start_time: time,
    end_time: time,
    staff_member_id: UUID | None = None,
    exclude_booking_id: UUID | None = None,
) -> ConflictCheckResult:
    """
    Check a candidate booking against availability, blocks and capacity.

    Must be called on the primary session that holds the schedule lock when
    used on a write path, so the count reflects committed competitors.

    Args:
        session: Database session
        business_id: Business UUID
        booking_date: Candidate date
        start_time: Candidate start
        end_time: Candidate end
        staff_member_id: Staff scope, or None for the business pool
        exclude_booking_id: Booking being moved, excluded from its own count

    Returns:
        ConflictCheckResult
    """
    day = (
        await resolve_availability(
            business_id, booking_date, booking_date, staff_member_id, session=session
        )
    )[0]
    candidate = (to_minutes(start_time), to_minutes(end_time))

    bookings = await get_active_bookings(
        session,
        business_id,
        booking_date,
        booking_date,
        staff_member_id,
        exclude_booking_id=exclude_booking_id,
    )
    overlapping = count_overlapping(candidate, [booking_interval(b) for b in bookings])
    reason = evaluate_candidate(day, candidate, overlapping)

    if reason != ConflictReason.OK:
        logger.info(
            f"Conflict for {booking_date} {start_time:%H:%M}-{end_time:%H:%M}: {reason.value}",
            extra={
                "business_id": business_id,
                "staff_member_id": staff_member_id,
                "reason": reason.value,
            },
        )

    return ConflictCheckResult(
        reason=reason,
        overlapping_bookings=overlapping,
        capacity=day.max_bookings_per_slot,
    )
