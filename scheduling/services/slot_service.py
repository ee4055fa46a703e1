"""
Slot Generator.

Discretizes resolved open intervals into bookable slots annotated with
remaining capacity. Slots step by the rule's slot granularity (not the
service duration) from each interval start, and a slot is emitted only when
the whole service fits before the interval ends.

Reads are lock-free and use the read replica: a stale slot can only be
rejected later by the allocator, never double-booked.
"""

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date, time
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_read_session
from scheduling.intervals import Interval, from_minutes
from scheduling.services.availability_service import DayAvailability, resolve_availability
from scheduling.validators.booking_validators import (
    get_bookable_service,
    get_bookable_staff_member,
)
from scheduling.validators.conflict_checker import (
    booking_interval,
    count_overlapping,
    get_active_bookings,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slot:
    """A bookable start time with the capacity left at that time."""

    date: date
    start_time: time
    end_time: time
    remaining_capacity: int
    staff_member_id: UUID | None = None

    @property
    def available(self) -> bool:
        return self.remaining_capacity > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "remaining_capacity": self.remaining_capacity,
            "available": self.available,
            "staff_member_id": str(self.staff_member_id) if self.staff_member_id else None,
        }


def generate_slots(
    day: DayAvailability,
    service_duration_minutes: int,
    bookings: Sequence[Interval] = (),
    staff_member_id: UUID | None = None,
) -> Iterator[Slot]:
    """
    Lazily yield slots for one resolved day.

    Args:
        day: Resolved availability for the date
        service_duration_minutes: Length of the service being booked
        bookings: Active booking intervals in the same scope on that date
        staff_member_id: Scope stamped onto each slot

    Yields:
        Slot for every granularity step whose service fits inside the interval
    """
    step = day.slot_duration_minutes
    for interval_start, interval_end in day.intervals:
        cursor = interval_start
        while cursor + service_duration_minutes <= interval_end:
            candidate = (cursor, cursor + service_duration_minutes)
            remaining = day.max_bookings_per_slot - count_overlapping(candidate, bookings)
            yield Slot(
                date=day.date,
                start_time=from_minutes(candidate[0]),
                end_time=from_minutes(candidate[1]),
                remaining_capacity=max(remaining, 0),
                staff_member_id=staff_member_id,
            )
            cursor += step


async def list_slots(
    business_id: UUID,
    service_id: UUID,
    start_date: date,
    end_date: date,
    staff_member_id: UUID | None = None,
    only_available: bool = False,
    session: Optional[AsyncSession] = None,
) -> list[Slot]:
    """
    List slots for a service over a date range.

    Args:
        business_id: Business UUID
        service_id: Service to book (its duration sizes each slot)
        start_date: First date (inclusive)
        end_date: Last date (inclusive)
        staff_member_id: Staff scope, or None for the business pool
        only_available: Drop slots with no remaining capacity
        session: Optional existing database session

    Returns:
        Slots in chronological order. Full slots are included (marked
        unavailable) unless only_available is set.

    Raises:
        EntityNotFoundError: Unknown service or staff member
        BookingValidationError: Inactive service, staff not offering it, bad date range
    """

    async def _fetch(sess: AsyncSession) -> list[Slot]:
        service = await get_bookable_service(sess, business_id, service_id)
        if staff_member_id is not None:
            await get_bookable_staff_member(sess, business_id, staff_member_id, service_id)

        days = await resolve_availability(
            business_id, start_date, end_date, staff_member_id, session=sess
        )
        bookings = await get_active_bookings(
            sess, business_id, start_date, end_date, staff_member_id
        )
        by_date: dict[date, list[Interval]] = {}
        for booking in bookings:
            by_date.setdefault(booking.booking_date, []).append(booking_interval(booking))

        slots = []
        for day in days:
            for slot in generate_slots(
                day, service.duration_minutes, by_date.get(day.date, []), staff_member_id
            ):
                if only_available and not slot.available:
                    continue
                slots.append(slot)
        return slots

    if session is not None:
        slots = await _fetch(session)
    else:
        async with get_read_session() as sess:
            slots = await _fetch(sess)

    logger.info(
        f"Listed {len(slots)} slots for {start_date} - {end_date}",
        extra={
            "business_id": business_id,
            "service_id": service_id,
            "staff_member_id": staff_member_id,
        },
    )
    return slots
