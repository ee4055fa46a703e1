"""
Booking query service - Read-only lookups for the public and business surfaces.

- get_business_by_slug: public booking page entry point
- list_bookable_services / list_bookable_staff: what a customer can choose
- list_bookings: business calendar view
- get_booking: single booking of a business

No state management and no database modifications; all reads go to the
read replica when one is configured.
"""

import logging
from datetime import date
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.orm import selectinload

from database.connection import get_read_session
from database.models import (
    Booking,
    BookingStatus,
    Business,
    Service,
    StaffMember,
    staff_member_services,
)
from scheduling.errors import EntityNotFoundError
from scheduling.validators.booking_validators import validate_date_range
from shared.config import get_settings

logger = logging.getLogger(__name__)


async def get_business_by_slug(slug: str) -> Business:
    """
    Raises:
        EntityNotFoundError: No business with this slug
    """
    async with get_read_session() as session:
        business = await session.scalar(select(Business).where(Business.slug == slug))
    if business is None:
        raise EntityNotFoundError("Business", slug)
    return business


async def list_bookable_services(business_id: UUID) -> list[Service]:
    """Active services of a business, by name."""
    async with get_read_session() as session:
        result = await session.execute(
            select(Service)
            .where(and_(Service.business_id == business_id, Service.is_active.is_(True)))
            .order_by(Service.name)
        )
        return list(result.scalars().all())


async def list_bookable_staff(
    business_id: UUID,
    service_id: UUID | None = None,
) -> list[StaffMember]:
    """Active staff members of a business, optionally only those offering a service."""
    stmt = select(StaffMember).where(
        and_(StaffMember.business_id == business_id, StaffMember.is_active.is_(True))
    )
    if service_id is not None:
        stmt = stmt.join(
            staff_member_services,
            staff_member_services.c.staff_member_id == StaffMember.id,
        ).where(staff_member_services.c.service_id == service_id)

    async with get_read_session() as session:
        result = await session.execute(stmt.order_by(StaffMember.name))
        return list(result.scalars().all())


async def list_bookings(
    business_id: UUID,
    start_date: date,
    end_date: date,
    status: BookingStatus | None = None,
    staff_member_id: UUID | None = None,
) -> list[Booking]:
    """
    Bookings of a business in a date range, chronologically.

    Cancelled bookings are included unless a status filter excludes them;
    the calendar keeps them as an audit trail.
    """
    validate_date_range(start_date, end_date, get_settings().MAX_SLOT_RANGE_DAYS)

    conditions = [
        Booking.business_id == business_id,
        Booking.booking_date >= start_date,
        Booking.booking_date <= end_date,
    ]
    if status is not None:
        conditions.append(Booking.status == status)
    if staff_member_id is not None:
        conditions.append(Booking.staff_member_id == staff_member_id)

    async with get_read_session() as session:
        result = await session.execute(
            select(Booking)
            .options(selectinload(Booking.service))
            .where(and_(*conditions))
            .order_by(Booking.booking_date, Booking.start_time)
        )
        bookings = list(result.scalars().all())

    logger.debug(
        f"Found {len(bookings)} bookings between {start_date} and {end_date}",
        extra={"business_id": business_id},
    )
    return bookings


async def get_booking(business_id: UUID, booking_id: UUID) -> Booking:
    """
    Raises:
        EntityNotFoundError: Unknown booking or booking of another business
    """
    async with get_read_session() as session:
        booking = await session.scalar(
            select(Booking)
            .options(selectinload(Booking.service))
            .where(and_(Booking.id == booking_id, Booking.business_id == business_id))
        )
    if booking is None:
        raise EntityNotFoundError("Booking", booking_id)
    return booking
