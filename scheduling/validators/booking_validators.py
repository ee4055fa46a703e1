"""
Input validation for booking requests.

Everything here runs before the conflict checker: malformed ranges,
unknown or inactive services, staff members that do not belong to the
business or do not offer the service.

- validate_time_range: end strictly after start (no overnight wrap)
- validate_date_range: ordered and bounded date ranges for slot listing
- compute_end_time: start + duration, rejecting ranges that cross midnight
- validate_customer: required customer identity fields, normalized email
- get_bookable_service: active service of the business
- get_bookable_staff_member: active staff member offering the service
"""

import logging
from datetime import date, datetime, time, timedelta
from uuid import UUID

from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Service, StaffMember, staff_member_services
from scheduling.errors import BookingValidationError, EntityNotFoundError

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


def validate_time_range(start_time: time, end_time: time, field: str = "end_time") -> None:
    """
    Validate a same-day [start, end) range.

    Raises:
        BookingValidationError: If end is not strictly after start
    """
    if end_time <= start_time:
        raise BookingValidationError(
            f"End time {end_time:%H:%M} must be after start time {start_time:%H:%M}",
            field=field,
        )


def validate_date_range(start_date: date, end_date: date, max_days: int) -> None:
    """
    Validate an inclusive date range used for availability queries.

    Raises:
        BookingValidationError: If the range is reversed or longer than max_days
    """
    if end_date < start_date:
        raise BookingValidationError("end_date must not be before start_date", field="end_date")
    span = (end_date - start_date).days + 1
    if span > max_days:
        raise BookingValidationError(
            f"Date range too long ({span} days, max {max_days})", field="end_date"
        )


def compute_end_time(start_time: time, duration_minutes: int) -> time:
    """
    Compute the end of a booking from its start and duration.

    Raises:
        BookingValidationError: If the booking would end after midnight
    """
    start = datetime.combine(date.min, start_time)
    end = start + timedelta(minutes=duration_minutes)
    if end.date() != start.date():
        raise BookingValidationError(
            "Booking cannot extend past midnight", field="start_time"
        )
    return end.time()


def validate_customer(name: str | None, email: str | None) -> str:
    """
    Check the customer identity and return the normalized email.

    The email is lowercased so the stored booking and the customer lookup
    agree on one value.

    Raises:
        BookingValidationError: Missing name, missing or malformed email
    """
    if not name or not name.strip():
        raise BookingValidationError("Customer name is required", field="customer_name")
    if not email:
        raise BookingValidationError("A valid customer email is required", field="customer_email")
    try:
        normalized = _email_adapter.validate_python(email.strip())
    except ValidationError:
        raise BookingValidationError(
            "A valid customer email is required", field="customer_email"
        )
    return normalized.lower()


async def get_bookable_service(
    session: AsyncSession,
    business_id: UUID,
    service_id: UUID,
) -> Service:
    """
    Load an active service belonging to the business.

    Raises:
        EntityNotFoundError: Unknown service or service of another business
        BookingValidationError: Service is inactive
    """
    result = await session.execute(
        select(Service).where(
            and_(Service.id == service_id, Service.business_id == business_id)
        )
    )
    service = result.scalar_one_or_none()

    if service is None:
        raise EntityNotFoundError("Service", service_id)
    if not service.is_active:
        raise BookingValidationError("Service is not currently offered", field="service_id")
    return service


async def get_bookable_staff_member(
    session: AsyncSession,
    business_id: UUID,
    staff_member_id: UUID,
    service_id: UUID | None = None,
) -> StaffMember:
    """
    Load an active staff member of the business, optionally checking the service capability.

    Raises:
        EntityNotFoundError: Unknown staff member or member of another business
        BookingValidationError: Staff member inactive or does not offer the service
    """
    result = await session.execute(
        select(StaffMember).where(
            and_(StaffMember.id == staff_member_id, StaffMember.business_id == business_id)
        )
    )
    staff_member = result.scalar_one_or_none()

    if staff_member is None:
        raise EntityNotFoundError("Staff member", staff_member_id)
    if not staff_member.is_active:
        raise BookingValidationError("Staff member is not available", field="staff_member_id")

    if service_id is not None:
        capability = await session.execute(
            select(staff_member_services.c.service_id).where(
                and_(
                    staff_member_services.c.staff_member_id == staff_member_id,
                    staff_member_services.c.service_id == service_id,
                )
            )
        )
        if capability.first() is None:
            logger.info(
                f"Staff member {staff_member_id} does not offer service {service_id}",
                extra={"business_id": business_id},
            )
            raise BookingValidationError(
                "Staff member does not offer this service", field="staff_member_id"
            )

    return staff_member
