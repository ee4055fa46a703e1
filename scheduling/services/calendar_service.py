"""
iCalendar (RFC 5545) export of a single booking.

Customers download the event through their action token. Booking times are
business-local wall-clock values, so they are written with the business
TZID instead of being converted to UTC.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time

from sqlalchemy import select

from database.connection import get_async_session
from database.models import Booking, BookingStatus, Business, Service, StaffMember
from scheduling.services.token_service import resolve_action_token
from scheduling.tokens import ActionToken

logger = logging.getLogger(__name__)

PRODID = "-//Booking Scheduler//Booking//EN"

ICS_STATUS = {
    BookingStatus.PENDING: "TENTATIVE",
    BookingStatus.CONFIRMED: "CONFIRMED",
    BookingStatus.MODIFICATION_PENDING: "CONFIRMED",
    BookingStatus.CANCELLED: "CANCELLED",
}


@dataclass
class BookingCalendar:
    filename: str
    content: str


def escape_ical_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def format_local_timestamp(day: date, at: time) -> str:
    return datetime.combine(day, at).strftime("%Y%m%dT%H%M%S")


def build_ics_event(
    uid: str,
    booking_date: date,
    start_time: time,
    end_time: time,
    tzid: str,
    summary: str,
    description: str,
    location: str,
    status: str = "CONFIRMED",
    now: datetime | None = None,
) -> str:
    """Serialize one VEVENT inside a VCALENDAR with CRLF line endings."""
    dtstamp = (now or datetime.now(UTC)).astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART;TZID={tzid}:{format_local_timestamp(booking_date, start_time)}",
        f"DTEND;TZID={tzid}:{format_local_timestamp(booking_date, end_time)}",
        f"SUMMARY:{escape_ical_text(summary)}",
        f"DESCRIPTION:{escape_ical_text(description)}",
        f"LOCATION:{escape_ical_text(location)}",
        f"STATUS:{status}",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines) + "\r\n"


async def booking_calendar(action_token: str | ActionToken) -> BookingCalendar:
    """
    Calendar file for the booking behind an action token.

    Cancelled bookings are still exported, with STATUS:CANCELLED, so a
    calendar that imported the event can drop it.

    Raises:
        TokenError(not_found)
    """
    booking: Booking = await resolve_action_token(action_token)

    async with get_async_session() as session:
        service = await session.scalar(select(Service).where(Service.id == booking.service_id))
        business = await session.scalar(select(Business).where(Business.id == booking.business_id))
        staff_member = None
        if booking.staff_member_id is not None:
            staff_member = await session.scalar(
                select(StaffMember).where(StaffMember.id == booking.staff_member_id)
            )

    summary = f"{service.name} at {business.name}"
    description = f"Booking for {service.name}. Duration: {service.duration_minutes} minutes"
    if staff_member is not None:
        description += f"\nWith {staff_member.name}"

    content = build_ics_event(
        uid=f"{booking.id}@{business.slug}",
        booking_date=booking.booking_date,
        start_time=booking.start_time,
        end_time=booking.end_time,
        tzid=business.timezone,
        summary=summary,
        description=description,
        location=business.name,
        status=ICS_STATUS[BookingStatus(booking.status)],
    )

    logger.debug(f"Calendar file generated for booking {booking.id}")
    return BookingCalendar(filename=f"booking-{booking.id}.ics", content=content)
