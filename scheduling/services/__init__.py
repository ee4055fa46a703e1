"""
Scheduling services module.

Services:
- availability_service: Weekly rules + blocked times -> per-day open intervals
- slot_service: Open intervals -> bookable slots with remaining capacity
- token_service: Action / modification token resolution and ledger
- transition_service: Booking lifecycle transitions against the database
- self_service: Token-driven customer confirm / cancel / reschedule
- schedule_config_service: Availability rule and blocked time management
- booking_query_service: Read-only lookups
- catalog_service: Service, staff and capability set management
- calendar_service: iCalendar export of a booking
- notification_service: Fire-and-forget lifecycle notifications
"""

from scheduling.services.availability_service import (
    DayAvailability,
    resolve_availability,
    resolve_day,
)

__all__ = [
    # Availability resolver
    "DayAvailability",
    "resolve_availability",
    "resolve_day",
]
