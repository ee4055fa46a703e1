"""
Booking validators.

Checks that must pass before a booking is written:
- booking_validators: malformed ranges, unknown/inactive services and staff
- conflict_checker: availability, blocked times and capacity (typed result)
"""

from scheduling.validators.booking_validators import (
    compute_end_time,
    get_bookable_service,
    get_bookable_staff_member,
    validate_customer,
    validate_date_range,
    validate_time_range,
)

__all__ = [
    "compute_end_time",
    "get_bookable_service",
    "get_bookable_staff_member",
    "validate_customer",
    "validate_date_range",
    "validate_time_range",
]
