"""
Booking Allocator.

BookingAllocator.allocate() is the single entry point for creating bookings.
Within one database transaction it:

1. Validates the service, staff member and time range (raises on bad input)
2. Locks the (business, scope, date) schedule bucket (SELECT ... FOR UPDATE)
3. Re-runs the conflict checker against committed bookings
4. Inserts the booking with its permanent customer action token

Two allocations competing for the last unit of capacity are serialized on
the bucket lock: the second one sees the first one's booking and receives
SLOT_FULL as a normal result, not an exception.

Notifications are dispatched AFTER commit (fire-and-forget).
"""

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from database.connection import get_async_session
from database.models import Booking, BookingStatus, Customer, NotificationType
from scheduling.errors import CONFLICT_MESSAGES, ConflictReason
from scheduling.services.notification_service import dispatch_booking_notification
from scheduling.tokens import ActionToken
from scheduling.transactions.schedule_lock import lock_schedule_bucket
from scheduling.validators.booking_validators import (
    compute_end_time,
    get_bookable_service,
    get_bookable_staff_member,
    validate_customer,
    validate_time_range,
)
from scheduling.validators.conflict_checker import check_conflict

logger = logging.getLogger(__name__)


@dataclass
class CustomerDetails:
    """Customer identity captured on the booking."""

    name: str
    email: str
    phone: str | None = None
    notes: str | None = None
    customer_id: UUID | None = None


@dataclass
class AllocationResult:
    """
    Result of an allocation attempt.

    Attributes:
        success: True when a booking was created
        booking: The created booking
        reason: OK, or the conflict checker's reason unchanged
        message: Human-readable summary
    """

    success: bool
    booking: Booking | None = None
    reason: ConflictReason = ConflictReason.OK
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "booking_id": str(self.booking.id) if self.booking is not None else None,
            "reason": self.reason.value,
            "message": self.message,
        }


class BookingAllocator:
    """Atomic slot allocation."""

    @staticmethod
    async def allocate(
        business_id: UUID,
        service_id: UUID,
        customer: CustomerDetails,
        booking_date: date,
        start_time: time,
        end_time: time | None = None,
        staff_member_id: UUID | None = None,
    ) -> AllocationResult:
        """
        Reserve a slot and create a booking.

        Args:
            business_id: Already-authorized business UUID
            service_id: Service to book
            customer: Customer identity
            booking_date: Local date
            start_time: Local start time
            end_time: Local end time (defaults to start + service duration)
            staff_member_id: Staff scope, or None for the business pool

        Returns:
            AllocationResult. On conflict, reason carries the checker's result.

        Raises:
            BookingValidationError: Malformed range, inactive service, invalid staff
            EntityNotFoundError: Unknown service or staff member

        Example:
            >>> result = await BookingAllocator.allocate(
            ...     business_id=UUID("..."),
            ...     service_id=UUID("..."),
            ...     customer=CustomerDetails(name="Ana", email="ana@example.com"),
            ...     booking_date=date(2025, 6, 2),
            ...     start_time=time(9, 0),
            ... )
            >>> result.reason
            <ConflictReason.OK: 'ok'>
        """
        trace_id = f"{business_id}_{booking_date.isoformat()}_{start_time:%H%M}"
        logger.info(
            f"[{trace_id}] Starting allocation",
            extra={
                "business_id": business_id,
                "service_id": service_id,
                "staff_member_id": staff_member_id,
            },
        )

        customer_email = validate_customer(customer.name, customer.email)

        async with get_async_session() as session:
            try:
                # Step 1: Validate references before touching any lock
                service = await get_bookable_service(session, business_id, service_id)
                if staff_member_id is not None:
                    await get_bookable_staff_member(
                        session, business_id, staff_member_id, service_id
                    )

                resolved_end = end_time or compute_end_time(start_time, service.duration_minutes)
                validate_time_range(start_time, resolved_end)

                # Step 2: Serialize competing writers on this bucket
                await lock_schedule_bucket(session, business_id, staff_member_id, booking_date)

                # Step 3: Re-check under the lock
                check = await check_conflict(
                    session,
                    business_id,
                    booking_date,
                    start_time,
                    resolved_end,
                    staff_member_id=staff_member_id,
                )
                if not check.ok:
                    await session.rollback()
                    logger.info(
                        f"[{trace_id}] Allocation rejected: {check.reason.value}",
                        extra={"business_id": business_id, "reason": check.reason.value},
                    )
                    return AllocationResult(
                        success=False,
                        reason=check.reason,
                        message=CONFLICT_MESSAGES[check.reason],
                    )

                # Step 4: Link a known customer by email
                customer_id = customer.customer_id
                if customer_id is None:
                    customer_result = await session.execute(
                        select(Customer.id).where(Customer.email == customer_email)
                    )
                    customer_id = customer_result.scalar_one_or_none()

                status = (
                    BookingStatus.PENDING
                    if service.requires_confirmation
                    else BookingStatus.CONFIRMED
                )
                booking = Booking(
                    business_id=business_id,
                    service_id=service_id,
                    staff_member_id=staff_member_id,
                    customer_id=customer_id,
                    customer_name=customer.name.strip(),
                    customer_email=customer_email,
                    customer_phone=customer.phone,
                    customer_notes=customer.notes,
                    booking_date=booking_date,
                    start_time=start_time,
                    end_time=resolved_end,
                    status=status,
                    customer_action_token=str(ActionToken.mint()),
                )
                session.add(booking)
                await session.flush()

                await session.commit()
                await session.refresh(booking)

                logger.info(
                    f"[{trace_id}] Booking committed ({status.value})",
                    extra={"business_id": business_id, "booking_id": booking.id},
                )

            except SQLAlchemyError as e:
                logger.error(
                    f"[{trace_id}] Database error during allocation: {e}",
                    exc_info=True,
                )
                await session.rollback()
                raise

        # Fire-and-forget: failures never undo the booking
        await dispatch_booking_notification(booking, NotificationType.BOOKING_CREATED)

        return AllocationResult(
            success=True,
            booking=booking,
            reason=ConflictReason.OK,
            message="Booking created",
        )
