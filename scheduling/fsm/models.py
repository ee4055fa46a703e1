"""
Data models for the booking state machine.

- BookingEvent: Enum of lifecycle events
- TransitionPayload: Event arguments (reason, target slot, minted token)
- TransitionResult: Result of applying an event to a booking
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any

from database.models import Booking, BookingStatus
from scheduling.errors import ConflictReason, TransitionErrorCode


class BookingEvent(str, Enum):
    """Events accepted by the booking state machine."""

    # Business-side
    CONFIRM = "confirm"
    PROPOSE_MODIFICATION = "propose_modification"
    DISCARD_MODIFICATION = "discard_modification"

    # Business or customer
    CANCEL = "cancel"

    # Customer-side (token holders)
    CONFIRM_MODIFICATION = "confirm_modification"
    RESCHEDULE = "reschedule"

    # Engine-internal: lazy expiry of an unconsumed proposal
    EXPIRE_MODIFICATION = "expire_modification"

    # Always permitted from any non-terminal state
    ADMIN_CANCEL = "admin_cancel"


@dataclass
class TransitionPayload:
    """
    Arguments for a transition.

    Attributes:
        reason: Cancellation or modification reason
        booking_date / start_time / end_time: Target slot (propose_modification, reschedule)
        modification_token: Token minted for propose_modification, or presented for confirm_modification
        expires_at: Expiry of the minted modification token
    """

    reason: str | None = None
    booking_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    modification_token: str | None = None
    expires_at: datetime | None = None


@dataclass
class TransitionResult:
    """
    Result of a booking transition.

    Attributes:
        success: Whether the event was applied
        booking: The booking after the attempt (unchanged on failure)
        event: Event that was attempted
        previous_status: Status before the attempt
        new_status: Status after the attempt
        error_code: invalid_transition / already_cancelled when the state machine rejected the event
        conflict: Conflict reason when a re-check of the target slot failed
        modification_token: Token issued by propose_modification
        message: Human-readable summary
    """

    success: bool
    booking: Booking | None = None
    event: BookingEvent | None = None
    previous_status: BookingStatus | None = None
    new_status: BookingStatus | None = None
    error_code: TransitionErrorCode | None = None
    conflict: ConflictReason | None = None
    modification_token: str | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "booking_id": str(self.booking.id) if self.booking is not None else None,
            "event": self.event.value if self.event else None,
            "previous_status": self.previous_status.value if self.previous_status else None,
            "new_status": self.new_status.value if self.new_status else None,
            "error_code": self.error_code.value if self.error_code else None,
            "conflict": self.conflict.value if self.conflict else None,
            "message": self.message,
        }
