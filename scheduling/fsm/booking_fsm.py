"""
BookingFSM - Finite State Machine for the booking lifecycle.

The FSM owns the transition table and the field-level effects of each
event on a Booking row. It performs no I/O: locking, conflict re-checks,
token ledger updates and notifications belong to the transition service.

States: pending, confirmed, modification_pending, cancelled (terminal).
"""

import logging
from datetime import UTC, datetime
from typing import ClassVar

from database.models import Booking, BookingStatus
from scheduling.errors import (
    BookingValidationError,
    TransitionError,
    TransitionErrorCode,
)
from scheduling.fsm.models import BookingEvent, TransitionPayload

logger = logging.getLogger(__name__)


class BookingFSM:
    """
    State machine wrapping a single Booking.

    Example:
        >>> fsm = BookingFSM(booking)           # booking.status == PENDING
        >>> fsm.apply(BookingEvent.CONFIRM)
        <BookingStatus.CONFIRMED: 'confirmed'>
    """

    # Valid transitions: from_state -> {event: to_state}
    TRANSITIONS: ClassVar[dict[BookingStatus, dict[BookingEvent, BookingStatus]]] = {
        BookingStatus.PENDING: {
            BookingEvent.CONFIRM: BookingStatus.CONFIRMED,
            BookingEvent.CANCEL: BookingStatus.CANCELLED,
            BookingEvent.RESCHEDULE: BookingStatus.PENDING,
            BookingEvent.ADMIN_CANCEL: BookingStatus.CANCELLED,
        },
        BookingStatus.CONFIRMED: {
            BookingEvent.CANCEL: BookingStatus.CANCELLED,
            BookingEvent.PROPOSE_MODIFICATION: BookingStatus.MODIFICATION_PENDING,
            BookingEvent.RESCHEDULE: BookingStatus.CONFIRMED,
            BookingEvent.ADMIN_CANCEL: BookingStatus.CANCELLED,
        },
        BookingStatus.MODIFICATION_PENDING: {
            BookingEvent.CONFIRM_MODIFICATION: BookingStatus.CONFIRMED,
            # Re-proposing replaces the outstanding proposal and revokes its token
            BookingEvent.PROPOSE_MODIFICATION: BookingStatus.MODIFICATION_PENDING,
            BookingEvent.DISCARD_MODIFICATION: BookingStatus.CONFIRMED,
            BookingEvent.EXPIRE_MODIFICATION: BookingStatus.CONFIRMED,
            BookingEvent.ADMIN_CANCEL: BookingStatus.CANCELLED,
        },
        BookingStatus.CANCELLED: {},  # Terminal
    }

    CANCEL_EVENTS: ClassVar[frozenset[BookingEvent]] = frozenset(
        {BookingEvent.CANCEL, BookingEvent.ADMIN_CANCEL}
    )

    # Events whose target slot must pass the conflict checker before apply()
    SLOT_CHANGING_EVENTS: ClassVar[frozenset[BookingEvent]] = frozenset(
        {BookingEvent.CONFIRM_MODIFICATION, BookingEvent.RESCHEDULE}
    )

    def __init__(self, booking: Booking) -> None:
        self._booking = booking

    @property
    def booking(self) -> Booking:
        return self._booking

    @property
    def state(self) -> BookingStatus:
        return BookingStatus(self._booking.status)

    @classmethod
    def target_state(cls, state: BookingStatus, event: BookingEvent) -> BookingStatus:
        """
        Look up the destination state for an event.

        Raises:
            TransitionError(already_cancelled): cancel / admin_cancel on a cancelled booking
            TransitionError(invalid_transition): any other event not in the table
        """
        if state == BookingStatus.CANCELLED and event in cls.CANCEL_EVENTS:
            raise TransitionError(TransitionErrorCode.ALREADY_CANCELLED, state, event)

        target = cls.TRANSITIONS.get(state, {}).get(event)
        if target is None:
            raise TransitionError(TransitionErrorCode.INVALID_TRANSITION, state, event)
        return target

    def apply(
        self,
        event: BookingEvent,
        payload: TransitionPayload | None = None,
        now: datetime | None = None,
    ) -> BookingStatus:
        """
        Apply an event to the wrapped booking, mutating its fields.

        Args:
            event: Event to apply
            payload: Event arguments (required for propose_modification and reschedule)
            now: Clock override for cancelled_at

        Returns:
            The new status

        Raises:
            TransitionError: If the event is not valid from the current state
            BookingValidationError: If a required payload field is missing
        """
        payload = payload or TransitionPayload()
        now = now or datetime.now(UTC)
        booking = self._booking
        previous = self.state
        target = self.target_state(previous, event)

        if event in self.CANCEL_EVENTS:
            booking.cancellation_reason = payload.reason
            booking.cancelled_at = now
            self._clear_proposal()

        elif event == BookingEvent.PROPOSE_MODIFICATION:
            if not (payload.booking_date and payload.start_time and payload.end_time):
                raise BookingValidationError("A proposed date, start and end time are required")
            if not (payload.modification_token and payload.expires_at):
                raise BookingValidationError("A modification token and expiry are required")
            booking.proposed_booking_date = payload.booking_date
            booking.proposed_start_time = payload.start_time
            booking.proposed_end_time = payload.end_time
            booking.modification_reason = payload.reason
            booking.modification_token = payload.modification_token
            booking.modification_token_expires_at = payload.expires_at

        elif event == BookingEvent.CONFIRM_MODIFICATION:
            booking.booking_date = booking.proposed_booking_date
            booking.start_time = booking.proposed_start_time
            booking.end_time = booking.proposed_end_time
            self._clear_proposal()

        elif event in (BookingEvent.DISCARD_MODIFICATION, BookingEvent.EXPIRE_MODIFICATION):
            self._clear_proposal()

        elif event == BookingEvent.RESCHEDULE:
            if not (payload.booking_date and payload.start_time and payload.end_time):
                raise BookingValidationError("A new date, start and end time are required")
            booking.booking_date = payload.booking_date
            booking.start_time = payload.start_time
            booking.end_time = payload.end_time

        booking.status = target

        logger.info(
            f"Booking transition: {previous.value} --[{event.value}]--> {target.value}",
            extra={"booking_id": booking.id, "event": event.value},
        )
        return target

    def _clear_proposal(self) -> None:
        booking = self._booking
        booking.proposed_booking_date = None
        booking.proposed_start_time = None
        booking.proposed_end_time = None
        booking.modification_reason = None
        booking.modification_token = None
        booking.modification_token_expires_at = None
