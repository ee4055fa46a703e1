"""
Booking transition service.

Drives the BookingFSM against the database. Every transition runs in one
transaction on the primary:

1. Lock the booking row (SELECT ... FOR UPDATE)
2. For confirm_modification: lock and validate the modification token
3. For slot-changing events (confirm_modification, reschedule): lock the
   target schedule bucket and re-run the conflict checker, excluding the
   booking itself
4. Apply the event, update the token ledger, commit
5. Notify (fire-and-forget, after commit)

Rejected events come back as TransitionResult values (error_code or
conflict set); only malformed input and token failures raise.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_async_session
from database.models import Booking, BookingStatus, IssuedModificationToken, NotificationType, Service
from scheduling.errors import (
    CONFLICT_MESSAGES,
    TRANSITION_ERROR_MESSAGES,
    BookingValidationError,
    EntityNotFoundError,
    TransitionError,
    TransitionErrorCode,
)
from scheduling.fsm.booking_fsm import BookingFSM
from scheduling.fsm.models import BookingEvent, TransitionPayload, TransitionResult
from scheduling.services import token_service
from scheduling.services.notification_service import dispatch_booking_notification
from scheduling.tokens import ModificationToken
from scheduling.transactions.schedule_lock import lock_schedule_bucket
from scheduling.validators.booking_validators import compute_end_time, validate_time_range
from scheduling.validators.conflict_checker import check_conflict

logger = logging.getLogger(__name__)

NOTIFICATION_FOR_EVENT: dict[BookingEvent, NotificationType] = {
    BookingEvent.CONFIRM: NotificationType.BOOKING_CONFIRMED,
    BookingEvent.CANCEL: NotificationType.BOOKING_CANCELLED,
    BookingEvent.ADMIN_CANCEL: NotificationType.BOOKING_CANCELLED,
    BookingEvent.PROPOSE_MODIFICATION: NotificationType.MODIFICATION_PROPOSED,
    BookingEvent.CONFIRM_MODIFICATION: NotificationType.MODIFICATION_ACCEPTED,
    BookingEvent.DISCARD_MODIFICATION: NotificationType.MODIFICATION_DISCARDED,
    BookingEvent.EXPIRE_MODIFICATION: NotificationType.MODIFICATION_DISCARDED,
    BookingEvent.RESCHEDULE: NotificationType.BOOKING_RESCHEDULED,
}

BookingLoader = Callable[[AsyncSession], Awaitable[Booking]]


def coerce_event(event: BookingEvent | str) -> BookingEvent:
    """
    Raises:
        TransitionError(invalid_transition): Unknown event name
    """
    try:
        return BookingEvent(event)
    except ValueError:
        raise TransitionError(TransitionErrorCode.INVALID_TRANSITION, event=event) from None


async def lock_booking(
    session: AsyncSession,
    booking_id: UUID,
    business_id: UUID | None = None,
) -> Booking:
    """
    Load a booking with a row lock, scoped to the business when given.

    Raises:
        EntityNotFoundError: Unknown booking or booking of another business
    """
    conditions = [Booking.id == booking_id]
    if business_id is not None:
        conditions.append(Booking.business_id == business_id)

    result = await session.execute(
        select(Booking)
        .where(and_(*conditions))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise EntityNotFoundError("Booking", booking_id)
    return booking


async def _resolve_target_slot(
    session: AsyncSession,
    booking: Booking,
    payload: TransitionPayload,
) -> TransitionPayload:
    """Validate a requested slot, defaulting the end to start + service duration."""
    if payload.booking_date is None or payload.start_time is None:
        raise BookingValidationError("A date and start time are required", field="start_time")

    end_time = payload.end_time
    if end_time is None:
        duration = await session.scalar(
            select(Service.duration_minutes).where(Service.id == booking.service_id)
        )
        end_time = compute_end_time(payload.start_time, duration)
    validate_time_range(payload.start_time, end_time)
    return replace(payload, end_time=end_time)


def _rejected(
    booking: Booking,
    event: BookingEvent,
    error: TransitionError,
) -> TransitionResult:
    return TransitionResult(
        success=False,
        booking=booking,
        event=event,
        previous_status=booking.status,
        new_status=booking.status,
        error_code=error.code,
        message=error.user_message,
    )


async def apply_transition(
    session: AsyncSession,
    booking: Booking,
    event: BookingEvent,
    payload: TransitionPayload | None = None,
    grant: IssuedModificationToken | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """
    Apply an event to a locked booking inside the caller's transaction.

    Does not commit. For confirm_modification the caller passes the locked,
    validated modification token (grant); it is marked used whether or not
    the proposed slot is still free.
    """
    payload = payload or TransitionPayload()
    now = now or datetime.now(UTC)
    previous = BookingStatus(booking.status)

    try:
        BookingFSM.target_state(previous, event)
    except TransitionError as e:
        logger.info(
            f"Transition rejected: {e.code.value}",
            extra={"booking_id": booking.id, "event": event.value, "reason": e.code.value},
        )
        return _rejected(booking, event, e)

    issued_token = None

    if event == BookingEvent.PROPOSE_MODIFICATION:
        payload = await _resolve_target_slot(session, booking, payload)
        if previous == BookingStatus.MODIFICATION_PENDING:
            await token_service.revoke_outstanding_grants(
                session, booking.id, token_service.REVOKE_SUPERSEDED, now
            )
        new_grant = await token_service.issue_modification_grant(
            session, booking, payload.booking_date, payload.start_time, payload.end_time, now
        )
        issued_token = new_grant.token
        payload = replace(
            payload, modification_token=new_grant.token, expires_at=new_grant.expires_at
        )

    elif event in BookingFSM.SLOT_CHANGING_EVENTS:
        if event == BookingEvent.CONFIRM_MODIFICATION:
            if grant is None:
                raise BookingValidationError("A modification token is required")
            target_date = booking.proposed_booking_date
            target_start = booking.proposed_start_time
            target_end = booking.proposed_end_time
            # Single use: consumed by this attempt even if the slot is gone
            grant.used_at = now
        else:
            payload = await _resolve_target_slot(session, booking, payload)
            target_date, target_start, target_end = (
                payload.booking_date,
                payload.start_time,
                payload.end_time,
            )

        await lock_schedule_bucket(session, booking.business_id, booking.staff_member_id, target_date)
        check = await check_conflict(
            session,
            booking.business_id,
            target_date,
            target_start,
            target_end,
            staff_member_id=booking.staff_member_id,
            exclude_booking_id=booking.id,
        )
        if not check.ok:
            return TransitionResult(
                success=False,
                booking=booking,
                event=event,
                previous_status=previous,
                new_status=previous,
                conflict=check.reason,
                message=CONFLICT_MESSAGES[check.reason],
            )

    new_status = BookingFSM(booking).apply(event, payload, now)

    # Leaving modification_pending by any other path revokes the outstanding token
    if previous == BookingStatus.MODIFICATION_PENDING and event not in (
        BookingEvent.PROPOSE_MODIFICATION,
        BookingEvent.CONFIRM_MODIFICATION,
    ):
        await token_service.revoke_outstanding_grants(session, booking.id, event.value, now)

    return TransitionResult(
        success=True,
        booking=booking,
        event=event,
        previous_status=previous,
        new_status=new_status,
        modification_token=issued_token,
        message=f"Booking {new_status.value}",
    )


async def run_transition(
    load_booking: BookingLoader,
    event: BookingEvent,
    payload: TransitionPayload | None = None,
) -> TransitionResult:
    """
    Run one transition in its own transaction and notify after commit.

    Args:
        load_booking: Coroutine locking and returning the booking in the given session
        event: Event to apply
        payload: Event arguments (payload.modification_token for confirm_modification)
    """
    now = datetime.now(UTC)
    async with get_async_session() as session:
        booking = await load_booking(session)

        grant = None
        if event == BookingEvent.CONFIRM_MODIFICATION:
            token = ModificationToken.parse(payload.modification_token if payload else None)
            grant = await token_service.validate_grant_locked(session, token, booking, now)

        result = await apply_transition(session, booking, event, payload, grant=grant, now=now)

        # Failed confirmations still commit the consumed token
        await session.commit()

    if result.success:
        await dispatch_booking_notification(
            result.booking,
            NOTIFICATION_FOR_EVENT[event],
            {
                "previous_status": result.previous_status.value,
                "reason": payload.reason if payload else None,
            },
        )
    elif result.conflict is not None and event == BookingEvent.CONFIRM_MODIFICATION:
        await dispatch_booking_notification(
            result.booking,
            NotificationType.MODIFICATION_CONFLICT,
            {"conflict": result.conflict.value},
        )

    return result


async def transition(
    business_id: UUID,
    booking_id: UUID,
    event: BookingEvent | str,
    payload: TransitionPayload | None = None,
) -> TransitionResult:
    """
    Apply a lifecycle event to a booking of an already-authorized business.

    Args:
        business_id: Authorized business UUID (bookings of other businesses are not found)
        booking_id: Booking UUID
        event: BookingEvent or its string value
        payload: Event arguments

    Returns:
        TransitionResult. error_code is invalid_transition for events not valid
        from the current state and already_cancelled for repeated cancels.

    Raises:
        EntityNotFoundError: Unknown booking
        BookingValidationError: Missing or malformed payload
        TokenError: confirm_modification with an unusable token
    """
    try:
        parsed_event = coerce_event(event)
    except TransitionError as e:
        return TransitionResult(
            success=False,
            error_code=e.code,
            message=TRANSITION_ERROR_MESSAGES[e.code],
        )

    logger.info(
        f"Transition requested: {parsed_event.value}",
        extra={"business_id": business_id, "booking_id": booking_id, "event": parsed_event.value},
    )

    async def _load(session: AsyncSession) -> Booking:
        return await lock_booking(session, booking_id, business_id)

    return await run_transition(_load, parsed_event, payload)
