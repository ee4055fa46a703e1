"""
Customer self-service operations.

Unauthenticated entry points driven by tokens from customer links:
- confirm_modification: accept a proposed slot with the modification token
- cancel_with_action_token: cancel a pending or confirmed booking
- reschedule_with_action_token: move a pending or confirmed booking to a free slot

Action-token paths revert a stale (expired) modification proposal before
applying their own event, in the same transaction.
"""

import logging
from datetime import UTC, date, datetime, time

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Booking
from scheduling.fsm.models import BookingEvent, TransitionPayload, TransitionResult
from scheduling.services import token_service
from scheduling.services.transition_service import lock_booking, run_transition
from scheduling.tokens import ActionToken, ModificationToken

logger = logging.getLogger(__name__)


def _action_token_loader(token: ActionToken):
    async def _load(session: AsyncSession) -> Booking:
        booking = await token_service.get_booking_by_action_token(session, token, for_update=True)
        await token_service.expire_stale_modification(session, booking, datetime.now(UTC))
        return booking

    return _load


async def confirm_modification(token: str | ModificationToken) -> TransitionResult:
    """
    Accept the proposal behind a modification token.

    The proposed slot is re-checked under the schedule lock. On conflict the
    token is consumed, the booking stays modification_pending with the same
    proposal and the result carries the conflict reason.

    Raises:
        TokenError: not_found / expired / already_used
    """
    parsed = ModificationToken.parse(token)

    async def _load(session: AsyncSession) -> Booking:
        grant = await token_service.get_modification_grant(session, parsed)
        return await lock_booking(session, grant.booking_id)

    result = await run_transition(
        _load,
        BookingEvent.CONFIRM_MODIFICATION,
        TransitionPayload(modification_token=parsed.value),
    )
    logger.info(
        f"Modification confirmation: success={result.success}",
        extra={"booking_id": result.booking.id if result.booking else None},
    )
    return result


async def cancel_with_action_token(
    token: str | ActionToken,
    reason: str | None = None,
) -> TransitionResult:
    """
    Customer cancellation.

    Repeated cancels return error_code already_cancelled without touching
    the recorded reason.

    Raises:
        TokenError(not_found)
    """
    parsed = ActionToken.parse(token)
    return await run_transition(
        _action_token_loader(parsed),
        BookingEvent.CANCEL,
        TransitionPayload(reason=reason),
    )


async def reschedule_with_action_token(
    token: str | ActionToken,
    booking_date: date,
    start_time: time,
    end_time: time | None = None,
) -> TransitionResult:
    """
    Customer reschedule to a new slot in the same scope.

    Raises:
        TokenError(not_found)
        BookingValidationError: Malformed target range
    """
    parsed = ActionToken.parse(token)
    return await run_transition(
        _action_token_loader(parsed),
        BookingEvent.RESCHEDULE,
        TransitionPayload(booking_date=booking_date, start_time=start_time, end_time=end_time),
    )
