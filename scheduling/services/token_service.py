"""
Token Service.

Resolves customer self-service tokens to bookings and manages the ledger of
issued modification tokens.

Resolution failures are distinguished:
- not_found: malformed, wrong token type or unknown
- expired: past its expiry, or revoked because the proposal was withdrawn
- already_used: consumed by a confirmation attempt (successful or not)

Expired proposals are reverted lazily: resolving either the expired
modification token or the booking's action token moves a stale
modification_pending booking back to confirmed. There is no background sweep.

Row lock order on every write path: booking -> modification token -> schedule bucket.
"""

import logging
from datetime import UTC, date, datetime, time, timedelta

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_async_session
from database.models import Booking, BookingStatus, IssuedModificationToken
from scheduling.errors import TokenError, TokenErrorCode
from scheduling.fsm.booking_fsm import BookingFSM
from scheduling.fsm.models import BookingEvent
from scheduling.tokens import ActionToken, ModificationToken
from shared.config import get_settings

logger = logging.getLogger(__name__)

REVOKE_EXPIRED = "expired"
REVOKE_SUPERSEDED = "superseded"


def _now() -> datetime:
    return datetime.now(UTC)


async def get_booking_by_action_token(
    session: AsyncSession,
    token: ActionToken,
    for_update: bool = False,
) -> Booking:
    """
    Raises:
        TokenError(not_found): No booking carries this action token
    """
    stmt = select(Booking).where(Booking.customer_action_token == token.value)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    booking = (await session.execute(stmt)).scalar_one_or_none()
    if booking is None:
        raise TokenError(TokenErrorCode.NOT_FOUND)
    return booking


async def get_modification_grant(
    session: AsyncSession,
    token: ModificationToken,
    for_update: bool = False,
) -> IssuedModificationToken:
    """
    Raises:
        TokenError(not_found): Token was never issued
    """
    stmt = select(IssuedModificationToken).where(IssuedModificationToken.token == token.value)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    grant = (await session.execute(stmt)).scalar_one_or_none()
    if grant is None:
        raise TokenError(TokenErrorCode.NOT_FOUND)
    return grant


def grant_failure(grant: IssuedModificationToken, now: datetime) -> TokenErrorCode | None:
    """Why a grant can no longer be redeemed, or None if it still can."""
    if grant.used_at is not None:
        return TokenErrorCode.ALREADY_USED
    if grant.revoked_at is not None:
        return TokenErrorCode.EXPIRED
    if grant.expires_at <= now:
        return TokenErrorCode.EXPIRED
    return None


async def issue_modification_grant(
    session: AsyncSession,
    booking: Booking,
    proposed_date: date,
    proposed_start: time,
    proposed_end: time,
    now: datetime | None = None,
) -> IssuedModificationToken:
    """Mint a single-use modification token and record it in the ledger."""
    now = now or _now()
    grant = IssuedModificationToken(
        token=str(ModificationToken.mint()),
        booking_id=booking.id,
        proposed_booking_date=proposed_date,
        proposed_start_time=proposed_start,
        proposed_end_time=proposed_end,
        expires_at=now + timedelta(hours=get_settings().MODIFICATION_TOKEN_TTL_HOURS),
    )
    session.add(grant)
    await session.flush()

    logger.info(
        f"Modification token issued, expires {grant.expires_at.isoformat()}",
        extra={"booking_id": booking.id},
    )
    return grant


async def revoke_outstanding_grants(
    session: AsyncSession,
    booking_id,
    reason: str,
    now: datetime | None = None,
) -> int:
    """Revoke every unused, unrevoked modification token of a booking."""
    result = await session.execute(
        update(IssuedModificationToken)
        .where(
            and_(
                IssuedModificationToken.booking_id == booking_id,
                IssuedModificationToken.used_at.is_(None),
                IssuedModificationToken.revoked_at.is_(None),
            )
        )
        .values(revoked_at=now or _now(), revoke_reason=reason)
    )
    return result.rowcount or 0


def is_proposal_stale(booking: Booking, now: datetime) -> bool:
    return (
        booking.status == BookingStatus.MODIFICATION_PENDING
        and booking.modification_token_expires_at is not None
        and booking.modification_token_expires_at <= now
    )


async def expire_stale_modification(
    session: AsyncSession,
    booking: Booking,
    now: datetime | None = None,
) -> bool:
    """
    Revert an expired, unconsumed proposal to confirmed (caller commits).

    Returns:
        True if the booking was reverted
    """
    now = now or _now()
    if not is_proposal_stale(booking, now):
        return False

    BookingFSM(booking).apply(BookingEvent.EXPIRE_MODIFICATION, now=now)
    await revoke_outstanding_grants(session, booking.id, REVOKE_EXPIRED, now)
    logger.info(
        "Expired modification proposal reverted to confirmed",
        extra={"booking_id": booking.id, "event": BookingEvent.EXPIRE_MODIFICATION.value},
    )
    return True


async def validate_grant_locked(
    session: AsyncSession,
    token: ModificationToken,
    booking: Booking,
    now: datetime | None = None,
) -> IssuedModificationToken:
    """
    Lock and validate a modification token for redemption against a locked booking.

    An expired token reverts its booking and the reversion is committed
    before the error is raised.

    Raises:
        TokenError: not_found / expired / already_used
    """
    now = now or _now()
    grant = await get_modification_grant(session, token, for_update=True)
    if grant.booking_id != booking.id:
        raise TokenError(TokenErrorCode.NOT_FOUND)

    failure = grant_failure(grant, now)
    if failure == TokenErrorCode.EXPIRED:
        if booking.modification_token == grant.token:
            await expire_stale_modification(session, booking, now)
        if grant.revoked_at is None:
            grant.revoked_at = now
            grant.revoke_reason = REVOKE_EXPIRED
        await session.commit()
    if failure is not None:
        logger.info(
            f"Modification token rejected: {failure.value}",
            extra={"booking_id": booking.id, "reason": failure.value},
        )
        raise TokenError(failure)

    # Unused and unexpired but no longer the booking's outstanding proposal
    if (
        booking.status != BookingStatus.MODIFICATION_PENDING
        or booking.modification_token != grant.token
    ):
        raise TokenError(TokenErrorCode.EXPIRED)

    return grant


async def resolve_action_token(token: str | ActionToken) -> Booking:
    """
    Resolve a permanent action token to its booking.

    Reverts a stale modification proposal on the way.

    Raises:
        TokenError(not_found)
    """
    parsed = ActionToken.parse(token)
    async with get_async_session() as session:
        booking = await get_booking_by_action_token(session, parsed, for_update=True)
        if await expire_stale_modification(session, booking):
            await session.commit()
        return booking


async def resolve_modification_token(token: str | ModificationToken) -> Booking:
    """
    Resolve a modification token to the booking it proposes to change.

    Raises:
        TokenError(not_found | expired | already_used)
    """
    parsed = ModificationToken.parse(token)
    async with get_async_session() as session:
        grant = await get_modification_grant(session, parsed)
        booking = (
            await session.execute(
                select(Booking)
                .where(Booking.id == grant.booking_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        await validate_grant_locked(session, parsed, booking)
        return booking
