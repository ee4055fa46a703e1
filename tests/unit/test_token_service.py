"""
Unit tests for token_service - token resolution and modification token ledger.

Tests cover:
- grant_failure() classification (already_used / expired / revoked)
- Lazy expiry of stale proposals
- validate_grant_locked() against a locked booking
- resolve_action_token() with a mocked session
"""

from datetime import UTC, date, datetime, time, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from database.models import BookingStatus
from scheduling.errors import TokenError, TokenErrorCode
from scheduling.services import token_service
from scheduling.tokens import ActionToken, ModificationToken

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
TOKEN = "mod_" + "ef" * 32


def _grant(booking_id, **overrides) -> SimpleNamespace:
    fields = {
        "id": uuid4(),
        "token": TOKEN,
        "booking_id": booking_id,
        "proposed_booking_date": date(2025, 6, 3),
        "proposed_start_time": time(11, 0),
        "proposed_end_time": time(11, 30),
        "expires_at": NOW + timedelta(hours=1),
        "used_at": None,
        "revoked_at": None,
        "revoke_reason": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def pending_booking(make_booking):
    """A booking with an outstanding proposal under TOKEN."""
    return make_booking(
        BookingStatus.MODIFICATION_PENDING,
        proposed_booking_date=date(2025, 6, 3),
        proposed_start_time=time(11, 0),
        proposed_end_time=time(11, 30),
        modification_token=TOKEN,
        modification_token_expires_at=NOW + timedelta(hours=1),
    )


class TestGrantFailure:
    def test_usable(self):
        assert token_service.grant_failure(_grant(uuid4()), NOW) is None

    def test_used(self):
        assert token_service.grant_failure(_grant(uuid4(), used_at=NOW), NOW) == TokenErrorCode.ALREADY_USED

    def test_used_wins_over_expired(self):
        grant = _grant(uuid4(), used_at=NOW, expires_at=NOW - timedelta(hours=1))
        assert token_service.grant_failure(grant, NOW) == TokenErrorCode.ALREADY_USED

    def test_revoked_is_expired(self):
        assert token_service.grant_failure(_grant(uuid4(), revoked_at=NOW), NOW) == TokenErrorCode.EXPIRED

    def test_expiry_boundary_is_expired(self):
        assert token_service.grant_failure(_grant(uuid4(), expires_at=NOW), NOW) == TokenErrorCode.EXPIRED


class TestLazyExpiry:
    def test_is_proposal_stale(self, pending_booking):
        assert token_service.is_proposal_stale(pending_booking, NOW) is False
        assert token_service.is_proposal_stale(pending_booking, NOW + timedelta(hours=2)) is True

    def test_confirmed_booking_is_never_stale(self, make_booking):
        assert token_service.is_proposal_stale(make_booking(), NOW) is False

    @pytest.mark.asyncio
    async def test_expire_reverts_to_confirmed(self, pending_booking):
        session = AsyncMock()
        later = NOW + timedelta(hours=2)

        with patch.object(token_service, "revoke_outstanding_grants", AsyncMock()) as revoke:
            reverted = await token_service.expire_stale_modification(session, pending_booking, later)

        assert reverted is True
        assert pending_booking.status == BookingStatus.CONFIRMED
        assert pending_booking.start_time == time(10, 0)
        assert pending_booking.modification_token is None
        revoke.assert_awaited_once_with(
            session, pending_booking.id, token_service.REVOKE_EXPIRED, later
        )

    @pytest.mark.asyncio
    async def test_fresh_proposal_untouched(self, pending_booking):
        with patch.object(token_service, "revoke_outstanding_grants", AsyncMock()) as revoke:
            reverted = await token_service.expire_stale_modification(
                AsyncMock(), pending_booking, NOW
            )

        assert reverted is False
        assert pending_booking.status == BookingStatus.MODIFICATION_PENDING
        revoke.assert_not_awaited()


class TestValidateGrantLocked:
    @pytest.mark.asyncio
    async def test_valid_grant(self, pending_booking):
        grant = _grant(pending_booking.id)
        with patch.object(token_service, "get_modification_grant", AsyncMock(return_value=grant)):
            result = await token_service.validate_grant_locked(
                AsyncMock(), ModificationToken(TOKEN), pending_booking, NOW
            )
        assert result is grant

    @pytest.mark.asyncio
    async def test_already_used(self, pending_booking):
        grant = _grant(pending_booking.id, used_at=NOW - timedelta(minutes=5))
        with patch.object(token_service, "get_modification_grant", AsyncMock(return_value=grant)):
            with pytest.raises(TokenError) as exc_info:
                await token_service.validate_grant_locked(
                    AsyncMock(), ModificationToken(TOKEN), pending_booking, NOW
                )
        assert exc_info.value.code == TokenErrorCode.ALREADY_USED

    @pytest.mark.asyncio
    async def test_expired_reverts_and_commits_before_raising(self, pending_booking):
        session = AsyncMock()
        later = NOW + timedelta(hours=2)
        grant = _grant(pending_booking.id)

        with patch.object(
            token_service, "get_modification_grant", AsyncMock(return_value=grant)
        ), patch.object(token_service, "revoke_outstanding_grants", AsyncMock()):
            with pytest.raises(TokenError) as exc_info:
                await token_service.validate_grant_locked(
                    session, ModificationToken(TOKEN), pending_booking, later
                )

        assert exc_info.value.code == TokenErrorCode.EXPIRED
        assert pending_booking.status == BookingStatus.CONFIRMED
        assert grant.revoked_at == later
        assert grant.revoke_reason == token_service.REVOKE_EXPIRED
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_superseded_token_is_expired(self, pending_booking):
        """An older token of the same booking is no longer the outstanding proposal."""
        old = _grant(pending_booking.id, token="mod_" + "01" * 32)
        with patch.object(token_service, "get_modification_grant", AsyncMock(return_value=old)):
            with pytest.raises(TokenError) as exc_info:
                await token_service.validate_grant_locked(
                    AsyncMock(), ModificationToken(old.token), pending_booking, NOW
                )
        assert exc_info.value.code == TokenErrorCode.EXPIRED

    @pytest.mark.asyncio
    async def test_grant_of_other_booking_is_not_found(self, pending_booking):
        grant = _grant(uuid4())
        with patch.object(token_service, "get_modification_grant", AsyncMock(return_value=grant)):
            with pytest.raises(TokenError) as exc_info:
                await token_service.validate_grant_locked(
                    AsyncMock(), ModificationToken(TOKEN), pending_booking, NOW
                )
        assert exc_info.value.code == TokenErrorCode.NOT_FOUND


class TestLookups:
    @pytest.mark.asyncio
    async def test_unknown_action_token(self):
        session = AsyncMock()
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        session.execute.return_value = result

        with pytest.raises(TokenError) as exc_info:
            await token_service.get_booking_by_action_token(session, ActionToken.mint())
        assert exc_info.value.code == TokenErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_resolve_action_token_rejects_modification_token(self):
        with pytest.raises(TokenError) as exc_info:
            await token_service.resolve_action_token(TOKEN)
        assert exc_info.value.code == TokenErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_resolve_action_token_expires_stale_proposal(self, pending_booking):
        session = AsyncMock()
        get_session = MagicMock()
        get_session.return_value.__aenter__.return_value = session

        with patch.object(token_service, "get_async_session", get_session), patch.object(
            token_service, "get_booking_by_action_token", AsyncMock(return_value=pending_booking)
        ), patch.object(
            token_service, "expire_stale_modification", AsyncMock(return_value=True)
        ):
            booking = await token_service.resolve_action_token(ActionToken.mint())

        assert booking is pending_booking
        session.commit.assert_awaited_once()
