"""
Unit tests for customer self-service entry points.
"""

from datetime import UTC, date, datetime, time, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from database.models import BookingStatus
from scheduling.errors import TokenError, TokenErrorCode, TransitionErrorCode
from scheduling.fsm.models import BookingEvent, TransitionResult
from scheduling.services import self_service, token_service
from scheduling.tokens import ActionToken

ACTION_TOKEN = "act_" + "ab" * 32
MOD_TOKEN = "mod_" + "cd" * 32


class TestTokenParsing:
    @pytest.mark.asyncio
    async def test_cancel_rejects_modification_token(self):
        with pytest.raises(TokenError) as exc_info:
            await self_service.cancel_with_action_token(MOD_TOKEN)
        assert exc_info.value.code == TokenErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_confirm_rejects_action_token(self):
        with pytest.raises(TokenError) as exc_info:
            await self_service.confirm_modification(ACTION_TOKEN)
        assert exc_info.value.code == TokenErrorCode.NOT_FOUND


class TestCancel:
    @pytest.mark.asyncio
    async def test_runs_cancel_event(self):
        run = AsyncMock(return_value=TransitionResult(success=True))

        with patch.object(self_service, "run_transition", run):
            await self_service.cancel_with_action_token(ACTION_TOKEN, reason="Travelling")

        loader, event, payload = run.await_args.args
        assert event == BookingEvent.CANCEL
        assert payload.reason == "Travelling"

    @pytest.mark.asyncio
    async def test_repeated_cancel_passes_result_through(self):
        result = TransitionResult(success=False, error_code=TransitionErrorCode.ALREADY_CANCELLED)

        with patch.object(self_service, "run_transition", AsyncMock(return_value=result)):
            returned = await self_service.cancel_with_action_token(ACTION_TOKEN)

        assert returned.error_code == TransitionErrorCode.ALREADY_CANCELLED

    @pytest.mark.asyncio
    async def test_loader_expires_stale_proposal_first(self, make_booking):
        booking = make_booking(
            BookingStatus.MODIFICATION_PENDING,
            modification_token=MOD_TOKEN,
            modification_token_expires_at=datetime.now(UTC) - timedelta(hours=1),
        )
        session = AsyncMock()
        run = AsyncMock(return_value=TransitionResult(success=True))

        with patch.object(self_service, "run_transition", run), patch.object(
            token_service, "get_booking_by_action_token", AsyncMock(return_value=booking)
        ) as lookup, patch.object(
            token_service, "expire_stale_modification", AsyncMock(return_value=True)
        ) as expire:
            await self_service.cancel_with_action_token(ACTION_TOKEN)
            loader = run.await_args.args[0]
            loaded = await loader(session)

        assert loaded is booking
        assert lookup.await_args.args[1] == ActionToken(ACTION_TOKEN)
        assert lookup.await_args.kwargs["for_update"] is True
        assert expire.await_args.args[:2] == (session, booking)


class TestReschedule:
    @pytest.mark.asyncio
    async def test_runs_reschedule_event(self):
        run = AsyncMock(return_value=TransitionResult(success=True))

        with patch.object(self_service, "run_transition", run):
            await self_service.reschedule_with_action_token(
                ACTION_TOKEN, date(2025, 6, 4), time(15, 0)
            )

        _, event, payload = run.await_args.args
        assert event == BookingEvent.RESCHEDULE
        assert payload.booking_date == date(2025, 6, 4)
        assert payload.start_time == time(15, 0)
        assert payload.end_time is None


class TestConfirmModification:
    @pytest.mark.asyncio
    async def test_loader_locks_booking_of_grant(self, make_booking):
        booking = make_booking(BookingStatus.MODIFICATION_PENDING)
        grant = SimpleNamespace(booking_id=booking.id)
        session = AsyncMock()
        run = AsyncMock(return_value=TransitionResult(success=True, booking=booking))

        with patch.object(self_service, "run_transition", run), patch.object(
            token_service, "get_modification_grant", AsyncMock(return_value=grant)
        ), patch.object(self_service, "lock_booking", AsyncMock(return_value=booking)) as lock:
            await self_service.confirm_modification(MOD_TOKEN)
            loader, event, payload = run.await_args.args
            loaded = await loader(session)

        assert loaded is booking
        assert event == BookingEvent.CONFIRM_MODIFICATION
        assert payload.modification_token == MOD_TOKEN
        lock.assert_awaited_once_with(session, booking.id)

    @pytest.mark.asyncio
    async def test_unknown_token_propagates(self):
        get_session = MagicMock()
        get_session.return_value.__aenter__.return_value = AsyncMock()

        with patch(
            "scheduling.services.transition_service.get_async_session", get_session
        ), patch.object(
            token_service,
            "get_modification_grant",
            AsyncMock(side_effect=TokenError(TokenErrorCode.NOT_FOUND)),
        ):
            with pytest.raises(TokenError) as exc_info:
                await self_service.confirm_modification(MOD_TOKEN)

        assert exc_info.value.code == TokenErrorCode.NOT_FOUND
