"""
Unit tests for BookingFSM - booking lifecycle state machine.

Tests cover:
- Transition table (valid and invalid pairs)
- Repeated cancels (already_cancelled) vs other invalid events
- Field effects of propose / confirm / discard / expire / cancel / reschedule
- Logging behavior
"""

from datetime import UTC, date, datetime, time, timedelta

import pytest

from database.models import BookingStatus
from scheduling.errors import BookingValidationError, TransitionError, TransitionErrorCode
from scheduling.fsm import BookingEvent, BookingFSM, TransitionPayload

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def _proposal(**overrides) -> TransitionPayload:
    fields = {
        "booking_date": date(2025, 6, 3),
        "start_time": time(11, 0),
        "end_time": time(11, 30),
        "reason": "Stylist unavailable",
        "modification_token": "mod_" + "cd" * 32,
        "expires_at": NOW + timedelta(hours=72),
    }
    fields.update(overrides)
    return TransitionPayload(**fields)


class TestTransitionTable:
    @pytest.mark.parametrize(
        "state,event,target",
        [
            (BookingStatus.PENDING, BookingEvent.CONFIRM, BookingStatus.CONFIRMED),
            (BookingStatus.PENDING, BookingEvent.CANCEL, BookingStatus.CANCELLED),
            (BookingStatus.CONFIRMED, BookingEvent.CANCEL, BookingStatus.CANCELLED),
            (BookingStatus.CONFIRMED, BookingEvent.PROPOSE_MODIFICATION, BookingStatus.MODIFICATION_PENDING),
            (BookingStatus.MODIFICATION_PENDING, BookingEvent.CONFIRM_MODIFICATION, BookingStatus.CONFIRMED),
            (BookingStatus.MODIFICATION_PENDING, BookingEvent.DISCARD_MODIFICATION, BookingStatus.CONFIRMED),
            (BookingStatus.MODIFICATION_PENDING, BookingEvent.EXPIRE_MODIFICATION, BookingStatus.CONFIRMED),
            (BookingStatus.MODIFICATION_PENDING, BookingEvent.PROPOSE_MODIFICATION, BookingStatus.MODIFICATION_PENDING),
            (BookingStatus.PENDING, BookingEvent.RESCHEDULE, BookingStatus.PENDING),
            (BookingStatus.CONFIRMED, BookingEvent.RESCHEDULE, BookingStatus.CONFIRMED),
        ],
    )
    def test_valid(self, state, event, target):
        assert BookingFSM.target_state(state, event) == target

    @pytest.mark.parametrize(
        "state",
        [BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.MODIFICATION_PENDING],
    )
    def test_admin_cancel_from_every_non_terminal_state(self, state):
        assert BookingFSM.target_state(state, BookingEvent.ADMIN_CANCEL) == BookingStatus.CANCELLED

    @pytest.mark.parametrize(
        "state,event",
        [
            (BookingStatus.PENDING, BookingEvent.PROPOSE_MODIFICATION),
            (BookingStatus.PENDING, BookingEvent.CONFIRM_MODIFICATION),
            (BookingStatus.CONFIRMED, BookingEvent.CONFIRM),
            (BookingStatus.CONFIRMED, BookingEvent.DISCARD_MODIFICATION),
            (BookingStatus.MODIFICATION_PENDING, BookingEvent.CANCEL),
            (BookingStatus.MODIFICATION_PENDING, BookingEvent.RESCHEDULE),
            (BookingStatus.CANCELLED, BookingEvent.CONFIRM),
            (BookingStatus.CANCELLED, BookingEvent.RESCHEDULE),
        ],
    )
    def test_invalid(self, state, event):
        with pytest.raises(TransitionError) as exc_info:
            BookingFSM.target_state(state, event)
        assert exc_info.value.code == TransitionErrorCode.INVALID_TRANSITION

    @pytest.mark.parametrize("event", [BookingEvent.CANCEL, BookingEvent.ADMIN_CANCEL])
    def test_cancel_on_cancelled_is_already_cancelled(self, event):
        with pytest.raises(TransitionError) as exc_info:
            BookingFSM.target_state(BookingStatus.CANCELLED, event)
        assert exc_info.value.code == TransitionErrorCode.ALREADY_CANCELLED

    def test_cancelled_is_terminal(self):
        assert BookingFSM.TRANSITIONS[BookingStatus.CANCELLED] == {}


class TestApply:
    def test_confirm(self, make_booking):
        booking = make_booking(BookingStatus.PENDING)
        assert BookingFSM(booking).apply(BookingEvent.CONFIRM) == BookingStatus.CONFIRMED
        assert booking.status == BookingStatus.CONFIRMED

    def test_propose_stores_proposal_and_keeps_original_slot(self, make_booking):
        booking = make_booking(BookingStatus.CONFIRMED)
        payload = _proposal()

        BookingFSM(booking).apply(BookingEvent.PROPOSE_MODIFICATION, payload, NOW)

        assert booking.status == BookingStatus.MODIFICATION_PENDING
        assert booking.booking_date == date(2025, 6, 2)
        assert booking.start_time == time(10, 0)
        assert booking.proposed_booking_date == date(2025, 6, 3)
        assert booking.proposed_start_time == time(11, 0)
        assert booking.proposed_end_time == time(11, 30)
        assert booking.modification_reason == "Stylist unavailable"
        assert booking.modification_token == payload.modification_token
        assert booking.modification_token_expires_at == payload.expires_at

    def test_propose_requires_slot(self, make_booking):
        booking = make_booking(BookingStatus.CONFIRMED)
        with pytest.raises(BookingValidationError):
            BookingFSM(booking).apply(BookingEvent.PROPOSE_MODIFICATION, _proposal(start_time=None))
        assert booking.status == BookingStatus.CONFIRMED

    def test_propose_requires_token(self, make_booking):
        booking = make_booking(BookingStatus.CONFIRMED)
        with pytest.raises(BookingValidationError):
            BookingFSM(booking).apply(
                BookingEvent.PROPOSE_MODIFICATION, _proposal(modification_token=None)
            )

    def test_confirm_modification_moves_booking(self, make_booking):
        booking = make_booking(BookingStatus.CONFIRMED)
        fsm = BookingFSM(booking)
        fsm.apply(BookingEvent.PROPOSE_MODIFICATION, _proposal(), NOW)

        fsm.apply(BookingEvent.CONFIRM_MODIFICATION)

        assert booking.status == BookingStatus.CONFIRMED
        assert booking.booking_date == date(2025, 6, 3)
        assert booking.start_time == time(11, 0)
        assert booking.end_time == time(11, 30)
        assert booking.proposed_booking_date is None
        assert booking.modification_token is None

    @pytest.mark.parametrize(
        "event", [BookingEvent.DISCARD_MODIFICATION, BookingEvent.EXPIRE_MODIFICATION]
    )
    def test_discard_and_expire_keep_original_slot(self, make_booking, event):
        booking = make_booking(BookingStatus.CONFIRMED)
        fsm = BookingFSM(booking)
        fsm.apply(BookingEvent.PROPOSE_MODIFICATION, _proposal(), NOW)

        fsm.apply(event)

        assert booking.status == BookingStatus.CONFIRMED
        assert booking.start_time == time(10, 0)
        assert booking.proposed_start_time is None
        assert booking.modification_token_expires_at is None

    def test_cancel_records_reason_and_time(self, make_booking):
        booking = make_booking(BookingStatus.CONFIRMED)

        BookingFSM(booking).apply(BookingEvent.CANCEL, TransitionPayload(reason="Sick"), NOW)

        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancellation_reason == "Sick"
        assert booking.cancelled_at == NOW

    def test_admin_cancel_clears_proposal(self, make_booking):
        booking = make_booking(BookingStatus.CONFIRMED)
        fsm = BookingFSM(booking)
        fsm.apply(BookingEvent.PROPOSE_MODIFICATION, _proposal(), NOW)

        fsm.apply(BookingEvent.ADMIN_CANCEL, TransitionPayload(reason="Closed"), NOW)

        assert booking.status == BookingStatus.CANCELLED
        assert booking.modification_token is None

    def test_repeated_cancel_keeps_first_reason(self, make_booking):
        booking = make_booking(BookingStatus.CONFIRMED)
        fsm = BookingFSM(booking)
        fsm.apply(BookingEvent.CANCEL, TransitionPayload(reason="First"), NOW)

        with pytest.raises(TransitionError):
            fsm.apply(BookingEvent.CANCEL, TransitionPayload(reason="Second"), NOW)

        assert booking.cancellation_reason == "First"

    def test_reschedule_moves_booking(self, make_booking):
        booking = make_booking(BookingStatus.PENDING)

        BookingFSM(booking).apply(
            BookingEvent.RESCHEDULE,
            TransitionPayload(booking_date=date(2025, 6, 4), start_time=time(15, 0), end_time=time(15, 30)),
        )

        assert booking.status == BookingStatus.PENDING
        assert booking.booking_date == date(2025, 6, 4)
        assert booking.start_time == time(15, 0)

    def test_reschedule_requires_slot(self, make_booking):
        with pytest.raises(BookingValidationError):
            BookingFSM(make_booking()).apply(BookingEvent.RESCHEDULE, TransitionPayload())

    def test_logs_transition(self, make_booking, caplog):
        with caplog.at_level("INFO"):
            BookingFSM(make_booking(BookingStatus.PENDING)).apply(BookingEvent.CONFIRM)
        assert "pending --[confirm]--> confirmed" in caplog.text
