"""
Unit tests for the notification dispatcher.

Delivery failures must never propagate: the lifecycle change has already
committed when dispatch runs.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from database.models import BookingStatus, NotificationType
from scheduling.services import notification_service
from scheduling.services.notification_service import BookingNotification, dispatch_booking_notification
from shared.config import get_settings


@pytest.fixture
def session():
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def get_session(session):
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    with patch.object(notification_service, "get_async_session", factory):
        yield factory


class TestBookingNotification:
    def test_from_booking(self, make_booking):
        booking = make_booking(BookingStatus.PENDING)

        event = BookingNotification.from_booking(
            booking, NotificationType.BOOKING_CREATED, {"reason": None}
        )
        message = event.to_message()

        assert message["type"] == "booking_created"
        assert message["status"] == "pending"
        assert message["booking_id"] == str(booking.id)
        assert message["start_time"] == "10:00"
        assert message["booking_date"] == "2025-06-02"
        assert message["detail"] == {"reason": None}
        json.dumps(message)

    def test_title_for_every_type(self):
        assert set(notification_service.NOTIFICATION_TITLES) == set(NotificationType)

    def test_message_text(self, make_booking):
        event = BookingNotification.from_booking(make_booking(), NotificationType.BOOKING_CONFIRMED)
        assert event.message == "Ana López - 2025-06-02 10:00-10:30 (confirmed)"


class TestDispatch:
    @pytest.mark.asyncio
    async def test_records_row_and_publishes(self, get_session, session, make_booking):
        booking = make_booking()

        with patch.object(
            notification_service, "publish_to_channel", AsyncMock(return_value=1)
        ) as publish:
            await dispatch_booking_notification(booking, NotificationType.BOOKING_CANCELLED)

        row = session.add.call_args.args[0]
        assert row.booking_id == booking.id
        assert row.type == NotificationType.BOOKING_CANCELLED
        assert row.title == "Booking cancelled"
        session.commit.assert_awaited_once()

        channel, payload = publish.await_args.args
        assert channel == get_settings().NOTIFICATIONS_CHANNEL
        assert payload["type"] == "booking_cancelled"

    @pytest.mark.asyncio
    async def test_publish_failure_is_swallowed(self, get_session, make_booking, caplog):
        with patch.object(
            notification_service,
            "publish_to_channel",
            AsyncMock(side_effect=ConnectionError("redis down")),
        ):
            await dispatch_booking_notification(make_booking(), NotificationType.BOOKING_CREATED)

        assert "Failed to publish notification" in caplog.text

    @pytest.mark.asyncio
    async def test_database_failure_still_publishes(self, get_session, session, make_booking):
        session.commit.side_effect = RuntimeError("db gone")

        with patch.object(
            notification_service, "publish_to_channel", AsyncMock(return_value=0)
        ) as publish:
            await dispatch_booking_notification(make_booking(), NotificationType.BOOKING_CREATED)

        publish.assert_awaited_once()
