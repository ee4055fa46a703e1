"""
Notification dispatcher boundary.

Called after a lifecycle change has committed. Two sinks:
- A Notification row for the business calendar view
- A JSON event on the Redis pub/sub channel (settings.NOTIFICATIONS_CHANNEL)
  consumed by the external delivery service (email etc.)

Fire-and-forget: every failure is logged and swallowed so delivery problems
can never roll back or fail a transition.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from database.connection import get_async_session
from database.models import Booking, BookingStatus, Notification, NotificationType
from shared.config import get_settings
from shared.redis_client import publish_to_channel

logger = logging.getLogger(__name__)

NOTIFICATION_TITLES: dict[NotificationType, str] = {
    NotificationType.BOOKING_CREATED: "New booking",
    NotificationType.BOOKING_CONFIRMED: "Booking confirmed",
    NotificationType.BOOKING_CANCELLED: "Booking cancelled",
    NotificationType.BOOKING_RESCHEDULED: "Booking rescheduled by customer",
    NotificationType.MODIFICATION_PROPOSED: "Modification proposed",
    NotificationType.MODIFICATION_ACCEPTED: "Modification accepted",
    NotificationType.MODIFICATION_DISCARDED: "Modification withdrawn",
    NotificationType.MODIFICATION_CONFLICT: "Proposed time no longer available",
}


@dataclass
class BookingNotification:
    """Event published for every booking lifecycle change."""

    type: NotificationType
    business_id: str
    booking_id: str
    status: str
    customer_name: str
    customer_email: str
    booking_date: str
    start_time: str
    end_time: str
    detail: dict[str, Any] = field(default_factory=dict)
    occurred_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @classmethod
    def from_booking(
        cls,
        booking: Booking,
        notification_type: NotificationType,
        detail: dict[str, Any] | None = None,
    ) -> "BookingNotification":
        return cls(
            type=notification_type,
            business_id=str(booking.business_id),
            booking_id=str(booking.id),
            status=BookingStatus(booking.status).value,
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            booking_date=booking.booking_date.isoformat(),
            start_time=booking.start_time.strftime("%H:%M"),
            end_time=booking.end_time.strftime("%H:%M"),
            detail=detail or {},
        )

    @property
    def title(self) -> str:
        return NOTIFICATION_TITLES[self.type]

    @property
    def message(self) -> str:
        return (
            f"{self.customer_name} - {self.booking_date} "
            f"{self.start_time}-{self.end_time} ({self.status})"
        )

    def to_message(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["type"] = self.type.value
        return payload


async def dispatch_booking_notification(
    booking: Booking,
    notification_type: NotificationType,
    detail: dict[str, Any] | None = None,
) -> None:
    """
    Record and publish a lifecycle notification (fire-and-forget).

    Args:
        booking: Booking after the committed change
        notification_type: Kind of change
        detail: Extra fields for the published event (reason, conflict, ...)
    """
    try:
        event = BookingNotification.from_booking(booking, notification_type, detail)
    except Exception as e:
        logger.warning(f"Failed to build notification for booking {booking.id}: {e}")
        return

    # Admin calendar notification row
    try:
        async with get_async_session() as session:
            session.add(
                Notification(
                    business_id=booking.business_id,
                    booking_id=booking.id,
                    type=notification_type,
                    title=event.title,
                    message=event.message,
                )
            )
            await session.commit()
    except Exception as e:
        logger.warning(
            f"Failed to create notification row: {e}",
            extra={"booking_id": booking.id, "event": notification_type.value},
        )

    # Delivery service event
    try:
        receivers = await publish_to_channel(
            get_settings().NOTIFICATIONS_CHANNEL, event.to_message()
        )
        logger.info(
            f"Notification {notification_type.value} published to {receivers} subscribers",
            extra={"booking_id": booking.id, "business_id": booking.business_id},
        )
    except Exception as e:
        logger.warning(
            f"Failed to publish notification (transition already committed): {e}",
            extra={"booking_id": booking.id, "event": notification_type.value},
        )
