"""
Error taxonomy for the scheduling engine.

- BookingValidationError: malformed input, rejected before any conflict check
- EntityNotFoundError: unknown business / service / staff member / booking
- ConflictReason: availability conflicts. These are returned values, not raised
- TokenError: self-service token resolution failures (not_found, expired, already_used)
- TransitionError: event not valid from the booking's current state
"""

from enum import Enum
from typing import Any


class ConflictReason(str, Enum):
    """Outcome of a conflict check for a candidate booking."""

    OK = "ok"
    OUTSIDE_AVAILABILITY = "outside_availability"
    BLOCKED = "blocked"
    SLOT_FULL = "slot_full"


CONFLICT_MESSAGES: dict[ConflictReason, str] = {
    ConflictReason.OUTSIDE_AVAILABILITY: "The requested time is outside the available hours.",
    ConflictReason.BLOCKED: "The requested time is not available (blocked by the business).",
    ConflictReason.SLOT_FULL: "The requested time slot is already fully booked.",
}


class SchedulingError(Exception):
    """Base class for errors raised by the scheduling engine."""

    pass


class BookingValidationError(SchedulingError):
    """Raised for malformed time ranges, inactive services or invalid staff selections."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        return {"error": "validation_error", "message": self.message, "field": self.field}


class EntityNotFoundError(SchedulingError):
    """Raised when a referenced entity does not exist within the business."""

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class TokenErrorCode(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"


TOKEN_ERROR_MESSAGES: dict[TokenErrorCode, str] = {
    TokenErrorCode.NOT_FOUND: "This link is not valid. Please check the link you received.",
    TokenErrorCode.EXPIRED: (
        "This proposal has expired. Please ask the business to propose a new time."
    ),
    TokenErrorCode.ALREADY_USED: (
        "This link has already been used. The change was already handled elsewhere."
    ),
}


class TokenError(SchedulingError):
    """
    Raised when a self-service token cannot be resolved.

    Each code carries its own user-facing message: "expired" means the
    business must re-propose, "already_used" means the link was redeemed.
    """

    def __init__(self, code: TokenErrorCode) -> None:
        self.code = code
        self.user_message = TOKEN_ERROR_MESSAGES[code]
        super().__init__(f"{code.value}: {self.user_message}")


class TransitionErrorCode(str, Enum):
    INVALID_TRANSITION = "invalid_transition"
    ALREADY_CANCELLED = "already_cancelled"


TRANSITION_ERROR_MESSAGES: dict[TransitionErrorCode, str] = {
    TransitionErrorCode.INVALID_TRANSITION: "This booking can no longer be modified or cancelled.",
    TransitionErrorCode.ALREADY_CANCELLED: "This booking is already cancelled.",
}


class TransitionError(SchedulingError):
    """Raised by the booking state machine when an event is not valid from the current state."""

    def __init__(self, code: TransitionErrorCode, status: Any = None, event: Any = None) -> None:
        self.code = code
        self.status = status
        self.event = event
        self.user_message = TRANSITION_ERROR_MESSAGES[code]
        super().__init__(f"{code.value}: event={event} status={status}")
