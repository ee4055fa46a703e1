"""
FSM module for the booking lifecycle.

Public exports:
    - BookingFSM: Transition table and field-level effects of each event
    - BookingEvent: Enum of lifecycle events
    - TransitionPayload: Event arguments
    - TransitionResult: Result of a transition attempt
"""

from scheduling.fsm.booking_fsm import BookingFSM
from scheduling.fsm.models import BookingEvent, TransitionPayload, TransitionResult

__all__ = [
    "BookingEvent",
    "BookingFSM",
    "TransitionPayload",
    "TransitionResult",
]
