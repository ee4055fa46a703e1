"""
Atomic transaction handlers.

Transaction handlers encapsulate multi-step writes that must execute
atomically on the primary database:
1. Lock the contended schedule bucket (SELECT ... FOR UPDATE)
2. Re-check conflicts against committed data
3. Write, commit, then notify (fire-and-forget)

Transaction handlers:
- BookingAllocator: Create bookings
- lock_schedule_bucket: Bucket lock shared with reschedule / confirm-modification
"""

from scheduling.transactions.booking_transaction import (
    AllocationResult,
    BookingAllocator,
    CustomerDetails,
)
from scheduling.transactions.schedule_lock import lock_schedule_bucket, scope_key

__all__ = [
    "AllocationResult",
    "BookingAllocator",
    "CustomerDetails",
    "lock_schedule_bucket",
    "scope_key",
]
