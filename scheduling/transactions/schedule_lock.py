"""
Per-bucket schedule locks.

Every write that can consume capacity (allocate, reschedule, confirm a
modification) locks the (business, scope, date) bucket row before
re-running the conflict checker, so competing writers on the same bucket
run one after another across all workers.

The row is created on first use with INSERT ... ON CONFLICT DO NOTHING;
a concurrent inserter of the same bucket waits for the first one and then
skips, so both end up locking the same row.
"""

import logging
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import and_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import ScheduleLock

logger = logging.getLogger(__name__)

BUSINESS_SCOPE_KEY = "business"


def scope_key(staff_member_id: UUID | None) -> str:
    """Bucket key: the staff member id, or "business" for the shared pool."""
    return str(staff_member_id) if staff_member_id is not None else BUSINESS_SCOPE_KEY


async def lock_schedule_bucket(
    session: AsyncSession,
    business_id: UUID,
    staff_member_id: UUID | None,
    lock_date: date,
) -> ScheduleLock:
    """
    Acquire the row lock for a (business, scope, date) bucket.

    Held until the surrounding transaction commits or rolls back.

    Returns:
        The locked ScheduleLock row (version bumped)
    """
    key = scope_key(staff_member_id)

    await session.execute(
        pg_insert(ScheduleLock)
        .values(id=uuid4(), business_id=business_id, scope_key=key, lock_date=lock_date, version=0)
        .on_conflict_do_nothing(constraint="uq_schedule_lock_bucket")
    )

    result = await session.execute(
        select(ScheduleLock)
        .where(
            and_(
                ScheduleLock.business_id == business_id,
                ScheduleLock.scope_key == key,
                ScheduleLock.lock_date == lock_date,
            )
        )
        .with_for_update()
    )
    lock = result.scalar_one()
    lock.version += 1

    logger.debug(
        f"Schedule bucket locked: {key} {lock_date} (v{lock.version})",
        extra={"business_id": business_id},
    )
    return lock
