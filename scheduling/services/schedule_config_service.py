"""
Schedule configuration service.

Business-side management of weekly availability rules and blocked times.
Configuration is validated on write so the resolver only ever sees
well-formed rules:
- day_of_week in 0..6 (0 = Monday)
- end_time strictly after start_time (overnight ranges are rejected)
- positive slot duration and capacity
- staff-scoped entries must reference a staff member of the same business
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from uuid import UUID

from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_async_session
from database.models import AvailabilityRule, BlockedTime, StaffMember
from scheduling.errors import BookingValidationError, EntityNotFoundError
from scheduling.services.availability_service import get_blocked_times, get_rules
from scheduling.validators.booking_validators import validate_time_range
from shared.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class RuleInput:
    """Requested configuration for one (scope, day_of_week)."""

    day_of_week: int
    start_time: time
    end_time: time
    is_open: bool = True
    slot_duration_minutes: int | None = None
    max_bookings_per_slot: int | None = None


def validate_rule_input(rule: RuleInput) -> None:
    """
    Raises:
        BookingValidationError: Invalid day, overnight range or non-positive sizes
    """
    if not 0 <= rule.day_of_week <= 6:
        raise BookingValidationError(
            "day_of_week must be between 0 (Monday) and 6 (Sunday)", field="day_of_week"
        )
    validate_time_range(rule.start_time, rule.end_time)
    if rule.slot_duration_minutes is not None and rule.slot_duration_minutes <= 0:
        raise BookingValidationError(
            "slot_duration_minutes must be positive", field="slot_duration_minutes"
        )
    if rule.max_bookings_per_slot is not None and rule.max_bookings_per_slot <= 0:
        raise BookingValidationError(
            "max_bookings_per_slot must be positive", field="max_bookings_per_slot"
        )


async def _ensure_staff_member(
    session: AsyncSession,
    business_id: UUID,
    staff_member_id: UUID | None,
) -> None:
    if staff_member_id is None:
        return
    found = await session.scalar(
        select(StaffMember.id).where(
            and_(StaffMember.id == staff_member_id, StaffMember.business_id == business_id)
        )
    )
    if found is None:
        raise EntityNotFoundError("Staff member", staff_member_id)


async def list_rules(
    business_id: UUID,
    staff_member_id: UUID | None = None,
) -> list[AvailabilityRule]:
    """Weekly rules for one scope, ordered by day."""
    async with get_async_session() as session:
        await _ensure_staff_member(session, business_id, staff_member_id)
        return await get_rules(session, business_id, staff_member_id)


async def upsert_rule(
    business_id: UUID,
    rule: RuleInput,
    staff_member_id: UUID | None = None,
) -> AvailabilityRule:
    """
    Create or replace the rule for (scope, day_of_week).

    Raises:
        BookingValidationError: Invalid rule
        EntityNotFoundError: Staff member not in this business
    """
    validate_rule_input(rule)
    settings = get_settings()

    async with get_async_session() as session:
        await _ensure_staff_member(session, business_id, staff_member_id)

        scope_filter = (
            AvailabilityRule.staff_member_id == staff_member_id
            if staff_member_id is not None
            else AvailabilityRule.staff_member_id.is_(None)
        )
        existing = (
            await session.execute(
                select(AvailabilityRule)
                .where(
                    and_(
                        AvailabilityRule.business_id == business_id,
                        AvailabilityRule.day_of_week == rule.day_of_week,
                        scope_filter,
                    )
                )
                .with_for_update()
            )
        ).scalar_one_or_none()

        target = existing or AvailabilityRule(
            business_id=business_id,
            staff_member_id=staff_member_id,
            day_of_week=rule.day_of_week,
        )
        target.start_time = rule.start_time
        target.end_time = rule.end_time
        target.is_open = rule.is_open
        target.slot_duration_minutes = (
            rule.slot_duration_minutes or settings.DEFAULT_SLOT_DURATION_MINUTES
        )
        target.max_bookings_per_slot = (
            rule.max_bookings_per_slot or settings.DEFAULT_MAX_BOOKINGS_PER_SLOT
        )
        if existing is None:
            session.add(target)

        await session.commit()
        await session.refresh(target)

    logger.info(
        f"Availability rule {'updated' if existing else 'created'} for day {rule.day_of_week}",
        extra={"business_id": business_id, "staff_member_id": staff_member_id},
    )
    return target


async def delete_rule(business_id: UUID, rule_id: UUID) -> None:
    """
    Raises:
        EntityNotFoundError: Unknown rule or rule of another business
    """
    async with get_async_session() as session:
        result = await session.execute(
            delete(AvailabilityRule).where(
                and_(AvailabilityRule.id == rule_id, AvailabilityRule.business_id == business_id)
            )
        )
        if not result.rowcount:
            raise EntityNotFoundError("Availability rule", rule_id)
        await session.commit()

    logger.info(f"Availability rule {rule_id} deleted", extra={"business_id": business_id})


async def list_blocked_times(
    business_id: UUID,
    start_date: date,
    end_date: date,
    staff_member_id: UUID | None = None,
) -> list[BlockedTime]:
    """Blocked ranges touching the date range (business-wide plus the staff member's own)."""
    async with get_async_session() as session:
        blocked = await get_blocked_times(session, business_id, start_date, end_date, staff_member_id)
    return sorted(blocked, key=lambda b: b.start_at)


async def create_blocked_time(
    business_id: UUID,
    start_at: datetime,
    end_at: datetime,
    reason: str | None = None,
    staff_member_id: UUID | None = None,
) -> BlockedTime:
    """
    Block a local date-time range for the business or one staff member.

    Existing bookings inside the range are left untouched; only new
    allocations are affected.

    Raises:
        BookingValidationError: end_at not after start_at
        EntityNotFoundError: Staff member not in this business
    """
    if start_at.tzinfo is not None or end_at.tzinfo is not None:
        # Blocked times are business-local wall-clock values
        start_at = start_at.replace(tzinfo=None)
        end_at = end_at.replace(tzinfo=None)
    if end_at <= start_at:
        raise BookingValidationError("end_at must be after start_at", field="end_at")

    async with get_async_session() as session:
        await _ensure_staff_member(session, business_id, staff_member_id)
        blocked = BlockedTime(
            business_id=business_id,
            staff_member_id=staff_member_id,
            start_at=start_at,
            end_at=end_at,
            reason=reason,
        )
        session.add(blocked)
        await session.commit()
        await session.refresh(blocked)

    logger.info(
        f"Blocked time created {start_at} -> {end_at}",
        extra={"business_id": business_id, "staff_member_id": staff_member_id},
    )
    return blocked


async def delete_blocked_time(business_id: UUID, blocked_time_id: UUID) -> None:
    """
    Raises:
        EntityNotFoundError: Unknown blocked time or one of another business
    """
    async with get_async_session() as session:
        result = await session.execute(
            delete(BlockedTime).where(
                and_(BlockedTime.id == blocked_time_id, BlockedTime.business_id == business_id)
            )
        )
        if not result.rowcount:
            raise EntityNotFoundError("Blocked time", blocked_time_id)
        await session.commit()

    logger.info(f"Blocked time {blocked_time_id} deleted", extra={"business_id": business_id})
