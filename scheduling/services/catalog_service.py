"""
Catalog service - Business-side management of services and staff.

- Services: create, update, soft-disable (is_active=False)
- Staff members: create, update, deactivate
- Capability sets: which services a staff member offers

Nothing here hard-deletes. Bookings keep referencing disabled services and
inactive staff; those simply stop being bookable and stop appearing on the
public page.
"""

import logging
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import and_, delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_async_session
from database.models import Service, StaffMember, staff_member_services
from scheduling.errors import BookingValidationError, EntityNotFoundError

logger = logging.getLogger(__name__)

SERVICE_FIELDS = frozenset(
    {"name", "description", "duration_minutes", "price", "is_active", "requires_confirmation"}
)
STAFF_FIELDS = frozenset({"name", "email", "phone", "role", "is_active"})


def _validate_service_fields(fields: dict[str, Any]) -> None:
    if "name" in fields and not (fields["name"] or "").strip():
        raise BookingValidationError("Service name is required", field="name")
    if "duration_minutes" in fields:
        duration = fields["duration_minutes"]
        if duration is None or duration <= 0:
            raise BookingValidationError(
                "duration_minutes must be positive", field="duration_minutes"
            )
    if fields.get("price") is not None and fields["price"] < 0:
        raise BookingValidationError("price must not be negative", field="price")


async def _load_service(session: AsyncSession, business_id: UUID, service_id: UUID) -> Service:
    result = await session.execute(
        select(Service).where(and_(Service.id == service_id, Service.business_id == business_id))
    )
    service = result.scalar_one_or_none()
    if service is None:
        raise EntityNotFoundError("Service", service_id)
    return service


async def _load_staff_member(
    session: AsyncSession,
    business_id: UUID,
    staff_member_id: UUID,
) -> StaffMember:
    result = await session.execute(
        select(StaffMember).where(
            and_(StaffMember.id == staff_member_id, StaffMember.business_id == business_id)
        )
    )
    staff_member = result.scalar_one_or_none()
    if staff_member is None:
        raise EntityNotFoundError("Staff member", staff_member_id)
    return staff_member


# ============================================================================
# Services
# ============================================================================


async def list_services(business_id: UUID) -> list[Service]:
    """All services of a business, inactive ones included."""
    async with get_async_session() as session:
        result = await session.execute(
            select(Service).where(Service.business_id == business_id).order_by(Service.name)
        )
        return list(result.scalars().all())


async def create_service(
    business_id: UUID,
    name: str,
    duration_minutes: int,
    description: str | None = None,
    price: Decimal | None = None,
    requires_confirmation: bool = False,
) -> Service:
    """
    Raises:
        BookingValidationError: Blank name, non-positive duration or negative price
    """
    _validate_service_fields(
        {"name": name, "duration_minutes": duration_minutes, "price": price}
    )

    async with get_async_session() as session:
        service = Service(
            business_id=business_id,
            name=name.strip(),
            description=description,
            duration_minutes=duration_minutes,
            price=price,
            requires_confirmation=requires_confirmation,
        )
        session.add(service)
        await session.commit()
        await session.refresh(service)

    logger.info(f"Service '{service.name}' created", extra={"business_id": business_id})
    return service


async def update_service(business_id: UUID, service_id: UUID, changes: dict[str, Any]) -> Service:
    """
    Apply a partial update; keys outside SERVICE_FIELDS are ignored.

    Existing bookings keep their times when the duration changes.

    Raises:
        EntityNotFoundError: Unknown service or service of another business
        BookingValidationError: Invalid field value
    """
    changes = {k: v for k, v in changes.items() if k in SERVICE_FIELDS}
    _validate_service_fields(changes)

    async with get_async_session() as session:
        service = await _load_service(session, business_id, service_id)
        for field, value in changes.items():
            setattr(service, field, value.strip() if field == "name" else value)
        await session.commit()
        await session.refresh(service)

    logger.info(
        f"Service {service_id} updated ({', '.join(sorted(changes)) or 'no changes'})",
        extra={"business_id": business_id},
    )
    return service


async def deactivate_service(business_id: UUID, service_id: UUID) -> Service:
    """Soft-disable a service; it can no longer be booked or listed publicly."""
    return await update_service(business_id, service_id, {"is_active": False})


# ============================================================================
# Staff members
# ============================================================================


async def list_staff_members(business_id: UUID) -> list[StaffMember]:
    """All staff members of a business, inactive ones included."""
    async with get_async_session() as session:
        result = await session.execute(
            select(StaffMember)
            .where(StaffMember.business_id == business_id)
            .order_by(StaffMember.name)
        )
        return list(result.scalars().all())


async def create_staff_member(
    business_id: UUID,
    name: str,
    email: str | None = None,
    phone: str | None = None,
    role: str | None = None,
    service_ids: list[UUID] | None = None,
) -> StaffMember:
    """
    Create a staff member, optionally with an initial capability set.

    The new member has no weekly rules and therefore no availability until
    rules are configured for them.

    Raises:
        BookingValidationError: Blank name
        EntityNotFoundError: A service id not belonging to the business
    """
    if not name or not name.strip():
        raise BookingValidationError("Staff member name is required", field="name")

    async with get_async_session() as session:
        staff_member = StaffMember(
            business_id=business_id,
            name=name.strip(),
            email=email,
            phone=phone,
            role=role,
        )
        session.add(staff_member)
        await session.flush()

        if service_ids:
            await _replace_services(session, business_id, staff_member.id, service_ids)

        await session.commit()
        await session.refresh(staff_member)

    logger.info(
        f"Staff member '{staff_member.name}' created",
        extra={"business_id": business_id, "staff_member_id": staff_member.id},
    )
    return staff_member


async def update_staff_member(
    business_id: UUID,
    staff_member_id: UUID,
    changes: dict[str, Any],
) -> StaffMember:
    """
    Apply a partial update; keys outside STAFF_FIELDS are ignored.

    Raises:
        EntityNotFoundError: Unknown staff member or member of another business
        BookingValidationError: Blank name
    """
    changes = {k: v for k, v in changes.items() if k in STAFF_FIELDS}
    if "name" in changes and not (changes["name"] or "").strip():
        raise BookingValidationError("Staff member name is required", field="name")

    async with get_async_session() as session:
        staff_member = await _load_staff_member(session, business_id, staff_member_id)
        for field, value in changes.items():
            setattr(staff_member, field, value.strip() if field == "name" else value)
        await session.commit()
        await session.refresh(staff_member)

    logger.info(
        f"Staff member {staff_member_id} updated ({', '.join(sorted(changes)) or 'no changes'})",
        extra={"business_id": business_id, "staff_member_id": staff_member_id},
    )
    return staff_member


async def deactivate_staff_member(business_id: UUID, staff_member_id: UUID) -> StaffMember:
    """
    Deactivate a staff member.

    Their existing bookings are untouched; new allocations for them are
    rejected and they disappear from the public page.
    """
    return await update_staff_member(business_id, staff_member_id, {"is_active": False})


# ============================================================================
# Capability sets
# ============================================================================


async def _replace_services(
    session: AsyncSession,
    business_id: UUID,
    staff_member_id: UUID,
    service_ids: list[UUID],
) -> list[UUID]:
    wanted = list(dict.fromkeys(service_ids))
    if wanted:
        result = await session.execute(
            select(Service.id).where(
                and_(Service.business_id == business_id, Service.id.in_(wanted))
            )
        )
        known = set(result.scalars().all())
        missing = [service_id for service_id in wanted if service_id not in known]
        if missing:
            raise EntityNotFoundError("Service", missing[0])

    await session.execute(
        delete(staff_member_services).where(
            staff_member_services.c.staff_member_id == staff_member_id
        )
    )
    if wanted:
        await session.execute(
            insert(staff_member_services),
            [{"staff_member_id": staff_member_id, "service_id": sid} for sid in wanted],
        )
    return wanted


async def get_staff_services(business_id: UUID, staff_member_id: UUID) -> list[UUID]:
    """
    Ids of the services a staff member offers.

    Raises:
        EntityNotFoundError: Unknown staff member or member of another business
    """
    async with get_async_session() as session:
        await _load_staff_member(session, business_id, staff_member_id)
        result = await session.execute(
            select(staff_member_services.c.service_id).where(
                staff_member_services.c.staff_member_id == staff_member_id
            )
        )
        return list(result.scalars().all())


async def set_staff_services(
    business_id: UUID,
    staff_member_id: UUID,
    service_ids: list[UUID],
) -> list[UUID]:
    """
    Replace the capability set of a staff member.

    Every service must belong to the same business; on an unknown id nothing
    is changed. Existing bookings for services no longer offered stay valid.

    Raises:
        EntityNotFoundError: Unknown staff member or service
    """
    async with get_async_session() as session:
        await _load_staff_member(session, business_id, staff_member_id)
        assigned = await _replace_services(session, business_id, staff_member_id, service_ids)
        await session.commit()

    logger.info(
        f"Staff member {staff_member_id} now offers {len(assigned)} services",
        extra={"business_id": business_id, "staff_member_id": staff_member_id},
    )
    return assigned
