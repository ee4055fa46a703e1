"""
Seed script for a demo business.

Creates "demo-salon" with:
- 3 services (one requiring confirmation)
- 2 staff members with their service capabilities
- Business-wide hours: Monday CLOSED, Tuesday-Friday 10:00-20:00, Saturday 9:00-14:00
- Staff schedule for Ana: Tuesday-Saturday 9:00-17:00, 2 parallel bookings
"""

import asyncio
from datetime import time
from decimal import Decimal
from typing import Any

from sqlalchemy import select

from database.connection import AsyncSessionLocal
from database.models import AvailabilityRule, Business, Service, StaffMember

DEMO_SLUG = "demo-salon"

BUSINESS_DATA: dict[str, Any] = {
    "name": "Demo Salon",
    "slug": DEMO_SLUG,
    "description": "Demo business for local development",
    "timezone": "Europe/Madrid",
    "email": "hello@demo-salon.example",
}

SERVICES_DATA: list[dict[str, Any]] = [
    {"name": "Haircut", "duration_minutes": 30, "price": Decimal("25.00")},
    {"name": "Colour", "duration_minutes": 90, "price": Decimal("60.00")},
    {
        "name": "Consultation",
        "duration_minutes": 15,
        "price": None,
        "requires_confirmation": True,
    },
]

STAFF_DATA: list[dict[str, Any]] = [
    {"name": "Ana", "role": "Stylist", "services": ["Haircut", "Colour"]},
    {"name": "Victor", "role": "Stylist", "services": ["Haircut", "Consultation"]},
]

# Day of week: 0=Monday, 1=Tuesday, ..., 6=Sunday
BUSINESS_HOURS_DATA: list[dict[str, Any]] = [
    # Monday - CLOSED (times are ignored when is_open is False)
    {"day_of_week": 0, "is_open": False, "start_time": time(9, 0), "end_time": time(17, 0)},
    {"day_of_week": 1, "is_open": True, "start_time": time(10, 0), "end_time": time(20, 0)},
    {"day_of_week": 2, "is_open": True, "start_time": time(10, 0), "end_time": time(20, 0)},
    {"day_of_week": 3, "is_open": True, "start_time": time(10, 0), "end_time": time(20, 0)},
    {"day_of_week": 4, "is_open": True, "start_time": time(10, 0), "end_time": time(20, 0)},
    {"day_of_week": 5, "is_open": True, "start_time": time(9, 0), "end_time": time(14, 0)},
    # Sunday - no rule (closed)
]

ANA_HOURS_DATA: list[dict[str, Any]] = [
    {
        "day_of_week": day,
        "is_open": True,
        "start_time": time(9, 0),
        "end_time": time(17, 0),
        "max_bookings_per_slot": 2,
    }
    for day in range(1, 6)
]


async def seed_demo_business() -> None:
    """
    Seed the demo business.

    Idempotent: does nothing if a business with the demo slug already exists.
    """
    async with AsyncSessionLocal() as session:
        async with session.begin():
            result = await session.execute(select(Business).where(Business.slug == DEMO_SLUG))
            if result.scalar_one_or_none() is not None:
                print(f"⊙ Business already exists: {DEMO_SLUG}")
                return

            business = Business(**BUSINESS_DATA)
            session.add(business)
            await session.flush()
            print(f"✓ Created business: {business.name} ({business.slug})")

            services: dict[str, Service] = {}
            for service_data in SERVICES_DATA:
                service = Service(business_id=business.id, **service_data)
                session.add(service)
                services[service.name] = service
                print(f"✓ Created service: {service.name} ({service.duration_minutes} min)")

            staff: dict[str, StaffMember] = {}
            for staff_data in STAFF_DATA:
                member = StaffMember(
                    business_id=business.id,
                    name=staff_data["name"],
                    role=staff_data["role"],
                    services=[services[name] for name in staff_data["services"]],
                )
                session.add(member)
                staff[member.name] = member
                print(f"✓ Created staff member: {member.name}")
            await session.flush()

            for rule_data in BUSINESS_HOURS_DATA:
                session.add(AvailabilityRule(business_id=business.id, **rule_data))
            for rule_data in ANA_HOURS_DATA:
                session.add(
                    AvailabilityRule(
                        business_id=business.id,
                        staff_member_id=staff["Ana"].id,
                        **rule_data,
                    )
                )
            print(
                f"✓ Created {len(BUSINESS_HOURS_DATA)} business rules "
                f"and {len(ANA_HOURS_DATA)} staff rules"
            )

    print(f"\n✓ Seeding complete! Public page slug: {DEMO_SLUG}")


if __name__ == "__main__":
    print("Seeding demo business...")
    print("=" * 60)
    asyncio.run(seed_demo_business())
