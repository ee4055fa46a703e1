"""
Integration test fixtures.

Requires PostgreSQL at TEST_DATABASE_URL; every test in this directory is
skipped when it is unreachable. The schema is rebuilt from the models for
each test and Redis publishing is patched out.
"""

from datetime import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError

from database.connection import AsyncSessionLocal, engine
from database.models import AvailabilityRule, Base, Business, Service, StaffMember


def pytest_collection_modifyitems(items):
    for item in items:
        if "tests/integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest_asyncio.fixture
async def database():
    """Fresh schema for one test; the engine is disposed so the next test's loop reconnects."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
    except (OSError, OperationalError, DBAPIError) as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL not available: {e}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    with patch(
        "scheduling.services.notification_service.publish_to_channel", AsyncMock(return_value=0)
    ) as publish:
        yield publish

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def salon(database):
    """
    Business open Monday 09:00-12:00 with 30 minute slots and capacity 1.

    Ana works Monday 09:00-12:00 with capacity 1 and offers the haircut.
    """
    async with AsyncSessionLocal() as session:
        business = Business(name="Test Salon", slug="test-salon", timezone="Europe/Madrid")
        session.add(business)
        await session.flush()

        haircut = Service(business_id=business.id, name="Haircut", duration_minutes=30)
        consultation = Service(
            business_id=business.id,
            name="Consultation",
            duration_minutes=30,
            requires_confirmation=True,
        )
        ana = StaffMember(business_id=business.id, name="Ana", services=[haircut])
        session.add_all([haircut, consultation, ana])
        await session.flush()

        session.add_all(
            [
                AvailabilityRule(
                    business_id=business.id,
                    day_of_week=0,
                    start_time=time(9, 0),
                    end_time=time(12, 0),
                    is_open=True,
                    slot_duration_minutes=30,
                    max_bookings_per_slot=1,
                ),
                AvailabilityRule(
                    business_id=business.id,
                    staff_member_id=ana.id,
                    day_of_week=0,
                    start_time=time(9, 0),
                    end_time=time(12, 0),
                    is_open=True,
                    slot_duration_minutes=30,
                    max_bookings_per_slot=1,
                ),
            ]
        )
        await session.commit()

        return SimpleNamespace(
            business_id=business.id,
            haircut_id=haircut.id,
            consultation_id=consultation.id,
            ana_id=ana.id,
            publish=database,
        )
