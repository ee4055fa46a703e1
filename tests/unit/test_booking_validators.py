"""
Unit tests for booking input validators.
"""

from datetime import date, time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from scheduling.errors import BookingValidationError, EntityNotFoundError
from scheduling.validators import (
    compute_end_time,
    get_bookable_service,
    get_bookable_staff_member,
    validate_customer,
    validate_date_range,
    validate_time_range,
)


def _result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.first.return_value = value
    return result


class TestTimeRange:
    def test_valid(self):
        validate_time_range(time(9, 0), time(9, 30))

    @pytest.mark.parametrize("end", [time(9, 0), time(8, 0)])
    def test_end_not_after_start(self, end):
        with pytest.raises(BookingValidationError) as exc_info:
            validate_time_range(time(9, 0), end)
        assert exc_info.value.field == "end_time"


class TestDateRange:
    def test_single_day(self):
        validate_date_range(date(2025, 6, 2), date(2025, 6, 2), max_days=1)

    def test_reversed(self):
        with pytest.raises(BookingValidationError):
            validate_date_range(date(2025, 6, 3), date(2025, 6, 2), max_days=62)

    def test_too_long(self):
        with pytest.raises(BookingValidationError, match="too long"):
            validate_date_range(date(2025, 6, 1), date(2025, 6, 8), max_days=7)


class TestComputeEndTime:
    def test_adds_duration(self):
        assert compute_end_time(time(9, 45), 30) == time(10, 15)

    def test_rejects_past_midnight(self):
        with pytest.raises(BookingValidationError, match="midnight"):
            compute_end_time(time(23, 45), 30)

    def test_rejects_ending_exactly_at_midnight(self):
        with pytest.raises(BookingValidationError):
            compute_end_time(time(23, 30), 30)


class TestValidateCustomer:
    def test_valid(self):
        assert validate_customer("Ana", "ana@example.com") == "ana@example.com"

    def test_email_is_trimmed_and_lowercased(self):
        assert validate_customer("Ana", "  Ana.Perez@Example.COM ") == "ana.perez@example.com"

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_name_required(self, name):
        with pytest.raises(BookingValidationError) as exc_info:
            validate_customer(name, "ana@example.com")
        assert exc_info.value.field == "customer_name"

    @pytest.mark.parametrize("email", [None, "", "not-an-email", "@@@", "not an email@", "a@"])
    def test_email_required(self, email):
        with pytest.raises(BookingValidationError) as exc_info:
            validate_customer("Ana", email)
        assert exc_info.value.field == "customer_email"


class TestGetBookableService:
    @pytest.mark.asyncio
    async def test_returns_active_service(self, business_id):
        service = SimpleNamespace(id=uuid4(), is_active=True)
        session = AsyncMock()
        session.execute.return_value = _result(service)

        assert await get_bookable_service(session, business_id, service.id) is service

    @pytest.mark.asyncio
    async def test_unknown_service(self, business_id):
        session = AsyncMock()
        session.execute.return_value = _result(None)

        with pytest.raises(EntityNotFoundError):
            await get_bookable_service(session, business_id, uuid4())

    @pytest.mark.asyncio
    async def test_inactive_service(self, business_id):
        session = AsyncMock()
        session.execute.return_value = _result(SimpleNamespace(id=uuid4(), is_active=False))

        with pytest.raises(BookingValidationError) as exc_info:
            await get_bookable_service(session, business_id, uuid4())
        assert exc_info.value.field == "service_id"


class TestGetBookableStaffMember:
    @pytest.mark.asyncio
    async def test_offers_service(self, business_id, staff_member_id):
        member = SimpleNamespace(id=staff_member_id, is_active=True)
        session = AsyncMock()
        session.execute.side_effect = [_result(member), _result(("service",))]

        assert await get_bookable_staff_member(
            session, business_id, staff_member_id, uuid4()
        ) is member

    @pytest.mark.asyncio
    async def test_does_not_offer_service(self, business_id, staff_member_id):
        member = SimpleNamespace(id=staff_member_id, is_active=True)
        session = AsyncMock()
        session.execute.side_effect = [_result(member), _result(None)]

        with pytest.raises(BookingValidationError, match="does not offer"):
            await get_bookable_staff_member(session, business_id, staff_member_id, uuid4())

    @pytest.mark.asyncio
    async def test_inactive_staff_member(self, business_id, staff_member_id):
        session = AsyncMock()
        session.execute.return_value = _result(SimpleNamespace(id=staff_member_id, is_active=False))

        with pytest.raises(BookingValidationError):
            await get_bookable_staff_member(session, business_id, staff_member_id)

    @pytest.mark.asyncio
    async def test_staff_member_of_other_business(self, business_id, staff_member_id):
        session = AsyncMock()
        session.execute.return_value = _result(None)

        with pytest.raises(EntityNotFoundError):
            await get_bookable_staff_member(session, business_id, staff_member_id)
