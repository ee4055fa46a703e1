"""
Unit tests for the availability resolver.

Tests cover:
- Rule selection by weekday and exact scope (no staff -> business fallback)
- Closed days and missing rules
- Blocked time subtraction (business-wide vs staff scope)
- resolve_availability() date iteration with a mocked session
"""

from datetime import date, datetime, time, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from scheduling.errors import BookingValidationError
from scheduling.services.availability_service import (
    blocks_for_scope,
    resolve_availability,
    resolve_day,
    select_rule,
)
from tests.conftest import MONDAY


def _block(start: datetime, end: datetime, staff_member_id=None) -> SimpleNamespace:
    return SimpleNamespace(id=uuid4(), staff_member_id=staff_member_id, start_at=start, end_at=end)


class TestSelectRule:
    def test_picks_rule_for_weekday(self, make_rule):
        monday = make_rule(day_of_week=0)
        tuesday = make_rule(day_of_week=1)
        assert select_rule([tuesday, monday], MONDAY) is monday

    def test_staff_scope_ignores_business_rules(self, make_rule, staff_member_id):
        """A staff member with no rule for the day is unavailable."""
        business_rule = make_rule(day_of_week=0)
        assert select_rule([business_rule], MONDAY, staff_member_id) is None

    def test_staff_scope_uses_own_rule(self, make_rule, staff_member_id):
        business_rule = make_rule(day_of_week=0)
        staff_rule = make_rule(day_of_week=0, staff_member_id=staff_member_id)
        assert select_rule([business_rule, staff_rule], MONDAY, staff_member_id) is staff_rule

    def test_business_scope_ignores_staff_rules(self, make_rule, staff_member_id):
        staff_rule = make_rule(day_of_week=0, staff_member_id=staff_member_id)
        assert select_rule([staff_rule], MONDAY) is None


class TestBlocksForScope:
    def test_business_scope_only_business_blocks(self, staff_member_id):
        shared = _block(datetime(2025, 6, 2, 10), datetime(2025, 6, 2, 11))
        personal = _block(datetime(2025, 6, 2, 12), datetime(2025, 6, 2, 13), staff_member_id)
        assert blocks_for_scope([shared, personal]) == [shared]

    def test_staff_scope_gets_business_and_own_blocks(self, staff_member_id):
        shared = _block(datetime(2025, 6, 2, 10), datetime(2025, 6, 2, 11))
        personal = _block(datetime(2025, 6, 2, 12), datetime(2025, 6, 2, 13), staff_member_id)
        other = _block(datetime(2025, 6, 2, 14), datetime(2025, 6, 2, 15), uuid4())
        assert blocks_for_scope([shared, personal, other], staff_member_id) == [shared, personal]


class TestResolveDay:
    def test_no_rule_is_closed(self):
        day = resolve_day(MONDAY, None)
        assert day.intervals == []
        assert day.is_open is False

    def test_closed_rule(self, make_rule):
        day = resolve_day(MONDAY, make_rule(is_open=False))
        assert day.intervals == []
        assert day.base_intervals == []

    def test_open_rule_without_blocks(self, make_rule):
        day = resolve_day(MONDAY, make_rule(start=time(9, 0), end=time(12, 0)))
        assert day.intervals == [(540, 720)]
        assert day.base_intervals == [(540, 720)]
        assert day.blocked == []

    def test_blackout_splits_interval(self, make_rule):
        rule = make_rule(start=time(9, 0), end=time(12, 0))
        blocks = [_block(datetime(2025, 6, 2, 10, 0), datetime(2025, 6, 2, 10, 30))]

        day = resolve_day(MONDAY, rule, blocks)

        assert day.intervals == [(540, 600), (630, 720)]
        assert day.base_intervals == [(540, 720)]
        assert day.blocked == [(600, 630)]

    def test_multi_day_block_closes_the_day(self, make_rule):
        rule = make_rule()
        blocks = [_block(datetime(2025, 6, 1, 0, 0), datetime(2025, 6, 4, 0, 0))]
        assert resolve_day(MONDAY, rule, blocks).intervals == []

    def test_block_on_other_day_is_ignored(self, make_rule):
        rule = make_rule(start=time(9, 0), end=time(12, 0))
        blocks = [_block(datetime(2025, 6, 3, 10, 0), datetime(2025, 6, 3, 11, 0))]
        assert resolve_day(MONDAY, rule, blocks).intervals == [(540, 720)]

    def test_overnight_rule_is_skipped_with_warning(self, make_rule, caplog):
        rule = make_rule(start=time(22, 0), end=time(2, 0))
        with caplog.at_level("WARNING"):
            day = resolve_day(MONDAY, rule)
        assert day.intervals == []
        assert "end <= start" in caplog.text

    def test_carries_rule_granularity_and_capacity(self, make_rule):
        day = resolve_day(MONDAY, make_rule(slot_duration_minutes=15, max_bookings_per_slot=3))
        assert day.slot_duration_minutes == 15
        assert day.max_bookings_per_slot == 3


class TestResolveAvailability:
    @pytest.mark.asyncio
    async def test_one_entry_per_date(self, business_id, make_rule):
        session = AsyncMock()
        rules = [make_rule(day_of_week=0), make_rule(day_of_week=1, is_open=False)]

        with patch(
            "scheduling.services.availability_service.get_rules",
            AsyncMock(return_value=rules),
        ), patch(
            "scheduling.services.availability_service.get_blocked_times",
            AsyncMock(return_value=[]),
        ):
            days = await resolve_availability(
                business_id, MONDAY, MONDAY + timedelta(days=2), session=session
            )

        assert [d.date for d in days] == [MONDAY, MONDAY + timedelta(days=1), MONDAY + timedelta(days=2)]
        assert days[0].intervals == [(540, 1020)]
        assert days[1].intervals == []  # closed
        assert days[2].intervals == []  # no rule

    @pytest.mark.asyncio
    async def test_uses_read_session_when_none_given(self, business_id):
        read_session = MagicMock()
        read_session.return_value.__aenter__.return_value = AsyncMock()

        with patch(
            "scheduling.services.availability_service.get_read_session", read_session
        ), patch(
            "scheduling.services.availability_service.get_rules", AsyncMock(return_value=[])
        ), patch(
            "scheduling.services.availability_service.get_blocked_times",
            AsyncMock(return_value=[]),
        ):
            days = await resolve_availability(business_id, MONDAY, MONDAY)

        read_session.assert_called_once()
        assert len(days) == 1

    @pytest.mark.asyncio
    async def test_reversed_range_rejected(self, business_id):
        with pytest.raises(BookingValidationError):
            await resolve_availability(business_id, MONDAY, MONDAY - timedelta(days=1))

    @pytest.mark.asyncio
    async def test_range_longer_than_limit_rejected(self, business_id):
        with pytest.raises(BookingValidationError):
            await resolve_availability(business_id, MONDAY, MONDAY + timedelta(days=400))

    @pytest.mark.asyncio
    async def test_staff_blocks_do_not_leak_into_business_scope(self, business_id, make_rule):
        session = AsyncMock()
        rules = [make_rule(day_of_week=0, start=time(9, 0), end=time(12, 0))]
        staff_block = _block(datetime(2025, 6, 2, 9, 0), datetime(2025, 6, 2, 12, 0), uuid4())

        with patch(
            "scheduling.services.availability_service.get_rules", AsyncMock(return_value=rules)
        ), patch(
            "scheduling.services.availability_service.get_blocked_times",
            AsyncMock(return_value=[staff_block]),
        ):
            days = await resolve_availability(business_id, MONDAY, MONDAY, session=session)

        assert days[0].intervals == [(540, 720)]
