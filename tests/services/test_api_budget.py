from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from app.models import ApiBudget
from app.services.api_budget import ApiBudgetGovernor
from app.utils.timestamps import utc_today


@pytest.mark.asyncio
class TestApiBudgetGovernor:
    async def test_first_request_creates_todays_row(self, session_factory, test_session):
        governor = ApiBudgetGovernor(session_factory)

        assert await governor.consume() is True

        result = await test_session.execute(select(ApiBudget).where(ApiBudget.date == utc_today()))
        row = result.scalar_one()
        assert row.count == 1

    async def test_every_request_increments(self, session_factory):
        governor = ApiBudgetGovernor(session_factory)

        for _ in range(5):
            await governor.consume()

        assert await governor.get_used() == 5
        assert await governor.get_remaining() == 85

    async def test_denies_past_cap(self, session_factory):
        governor = ApiBudgetGovernor(session_factory, daily_limit=5, reserve=2, warn_threshold=2)

        results = [await governor.consume() for _ in range(5)]

        assert governor.cap == 3
        assert results == [True, True, True, False, False]
        assert await governor.get_remaining() == 0

    async def test_fallback_path_counts(self, session_factory):
        governor = ApiBudgetGovernor(session_factory, daily_limit=4, reserve=1, atomic=False)

        results = [await governor.consume() for _ in range(4)]

        assert results == [True, True, True, False]
        assert await governor.get_used() == 4

    async def test_fails_open_when_storage_unavailable(self):
        broken_factory = MagicMock(side_effect=RuntimeError("database is down"))
        governor = ApiBudgetGovernor(broken_factory)

        assert await governor.consume() is True

    async def test_remaining_assumes_full_budget_when_unreadable(self):
        broken_factory = MagicMock(side_effect=RuntimeError("database is down"))
        governor = ApiBudgetGovernor(broken_factory, daily_limit=100, reserve=10)

        assert await governor.get_remaining() == 90

    async def test_counts_are_per_day(self, session_factory, test_session):
        test_session.add(ApiBudget(date=utc_today() - timedelta(days=1), count=999))
        await test_session.commit()
        governor = ApiBudgetGovernor(session_factory)

        assert await governor.consume() is True
        assert await governor.get_used() == 1
