"""
Tests for marketpilot.connectors.scheduler — the in-process trigger service.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from marketpilot.connectors.base_connector import AgentEndpoint
from marketpilot.connectors.scheduler import EXECUTE_ENTRY_POINT, TickScheduler, encode_invocation
from marketpilot.errors import ServiceRejectedError


@pytest.fixture
def target():
    endpoint = MagicMock(spec=AgentEndpoint)
    endpoint.agent_id = "agent-1"
    endpoint.dispatch = AsyncMock()
    return endpoint


async def _register(scheduler, target, **overrides):
    params = dict(
        start_tick=scheduler.current_tick + 1,
        target=target,
        value=Decimal("0"),
        payload=encode_invocation(),
        gas_limit=3_000_000,
        nonce=1,
        interval=3,
        max_executions=2,
    )
    params.update(overrides)
    return await scheduler.schedule_recurring(**params)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Registration
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestScheduleRecurring:
    @pytest.mark.asyncio
    async def test_returns_handle(self, target):
        scheduler = TickScheduler()

        handle = await _register(scheduler, target)

        schedule = scheduler.get(handle)
        assert schedule.registered_at == 0
        assert schedule.payload == EXECUTE_ENTRY_POINT
        assert scheduler.has_live_schedules()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"start_tick": 0},
            {"interval": 0},
            {"interval": 501},
            {"max_executions": -1},
            {"gas_limit": 0},
        ],
    )
    async def test_rejections(self, target, overrides):
        scheduler = TickScheduler()

        with pytest.raises(ServiceRejectedError):
            await _register(scheduler, target, **overrides)
        assert not scheduler.has_live_schedules()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Firing
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestAdvance:
    @pytest.mark.asyncio
    async def test_fires_at_interval_until_exhausted(self, target):
        scheduler = TickScheduler()
        await _register(scheduler, target, interval=3, max_executions=2)

        fired = await scheduler.advance(10)

        assert fired == 2
        assert target.dispatch.await_count == 2
        target.dispatch.assert_awaited_with(EXECUTE_ENTRY_POINT, caller="agent-1")
        assert not scheduler.has_live_schedules()

    @pytest.mark.asyncio
    async def test_unbounded_schedule(self, target):
        scheduler = TickScheduler()
        await _register(scheduler, target, interval=1, max_executions=0)

        assert await scheduler.advance(25) == 25
        assert scheduler.has_live_schedules()

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_schedule(self, target):
        target.dispatch = AsyncMock(side_effect=RuntimeError("agent reverted"))
        scheduler = TickScheduler()
        handle = await _register(scheduler, target, interval=1, max_executions=3)

        await scheduler.advance(5)

        schedule = scheduler.get(handle)
        assert schedule.executions == 3
        assert schedule.failures == 3

    @pytest.mark.asyncio
    async def test_run_stops_when_idle(self, target):
        scheduler = TickScheduler()
        await _register(scheduler, target, interval=1, max_executions=2)

        await asyncio.wait_for(scheduler.run(0), timeout=1)

        assert target.dispatch.await_count == 2


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Cancel
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_needs_registration_tick(self, target):
        scheduler = TickScheduler(start_tick=7)
        handle = await _register(scheduler, target)

        assert await scheduler.cancel(8, handle) is False
        assert await scheduler.cancel(7, handle) is True
        assert await scheduler.cancel(7, handle) is False

        assert await scheduler.advance(20) == 0
        target.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_unknown_handle(self):
        assert await TickScheduler().cancel(0, "nope") is False
