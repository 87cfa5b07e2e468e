"""Tests for IdleReaper — start/stop and reap cycles."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from minerwatch.reaper import IdleReaper
from minerwatch.store import ActivityTracker


@pytest.fixture
def manager():
    mgr = MagicMock()
    mgr.activity = ActivityTracker()
    mgr.shutdown = AsyncMock(return_value=True)
    return mgr


class TestReaperProperties:
    def test_initial_state(self, manager):
        reaper = IdleReaper(manager, timeout=300)
        assert reaper.running is False
        assert reaper.interval == 60

    async def test_start_sets_running(self, manager):
        reaper = IdleReaper(manager, timeout=300)
        await reaper.start()
        assert reaper.running is True
        await reaper.stop()
        assert reaper.running is False

    async def test_stop_is_idempotent(self, manager):
        reaper = IdleReaper(manager, timeout=300)
        await reaper.stop()
        assert reaper.running is False

    async def test_double_start(self, manager):
        reaper = IdleReaper(manager, timeout=300)
        await reaper.start()
        task = reaper._task
        await reaper.start()
        assert reaper._task is task
        await reaper.stop()


class TestReapCycle:
    async def test_idle_key_shut_down(self, manager):
        manager.activity.touch("stale", now=1000.0)
        reaper = IdleReaper(manager, timeout=300)

        reaped = await reaper.run_once(now=1000.0 + 301)

        assert reaped == ["stale"]
        manager.shutdown.assert_awaited_once_with("stale")

    async def test_recent_key_untouched(self, manager):
        manager.activity.touch("fresh", now=1000.0)
        reaper = IdleReaper(manager, timeout=300)

        reaped = await reaper.run_once(now=1000.0 + 120)

        assert reaped == []
        manager.shutdown.assert_not_awaited()

    async def test_mixed_keys(self, manager):
        manager.activity.touch("stale", now=0.0)
        manager.activity.touch("fresh", now=500.0)
        reaper = IdleReaper(manager, timeout=300)

        assert await reaper.run_once(now=600.0) == ["stale"]

    async def test_shutdown_error_does_not_stop_cycle(self, manager):
        manager.activity.touch("a", now=0.0)
        manager.activity.touch("b", now=0.0)
        manager.shutdown = AsyncMock(side_effect=[RuntimeError("boom"), True])
        reaper = IdleReaper(manager, timeout=300)

        assert await reaper.run_once(now=1000.0) == ["a", "b"]
        assert manager.shutdown.await_count == 2

    async def test_loop_reaps_on_tick(self, manager):
        manager.activity.touch("stale", now=0.0)
        reaper = IdleReaper(manager, timeout=300, interval=0.01)

        await reaper.start()
        await asyncio.sleep(0.05)
        await reaper.stop()

        manager.shutdown.assert_awaited_with("stale")
