"""Tests for PeriodicTask."""

from __future__ import annotations

import asyncio

from biosync.core.timing.periodic import PeriodicTask


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def test_ticks_until_stopped():
    calls: list[int] = []

    async def _check():
        task = PeriodicTask("counter", 0.01, lambda: calls.append(1))
        task.start()
        await asyncio.sleep(0.055)
        task.stop()
        seen = len(calls)
        await asyncio.sleep(0.03)
        return seen

    seen = _run(_check())
    assert seen >= 2
    assert len(calls) == seen


def test_awaits_coroutine_callbacks():
    calls: list[str] = []

    async def tick():
        await asyncio.sleep(0)
        calls.append("tick")

    async def _check():
        task = PeriodicTask("async", 0.01, tick)
        task.start()
        await asyncio.sleep(0.025)
        task.stop()

    _run(_check())
    assert calls


def test_failing_tick_does_not_kill_loop():
    calls: list[int] = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")

    async def _check():
        task = PeriodicTask("flaky", 0.01, flaky)
        task.start()
        await asyncio.sleep(0.045)
        task.stop()

    _run(_check())
    assert len(calls) >= 2


def test_run_immediately_false_waits_one_interval():
    calls: list[int] = []

    async def _check():
        task = PeriodicTask("delayed", 0.05, lambda: calls.append(1), run_immediately=False)
        task.start()
        await asyncio.sleep(0.01)
        early = len(calls)
        task.stop()
        return early

    assert _run(_check()) == 0


def test_stop_is_idempotent_and_running_flag():
    async def _check():
        task = PeriodicTask("idle", 1.0, lambda: None)
        assert not task.running
        task.start()
        assert task.running
        task.stop()
        task.stop()
        assert not task.running

    _run(_check())
