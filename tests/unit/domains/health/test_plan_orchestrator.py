"""Tests for the plan orchestrator: busy guard, failures and reconciliation."""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest
from conftest import make_item, make_plan

from biosync.core.llm.providers.mock import MockPlannerProvider
from biosync.domains.health.domain_logic.models import LifeLogs, UserProfile
from biosync.domains.health.planner.orchestrator import PlanOrchestrator
from biosync.domains.health.planner.service import PlannerService, PlannerUnavailableError

NOW = datetime(2026, 3, 2, 9, 0)


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _orchestrator(provider: MockPlannerProvider, locale: str = "en") -> PlanOrchestrator:
    return PlanOrchestrator(PlannerService(provider, timeout_seconds=5), locale=locale)


def test_fresh_plan_without_current(orchestrator):
    plan = _run(orchestrator.regenerate(UserProfile(), LifeLogs(), None, None, now=NOW))
    assert plan.date == "2026-03-02"
    assert plan.bio_load.neural_battery == 100
    assert not orchestrator.busy


def test_completed_items_survive_regeneration():
    orchestrator = _orchestrator(MockPlannerProvider())
    current = make_plan(items=[
        make_item("08:00", "Breakfast", completed=True),
        make_item("09:00", "Old snack"),
    ])
    plan = _run(orchestrator.regenerate(UserProfile(), LifeLogs(), current, None, now=NOW))
    breakfasts = [i for i in plan.items if i.time == "08:00"]
    assert len(breakfasts) == 1 and breakfasts[0].completed
    assert "Old snack" not in [i.title for i in plan.items]
    assert [i.time for i in plan.items] == sorted(i.time for i in plan.items)


def test_adherence_reaches_planner():
    provider = MockPlannerProvider()
    current = make_plan(items=[
        make_item("08:00", "Breakfast", completed=True),
        make_item("10:30", "Water", "hydration", skipped=True),
        make_item("13:00", "Lunch"),
    ])
    _run(_orchestrator(provider).regenerate(UserProfile(), LifeLogs(), current, None, now=NOW))
    assert "Tasks Completed: 1/3 (skipped: 1)" in provider.last_user_message


def test_concurrent_request_is_dropped():
    provider = MockPlannerProvider(delay=0.05)
    orchestrator = _orchestrator(provider)

    async def both():
        return await asyncio.gather(
            orchestrator.regenerate(UserProfile(), LifeLogs(), None, None, now=NOW),
            orchestrator.regenerate(UserProfile(), LifeLogs(), None, None, now=NOW),
        )

    first, second = _run(both())
    assert first is not None
    assert second is None
    assert provider.call_count == 1
    assert not orchestrator.busy


def test_completion_during_call_is_preserved():
    orchestrator = _orchestrator(MockPlannerProvider(delay=0.05))
    current = make_plan(items=[make_item("08:00", "Breakfast")])

    async def scenario():
        task = asyncio.ensure_future(
            orchestrator.regenerate(UserProfile(), LifeLogs(), current, None, now=NOW)
        )
        await asyncio.sleep(0.01)
        current.items[0].completed = True
        return await task

    plan = _run(scenario())
    assert plan.find("meal-08:00").completed
    assert [i.title for i in plan.items].count("Breakfast") == 1


def test_failure_propagates_and_leaves_plan_untouched():
    orchestrator = _orchestrator(MockPlannerProvider(error=RuntimeError("503")))
    current = make_plan(items=[make_item("08:00", "Breakfast")])
    before = current.to_dict()
    with pytest.raises(PlannerUnavailableError):
        _run(orchestrator.regenerate(UserProfile(), LifeLogs(), current, None, now=NOW))
    assert current.to_dict() == before
    assert not orchestrator.busy
