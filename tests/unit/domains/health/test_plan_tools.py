"""Unit tests for the daily plan MCP tools."""

from __future__ import annotations

import asyncio

import pytest
from conftest import tool_payload
from fastmcp import Client

from biosync.core.server.app import create_app


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def client(plan_engine):
    """MCP client over the engine fixture (fake clock, mock planner, no ticks)."""
    mcp = create_app(engine_override=plan_engine, start_ticks=False)
    return Client(mcp)


def _call(client, *calls):
    """Run tool calls in order on one connection and return their payloads."""
    async def _go():
        async with client:
            return [tool_payload(await client.call_tool(name, args)) for name, args in calls]
    return _run(_go())


def test_plan_tools_are_listed(client):
    async def _check():
        async with client:
            tools = await client.list_tools()
            names = {t.name for t in tools}
            for expected in (
                "get_daily_plan",
                "regenerate_plan",
                "update_plan_item",
                "get_bio_load",
                "check_due_items",
                "collect_notifications",
            ):
                assert expected in names, f"Missing tool: {expected}"
    _run(_check())


def test_empty_plan(client):
    (payload,) = _call(client, ("get_daily_plan", {}))
    assert payload["status"] == "empty"


def test_regenerate_then_read(client):
    regenerated, current = _call(
        client,
        ("regenerate_plan", {"temperature_c": 12.0, "weather_condition": "rain"}),
        ("get_daily_plan", {}),
    )
    assert regenerated["status"] == "ok"
    assert current["plan"]["date"] == "2026-03-02"
    assert current["adherence"] == {"completed": 0, "skipped": 0, "total": 5}


def test_regenerate_failure_is_reported(client, mock_provider):
    mock_provider.error = RuntimeError("upstream 502")
    (payload,) = _call(client, ("regenerate_plan", {}))
    assert payload["status"] == "error"
    assert payload["error_type"] == "PlannerUnavailableError"


def test_update_plan_item(client, plan_engine):
    _run(plan_engine.regenerate())
    lunch = next(i for i in plan_engine.plan.items if i.title == "Lunch")
    done, snoozed, unknown, bad_action, bad_minutes = _call(
        client,
        ("update_plan_item", {"item_id": lunch.id, "action": "complete"}),
        ("update_plan_item", {"item_id": lunch.id, "action": "snooze", "minutes": 10}),
        ("update_plan_item", {"item_id": "missing", "action": "skip"}),
        ("update_plan_item", {"item_id": lunch.id, "action": "archive"}),
        ("update_plan_item", {"item_id": lunch.id, "action": "snooze", "minutes": 0}),
    )
    assert done["item"]["completed"] is True
    assert snoozed["item"]["snoozed_until"] is not None
    assert unknown["status"] == "error"
    assert "archive" in bad_action["message"]
    assert bad_minutes["status"] == "error"


def test_due_items_reach_the_inbox(client, plan_engine, clock):
    _run(plan_engine.regenerate())
    clock.set(8, 5)
    tick, collected, again = _call(
        client,
        ("check_due_items", {}),
        ("collect_notifications", {}),
        ("collect_notifications", {}),
    )
    assert len(tick["notified"]) == 1
    assert tick["context"] == "idle"
    assert [n["title"] for n in collected["notifications"]] == ["BioSync: Breakfast"]
    assert again["notifications"] == []


def test_bio_load_preview(client):
    (payload,) = _call(client, ("get_bio_load", {}))
    assert payload["bio_load"]["neural_battery"] == 100
