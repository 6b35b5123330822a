"""Tests for the Planner Service: prompt, request context and response parsing."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime

import pytest
from conftest import make_item, make_plan

from biosync.core.llm.providers.mock import DEFAULT_PLAN, MockPlannerProvider
from biosync.core.timing.clock import epoch_ms
from biosync.domains.health.domain_logic.models import (
    BioLoadSnapshot,
    EnvContext,
    FoodLogEntry,
    LifeLogs,
    SleepHistoryEntry,
    UserProfile,
    WaterLog,
)
from biosync.domains.health.planner.prompt import (
    LANGUAGE_NAMES,
    default_prompt,
    language_name,
    load_prompt_file,
)
from biosync.domains.health.planner.service import (
    PlannerResponseError,
    PlannerService,
    PlannerTimeoutError,
    PlannerUnavailableError,
    build_planner_request,
    clean_json_text,
    normalize_item,
    parse_plan_response,
)

NOW = datetime(2026, 3, 2, 9, 15)


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _snapshot() -> BioLoadSnapshot:
    return BioLoadSnapshot(
        neural_battery=64.4,
        hormonal_load=50,
        physical_fatigue=12,
        vitamin_warnings=["Low vitamin C risk"],
        social_drain=10,
    )


def _request(**kwargs):
    defaults = dict(
        profile=UserProfile(name="Sam", weight=70, culinary_origin="Moroccan"),
        logs=LifeLogs(),
        bio_load=_snapshot(),
        env=EnvContext(temperature_c=18.5, condition="cloudy"),
        now=NOW,
    )
    defaults.update(kwargs)
    return build_planner_request(
        defaults.pop("profile"),
        defaults.pop("logs"),
        defaults.pop("bio_load"),
        defaults.pop("env"),
        defaults.pop("now"),
        **defaults,
    )


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

class TestPrompt:
    def test_language_names(self):
        assert language_name("es") == "Spanish"
        assert language_name("pt-BR") == "Portuguese"
        assert language_name("xx") == "English"
        assert language_name(None) == "English"
        assert len(LANGUAGE_NAMES) == 13

    def test_default_prompt_renders(self):
        prompt = default_prompt()
        system = prompt.system_message("French")
        assert "French" in system
        assert '"items"' in system
        assert "{language}" not in system

    def test_missing_sections_rejected(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("id: broken\npersona: hi\n")
        with pytest.raises(ValueError, match="instructions"):
            load_prompt_file(path)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class TestRequest:
    def test_current_time_defaults_to_now(self):
        request = _request()
        assert request.date == "2026-03-02"
        assert request.current_time == "09:15"
        assert request.adherence is None

    def test_adherence_only_for_todays_plan(self):
        today = make_plan(items=[make_item("08:00", "Breakfast", completed=True), make_item("12:00", "Lunch")])
        assert _request(current_plan=today).adherence == {"completed": 1, "skipped": 0, "total": 2}
        yesterday = make_plan(date="2026-03-01", items=[make_item("08:00", "Breakfast", completed=True)])
        assert _request(current_plan=yesterday).adherence is None

    def test_context_fields(self):
        logs = LifeLogs(
            food=[
                FoodLogEntry(id="f1", timestamp=epoch_ms(datetime(2026, 3, 2, 8, 0)), food_name="Msemen"),
                FoodLogEntry(id="f0", timestamp=epoch_ms(datetime(2026, 3, 1, 20, 0)), food_name="Tagine"),
            ],
            sleep_history=[SleepHistoryEntry("2026-03-01", 6.5)],
            water=WaterLog(date="2026-03-02", amount_ml=750),
        )
        fields = _request(logs=logs, locale="ar").context_fields()
        assert fields["food_today"] == "Msemen"
        assert fields["water_ml"] == "750"
        assert fields["sleep_recent"] == "2026-03-01: 6.5 h"
        assert fields["weather"] == "18.5°C, cloudy"
        assert fields["neural_battery"] == 64
        assert fields["language"] == "Arabic"
        assert fields["adherence"] == "No plan yet today."

    def test_stale_water_total_not_reported(self):
        logs = LifeLogs(water=WaterLog(date="2026-03-01", amount_ml=2000))
        assert _request(logs=logs).context_fields()["water_ml"] == "0"


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

class TestParsing:
    def test_clean_fences(self):
        assert clean_json_text('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_normalize_item(self):
        item = normalize_item({
            "time": "7:05", "type": "work_break", "title": " Stretch ", "priority": "URGENT",
            "linkedAction": "dance",
        })
        assert item.time == "07:05"
        assert item.category == "break"
        assert item.title == "Stretch"
        assert item.priority == "medium"
        assert item.linked_action is None
        assert item.pending

    @pytest.mark.parametrize(
        "raw",
        [
            {"time": "08:00", "type": "nap", "title": "Nap"},
            {"time": "late", "type": "meal", "title": "Lunch"},
            {"time": "08:00", "type": "meal", "title": "  "},
            "not an item",
        ],
    )
    def test_unusable_items_dropped(self, raw):
        assert normalize_item(raw) is None

    def test_parse_uses_request_date_and_sorts(self):
        payload = {
            "date": "2030-01-01",
            "summary": "ok",
            "items": [
                {"id": "x", "time": "12:00", "type": "meal", "title": "Lunch", "completed": True},
                {"id": "x", "time": "08:00", "type": "meal", "title": "Breakfast"},
            ],
        }
        plan = parse_plan_response(json.dumps(payload), date="2026-03-02")
        assert plan.date == "2026-03-02"
        assert [i.title for i in plan.items] == ["Breakfast", "Lunch"]
        assert len({i.id for i in plan.items}) == 2
        assert not any(i.completed for i in plan.items)

    @pytest.mark.parametrize("text", ["not json", '{"summary": "no items"}', "[]"])
    def test_malformed_response(self, text):
        with pytest.raises(PlannerResponseError):
            parse_plan_response(text, date="2026-03-02")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class TestPlannerService:
    def test_generate_plan(self):
        provider = MockPlannerProvider()
        planner = PlannerService(provider, timeout_seconds=5)
        request = _request(locale="es")
        plan = _run(planner.generate_plan(request))
        assert plan.date == "2026-03-02"
        assert len(plan.items) == len(DEFAULT_PLAN["items"])
        assert plan.bio_load is request.bio_load
        assert "Spanish" in provider.last_system_message
        assert "Neural Battery: 64/100" in provider.last_user_message

    def test_timeout(self):
        planner = PlannerService(MockPlannerProvider(delay=1.0), timeout_seconds=0.05)
        with pytest.raises(PlannerTimeoutError):
            _run(planner.generate_plan(_request()))

    def test_provider_failure(self):
        planner = PlannerService(MockPlannerProvider(error=ConnectionError("offline")))
        with pytest.raises(PlannerUnavailableError, match="offline"):
            _run(planner.generate_plan(_request()))

    def test_malformed_answer(self):
        planner = PlannerService(MockPlannerProvider(plan="Sorry, I can't help."))
        with pytest.raises(PlannerResponseError):
            _run(planner.generate_plan(_request()))
