"""Tests for LifeLogRepository over both store backends."""

from __future__ import annotations

import pytest

from conftest import make_item, make_plan

from biosync.core.storage.repository import LifeLogRepository
from biosync.domains.health.domain_logic.models import (
    FoodLogEntry,
    MoodLog,
    SleepHistoryEntry,
    SleepSession,
    SleepStage,
    UserProfile,
    WaterLog,
)


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, memory_store, kv_store) -> LifeLogRepository:
    return LifeLogRepository(memory_store if request.param == "memory" else kv_store)


def test_empty_repository_defaults(repo: LifeLogRepository):
    assert repo.load_profile() == UserProfile()
    assert repo.load_plan() is None
    logs = repo.load_logs()
    assert logs.food == [] and logs.sleep_history == [] and logs.water is None
    assert repo.load_notified() == (None, [])


def test_profile_round_trip(repo: LifeLogRepository):
    profile = UserProfile(name="Sam", weight=71.5, children_count=2, medical_conditions=["asthma"])
    repo.save_profile(profile)
    assert repo.load_profile() == profile


def test_logs_append_in_order(repo: LifeLogRepository):
    repo.append_food(FoodLogEntry(id="f1", timestamp=1, food_name="Oats"))
    repo.append_food(FoodLogEntry(id="f2", timestamp=2, food_name="Kale"))
    repo.append_mood(MoodLog(id="m1", timestamp=3, mood="stressed", score=2))
    repo.save_water(WaterLog(date="2026-03-02", amount_ml=500))
    repo.save_sleep_history([SleepHistoryEntry("2026-03-01", 6.5)])

    logs = repo.load_logs()
    assert [f.id for f in logs.food] == ["f1", "f2"]
    assert logs.mood[0].mood == "stressed"
    assert logs.water == WaterLog(date="2026-03-02", amount_ml=500)
    assert logs.sleep_history == [SleepHistoryEntry("2026-03-01", 6.5)]


def test_daily_plan_round_trip_preserves_order_and_fields(repo: LifeLogRepository):
    plan = make_plan(items=[
        make_item("12:30", "Lunch", linked_action="log_food"),
        make_item("07:45", "Breakfast", completed=True),
        make_item("22:00", "Wind down", "sleep", priority="high"),
    ])
    plan.items[1].snoozed_until = 1_772_000_000_000
    repo.save_plan(plan)

    loaded = repo.load_plan()
    assert loaded == plan
    assert [i.time for i in loaded.items] == ["07:45", "12:30", "22:00"]


def test_save_none_plan_removes_it(repo: LifeLogRepository):
    repo.save_plan(make_plan())
    repo.save_plan(None)
    assert repo.load_plan() is None


def test_sleep_sessions_limit(repo: LifeLogRepository):
    for n in range(3):
        repo.append_sleep_session(SleepSession(
            id=f"s{n}",
            start_time=n,
            end_time=n + 1,
            duration_minutes=420,
            stages=[SleepStage("Deep", "01:00", "02:00", 60.0)],
        ))
    recent = repo.load_sleep_sessions(limit=2)
    assert [s.id for s in recent] == ["s1", "s2"]
    assert recent[0].stages[0].stage == "Deep"


def test_notified_round_trip(repo: LifeLogRepository):
    repo.save_notified("2026-03-02", ["b", "a"])
    assert repo.load_notified() == ("2026-03-02", ["a", "b"])


def test_non_list_record_is_ignored(memory_store):
    memory_store.set("food_log", {"oops": True})
    assert LifeLogRepository(memory_store).load_logs().food == []
