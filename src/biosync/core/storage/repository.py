"""Life-log repository: maps domain records onto the key-value store.

Each entity lives under one key as a flat JSON record (or a list of them).
Callers write back after every mutation; nothing is cached here.
"""

from __future__ import annotations

import logging
from typing import Any, Union

from biosync.core.storage.store import KeyValueStore, MemoryStore
from biosync.domains.health.domain_logic.models import (
    ActivityLogEntry,
    DailyPlan,
    FoodLogEntry,
    LifeLogs,
    MoodLog,
    SleepHistoryEntry,
    SleepSession,
    UserProfile,
    WaterLog,
    WeightLogEntry,
)

logger = logging.getLogger(__name__)

Store = Union[KeyValueStore, MemoryStore]

KEY_PROFILE = "profile"
KEY_FOOD = "food_log"
KEY_ACTIVITY = "activity_log"
KEY_MOOD = "mood_log"
KEY_WEIGHT = "weight_log"
KEY_WATER = "water_log"
KEY_SLEEP_HISTORY = "sleep_history"
KEY_SLEEP_SESSIONS = "sleep_sessions"
KEY_DAILY_PLAN = "daily_plan"
KEY_NOTIFIED = "notified_items"


class LifeLogRepository:
    """Typed access to the engine's persisted entities.

    Usage::

        repo = LifeLogRepository(MemoryStore())
        repo.append_food(entry)
        logs = repo.load_logs()
        repo.save_plan(plan)
    """

    def __init__(self, store: Store) -> None:
        self._store = store

    @property
    def store(self) -> Store:
        return self._store

    def _list(self, key: str) -> list[dict[str, Any]]:
        value = self._store.get(key, [])
        if not isinstance(value, list):
            logger.warning("Stored %s is not a list; ignoring it", key)
            return []
        return value

    def _append(self, key: str, record: dict[str, Any]) -> None:
        records = self._list(key)
        records.append(record)
        self._store.set(key, records)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def load_profile(self) -> UserProfile:
        data = self._store.get(KEY_PROFILE)
        return UserProfile.from_dict(data) if data else UserProfile()

    def save_profile(self, profile: UserProfile) -> None:
        self._store.set(KEY_PROFILE, profile.to_dict())

    # ------------------------------------------------------------------
    # Append-only logs
    # ------------------------------------------------------------------

    def append_food(self, entry: FoodLogEntry) -> None:
        self._append(KEY_FOOD, entry.to_dict())

    def append_activity(self, entry: ActivityLogEntry) -> None:
        self._append(KEY_ACTIVITY, entry.to_dict())

    def append_mood(self, entry: MoodLog) -> None:
        self._append(KEY_MOOD, entry.to_dict())

    def append_weight(self, entry: WeightLogEntry) -> None:
        self._append(KEY_WEIGHT, entry.to_dict())

    def load_water(self) -> WaterLog | None:
        data = self._store.get(KEY_WATER)
        return WaterLog.from_dict(data) if data else None

    def save_water(self, water: WaterLog) -> None:
        self._store.set(KEY_WATER, water.to_dict())

    def load_sleep_history(self) -> list[SleepHistoryEntry]:
        return [SleepHistoryEntry.from_dict(r) for r in self._list(KEY_SLEEP_HISTORY)]

    def save_sleep_history(self, history: list[SleepHistoryEntry]) -> None:
        self._store.set(KEY_SLEEP_HISTORY, [e.to_dict() for e in history])

    def load_logs(self) -> LifeLogs:
        return LifeLogs(
            food=[FoodLogEntry.from_dict(r) for r in self._list(KEY_FOOD)],
            activity=[ActivityLogEntry.from_dict(r) for r in self._list(KEY_ACTIVITY)],
            mood=[MoodLog.from_dict(r) for r in self._list(KEY_MOOD)],
            weight=[WeightLogEntry.from_dict(r) for r in self._list(KEY_WEIGHT)],
            sleep_history=self.load_sleep_history(),
            water=self.load_water(),
        )

    # ------------------------------------------------------------------
    # Sleep sessions
    # ------------------------------------------------------------------

    def append_sleep_session(self, session: SleepSession) -> None:
        self._append(KEY_SLEEP_SESSIONS, session.to_dict())

    def load_sleep_sessions(self, limit: int | None = None) -> list[SleepSession]:
        records = self._list(KEY_SLEEP_SESSIONS)
        if limit is not None:
            records = records[-limit:]
        return [SleepSession.from_dict(r) for r in records]

    # ------------------------------------------------------------------
    # Daily plan
    # ------------------------------------------------------------------

    def load_plan(self) -> DailyPlan | None:
        data = self._store.get(KEY_DAILY_PLAN)
        return DailyPlan.from_dict(data) if data else None

    def save_plan(self, plan: DailyPlan | None) -> None:
        if plan is None:
            self._store.delete(KEY_DAILY_PLAN)
            return
        self._store.set(KEY_DAILY_PLAN, plan.to_dict())

    # ------------------------------------------------------------------
    # Notification bookkeeping
    # ------------------------------------------------------------------

    def load_notified(self) -> tuple[str | None, list[str]]:
        data = self._store.get(KEY_NOTIFIED) or {}
        return data.get("plan_date"), list(data.get("item_ids") or [])

    def save_notified(self, plan_date: str | None, item_ids: list[str]) -> None:
        self._store.set(KEY_NOTIFIED, {"plan_date": plan_date, "item_ids": sorted(item_ids)})
