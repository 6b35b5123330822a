"""Life-log, plan and sleep records for the daily plan engine.

Every record round-trips through ``to_dict``/``from_dict`` as a flat
JSON-serialisable dict. ``from_dict`` is tolerant: missing optional fields
fall back to zero/absent values instead of failing.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

PlanCategory = Literal["meal", "workout", "hydration", "sleep", "break"]
Priority = Literal["high", "medium", "low"]
LinkedAction = Literal["log_food", "log_water", "log_activity", "start_sleep"]

PLAN_CATEGORIES: tuple[str, ...] = ("meal", "workout", "hydration", "sleep", "break")
PRIORITIES: tuple[str, ...] = ("high", "medium", "low")
LINKED_ACTIONS: tuple[str, ...] = ("log_food", "log_water", "log_activity", "start_sleep")
MOOD_TYPES: tuple[str, ...] = ("happy", "energetic", "neutral", "stressed", "sad")


def new_id() -> str:
    return uuid.uuid4().hex


def _num(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

@dataclass
class UserProfile:
    """Identity and physiology snapshot used by the bio-load calculation."""

    name: str = ""
    weight: float = 0.0                       # kg
    sleep_target_hours: float = 8.0
    work_type: str = "office"                 # 'office' | 'remote' | 'night_shift' | ...
    work_intensity: str = "sedentary"         # 'sedentary' | 'moderate' | 'heavy_labor'
    marital_status: str = "single"            # 'single' | 'married' | 'partner'
    children_count: int = 0
    medical_conditions: list[str] = field(default_factory=list)
    goal: str = "maintain"
    target_wake_time: str | None = None       # HH:MM, default smart-alarm time
    culinary_origin: str = ""
    residence: str = ""
    last_weight_check: int | None = None      # epoch ms

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserProfile:
        return cls(
            name=data.get("name", ""),
            weight=_num(data.get("weight")),
            sleep_target_hours=_num(data.get("sleep_target_hours"), 8.0) or 8.0,
            work_type=data.get("work_type") or "office",
            work_intensity=data.get("work_intensity") or "sedentary",
            marital_status=data.get("marital_status") or "single",
            children_count=int(_num(data.get("children_count"))),
            medical_conditions=list(data.get("medical_conditions") or []),
            goal=data.get("goal") or "maintain",
            target_wake_time=data.get("target_wake_time"),
            culinary_origin=data.get("culinary_origin", ""),
            residence=data.get("residence", ""),
            last_weight_check=data.get("last_weight_check"),
        )


# ---------------------------------------------------------------------------
# Append-only logs
# ---------------------------------------------------------------------------

@dataclass
class FoodLogEntry:
    id: str
    timestamp: int                            # epoch ms
    food_name: str = ""
    description: str = ""
    health_grade: str = ""                    # 'A'..'F'
    calories: float = 0.0
    protein: float = 0.0
    carbs: float = 0.0
    fat: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FoodLogEntry:
        return cls(
            id=str(data.get("id") or new_id()),
            timestamp=int(_num(data.get("timestamp"))),
            food_name=data.get("food_name") or "",
            description=data.get("description") or "",
            health_grade=data.get("health_grade") or "",
            calories=_num(data.get("calories")),
            protein=_num(data.get("protein")),
            carbs=_num(data.get("carbs")),
            fat=_num(data.get("fat")),
        )


@dataclass
class ActivityLogEntry:
    id: str
    timestamp: int
    name: str = ""
    duration_minutes: float = 0.0
    calories_burned: float = 0.0
    intensity: str = "moderate"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActivityLogEntry:
        return cls(
            id=str(data.get("id") or new_id()),
            timestamp=int(_num(data.get("timestamp"))),
            name=data.get("name") or "",
            duration_minutes=_num(data.get("duration_minutes")),
            calories_burned=_num(data.get("calories_burned")),
            intensity=data.get("intensity") or "moderate",
        )


@dataclass
class MoodLog:
    id: str
    timestamp: int
    mood: str = "neutral"
    score: int = 3                            # 1-5

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MoodLog:
        return cls(
            id=str(data.get("id") or new_id()),
            timestamp=int(_num(data.get("timestamp"))),
            mood=data.get("mood") or "neutral",
            score=int(_num(data.get("score"), 3)),
        )


@dataclass
class WeightLogEntry:
    id: str
    timestamp: int
    weight: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WeightLogEntry:
        return cls(
            id=str(data.get("id") or new_id()),
            timestamp=int(_num(data.get("timestamp"))),
            weight=_num(data.get("weight")),
        )


@dataclass
class WaterLog:
    """Running water total for one calendar date."""

    date: str
    amount_ml: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WaterLog:
        return cls(date=data.get("date", ""), amount_ml=_num(data.get("amount_ml")))


@dataclass
class SleepHistoryEntry:
    date: str                                 # calendar key
    hours: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SleepHistoryEntry:
        return cls(date=data.get("date", ""), hours=_num(data.get("hours")))


def upsert_sleep_history(
    history: list[SleepHistoryEntry], date: str, hours: float
) -> list[SleepHistoryEntry]:
    """Return history with ``date`` set to ``hours`` (at most one entry per date)."""
    updated = list(history)
    entry = SleepHistoryEntry(date=date, hours=hours)
    for index, existing in enumerate(updated):
        if existing.date == date:
            updated[index] = entry
            return updated
    updated.append(entry)
    return updated


@dataclass
class LifeLogs:
    """Everything the bio-load calculation and the planner read."""

    food: list[FoodLogEntry] = field(default_factory=list)
    activity: list[ActivityLogEntry] = field(default_factory=list)
    mood: list[MoodLog] = field(default_factory=list)
    weight: list[WeightLogEntry] = field(default_factory=list)
    sleep_history: list[SleepHistoryEntry] = field(default_factory=list)
    water: WaterLog | None = None


@dataclass
class EnvContext:
    """Weather and time-of-day context passed to the planner."""

    current_time: str = ""                    # HH:MM
    weather_code: int | None = None
    temperature_c: float | None = None
    condition: str = ""


# ---------------------------------------------------------------------------
# Bio-load
# ---------------------------------------------------------------------------

@dataclass
class BioLoadSnapshot:
    """Derived physiological load; recomputed every planning cycle."""

    neural_battery: float                     # 0-100
    hormonal_load: float                      # 0-100
    physical_fatigue: float                   # 0-100
    vitamin_warnings: list[str] = field(default_factory=list)
    social_drain: float = 0.0                 # unclamped

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BioLoadSnapshot:
        return cls(
            neural_battery=_num(data.get("neural_battery")),
            hormonal_load=_num(data.get("hormonal_load")),
            physical_fatigue=_num(data.get("physical_fatigue")),
            vitamin_warnings=list(data.get("vitamin_warnings") or []),
            social_drain=_num(data.get("social_drain")),
        )


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------

@dataclass
class PlanItem:
    id: str
    time: str                                 # HH:MM, local
    category: str                             # PlanCategory
    title: str
    description: str = ""
    completed: bool = False
    skipped: bool = False
    snoozed_until: int | None = None          # epoch ms
    priority: str = "medium"                  # Priority
    linked_action: str | None = None          # LinkedAction

    @property
    def pending(self) -> bool:
        return not self.completed and not self.skipped

    def is_snoozed(self, now_ms: int) -> bool:
        """A snooze in the past counts as not snoozed."""
        return self.snoozed_until is not None and self.snoozed_until > now_ms

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanItem:
        snoozed = data.get("snoozed_until")
        completed = bool(data.get("completed", False))
        return cls(
            id=str(data.get("id") or new_id()),
            time=data.get("time", ""),
            category=data.get("category", "break"),
            title=data.get("title", ""),
            description=data.get("description", ""),
            completed=completed,
            # Completion wins over a stale skip flag.
            skipped=bool(data.get("skipped", False)) and not completed,
            snoozed_until=int(snoozed) if snoozed is not None else None,
            priority=data.get("priority") or "medium",
            linked_action=data.get("linked_action"),
        )


@dataclass
class DailyPlan:
    """One plan per calendar date; items are kept ordered by time."""

    date: str
    summary: str = ""
    items: list[PlanItem] = field(default_factory=list)
    bio_load: BioLoadSnapshot | None = None   # display copy only

    def sort_items(self) -> None:
        # Stable: items sharing a time keep their relative order.
        self.items.sort(key=lambda item: item.time)

    def find(self, item_id: str) -> PlanItem | None:
        return next((i for i in self.items if i.id == item_id), None)

    def adherence(self) -> dict[str, int]:
        return {
            "completed": sum(1 for i in self.items if i.completed),
            "skipped": sum(1 for i in self.items if i.skipped),
            "total": len(self.items),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "summary": self.summary,
            "items": [i.to_dict() for i in self.items],
            "bio_load": self.bio_load.to_dict() if self.bio_load else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DailyPlan:
        bio = data.get("bio_load")
        return cls(
            date=data.get("date", ""),
            summary=data.get("summary", ""),
            items=[PlanItem.from_dict(i) for i in data.get("items") or []],
            bio_load=BioLoadSnapshot.from_dict(bio) if bio else None,
        )


# ---------------------------------------------------------------------------
# Sensors and sleep
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PositionSample:
    latitude: float
    longitude: float
    timestamp: int                            # epoch ms


@dataclass(frozen=True)
class MotionSample:
    acceleration_magnitude: float
    timestamp: int                            # epoch ms


@dataclass
class SleepStage:
    stage: str                                # 'Deep' | 'Light' | 'Awake'
    start_time: str                           # HH:MM
    end_time: str                             # HH:MM
    duration: float                           # minutes

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SleepSession:
    """A completed sleep session; immutable once created."""

    id: str
    start_time: int                           # epoch ms (backdated when confirmed)
    end_time: int                             # epoch ms
    duration_minutes: float
    movement_samples: list[dict[str, float]] = field(default_factory=list)
    efficiency_score: float | None = None     # 0-100, None without motion data
    stages: list[SleepStage] = field(default_factory=list)
    source: str = "sensor"                    # 'sensor' | 'estimated' | 'manual'

    @property
    def hours(self) -> float:
        return round(self.duration_minutes / 60, 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_minutes": self.duration_minutes,
            "movement_samples": list(self.movement_samples),
            "efficiency_score": self.efficiency_score,
            "stages": [s.to_dict() for s in self.stages],
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SleepSession:
        return cls(
            id=str(data.get("id") or new_id()),
            start_time=int(_num(data.get("start_time"))),
            end_time=int(_num(data.get("end_time"))),
            duration_minutes=_num(data.get("duration_minutes")),
            movement_samples=list(data.get("movement_samples") or []),
            efficiency_score=data.get("efficiency_score"),
            stages=[SleepStage(**s) for s in data.get("stages") or []],
            source=data.get("source") or "sensor",
        )
