"""Bio-load calculation: life-logs + profile -> physiological load snapshot.

Pure and deterministic. Missing history contributes nothing: with no sleep
history there is no sleep deficit, with no food log there are no intake
warnings, with no activity there is no fatigue.
"""

from __future__ import annotations

from biosync.domains.health.domain_logic.models import (
    ActivityLogEntry,
    BioLoadSnapshot,
    EnvContext,
    FoodLogEntry,
    MoodLog,
    SleepHistoryEntry,
    UserProfile,
)

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

NEURAL_BATTERY_START = 100.0
SLEEP_DEFICIT_PENALTY = 12.0          # per hour below target
SLEEP_WINDOW = 3                      # most recent nights averaged

SOCIAL_DRAIN_PER_CHILD = 5.0
SOCIAL_DRAIN_DEMANDING_WORK = 15.0    # heavy labour or night shift
SOCIAL_DRAIN_PARTNERED = 5.0

HORMONAL_BASELINE = 20.0
HORMONAL_DIABETES = 20.0
HORMONAL_NIGHT_SHIFT = 30.0
HORMONAL_PER_STRESSED_MOOD = 10.0
MOOD_WINDOW = 5
STRESSED_MOODS = frozenset({"stressed", "sad"})

FOOD_WINDOW = 10                      # roughly the last three days of meals
LEAFY_GREEN_MARKERS = ("salad", "spinach", "green", "kale", "lettuce", "chard")
TOP_HEALTH_GRADE = "A"
MAGNESIUM_SLEEP_DEFICIT_HOURS = 2.0

ACTIVITY_WINDOW = 5
FATIGUE_PER_500_KCAL = 10.0
SHORT_SLEEP_HOURS = 6.0
SHORT_SLEEP_FATIGUE_MULTIPLIER = 1.5

WARNING_LOW_GREENS = "Low green-vegetable intake (magnesium/folate risk)"
WARNING_LOW_VITAMIN_C = "Low vitamin C risk"
WARNING_CORTISOL_MAGNESIUM = "High cortisol likely depleting magnesium"


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _average_recent_sleep(sleep_history: list[SleepHistoryEntry]) -> float | None:
    if not sleep_history:
        return None
    recent = sorted(sleep_history, key=lambda e: e.date)[-SLEEP_WINDOW:]
    return sum(e.hours for e in recent) / len(recent)


def _compute_social_drain(profile: UserProfile) -> float:
    drain = SOCIAL_DRAIN_PER_CHILD * max(0, profile.children_count)
    if profile.work_intensity == "heavy_labor" or profile.work_type == "night_shift":
        drain += SOCIAL_DRAIN_DEMANDING_WORK
    if profile.marital_status in ("married", "partner"):
        drain += SOCIAL_DRAIN_PARTNERED
    return drain


def _has_diabetes(profile: UserProfile) -> bool:
    return any("diabetes" in (c or "").lower() for c in profile.medical_conditions)


def _vitamin_warnings(food_log: list[FoodLogEntry], sleep_deficit: float) -> list[str]:
    warnings: list[str] = []
    recent = sorted(food_log, key=lambda f: f.timestamp)[-FOOD_WINDOW:]
    if recent:
        has_greens = any(
            marker in f"{f.description} {f.food_name}".lower()
            for f in recent
            for marker in LEAFY_GREEN_MARKERS
        )
        has_top_grade = any(f.health_grade.upper() == TOP_HEALTH_GRADE for f in recent)
        if not has_greens:
            warnings.append(WARNING_LOW_GREENS)
        if not has_top_grade:
            warnings.append(WARNING_LOW_VITAMIN_C)
    if sleep_deficit > MAGNESIUM_SLEEP_DEFICIT_HOURS:
        warnings.append(WARNING_CORTISOL_MAGNESIUM)
    return warnings


def compute_bio_load(
    profile: UserProfile,
    food_log: list[FoodLogEntry],
    activity_log: list[ActivityLogEntry],
    mood_log: list[MoodLog],
    sleep_history: list[SleepHistoryEntry],
    env: EnvContext | None = None,
) -> BioLoadSnapshot:
    """Compute the bio-load snapshot for one planning cycle.

    Args:
        profile: Current user profile.
        food_log: Food entries, any order (recency is by timestamp).
        activity_log: Activity entries, any order.
        mood_log: Mood entries, any order.
        sleep_history: One entry per calendar date, any order.
        env: Weather/time context. Accepted for the planner contract; it
            does not change the load figures.

    Returns:
        Snapshot with neural battery, hormonal load and physical fatigue
        clamped to [0, 100]; social drain is reported unclamped.
    """
    # 1. Neural battery: sleep debt over the last nights, then social drain.
    neural_battery = NEURAL_BATTERY_START
    avg_sleep = _average_recent_sleep(sleep_history)
    sleep_deficit = 0.0
    if avg_sleep is not None:
        target = profile.sleep_target_hours or 8.0
        sleep_deficit = target - avg_sleep
        if sleep_deficit > 0:
            neural_battery -= SLEEP_DEFICIT_PENALTY * sleep_deficit

    social_drain = _compute_social_drain(profile)
    neural_battery -= social_drain

    # 2. Hormonal load (cortisol proxy).
    hormonal_load = HORMONAL_BASELINE
    if _has_diabetes(profile):
        hormonal_load += HORMONAL_DIABETES
    if profile.work_type == "night_shift":
        hormonal_load += HORMONAL_NIGHT_SHIFT
    recent_moods = sorted(mood_log, key=lambda m: m.timestamp)[-MOOD_WINDOW:]
    stressed = sum(1 for m in recent_moods if m.mood in STRESSED_MOODS)
    hormonal_load += HORMONAL_PER_STRESSED_MOOD * stressed

    # 3. Micronutrient heuristics.
    vitamin_warnings = _vitamin_warnings(food_log, sleep_deficit)

    # 4. Physical fatigue from recent burn, amplified by short sleep.
    recent_activity = sorted(activity_log, key=lambda a: a.timestamp)[-ACTIVITY_WINDOW:]
    total_burn = sum(max(0.0, a.calories_burned) for a in recent_activity)
    physical_fatigue = (total_burn / 500.0) * FATIGUE_PER_500_KCAL
    if avg_sleep is not None and avg_sleep < SHORT_SLEEP_HOURS:
        physical_fatigue *= SHORT_SLEEP_FATIGUE_MULTIPLIER

    return BioLoadSnapshot(
        neural_battery=_clamp(neural_battery),
        hormonal_load=_clamp(hormonal_load),
        physical_fatigue=_clamp(physical_fatigue),
        vitamin_warnings=vitamin_warnings,
        social_drain=social_drain,
    )
