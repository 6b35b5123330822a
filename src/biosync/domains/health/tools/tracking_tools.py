"""MCP tools for life-logging, sensor samples and sleep tracking."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from biosync.domains.health.domain_logic.sleep_session import SleepSessionError

if TYPE_CHECKING:
    from biosync.domains.health.engine import DailyPlanEngine

logger = logging.getLogger(__name__)


def _error(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def register_tracking_tools(mcp: FastMCP, engine: DailyPlanEngine) -> None:
    """Register logging, sensor and sleep tools on the MCP server."""

    # ------------------------------------------------------------------
    # Life-logs
    # ------------------------------------------------------------------

    @mcp.tool
    async def log_food(
        ctx: Context,
        food_name: str,
        description: str = "",
        health_grade: str = "",
        calories: float = 0,
        protein: float = 0,
        carbs: float = 0,
        fat: float = 0,
    ) -> str:
        """Log a meal. Completes the closest pending meal in today's plan.

        Args:
            food_name: What you ate (e.g. 'Spinach salad').
            description: Optional free text, ingredients.
            health_grade: Nutrition grade A-F.
            calories: Energy in kcal.
            protein: Protein in grams.
            carbs: Carbohydrates in grams.
            fat: Fat in grams.
        """
        entry, completed = engine.log_food(
            food_name,
            description=description,
            health_grade=health_grade,
            calories=calories,
            protein=protein,
            carbs=carbs,
            fat=fat,
        )
        return json.dumps({
            "status": "saved",
            "entry": entry.to_dict(),
            "completed_item": completed.id if completed else None,
        })

    @mcp.tool
    async def log_activity(
        ctx: Context,
        name: str,
        duration_minutes: float,
        calories_burned: float = 0,
        intensity: str = "moderate",
    ) -> str:
        """Log a workout or other physical activity.

        Args:
            name: Activity name (e.g. 'Cycling').
            duration_minutes: How long it lasted.
            calories_burned: Estimated energy burned in kcal.
            intensity: 'low', 'moderate' or 'high'.
        """
        entry = engine.log_activity(name, duration_minutes, calories_burned, intensity)
        return json.dumps({"status": "saved", "entry": entry.to_dict()})

    @mcp.tool
    async def log_mood(ctx: Context, mood: str, score: int = 3) -> str:
        """Log how you feel: happy, energetic, neutral, stressed or sad.

        Args:
            mood: Mood label.
            score: Intensity from 1 to 5.
        """
        try:
            entry = engine.log_mood(mood, score)
        except ValueError as exc:
            return _error(str(exc))
        return json.dumps({"status": "saved", "entry": entry.to_dict()})

    @mcp.tool
    async def log_weight(ctx: Context, weight_kg: float) -> str:
        """Log a weigh-in; also updates your profile weight."""
        try:
            entry = engine.log_weight(weight_kg)
        except ValueError as exc:
            return _error(str(exc))
        return json.dumps({"status": "saved", "entry": entry.to_dict()})

    @mcp.tool
    async def log_water(ctx: Context, amount_ml: float) -> str:
        """Add (or, with a negative amount, correct) today's water intake.

        Args:
            amount_ml: Millilitres to add.
        """
        water, completed = engine.log_water(amount_ml)
        return json.dumps({
            "status": "saved",
            "water": water.to_dict(),
            "completed_item": completed.id if completed else None,
        })

    @mcp.tool
    async def update_profile(ctx: Context, changes: dict) -> str:
        """Edit profile fields (e.g. {'sleep_target_hours': 7.5, 'children_count': 2})."""
        try:
            profile = engine.update_profile(**changes)
        except ValueError as exc:
            return _error(str(exc))
        return json.dumps({
            "status": "saved",
            "profile": profile.to_dict(),
            "weight_check_due": engine.weight_check_due(),
        })

    # ------------------------------------------------------------------
    # Sensors and context
    # ------------------------------------------------------------------

    @mcp.tool
    async def report_position(
        ctx: Context, latitude: float, longitude: float, timestamp: int | None = None
    ) -> str:
        """Feed a position fix (epoch ms timestamp) to the activity classifier."""
        state = engine.observe_position(latitude, longitude, timestamp)
        return json.dumps({"status": "ok", "context": state})

    @mcp.tool
    async def report_motion(ctx: Context, magnitude: float, timestamp: int | None = None) -> str:
        """Feed an acceleration magnitude sample (context and sleep tracking)."""
        events = engine.observe_motion(magnitude, timestamp)
        return json.dumps({
            "status": "ok",
            "mean_motion": round(engine.classifier.state.mean_motion, 3),
            "sleep_events": [e.kind for e in events],
        })

    @mcp.tool
    async def report_positioning_unavailable(ctx: Context, reason: str = "denied") -> str:
        """Tell the engine positioning is off or denied; context stays idle."""
        engine.positioning_unavailable(reason)
        return json.dumps({"status": "ok", "context": engine.classifier.current})

    @mcp.tool
    async def get_context(ctx: Context) -> str:
        """Current activity context and engine status."""
        return json.dumps({"status": "ok", **engine.status()})

    # ------------------------------------------------------------------
    # Sleep
    # ------------------------------------------------------------------

    @mcp.tool
    async def start_sleep(
        ctx: Context,
        alarm: bool = False,
        wake_time: str = "",
        wake_window_minutes: float | None = None,
        motion_available: bool = True,
    ) -> str:
        """Start sleep tracking, optionally with a smart alarm.

        Args:
            alarm: Enable the smart alarm (defaults to the profile's wake time).
            wake_time: Alarm time as HH:MM.
            wake_window_minutes: Light-sleep window before the alarm.
            motion_available: False if the device has no motion sensor.
        """
        try:
            engine.start_sleep(
                alarm=alarm,
                wake_time=wake_time or None,
                wake_window_minutes=wake_window_minutes,
                motion_available=motion_available,
            )
        except (SleepSessionError, ValueError) as exc:
            return _error(str(exc))
        return json.dumps({"status": "tracking", "alarm_at": engine.sleep.alarm_at})

    @mcp.tool
    async def sleep_activity(ctx: Context, dismiss_reality_check: bool = False) -> str:
        """Report a touch/scroll/key gesture, or dismiss the 'still awake?' prompt."""
        if dismiss_reality_check:
            events = engine.dismiss_reality_check()
        else:
            events = engine.register_activity()
        return json.dumps({
            "status": "ok",
            "phase": engine.sleep.phase,
            "events": [e.kind for e in events],
        })

    @mcp.tool
    async def stop_sleep(ctx: Context) -> str:
        """Stop sleep tracking and save the session."""
        try:
            session = engine.stop_sleep()
        except SleepSessionError as exc:
            return _error(str(exc))
        return json.dumps({"status": "saved", "session": session.to_dict(), "hours": session.hours})

    @mcp.tool
    async def cancel_sleep(ctx: Context) -> str:
        """Discard the running sleep session without saving it."""
        engine.cancel_sleep()
        return json.dumps({"status": "cancelled"})

    @mcp.tool
    async def log_manual_sleep(
        ctx: Context, bed_time: str, wake_time: str, quality: float = 70
    ) -> str:
        """Record last night's sleep by hand.

        Args:
            bed_time: HH:MM you went to bed (a time after wake_time means the previous day).
            wake_time: HH:MM you woke up today.
            quality: Subjective quality 0-100.
        """
        try:
            session = engine.log_manual_sleep(bed_time, wake_time, quality)
        except ValueError as exc:
            return _error(str(exc))
        return json.dumps({"status": "saved", "session": session.to_dict(), "hours": session.hours})

    @mcp.tool
    async def get_sleep_sessions(ctx: Context, limit: int = 7) -> str:
        """Return the most recent saved sleep sessions (without raw samples)."""
        sessions = engine.repository.load_sleep_sessions(limit=limit)
        payload = []
        for session in sessions:
            data = session.to_dict()
            data["sample_count"] = len(data.pop("movement_samples"))
            payload.append(data)
        return json.dumps({"status": "ok", "sessions": payload})
