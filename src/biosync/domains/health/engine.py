"""Daily plan engine: the single owner of the engine's shared mutable state.

Holds the current plan, the activity context, the gatekeeper bookkeeping and
the active sleep session; every mutation goes through this class and is
written back to the repository before the call returns. All work happens on
one asyncio event loop, so no locking is needed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable

from biosync.core.storage.repository import LifeLogRepository
from biosync.core.timing.clock import Clock, date_key, epoch_ms, from_epoch_ms, system_clock
from biosync.core.timing.periodic import PeriodicTask
from biosync.domains.health.connectors import NotificationSink
from biosync.domains.health.connectors.providers import LoggingNotificationSink
from biosync.domains.health.domain_logic import daily_plan as plan_actions
from biosync.domains.health.domain_logic.bio_load import compute_bio_load
from biosync.domains.health.domain_logic.context_classifier import (
    DEFAULT_DRIVING_CONFIRM_SAMPLES,
    ContextClassifier,
)
from biosync.domains.health.domain_logic.daily_plan import PlanItemNotFoundError
from biosync.domains.health.domain_logic.models import (
    MOOD_TYPES,
    ActivityLogEntry,
    BioLoadSnapshot,
    DailyPlan,
    EnvContext,
    FoodLogEntry,
    MoodLog,
    MotionSample,
    PlanItem,
    PositionSample,
    SleepSession,
    UserProfile,
    WaterLog,
    WeightLogEntry,
    new_id,
    upsert_sleep_history,
)
from biosync.domains.health.domain_logic.notification_gatekeeper import (
    NOTIFICATION_TITLE_PREFIX,
    GatekeeperState,
    NotificationGatekeeper,
    TickResult,
)
from biosync.domains.health.domain_logic.sleep_session import (
    RECENT_MOTION_SAMPLES,
    SleepEvent,
    SleepSessionStateMachine,
    SleepTimings,
    build_manual_session,
)
from biosync.domains.health.planner.orchestrator import PlanOrchestrator

logger = logging.getLogger(__name__)

WEIGHT_CHECK_INTERVAL = timedelta(days=7)

REALITY_CHECK_TITLE = f"{NOTIFICATION_TITLE_PREFIX}Are you still awake?"
REALITY_CHECK_BODY = "Tap to dismiss. If you don't, we'll log you as asleep."
ALARM_TITLE = f"{NOTIFICATION_TITLE_PREFIX}Good morning"
ALARM_BODY = "Your smart alarm caught you in light sleep. Time to get up."


@dataclass(frozen=True)
class EngineTimings:
    """Tick intervals and policy constants, detached from the environment."""

    gatekeeper_tick_seconds: float = 10.0
    due_window_minutes: float = 60
    auto_skip_minutes: float = 60
    driving_confirm_samples: int = DEFAULT_DRIVING_CONFIRM_SAMPLES
    sleep_logic_tick_seconds: float = 5.0
    sleep_sample_tick_seconds: float = 2.0
    sleep: SleepTimings = field(default_factory=SleepTimings)

    @classmethod
    def from_settings(cls, settings: Any) -> EngineTimings:
        return cls(
            gatekeeper_tick_seconds=settings.gatekeeper_tick_seconds,
            due_window_minutes=settings.due_window_minutes,
            auto_skip_minutes=settings.auto_skip_minutes,
            driving_confirm_samples=settings.driving_confirm_samples,
            sleep_logic_tick_seconds=settings.sleep_logic_tick_seconds,
            sleep_sample_tick_seconds=settings.sleep_sample_tick_seconds,
            sleep=SleepTimings(
                stillness_minutes=settings.stillness_threshold_minutes,
                reality_check_timeout_minutes=settings.reality_check_timeout_minutes,
                wake_motion_threshold=settings.wake_motion_threshold,
                alarm_motion_threshold=settings.alarm_motion_threshold,
                smart_alarm_window_minutes=settings.smart_alarm_window_minutes,
                recent_motion_seconds=RECENT_MOTION_SAMPLES * settings.sleep_sample_tick_seconds,
            ),
        )


class DailyPlanEngine:
    """Wires the five plan-engine components to persistence and notifications.

    Usage::

        engine = DailyPlanEngine(repo, orchestrator, sink=InboxNotificationSink())
        engine.start()                 # inside a running event loop
        await engine.regenerate()
        engine.log_food("Spinach salad", health_grade="A")
        engine.stop()
    """

    def __init__(
        self,
        repository: LifeLogRepository,
        orchestrator: PlanOrchestrator,
        *,
        sink: NotificationSink | None = None,
        clock: Clock = system_clock,
        timings: EngineTimings | None = None,
    ) -> None:
        self.repository = repository
        self.orchestrator = orchestrator
        self.sink: NotificationSink = sink or LoggingNotificationSink()
        self.timings = timings or EngineTimings()
        self._clock = clock

        self.profile: UserProfile = repository.load_profile()
        self.logs = repository.load_logs()
        self.plan: DailyPlan | None = repository.load_plan()
        plan_date, notified = repository.load_notified()
        self.gate_state = GatekeeperState(plan_date=plan_date, notified=frozenset(notified))

        self.classifier = ContextClassifier(
            driving_confirm_samples=self.timings.driving_confirm_samples
        )
        self.gatekeeper = NotificationGatekeeper(
            due_window_minutes=self.timings.due_window_minutes,
            auto_skip_minutes=self.timings.auto_skip_minutes,
        )
        self.sleep = SleepSessionStateMachine(self.timings.sleep)

        self._running = False
        self._gatekeeper_task: PeriodicTask | None = None
        self._sleep_tasks: list[PeriodicTask] = []
        self._sleep_generation = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    def now_ms(self) -> int:
        return epoch_ms(self._clock())

    def start(self) -> None:
        """Start the gatekeeper tick; must be called inside a running loop."""
        if self._running:
            return
        self._running = True
        self.classifier.start()
        self._gatekeeper_task = PeriodicTask(
            "gatekeeper", self.timings.gatekeeper_tick_seconds, self.gatekeeper_tick
        )
        self._gatekeeper_task.start()
        if self.sleep.active:
            self._start_sleep_tasks()
        logger.info("Daily plan engine started")

    def stop(self) -> None:
        """Cancel every tick synchronously and release sensor state."""
        if self._gatekeeper_task is not None:
            self._gatekeeper_task.stop()
            self._gatekeeper_task = None
        self._stop_sleep_tasks()
        self.classifier.stop()
        self._running = False
        logger.info("Daily plan engine stopped")

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    async def regenerate(self, env: EnvContext | None = None) -> DailyPlan | None:
        """Ask the planner for a new plan and reconcile it with today's.

        Returns ``None`` if a regeneration is already in flight. Planner
        errors propagate and leave the current plan untouched.
        """
        plan = await self.orchestrator.regenerate(
            self.profile, self.logs, self.plan, env, now=self._clock()
        )
        if plan is None:
            return None
        self.plan = plan
        self.gate_state = GatekeeperState(plan_date=plan.date)
        self.repository.save_plan(plan)
        self._save_gate_state()
        logger.info("Plan for %s now has %d items", plan.date, len(plan.items))
        return plan

    def gatekeeper_tick(self) -> TickResult:
        plan = self.plan
        result = self.gatekeeper.tick(plan, self.gate_state, self.classifier.current, self._clock())
        state_changed = result.state != self.gate_state
        self.gate_state = result.state
        for notification in result.notifications:
            self.sink.notify(notification.title, notification.body)
        if result.plan_changed:
            self.repository.save_plan(plan)
        if state_changed:
            self._save_gate_state()
        return result

    def _save_gate_state(self) -> None:
        self.repository.save_notified(self.gate_state.plan_date, list(self.gate_state.notified))

    def _require_plan(self, item_id: str) -> DailyPlan:
        if self.plan is None:
            raise PlanItemNotFoundError(item_id)
        return self.plan

    def _apply(self, action: Callable[..., PlanItem], item_id: str, *args: Any) -> PlanItem:
        plan = self._require_plan(item_id)
        item = action(plan, item_id, *args)
        self.repository.save_plan(plan)
        return item

    def complete_item(self, item_id: str) -> PlanItem:
        return self._apply(plan_actions.complete_item, item_id)

    def skip_item(self, item_id: str) -> PlanItem:
        return self._apply(plan_actions.skip_item, item_id)

    def toggle_item(self, item_id: str) -> PlanItem:
        return self._apply(plan_actions.toggle_item, item_id)

    def snooze_item(self, item_id: str, minutes: float) -> PlanItem:
        return self._apply(plan_actions.snooze_item, item_id, minutes, self.now_ms())

    def _today_plan(self) -> DailyPlan | None:
        if self.plan is not None and self.plan.date == date_key(self._clock()):
            return self.plan
        return None

    # ------------------------------------------------------------------
    # Profile and logs
    # ------------------------------------------------------------------

    def update_profile(self, **changes: Any) -> UserProfile:
        data = self.profile.to_dict()
        unknown = set(changes) - set(data)
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        data.update(changes)
        self.profile = UserProfile.from_dict(data)
        self.repository.save_profile(self.profile)
        return self.profile

    def bio_load(self, env: EnvContext | None = None) -> BioLoadSnapshot:
        return compute_bio_load(
            self.profile,
            self.logs.food,
            self.logs.activity,
            self.logs.mood,
            self.logs.sleep_history,
            env,
        )

    def log_food(
        self,
        food_name: str,
        *,
        description: str = "",
        health_grade: str = "",
        calories: float = 0.0,
        protein: float = 0.0,
        carbs: float = 0.0,
        fat: float = 0.0,
    ) -> tuple[FoodLogEntry, PlanItem | None]:
        """Record a meal and complete the closest pending meal item today."""
        entry = FoodLogEntry(
            id=new_id(),
            timestamp=self.now_ms(),
            food_name=food_name,
            description=description,
            health_grade=health_grade,
            calories=calories,
            protein=protein,
            carbs=carbs,
            fat=fat,
        )
        self.logs.food.append(entry)
        self.repository.append_food(entry)
        return entry, self._auto_complete("meal")

    def log_activity(
        self,
        name: str,
        duration_minutes: float,
        calories_burned: float = 0.0,
        intensity: str = "moderate",
    ) -> ActivityLogEntry:
        entry = ActivityLogEntry(
            id=new_id(),
            timestamp=self.now_ms(),
            name=name,
            duration_minutes=duration_minutes,
            calories_burned=calories_burned,
            intensity=intensity,
        )
        self.logs.activity.append(entry)
        self.repository.append_activity(entry)
        return entry

    def log_mood(self, mood: str, score: int = 3) -> MoodLog:
        if mood not in MOOD_TYPES:
            raise ValueError(f"Unknown mood {mood!r}; expected one of {', '.join(MOOD_TYPES)}")
        entry = MoodLog(id=new_id(), timestamp=self.now_ms(), mood=mood, score=score)
        self.logs.mood.append(entry)
        self.repository.append_mood(entry)
        return entry

    def log_weight(self, weight: float) -> WeightLogEntry:
        """Record a weigh-in; also updates the profile's current weight."""
        if weight <= 0:
            raise ValueError("Weight must be positive")
        entry = WeightLogEntry(id=new_id(), timestamp=self.now_ms(), weight=weight)
        self.logs.weight.append(entry)
        self.repository.append_weight(entry)
        self.profile.weight = weight
        self.profile.last_weight_check = entry.timestamp
        self.repository.save_profile(self.profile)
        return entry

    def weight_check_due(self) -> bool:
        last = self.profile.last_weight_check
        if last is None:
            return True
        return self._clock() - from_epoch_ms(last) > WEIGHT_CHECK_INTERVAL

    def log_water(self, amount_ml: float) -> tuple[WaterLog, PlanItem | None]:
        """Add to today's water total (a new date starts from zero)."""
        today = date_key(self._clock())
        water = self.logs.water
        if water is None or water.date != today:
            water = WaterLog(date=today)
        water.amount_ml = max(0.0, water.amount_ml + amount_ml)
        self.logs.water = water
        self.repository.save_water(water)
        completed = self._auto_complete("hydration") if amount_ml > 0 else None
        return water, completed

    def _auto_complete(self, category: str) -> PlanItem | None:
        plan = self._today_plan()
        if plan is None:
            return None
        item = plan_actions.complete_closest_pending(plan, category, self._clock())
        if item is not None:
            self.repository.save_plan(plan)
            logger.info("Auto-completed %s item %s", category, item.title)
        return item

    # ------------------------------------------------------------------
    # Sensors
    # ------------------------------------------------------------------

    def observe_position(
        self, latitude: float, longitude: float, timestamp: int | None = None
    ) -> str:
        sample = PositionSample(latitude, longitude, timestamp if timestamp is not None else self.now_ms())
        return self.classifier.observe_position(sample)

    def observe_motion(self, magnitude: float, timestamp: int | None = None) -> list[SleepEvent]:
        ts = timestamp if timestamp is not None else self.now_ms()
        self.classifier.observe_motion(MotionSample(magnitude, ts))
        return self._handle_sleep_events(self.sleep.record_motion(magnitude, ts))

    def positioning_unavailable(self, reason: str = "unavailable") -> None:
        self.classifier.mark_unavailable(reason)

    # ------------------------------------------------------------------
    # Sleep
    # ------------------------------------------------------------------

    def start_sleep(
        self,
        *,
        alarm: bool = False,
        wake_time: str | None = None,
        wake_window_minutes: float | None = None,
        motion_available: bool = True,
    ) -> None:
        """Begin tracking. With ``alarm`` and no ``wake_time`` the profile's target wake time is used."""
        if alarm and not wake_time:
            wake_time = self.profile.target_wake_time
        self.sleep.start(
            self.now_ms(),
            wake_time=wake_time,
            wake_window_minutes=wake_window_minutes,
            motion_available=motion_available,
        )
        self._sleep_generation += 1
        if self._running:
            self._start_sleep_tasks()

    def stop_sleep(self) -> SleepSession:
        session = self.sleep.stop(self.now_ms())
        self._stop_sleep_tasks()
        self._save_sleep_session(session)
        return session

    def cancel_sleep(self) -> None:
        self._stop_sleep_tasks()
        self.sleep.cancel()
        self.classifier.set_sleeping(False, self.now_ms())

    def register_activity(self) -> list[SleepEvent]:
        return self._handle_sleep_events(self.sleep.register_activity(self.now_ms()))

    def dismiss_reality_check(self) -> list[SleepEvent]:
        return self._handle_sleep_events(self.sleep.dismiss_reality_check(self.now_ms()))

    def sleep_logic_tick(self) -> list[SleepEvent]:
        return self._handle_sleep_events(self.sleep.logic_tick(self.now_ms()))

    def sleep_sample_tick(self) -> list[SleepEvent]:
        return self._handle_sleep_events(self.sleep.sample_tick(self.now_ms()))

    def log_manual_sleep(self, bed_time: str, wake_time: str, quality: float = 70) -> SleepSession:
        session = build_manual_session(bed_time, wake_time, quality, self._clock())
        self._save_sleep_session(session)
        return session

    def _handle_sleep_events(self, events: list[SleepEvent]) -> list[SleepEvent]:
        for event in events:
            if event.kind == "reality_check_prompt":
                self.sink.notify(REALITY_CHECK_TITLE, REALITY_CHECK_BODY)
            elif event.kind == "sleep_confirmed":
                self.classifier.set_sleeping(True, event.timestamp)
            elif event.kind == "alarm":
                self.sink.notify(ALARM_TITLE, ALARM_BODY)
            elif event.kind == "ended" and self.sleep.session is not None:
                self._stop_sleep_tasks()
                self._save_sleep_session(self.sleep.session)
        return events

    def _save_sleep_session(self, session: SleepSession) -> None:
        self.repository.append_sleep_session(session)
        night = date_key(from_epoch_ms(session.end_time))
        self.logs.sleep_history = upsert_sleep_history(self.logs.sleep_history, night, session.hours)
        self.repository.save_sleep_history(self.logs.sleep_history)
        self.classifier.set_sleeping(False, session.end_time)

        plan = self._today_plan()
        if plan is not None and plan_actions.complete_category(plan, "sleep"):
            self.repository.save_plan(plan)
        logger.info("Saved %s sleep session for %s: %.1f h", session.source, night, session.hours)

    def _start_sleep_tasks(self) -> None:
        self._stop_sleep_tasks()
        generation = self._sleep_generation

        def guarded(tick: Callable[[], list[SleepEvent]]) -> Callable[[], None]:
            def run() -> None:
                # A tick from a superseded session must not touch the new one.
                if generation == self._sleep_generation and self.sleep.active:
                    tick()
            return run

        self._sleep_tasks = [
            PeriodicTask(
                "sleep-logic",
                self.timings.sleep_logic_tick_seconds,
                guarded(self.sleep_logic_tick),
                run_immediately=False,
            ),
            PeriodicTask(
                "sleep-samples",
                self.timings.sleep_sample_tick_seconds,
                guarded(self.sleep_sample_tick),
            ),
        ]
        for task in self._sleep_tasks:
            task.start()

    def _stop_sleep_tasks(self) -> None:
        for task in self._sleep_tasks:
            task.stop()
        self._sleep_tasks = []

    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        """Snapshot of the engine's live state for tools and health checks."""
        plan = self.plan
        return {
            "plan_date": plan.date if plan else None,
            "adherence": plan.adherence() if plan else None,
            "context": self.classifier.current,
            "context_changed_at": self.classifier.state.changed_at,
            "positioning_available": self.classifier.state.positioning_available,
            "notified_today": len(self.gate_state.notified),
            "sleep_phase": self.sleep.phase,
            "regenerating": self.orchestrator.busy,
            "running": self._running,
            "notification_sink": self.sink.sink_name,
            "stored_records": len(self.repository.store.keys()),
        }
