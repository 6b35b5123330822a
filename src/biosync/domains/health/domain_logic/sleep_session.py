"""Sleep session state machine.

    idle -> tracking -> reality_check_active -> confirmed_asleep -> ended
                ^               |
                +---------------+  (any proof of wakefulness)

While tracking, a motion magnitude above the wake threshold or any active
gesture (touch, scroll, key) is proof of wakefulness and restarts the
stillness timer. After the stillness threshold the user is asked "are you
still awake?"; an unanswered prompt confirms sleep after the reality-check
timeout, with the sleep start backdated to the moment stillness began.

A smart alarm runs alongside: once enabled it ends the session when the wake
time passes, or earlier inside the wake window if motion shows light sleep.

Two ticks drive the machine: ``logic_tick`` (stillness / reality check,
every few seconds) and ``sample_tick`` (raw motion logging and the alarm).
All times are epoch milliseconds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from biosync.core.timing.clock import epoch_ms, from_epoch_ms, hhmm, next_occurrence, parse_hhmm
from biosync.core.timing.interrupt import MS_PER_MINUTE, DebouncedInterrupt, InterruptPolicy
from biosync.domains.health.domain_logic.models import SleepSession, SleepStage, new_id

logger = logging.getLogger(__name__)

IDLE = "idle"
TRACKING = "tracking"
REALITY_CHECK_ACTIVE = "reality_check_active"
CONFIRMED_ASLEEP = "confirmed_asleep"
ENDED = "ended"

ACTIVE_PHASES = frozenset({TRACKING, REALITY_CHECK_ACTIVE, CONFIRMED_ASLEEP})

# Stage bands for motion intensity (same units as the wake threshold).
DEEP_SLEEP_MAX_INTENSITY = 0.3

# Readings older than this many raw sample ticks no longer count as current motion.
RECENT_MOTION_SAMPLES = 10


class SleepSessionError(Exception):
    """Raised on an illegal sleep tracker transition."""


@dataclass(frozen=True)
class SleepTimings:
    stillness_minutes: float = 15
    reality_check_timeout_minutes: float = 10
    wake_motion_threshold: float = 1.0
    alarm_motion_threshold: float = 1.5
    smart_alarm_window_minutes: float = 30
    recent_motion_seconds: float = 20.0


@dataclass(frozen=True)
class SleepEvent:
    kind: str            # 'reality_check_prompt' | 'awake' | 'sleep_confirmed' | 'alarm' | 'ended'
    timestamp: int
    detail: dict[str, Any] = field(default_factory=dict)


def analyze_movement(
    samples: list[dict[str, float]],
    wake_threshold: float = 1.0,
) -> tuple[float | None, list[SleepStage]]:
    """Derive an efficiency score and merged sleep stages from motion samples.

    Returns:
        ``(efficiency_score, stages)``; ``(None, [])`` without samples.
    """
    if not samples:
        return None, []

    def band(intensity: float) -> str:
        if intensity < DEEP_SLEEP_MAX_INTENSITY:
            return "Deep"
        if intensity < wake_threshold:
            return "Light"
        return "Awake"

    ordered = sorted(samples, key=lambda s: s["timestamp"])
    labels = [band(s.get("intensity", 0.0)) for s in ordered]
    asleep = sum(1 for label in labels if label != "Awake")
    efficiency = round(100.0 * asleep / len(labels), 1)

    stages: list[SleepStage] = []
    run_start = 0
    for i in range(1, len(ordered) + 1):
        if i < len(ordered) and labels[i] == labels[run_start]:
            continue
        start_ms = int(ordered[run_start]["timestamp"])
        end_ms = int(ordered[i]["timestamp"] if i < len(ordered) else ordered[-1]["timestamp"])
        stages.append(
            SleepStage(
                stage=labels[run_start],
                start_time=hhmm(from_epoch_ms(start_ms)),
                end_time=hhmm(from_epoch_ms(end_ms)),
                duration=round((end_ms - start_ms) / MS_PER_MINUTE, 1),
            )
        )
        run_start = i
    return efficiency, stages


def build_manual_session(
    bed_time: str,
    wake_time: str,
    quality: float,
    now: datetime,
) -> SleepSession:
    """Session from a manually entered bed/wake time pair (HH:MM).

    The wake time is taken on ``now``'s date; a bed time later than the
    wake time belongs to the previous day.
    """
    bed_h, bed_m = parse_hhmm(bed_time)
    wake_h, wake_m = parse_hhmm(wake_time)
    wake = now.replace(hour=wake_h, minute=wake_m, second=0, microsecond=0)
    bed = now.replace(hour=bed_h, minute=bed_m, second=0, microsecond=0)
    if bed > wake:
        bed -= timedelta(days=1)
    duration = max(0.0, (wake - bed).total_seconds() / 60)
    return SleepSession(
        id=new_id(),
        start_time=epoch_ms(bed),
        end_time=epoch_ms(wake),
        duration_minutes=round(duration, 1),
        efficiency_score=max(0.0, min(100.0, float(quality))),
        source="manual",
    )


class SleepSessionStateMachine:
    """One sleep tracking session at a time.

    Usage::

        tracker = SleepSessionStateMachine()
        tracker.start(now_ms, wake_time="07:00")
        tracker.record_motion(0.2, now_ms)
        events = tracker.logic_tick(now_ms)
        session = tracker.stop(now_ms)
    """

    def __init__(self, timings: SleepTimings | None = None) -> None:
        self.timings = timings or SleepTimings()
        self._policy = InterruptPolicy.from_minutes(
            self.timings.stillness_minutes,
            confirm_after=self.timings.reality_check_timeout_minutes,
        )
        self.phase = IDLE
        self._reset_session_state()

    def _reset_session_state(self) -> None:
        self.started_at: int | None = None
        self.confirmed_start: int | None = None
        self.alarm_at: int | None = None
        self.alarm_fired = False
        self.motion_available = True
        self._recent_motion: list[tuple[int, float]] = []
        self.samples: list[dict[str, float]] = []
        self.session: SleepSession | None = None
        self._stillness: DebouncedInterrupt | None = None
        self._wake_window_ms = int(self.timings.smart_alarm_window_minutes * MS_PER_MINUTE)

    @property
    def active(self) -> bool:
        return self.phase in ACTIVE_PHASES

    @property
    def stillness_began(self) -> int | None:
        """Last proof of wakefulness; the backdated sleep start if confirmed."""
        return self._stillness.anchor_ms if self._stillness else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        now_ms: int,
        *,
        wake_time: str | None = None,
        wake_window_minutes: float | None = None,
        motion_available: bool = True,
    ) -> None:
        if self.active:
            raise SleepSessionError("Sleep tracking is already running")
        self._reset_session_state()
        self.phase = TRACKING
        self.started_at = now_ms
        self.motion_available = motion_available
        self._stillness = DebouncedInterrupt(self._policy, anchor_ms=now_ms)
        if wake_window_minutes is not None:
            self._wake_window_ms = int(wake_window_minutes * MS_PER_MINUTE)
        if wake_time:
            self.alarm_at = epoch_ms(next_occurrence(from_epoch_ms(now_ms), wake_time))
        logger.info(
            "Sleep tracking started (alarm=%s, motion=%s)",
            hhmm(from_epoch_ms(self.alarm_at)) if self.alarm_at else "off",
            "on" if motion_available else "unavailable",
        )

    def stop(self, now_ms: int) -> SleepSession:
        """End the session explicitly and return the completed record."""
        if not self.active:
            raise SleepSessionError(f"Cannot stop sleep tracking from state {self.phase!r}")
        return self._finish(now_ms)

    def cancel(self) -> None:
        """Discard the running session without producing a record."""
        if self.active:
            logger.info("Sleep tracking cancelled")
        self.phase = IDLE
        self._reset_session_state()

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def record_motion(self, magnitude: float, now_ms: int) -> list[SleepEvent]:
        if not self.active:
            return []
        self._recent_motion.append((now_ms, magnitude))
        self._prune_motion(now_ms)
        if magnitude > self.timings.wake_motion_threshold:
            return self._wakefulness(now_ms, "motion")
        return []

    def recent_intensity(self, now_ms: int) -> float:
        """Peak magnitude over the recent-motion window; 0.0 once readings go stale."""
        self._prune_motion(now_ms)
        return max((m for ts, m in self._recent_motion if ts <= now_ms), default=0.0)

    def _prune_motion(self, now_ms: int) -> None:
        cutoff = now_ms - self.timings.recent_motion_seconds * 1000
        self._recent_motion = [(ts, m) for ts, m in self._recent_motion if ts >= cutoff]

    def register_activity(self, now_ms: int) -> list[SleepEvent]:
        """Touch, scroll or key press on the device."""
        if not self.active:
            return []
        return self._wakefulness(now_ms, "gesture")

    def dismiss_reality_check(self, now_ms: int) -> list[SleepEvent]:
        if not self.active:
            return []
        return self._wakefulness(now_ms, "dismissed")

    def _wakefulness(self, now_ms: int, cause: str) -> list[SleepEvent]:
        if self.phase == CONFIRMED_ASLEEP:
            return []
        self._stillness.reset(now_ms)  # type: ignore[union-attr]
        if self.phase == REALITY_CHECK_ACTIVE:
            self.phase = TRACKING
            logger.info("Reality check answered (%s); user is awake", cause)
            return [SleepEvent("awake", now_ms, {"cause": cause})]
        return []

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def logic_tick(self, now_ms: int) -> list[SleepEvent]:
        if self.phase == TRACKING and self._stillness.try_arm(now_ms):  # type: ignore[union-attr]
            self.phase = REALITY_CHECK_ACTIVE
            logger.info("Stillness threshold reached; showing reality check")
            return [
                SleepEvent(
                    "reality_check_prompt",
                    now_ms,
                    {"still_since": self._stillness.anchor_ms},  # type: ignore[union-attr]
                )
            ]
        if self.phase == REALITY_CHECK_ACTIVE and self._stillness.confirmation_due(now_ms):  # type: ignore[union-attr]
            self.confirmed_start = self._stillness.confirm(now_ms)  # type: ignore[union-attr]
            self.phase = CONFIRMED_ASLEEP
            logger.info(
                "Sleep confirmed; start backdated to %s",
                hhmm(from_epoch_ms(self.confirmed_start)),
            )
            return [SleepEvent("sleep_confirmed", now_ms, {"sleep_start": self.confirmed_start})]
        return []

    def sample_tick(self, now_ms: int) -> list[SleepEvent]:
        if not self.active:
            return []
        intensity = self.recent_intensity(now_ms)
        if self.motion_available:
            self.samples.append({"timestamp": now_ms, "intensity": intensity})

        if self.alarm_at is None or self.alarm_fired:
            return []
        reason = None
        if now_ms >= self.alarm_at:
            reason = "wake_time"
        elif (
            now_ms >= self.alarm_at - self._wake_window_ms
            and intensity > self.timings.alarm_motion_threshold
        ):
            reason = "light_sleep_in_window"
        if reason is None:
            return []

        self.alarm_fired = True
        logger.info("Smart alarm fired (%s)", reason)
        session = self._finish(now_ms)
        return [
            SleepEvent("alarm", now_ms, {"reason": reason}),
            SleepEvent("ended", now_ms, {"session_id": session.id}),
        ]

    # ------------------------------------------------------------------

    def _finish(self, end_ms: int) -> SleepSession:
        start = self.confirmed_start if self.confirmed_start is not None else self.started_at
        kept = [s for s in self.samples if s["timestamp"] >= start]  # type: ignore[operator]
        efficiency, stages = analyze_movement(kept, self.timings.wake_motion_threshold)
        session = SleepSession(
            id=new_id(),
            start_time=int(start),  # type: ignore[arg-type]
            end_time=end_ms,
            duration_minutes=round(max(0, end_ms - start) / MS_PER_MINUTE, 1),  # type: ignore[operator]
            movement_samples=kept,
            efficiency_score=efficiency,
            stages=stages,
            source="sensor" if self.motion_available else "estimated",
        )
        self.phase = ENDED
        self.session = session
        logger.info(
            "Sleep session ended: %.1f min (%s)",
            session.duration_minutes,
            "confirmed" if self.confirmed_start is not None else "estimated start",
        )
        return session
