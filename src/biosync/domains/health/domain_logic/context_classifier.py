"""Activity context classification from position and motion samples.

Speed between consecutive position fixes selects the state. Entering
``driving`` needs several consecutive high-speed fixes; every other
transition, including leaving ``driving``, commits on a single fix so a
slowdown is reported immediately and notifications are not held back.

Without positioning the classifier stays ``idle`` and never reports
``driving`` or ``running``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Callable

from biosync.domains.health.domain_logic.models import MotionSample, PositionSample

logger = logging.getLogger(__name__)

DRIVING_SPEED_KMH = 25.0
RUNNING_SPEED_KMH = 8.0
WALKING_SPEED_KMH = 3.0
DEFAULT_DRIVING_CONFIRM_SAMPLES = 2
MOTION_WINDOW = 50
EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def state_for_speed(speed_kmh: float) -> str:
    """Raw speed band, before hysteresis."""
    if speed_kmh > DRIVING_SPEED_KMH:
        return "driving"
    if speed_kmh > RUNNING_SPEED_KMH:
        return "running"
    if speed_kmh > WALKING_SPEED_KMH:
        return "walking"
    return "idle"


@dataclass
class ContextState:
    """Everything the classifier knows; owned by a single ContextClassifier."""

    state: str = "idle"
    changed_at: int | None = None             # epoch ms of the last transition
    consecutive_high_speed: int = 0
    last_position: PositionSample | None = None
    last_speed_kmh: float | None = None
    motion_window: list[float] = field(default_factory=list)
    positioning_available: bool = True
    sleeping: bool = False

    @property
    def mean_motion(self) -> float:
        if not self.motion_window:
            return 0.0
        return sum(self.motion_window) / len(self.motion_window)


def advance_speed(
    state: ContextState,
    speed_kmh: float,
    timestamp: int,
    *,
    driving_confirm_samples: int = DEFAULT_DRIVING_CONFIRM_SAMPLES,
) -> ContextState:
    """Apply one speed observation and return the next state."""
    band = state_for_speed(speed_kmh)
    if band == "driving":
        high = state.consecutive_high_speed + 1
        new_state = "driving" if high >= driving_confirm_samples else state.state
    else:
        high = 0
        new_state = band

    if not state.positioning_available and new_state in ("driving", "running"):
        new_state = "idle"
    if state.sleeping:
        new_state = "sleeping"

    changed_at = timestamp if new_state != state.state else state.changed_at
    return replace(
        state,
        state=new_state,
        changed_at=changed_at,
        consecutive_high_speed=high,
        last_speed_kmh=speed_kmh,
    )


class ContextClassifier:
    """Owns the process-wide activity context.

    Usage::

        classifier = ContextClassifier(on_change=print)
        classifier.start()
        classifier.observe_position(PositionSample(52.52, 13.40, ts))
        classifier.current  # 'idle'
    """

    def __init__(
        self,
        *,
        driving_confirm_samples: int = DEFAULT_DRIVING_CONFIRM_SAMPLES,
        on_change: Callable[[str, str], None] | None = None,
    ) -> None:
        self._confirm = driving_confirm_samples
        self._on_change = on_change
        self.state = ContextState()

    @property
    def current(self) -> str:
        return self.state.state

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Reset all counters at the start of a sensor subscription."""
        self.state = ContextState()

    def stop(self) -> None:
        """Reset all counters when the sensor subscription ends."""
        self.state = ContextState()

    def mark_unavailable(self, reason: str = "unavailable") -> None:
        """Positioning is off or denied: fall back to ``idle`` for good."""
        logger.warning("Positioning %s; context pinned to idle", reason)
        self._commit(
            replace(
                self.state,
                positioning_available=False,
                consecutive_high_speed=0,
                last_position=None,
                state="sleeping" if self.state.sleeping else "idle",
            ),
            self.state.changed_at,
        )

    def set_sleeping(self, sleeping: bool, timestamp: int) -> None:
        """Enter or leave ``sleeping`` (driven by the sleep session tracker)."""
        if sleeping == self.state.sleeping:
            return
        self._commit(
            replace(
                self.state,
                sleeping=sleeping,
                consecutive_high_speed=0,
                state="sleeping" if sleeping else "idle",
            ),
            timestamp,
        )

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    def observe_position(self, sample: PositionSample) -> str:
        if not self.state.positioning_available:
            return self.current
        previous = self.state.last_position
        self.state = replace(self.state, last_position=sample)
        if previous is None:
            return self.current
        elapsed_hours = (sample.timestamp - previous.timestamp) / 3_600_000
        if elapsed_hours <= 0:
            return self.current
        distance = haversine_km(
            previous.latitude, previous.longitude, sample.latitude, sample.longitude
        )
        return self.observe_speed(distance / elapsed_hours, sample.timestamp)

    def observe_speed(self, speed_kmh: float, timestamp: int) -> str:
        nxt = advance_speed(
            self.state, speed_kmh, timestamp, driving_confirm_samples=self._confirm
        )
        self._commit(nxt, nxt.changed_at)
        return self.current

    def observe_motion(self, sample: MotionSample) -> None:
        window = (self.state.motion_window + [sample.acceleration_magnitude])[-MOTION_WINDOW:]
        self.state = replace(self.state, motion_window=window)

    # ------------------------------------------------------------------

    def _commit(self, nxt: ContextState, timestamp: int | None) -> None:
        previous = self.state.state
        if nxt.state != previous:
            nxt = replace(nxt, changed_at=timestamp)
            logger.info("Context %s -> %s", previous, nxt.state)
            self.state = nxt
            if self._on_change is not None:
                self._on_change(previous, nxt.state)
        else:
            self.state = nxt
