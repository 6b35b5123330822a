"""Local wall-clock helpers.

Plan items are scheduled in local ``HH:MM`` and plans are keyed by local
calendar date, so the engine works with naive local datetimes and converts
to epoch milliseconds only where records require it.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Callable

Clock = Callable[[], datetime]

_HHMM = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def system_clock() -> datetime:
    return datetime.now()


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_epoch_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000)


def date_key(moment: datetime) -> str:
    """Calendar key (``YYYY-MM-DD``) of a local datetime."""
    return moment.strftime("%Y-%m-%d")


def hhmm(moment: datetime) -> str:
    return moment.strftime("%H:%M")


def parse_hhmm(value: str) -> tuple[int, int]:
    """Parse ``H:MM`` / ``HH:MM`` into ``(hour, minute)``.

    Raises:
        ValueError: If the value is not a valid 24h time of day.
    """
    match = _HHMM.match(value or "")
    if not match:
        raise ValueError(f"Not a HH:MM time: {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Time out of range: {value!r}")
    return hour, minute


def normalize_hhmm(value: str) -> str:
    hour, minute = parse_hhmm(value)
    return f"{hour:02d}:{minute:02d}"


def minutes_of_day(value: str) -> int:
    hour, minute = parse_hhmm(value)
    return hour * 60 + minute


def at_time_of_day(moment: datetime, value: str) -> datetime:
    """The datetime on ``moment``'s calendar day at local time ``value``."""
    hour, minute = parse_hhmm(value)
    return moment.replace(hour=hour, minute=minute, second=0, microsecond=0)


def next_occurrence(moment: datetime, value: str) -> datetime:
    """First instant at local time ``value`` strictly after ``moment``."""
    target = at_time_of_day(moment, value)
    if target <= moment:
        target += timedelta(days=1)
    return target
