"""Daily plan reconciliation and user-driven item actions."""

from __future__ import annotations

import logging
from datetime import datetime

from biosync.core.timing.clock import hhmm, minutes_of_day
from biosync.core.timing.interrupt import MS_PER_MINUTE
from biosync.domains.health.domain_logic.models import DailyPlan, PlanItem, new_id

logger = logging.getLogger(__name__)


class PlanItemNotFoundError(KeyError):
    """Raised when an action targets an item id the plan does not contain."""


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

def reconcile_plans(incoming: DailyPlan, existing: DailyPlan | None) -> DailyPlan:
    """Merge a freshly generated plan with the plan already active for its date.

    Completed and skipped items of ``existing`` are kept as history; its
    other items are discarded. Incoming items whose time *or* title matches
    a history item are dropped. The result is history + survivors sorted by
    time. Plans for different dates are not merged.
    """
    if existing is None or existing.date != incoming.date:
        incoming.sort_items()
        return incoming

    history = [item for item in existing.items if item.completed or item.skipped]
    taken_times = {item.time for item in history}
    taken_titles = {item.title for item in history}
    taken_ids = {item.id for item in history}
    seen: set[tuple[str, str]] = set()
    survivors: list[PlanItem] = []
    for item in incoming.items:
        if item.time in taken_times or item.title in taken_titles:
            continue
        if (item.time, item.title) in seen:
            continue
        seen.add((item.time, item.title))
        if item.id in taken_ids:
            item.id = new_id()
        survivors.append(item)

    merged = DailyPlan(
        date=incoming.date,
        summary=incoming.summary,
        items=history + survivors,
        bio_load=incoming.bio_load,
    )
    merged.sort_items()
    logger.info(
        "Reconciled plan %s: kept %d history items, %d of %d new items",
        merged.date,
        len(history),
        len(survivors),
        len(incoming.items),
    )
    return merged


def adherence_summary(plan: DailyPlan | None, today: str) -> dict[str, int] | None:
    """Adherence of the plan if it belongs to ``today``."""
    if plan is None or plan.date != today:
        return None
    return plan.adherence()


# ---------------------------------------------------------------------------
# Item actions (always allowed, regardless of timing window)
# ---------------------------------------------------------------------------

def _require(plan: DailyPlan, item_id: str) -> PlanItem:
    item = plan.find(item_id)
    if item is None:
        raise PlanItemNotFoundError(item_id)
    return item


def complete_item(plan: DailyPlan, item_id: str) -> PlanItem:
    item = _require(plan, item_id)
    item.completed = True
    item.skipped = False
    return item


def skip_item(plan: DailyPlan, item_id: str) -> PlanItem:
    item = _require(plan, item_id)
    item.skipped = True
    item.completed = False
    return item


def toggle_item(plan: DailyPlan, item_id: str) -> PlanItem:
    item = _require(plan, item_id)
    item.completed = not item.completed
    if item.completed:
        item.skipped = False
    return item


def snooze_item(plan: DailyPlan, item_id: str, minutes: float, now_ms: int) -> PlanItem:
    """Defer the item; it re-enters the due-window check once the snooze elapses."""
    if minutes <= 0:
        raise ValueError("Snooze minutes must be positive")
    item = _require(plan, item_id)
    item.snoozed_until = now_ms + int(minutes * MS_PER_MINUTE)
    return item


def complete_closest_pending(
    plan: DailyPlan, category: str, now: datetime
) -> PlanItem | None:
    """Complete the pending item of ``category`` scheduled closest to ``now``."""
    candidates = [i for i in plan.items if i.category == category and i.pending]
    if not candidates:
        return None
    current = minutes_of_day(hhmm(now))
    closest = min(candidates, key=lambda i: abs(current - minutes_of_day(i.time)))
    closest.completed = True
    return closest


def complete_category(plan: DailyPlan, category: str) -> list[PlanItem]:
    """Complete every pending item of ``category``."""
    done = [i for i in plan.items if i.category == category and i.pending]
    for item in done:
        item.completed = True
    return done
