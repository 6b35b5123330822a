"""Notification gatekeeper: decides when a due plan item interrupts the user.

Evaluated on a fixed tick against today's plan and the live activity
context. Per item:

* auto-skip once it is more than ``auto_skip_minutes`` overdue;
* eligible while pending, not snoozed and ``0 <= minutes late < due_window``;
* suppressed while ``driving`` or ``sleeping`` unless priority is ``high``;
* fires at most once per plan date.

Item states (pending, due, notified, suppressed, snoozed, completed,
skipped) are derived from the item fields and the bookkeeping value below;
none of them is stored separately.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime

from biosync.core.timing.clock import at_time_of_day, date_key, epoch_ms
from biosync.core.timing.interrupt import DebouncedInterrupt, InterruptPolicy
from biosync.domains.health.domain_logic.models import DailyPlan, PlanItem

logger = logging.getLogger(__name__)

DEFAULT_DUE_WINDOW_MINUTES = 60
DEFAULT_AUTO_SKIP_MINUTES = 60
SUPPRESSING_CONTEXTS = frozenset({"driving", "sleeping"})
NOTIFICATION_TITLE_PREFIX = "BioSync: "


@dataclass(frozen=True)
class GatekeeperState:
    """Fire-once bookkeeping: ids already notified for ``plan_date``."""

    plan_date: str | None = None
    notified: frozenset[str] = frozenset()

    def cleared(self, plan_date: str | None = None) -> GatekeeperState:
        return GatekeeperState(plan_date=plan_date)


@dataclass(frozen=True)
class Notification:
    item_id: str
    title: str
    body: str
    priority: str


@dataclass
class TickResult:
    state: GatekeeperState
    notifications: list[Notification] = field(default_factory=list)
    auto_skipped: list[str] = field(default_factory=list)
    suppressed: list[str] = field(default_factory=list)
    stale: bool = False

    @property
    def plan_changed(self) -> bool:
        return bool(self.auto_skipped)


class NotificationGatekeeper:
    """Stateless evaluator; the caller owns ``GatekeeperState`` and the plan.

    Usage::

        gatekeeper = NotificationGatekeeper()
        result = gatekeeper.tick(plan, state, context="idle", now=datetime.now())
        state = result.state
        for n in result.notifications:
            sink.notify(n.title, n.body)
    """

    def __init__(
        self,
        *,
        due_window_minutes: float = DEFAULT_DUE_WINDOW_MINUTES,
        auto_skip_minutes: float = DEFAULT_AUTO_SKIP_MINUTES,
        reminder_body: str = "Time for your next step.",
    ) -> None:
        self._due_policy = InterruptPolicy.from_minutes(0, expire_after=due_window_minutes)
        self._skip_policy = InterruptPolicy.from_minutes(0, expire_after=auto_skip_minutes)
        self._reminder_body = reminder_body

    def tick(
        self,
        plan: DailyPlan | None,
        state: GatekeeperState,
        context: str,
        now: datetime,
    ) -> TickResult:
        """Evaluate every item of ``plan`` once.

        Auto-skips mutate the plan's items in place. A plan that is not for
        ``now``'s date clears the bookkeeping and is left untouched.
        """
        if plan is None:
            return TickResult(state=state)

        today = date_key(now)
        if plan.date != today:
            if state.notified or state.plan_date is not None:
                logger.info("Plan date %s is not today (%s); clearing notification marks", plan.date, today)
            return TickResult(state=state.cleared(), stale=True)

        if state.plan_date != plan.date:
            state = state.cleared(plan.date)

        now_ms = epoch_ms(now)
        suppressed_context = context in SUPPRESSING_CONTEXTS
        result = TickResult(state=state)
        notified = set(state.notified)

        for item in plan.items:
            if not item.pending:
                continue
            try:
                anchor_ms = epoch_ms(at_time_of_day(now, item.time))
            except ValueError:
                logger.warning("Plan item %s has unusable time %r", item.id, item.time)
                continue

            if DebouncedInterrupt(self._skip_policy, anchor_ms).expired(now_ms):
                item.skipped = True
                result.auto_skipped.append(item.id)
                logger.info("Auto-skipped overdue item %s (%s)", item.id, item.title)
                continue

            if item.is_snoozed(now_ms):
                continue

            due = DebouncedInterrupt(
                self._due_policy,
                anchor_ms,
                armed_at_ms=anchor_ms if item.id in notified else None,
            )
            if due.try_arm(
                now_ms,
                suppressed=suppressed_context,
                override=item.priority == "high",
            ):
                notified.add(item.id)
                result.notifications.append(self._notification(item))
            elif due.window_open(now_ms) and not due.armed and suppressed_context:
                result.suppressed.append(item.id)
                logger.debug("Suppressed notification for %s while %s", item.title, context)

        result.state = replace(state, notified=frozenset(notified))
        return result

    def _notification(self, item: PlanItem) -> Notification:
        return Notification(
            item_id=item.id,
            title=f"{NOTIFICATION_TITLE_PREFIX}{item.title}",
            body=item.description or self._reminder_body,
            priority=item.priority,
        )
