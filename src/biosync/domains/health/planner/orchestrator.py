"""Plan orchestrator: bio-load -> Planner Service -> reconciled DailyPlan."""

from __future__ import annotations

import logging
from datetime import datetime

from biosync.domains.health.domain_logic.bio_load import compute_bio_load
from biosync.domains.health.domain_logic.daily_plan import reconcile_plans
from biosync.domains.health.domain_logic.models import DailyPlan, EnvContext, LifeLogs, UserProfile
from biosync.domains.health.planner.service import PlannerService, build_planner_request

logger = logging.getLogger(__name__)


class PlanOrchestrator:
    """Runs one regeneration at a time.

    A request made while another is in flight is dropped and ``regenerate``
    returns ``None``. Planner errors propagate unchanged; the caller keeps
    its current plan.

    Reconciliation runs after the planner call returns, against the
    ``current_plan`` object as it is *then*, so completions and skips made
    while the call was in flight are preserved.
    """

    def __init__(self, planner: PlannerService, *, locale: str = "en") -> None:
        self.planner = planner
        self.locale = locale
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    async def regenerate(
        self,
        profile: UserProfile,
        logs: LifeLogs,
        current_plan: DailyPlan | None,
        env: EnvContext | None,
        *,
        now: datetime,
    ) -> DailyPlan | None:
        if self._busy:
            logger.info("Plan regeneration already in flight; request dropped")
            return None

        self._busy = True
        try:
            bio_load = compute_bio_load(
                profile, logs.food, logs.activity, logs.mood, logs.sleep_history, env
            )
            request = build_planner_request(
                profile,
                logs,
                bio_load,
                env,
                now,
                current_plan=current_plan,
                locale=self.locale,
            )
            fresh = await self.planner.generate_plan(request)
            return reconcile_plans(fresh, current_plan)
        finally:
            self._busy = False
