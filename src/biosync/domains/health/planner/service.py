"""Planner Service: turns a planning request into a fresh DailyPlan via an LLM.

The service is stateless and idempotent per date; reconciliation with the
plan already in progress is the orchestrator's job.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from biosync.core.llm.provider import LLMProvider, ProviderResponse
from biosync.core.timing.clock import date_key, from_epoch_ms, hhmm, normalize_hhmm
from biosync.domains.health.domain_logic.daily_plan import adherence_summary
from biosync.domains.health.domain_logic.models import (
    LINKED_ACTIONS,
    PLAN_CATEGORIES,
    PRIORITIES,
    BioLoadSnapshot,
    DailyPlan,
    EnvContext,
    LifeLogs,
    PlanItem,
    UserProfile,
    new_id,
)
from biosync.domains.health.planner.prompt import PlannerPrompt, default_prompt, language_name

logger = logging.getLogger(__name__)

CATEGORY_ALIASES = {"work_break": "break"}
_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


class PlannerError(Exception):
    """Base class for Planner Service failures; the current plan stays active."""


class PlannerUnavailableError(PlannerError):
    """The provider could not be reached or raised."""


class PlannerTimeoutError(PlannerError):
    """The provider did not answer in time."""


class PlannerResponseError(PlannerError):
    """The provider answered with something that is not a usable plan."""


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

@dataclass
class PlannerRequest:
    """Everything the planner sees for one regeneration."""

    date: str
    current_time: str
    profile: UserProfile
    logs: LifeLogs
    bio_load: BioLoadSnapshot
    env: EnvContext = field(default_factory=EnvContext)
    locale: str = "en"
    adherence: dict[str, int] | None = None

    def context_fields(self) -> dict[str, Any]:
        """Flat fields for the prompt's context template."""
        profile = self.profile
        food_today = [
            f.food_name or f.description
            for f in self.logs.food
            if date_key(from_epoch_ms(f.timestamp)) == self.date
        ]
        activity_today = [
            f"{a.name} ({a.duration_minutes:.0f} min, {a.calories_burned:.0f} kcal)"
            for a in self.logs.activity
            if date_key(from_epoch_ms(a.timestamp)) == self.date
        ]
        moods = [m.mood for m in sorted(self.logs.mood, key=lambda m: m.timestamp)[-5:]]
        sleep = [
            f"{e.date}: {e.hours:g} h"
            for e in sorted(self.logs.sleep_history, key=lambda e: e.date)[-3:]
        ]
        water = self.logs.water.amount_ml if self.logs.water and self.logs.water.date == self.date else 0

        if self.env.temperature_c is not None:
            weather = f"{self.env.temperature_c:g}°C, {self.env.condition or 'unknown'}"
        else:
            weather = self.env.condition or "unknown"

        if self.adherence:
            adherence = (
                f"Tasks Completed: {self.adherence['completed']}/{self.adherence['total']}"
                f" (skipped: {self.adherence['skipped']})"
            )
        else:
            adherence = "No plan yet today."

        return {
            "neural_battery": round(self.bio_load.neural_battery),
            "hormonal_load": round(self.bio_load.hormonal_load),
            "physical_fatigue": round(self.bio_load.physical_fatigue),
            "social_drain": f"{self.bio_load.social_drain:g}",
            "vitamin_warnings": ", ".join(self.bio_load.vitamin_warnings) or "None detected",
            "goal": profile.goal,
            "weight": f"{profile.weight:g}",
            "sleep_target_hours": f"{profile.sleep_target_hours:g}",
            "culinary_origin": profile.culinary_origin or "unknown",
            "residence": profile.residence or "unknown",
            "work_type": profile.work_type,
            "work_intensity": profile.work_intensity,
            "marital_status": profile.marital_status,
            "children_count": profile.children_count,
            "medical_conditions": ", ".join(profile.medical_conditions) or "none",
            "date": self.date,
            "current_time": self.current_time,
            "weather": weather,
            "food_today": ", ".join(food_today) or "nothing logged",
            "activity_today": ", ".join(activity_today) or "nothing logged",
            "recent_moods": ", ".join(moods) or "none logged",
            "water_ml": f"{water:g}",
            "sleep_recent": "; ".join(sleep) or "no history",
            "language": language_name(self.locale),
            "adherence": adherence,
        }


def build_planner_request(
    profile: UserProfile,
    logs: LifeLogs,
    bio_load: BioLoadSnapshot,
    env: EnvContext | None,
    now: datetime,
    *,
    current_plan: DailyPlan | None = None,
    locale: str = "en",
) -> PlannerRequest:
    """Assemble a request; adherence is included only for today's plan."""
    today = date_key(now)
    env = env or EnvContext()
    if not env.current_time:
        env = EnvContext(
            current_time=hhmm(now),
            weather_code=env.weather_code,
            temperature_c=env.temperature_c,
            condition=env.condition,
        )
    adherence = adherence_summary(current_plan, today)
    return PlannerRequest(
        date=today,
        current_time=env.current_time,
        profile=profile,
        logs=logs,
        bio_load=bio_load,
        env=env,
        locale=locale,
        adherence=adherence,
    )


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def clean_json_text(text: str) -> str:
    """Strip markdown code fences around a JSON payload."""
    return _FENCE.sub("", text or "").strip()


def normalize_item(raw: Any) -> PlanItem | None:
    """Coerce one raw planner item into a PlanItem, or None if unusable."""
    if not isinstance(raw, dict):
        return None
    category = str(raw.get("type") or raw.get("category") or "").strip().lower()
    category = CATEGORY_ALIASES.get(category, category)
    if category not in PLAN_CATEGORIES:
        logger.warning("Dropping planner item with unknown category %r", category)
        return None
    try:
        time = normalize_hhmm(str(raw.get("time", "")))
    except ValueError:
        logger.warning("Dropping planner item with bad time %r", raw.get("time"))
        return None
    title = str(raw.get("title") or "").strip()
    if not title:
        return None

    priority = str(raw.get("priority") or "").strip().lower()
    if priority not in PRIORITIES:
        priority = "medium"
    linked = raw.get("linkedAction") or raw.get("linked_action")
    if linked not in LINKED_ACTIONS:
        linked = None

    return PlanItem(
        id=str(raw.get("id") or new_id()),
        time=time,
        category=category,
        title=title,
        description=str(raw.get("description") or "").strip(),
        priority=priority,
        linked_action=linked,
    )


def parse_plan_response(
    text: str,
    *,
    date: str,
    bio_load: BioLoadSnapshot | None = None,
) -> DailyPlan:
    """Parse the provider's JSON answer into a time-sorted DailyPlan for ``date``.

    Raises:
        PlannerResponseError: If the payload is not JSON or has no item list.
    """
    try:
        data = json.loads(clean_json_text(text))
    except json.JSONDecodeError as exc:
        raise PlannerResponseError("Invalid JSON response from planner") from exc
    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        raise PlannerResponseError("Planner response has no items list")

    returned_date = data.get("date")
    if returned_date and returned_date != date:
        logger.warning("Planner returned date %s for a %s request; using %s", returned_date, date, date)

    items: list[PlanItem] = []
    seen_ids: set[str] = set()
    for raw in data["items"]:
        item = normalize_item(raw)
        if item is None:
            continue
        if item.id in seen_ids:
            item.id = new_id()
        seen_ids.add(item.id)
        items.append(item)

    plan = DailyPlan(
        date=date,
        summary=str(data.get("summary") or "").strip(),
        items=items,
        bio_load=bio_load,
    )
    plan.sort_items()
    return plan


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class PlannerService:
    """LLM-backed plan generation with a hard timeout.

    Usage::

        planner = PlannerService(create_provider("mock"), timeout_seconds=30)
        plan = await planner.generate_plan(request)
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        timeout_seconds: float = 45.0,
        prompt: PlannerPrompt | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.4,
    ) -> None:
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self._prompt = prompt
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def prompt(self) -> PlannerPrompt:
        return self._prompt or default_prompt()

    async def generate_plan(self, request: PlannerRequest) -> DailyPlan:
        """Call the provider once and return its plan for ``request.date``.

        Raises:
            PlannerTimeoutError: The call exceeded ``timeout_seconds``.
            PlannerUnavailableError: The provider raised.
            PlannerResponseError: The answer is not a usable plan.
        """
        prompt = self.prompt
        system_message = prompt.system_message(language_name(request.locale))
        user_message = prompt.user_message(request.context_fields())

        try:
            response: ProviderResponse = await asyncio.wait_for(
                self.provider.generate(
                    system_message=system_message,
                    user_message=user_message,
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Planner timed out after %.1fs", self.timeout_seconds)
            raise PlannerTimeoutError(
                f"Planner did not answer within {self.timeout_seconds:g}s"
            ) from exc
        except Exception as exc:
            logger.warning("Planner call failed: %s", exc)
            raise PlannerUnavailableError(f"Planner call failed: {exc}") from exc

        logger.info(
            "Planner call: date=%s, model=%s, tokens=%d (%d in), latency=%.0fms",
            request.date,
            response.model,
            response.total_tokens,
            response.input_tokens,
            response.latency_ms,
        )
        return parse_plan_response(response.content, date=request.date, bio_load=request.bio_load)
