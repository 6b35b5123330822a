"""Mock planner provider for testing and offline use."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from biosync.core.llm.provider import ProviderResponse

DEFAULT_PLAN: dict[str, Any] = {
    "summary": "Steady day: protect your energy and keep meals regular.",
    "items": [
        {"time": "08:00", "type": "meal", "title": "Breakfast", "description": "Oats with berries.",
         "priority": "medium", "linkedAction": "log_food"},
        {"time": "10:30", "type": "hydration", "title": "Water break", "description": "Drink 500 ml.",
         "priority": "low", "linkedAction": "log_water"},
        {"time": "13:00", "type": "meal", "title": "Lunch", "description": "Spinach salad with chicken.",
         "priority": "medium", "linkedAction": "log_food"},
        {"time": "18:00", "type": "workout", "title": "Evening walk", "description": "30 minutes, easy pace.",
         "priority": "low"},
        {"time": "22:30", "type": "sleep", "title": "Wind down", "description": "Screens off, lights low.",
         "priority": "high", "linkedAction": "start_sleep"},
    ],
}


class MockPlannerProvider:
    """Returns a canned daily plan as JSON.

    ``plan`` overrides the canned payload (a dict is serialised, a string is
    returned verbatim). ``error`` makes every call raise it. ``delay``
    suspends before answering, to exercise in-flight behaviour.
    """

    def __init__(
        self,
        plan: dict[str, Any] | str | None = None,
        *,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.plan = plan if plan is not None else DEFAULT_PLAN
        self.error = error
        self.delay = delay
        self.last_system_message: str = ""
        self.last_user_message: str = ""
        self.call_count: int = 0

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 4096,
        temperature: float = 0.4,
    ) -> ProviderResponse:
        self.last_system_message = system_message
        self.last_user_message = user_message
        self.call_count += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        content = self.plan if isinstance(self.plan, str) else json.dumps(self.plan)
        return ProviderResponse(
            content=content,
            input_tokens=len(system_message.split()) + len(user_message.split()),
            output_tokens=len(content.split()),
            model="mock",
            latency_ms=0.0,
        )
