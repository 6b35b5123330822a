"""MCP tools for the daily plan: view, regenerate and act on plan items.

Every tool returns a JSON string. Failures the caller can recover from
(unknown item, planner unavailable) come back as ``{"status": "error"}``
payloads instead of raising through the MCP layer.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from biosync.domains.health.domain_logic.daily_plan import PlanItemNotFoundError
from biosync.domains.health.domain_logic.models import EnvContext
from biosync.domains.health.planner.service import PlannerError

if TYPE_CHECKING:
    from biosync.domains.health.connectors.providers import InboxNotificationSink
    from biosync.domains.health.engine import DailyPlanEngine

logger = logging.getLogger(__name__)


def _error(message: str, **extra: object) -> str:
    return json.dumps({"status": "error", "message": message, **extra})


def register_plan_tools(
    mcp: FastMCP,
    engine: DailyPlanEngine,
    inbox: InboxNotificationSink | None = None,
) -> None:
    """Register daily plan tools on the MCP server."""

    @mcp.tool
    async def get_daily_plan(ctx: Context) -> str:
        """Return the current daily plan with item states and adherence."""
        plan = engine.plan
        if plan is None:
            return json.dumps({"status": "empty", "message": "No plan generated yet"})
        return json.dumps({"status": "ok", "plan": plan.to_dict(), "adherence": plan.adherence()})

    @mcp.tool
    async def regenerate_plan(
        ctx: Context,
        temperature_c: float | None = None,
        weather_condition: str = "",
        weather_code: int | None = None,
    ) -> str:
        """Generate today's plan from the current bio-load, keeping what you already did.

        Args:
            temperature_c: Current outdoor temperature in Celsius, if known.
            weather_condition: Short weather description (e.g. 'light rain').
            weather_code: WMO weather code, if known.
        """
        env = EnvContext(
            weather_code=weather_code,
            temperature_c=temperature_c,
            condition=weather_condition,
        )
        try:
            plan = await engine.regenerate(env)
        except PlannerError as exc:
            logger.warning("Plan regeneration failed: %s", exc)
            return _error(str(exc), error_type=type(exc).__name__)
        if plan is None:
            return json.dumps({"status": "busy", "message": "A regeneration is already running"})
        return json.dumps({"status": "ok", "plan": plan.to_dict()})

    @mcp.tool
    async def update_plan_item(ctx: Context, item_id: str, action: str, minutes: float = 15) -> str:
        """Complete, skip, toggle or snooze a plan item.

        Args:
            item_id: Id of the plan item.
            action: One of 'complete', 'skip', 'toggle', 'snooze'.
            minutes: Snooze length in minutes (only for 'snooze').
        """
        handlers = {
            "complete": engine.complete_item,
            "skip": engine.skip_item,
            "toggle": engine.toggle_item,
        }
        try:
            if action == "snooze":
                item = engine.snooze_item(item_id, minutes)
            elif action in handlers:
                item = handlers[action](item_id)
            else:
                return _error(f"Unknown action {action!r}")
        except PlanItemNotFoundError:
            return _error(f"No plan item with id {item_id!r}")
        except ValueError as exc:
            return _error(str(exc))
        return json.dumps({"status": "ok", "item": item.to_dict()})

    @mcp.tool
    async def get_bio_load(ctx: Context) -> str:
        """Preview today's bio-load (neural battery, hormonal load, fatigue, warnings)."""
        return json.dumps({"status": "ok", "bio_load": engine.bio_load().to_dict()})

    @mcp.tool
    async def check_due_items(ctx: Context) -> str:
        """Run one notification gatekeeper tick now and report what happened."""
        result = engine.gatekeeper_tick()
        return json.dumps({
            "status": "ok",
            "notified": [n.item_id for n in result.notifications],
            "auto_skipped": result.auto_skipped,
            "suppressed": result.suppressed,
            "stale_plan": result.stale,
            "context": engine.classifier.current,
        })

    if inbox is not None:

        @mcp.tool
        async def collect_notifications(ctx: Context) -> str:
            """Return and clear the notifications queued since the last call."""
            return json.dumps({"status": "ok", "notifications": inbox.drain()})
