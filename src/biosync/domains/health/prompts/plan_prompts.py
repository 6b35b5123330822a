"""MCP Prompts: interaction templates for the daily plan journeys."""

from __future__ import annotations

from fastmcp import FastMCP


def register_plan_prompts(mcp: FastMCP) -> None:
    """Register daily plan MCP prompts."""

    @mcp.prompt()
    def morning_plan_prompt() -> str:
        """Prompt template for starting the day with a fresh plan."""
        return """Good morning. Please set up my day:

1. Check my bio-load (neural battery, hormonal load, fatigue)
2. Generate today's plan with the current weather
3. Walk me through the high-priority items first

Keep it short. I want to know what matters today, not everything."""

    @mcp.prompt()
    def evening_review_prompt() -> str:
        """Prompt template for reviewing the day before sleep."""
        return """Let's close the day. Please:

1. Show which plan items I completed, skipped or missed
2. Tell me how my water and food compare to the plan
3. Start sleep tracking with the smart alarm at my usual wake time

Be encouraging about what went well."""
