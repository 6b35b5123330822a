"""BioSync Daily Plan MCP Server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastmcp import FastMCP

from biosync.core.config.settings import get_settings
from biosync.core.llm.provider import LLMProvider, create_provider
from biosync.core.storage.database import DatabaseError, StoreDatabase
from biosync.core.storage.encryption import EncryptionError, RecordCipher
from biosync.core.storage.repository import LifeLogRepository, Store
from biosync.core.storage.store import KeyValueStore, MemoryStore
from biosync.domains.health.connectors.providers import InboxNotificationSink
from biosync.domains.health.engine import DailyPlanEngine, EngineTimings
from biosync.domains.health.planner.orchestrator import PlanOrchestrator
from biosync.domains.health.planner.service import PlannerService
from biosync.domains.health.prompts.plan_prompts import register_plan_prompts
from biosync.domains.health.tools.plan_tools import register_plan_tools
from biosync.domains.health.tools.tracking_tools import register_tracking_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "BioSync Daily Plan"
SERVER_VERSION = "0.1.0"


def _select_provider(settings) -> LLMProvider:
    if settings.llm_provider == "mock":
        provider_name, api_key, model = "mock", "", ""
    elif settings.llm_provider == "anthropic":
        api_key = settings.anthropic_api_key
        model = settings.anthropic_model
        provider_name = "anthropic" if api_key else "mock"
    elif settings.llm_provider == "openai":
        api_key = settings.openai_api_key
        model = settings.openai_model
        provider_name = "openai" if api_key else "mock"
    else:  # pragma: no cover
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider!r}")

    if provider_name == "mock" and settings.llm_provider != "mock":
        logger.warning(
            "No API key configured for provider '%s'; falling back to mock planner",
            settings.llm_provider,
        )
    return create_provider(provider_name=provider_name, api_key=api_key, model=model)


def _open_store(settings) -> tuple[Store, bool]:
    """Encrypted SQLite store when a key is configured, else in-memory."""
    if not settings.encryption_key:
        logger.info(
            "No ENCRYPTION_KEY configured; running without persistence. "
            "Set ENCRYPTION_KEY to keep life-logs across restarts."
        )
        return MemoryStore(), False
    try:
        cipher = RecordCipher(settings.encryption_key)
        database = StoreDatabase(settings.db_path)
        database.initialize()
    except (EncryptionError, DatabaseError) as exc:
        logger.error("Failed to initialize storage: %s", exc)
        logger.warning("Continuing without persistence; data will not be stored")
        return MemoryStore(), False
    logger.info(
        "Life-log store initialized: %s (schema v%d)",
        settings.db_path,
        database.get_schema_version(),
    )
    return KeyValueStore(database, cipher), True


def create_app(
    *,
    engine_override: DailyPlanEngine | None = None,
    provider_override: LLMProvider | None = None,
    store_override: Store | None = None,
    start_ticks: bool = True,
) -> FastMCP:
    """Create and configure the BioSync MCP server.

    This is the main application factory. It:
    1. Opens the (encrypted) life-log store
    2. Creates the planner provider and the Planner Service
    3. Builds the DailyPlanEngine around them
    4. Registers all tools and prompts

    With ``start_ticks`` the engine's periodic ticks run for the lifetime of
    the server.
    """
    settings = get_settings()
    inbox: InboxNotificationSink | None = None
    persistent = False

    if engine_override is not None:
        engine = engine_override
        if isinstance(engine.sink, InboxNotificationSink):
            inbox = engine.sink
    else:
        if store_override is not None:
            store = store_override
            persistent = isinstance(store, KeyValueStore)
        else:
            store, persistent = _open_store(settings)

        provider = provider_override if provider_override is not None else _select_provider(settings)
        planner = PlannerService(provider, timeout_seconds=settings.planner_timeout_seconds)
        orchestrator = PlanOrchestrator(planner, locale=settings.planner_locale)
        inbox = InboxNotificationSink()
        engine = DailyPlanEngine(
            LifeLogRepository(store),
            orchestrator,
            sink=inbox,
            timings=EngineTimings.from_settings(settings),
        )

    @asynccontextmanager
    async def lifespan(_server: FastMCP):
        if start_ticks:
            engine.start()
        try:
            yield
        finally:
            if start_ticks:
                engine.stop()

    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "BioSync Bio-Adaptive Daily Plan Engine. Turns food, activity, mood, "
            "water and sleep logs into a bio-load estimate and a daily plan, "
            "reminds at the right time (never while driving or asleep unless "
            "high priority) and tracks sleep with a reality check and smart alarm."
        ),
        lifespan=lifespan,
    )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic engine status."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "storage_persistent": persistent,
            "planner_timeout_seconds": engine.orchestrator.planner.timeout_seconds,
            **engine.status(),
        }

    register_plan_tools(server, engine, inbox)
    register_tracking_tools(server, engine)
    logger.info("Daily plan and tracking tools registered")

    # --- Register prompts ---
    register_plan_prompts(server)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
