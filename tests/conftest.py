"""Shared test fixtures for BioSync engine tests."""

from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("PLANNER_LOCALE", "en")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from biosync.core.llm.providers.mock import MockPlannerProvider  # noqa: E402
from biosync.core.storage.repository import LifeLogRepository  # noqa: E402
from biosync.core.storage.store import MemoryStore  # noqa: E402
from biosync.core.timing.clock import epoch_ms  # noqa: E402
from biosync.domains.health.connectors.providers import InboxNotificationSink  # noqa: E402
from biosync.domains.health.domain_logic.models import DailyPlan, PlanItem  # noqa: E402
from biosync.domains.health.engine import DailyPlanEngine  # noqa: E402
from biosync.domains.health.planner.orchestrator import PlanOrchestrator  # noqa: E402
from biosync.domains.health.planner.service import PlannerService  # noqa: E402

TEST_DAY = datetime(2026, 3, 2, 7, 30)


class FakeClock:
    """Settable local clock; call it to read, ``advance`` to move forward."""

    def __init__(self, start: datetime = TEST_DAY) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int = 0) -> datetime:
        self.now = self.now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now

    def ms(self) -> int:
        return epoch_ms(self.now)


def make_item(
    time: str,
    title: str,
    category: str = "meal",
    *,
    id: str | None = None,
    priority: str = "medium",
    completed: bool = False,
    skipped: bool = False,
    linked_action: str | None = None,
) -> PlanItem:
    return PlanItem(
        id=id or f"{category}-{time}",
        time=time,
        category=category,
        title=title,
        description=f"{title} description",
        completed=completed,
        skipped=skipped,
        priority=priority,
        linked_action=linked_action,
    )


def make_plan(date: str = "2026-03-02", items: list[PlanItem] | None = None) -> DailyPlan:
    plan = DailyPlan(date=date, summary="Test plan", items=list(items or []))
    plan.sort_items()
    return plan


def tool_payload(result: Any) -> dict[str, Any]:
    """Decode the JSON string returned by a BioSync MCP tool."""
    content = getattr(result, "content", result)
    return json.loads(content[0].text)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fernet_key() -> str:
    from cryptography.fernet import Fernet

    return Fernet.generate_key().decode()


@pytest.fixture
def store_db():
    """Create an in-memory StoreDatabase for testing."""
    from biosync.core.storage.database import StoreDatabase

    db = StoreDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def kv_store(store_db, fernet_key):
    """Encrypted KeyValueStore backed by in-memory SQLite."""
    from biosync.core.storage.encryption import RecordCipher
    from biosync.core.storage.store import KeyValueStore

    return KeyValueStore(store_db, RecordCipher(fernet_key))


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def repository(memory_store: MemoryStore) -> LifeLogRepository:
    return LifeLogRepository(memory_store)


@pytest.fixture
def mock_provider() -> MockPlannerProvider:
    return MockPlannerProvider()


@pytest.fixture
def orchestrator(mock_provider: MockPlannerProvider) -> PlanOrchestrator:
    return PlanOrchestrator(PlannerService(mock_provider, timeout_seconds=5))


@pytest.fixture
def inbox() -> InboxNotificationSink:
    return InboxNotificationSink()


@pytest.fixture
def plan_engine(repository, orchestrator, inbox, clock) -> DailyPlanEngine:
    """Engine on an in-memory store, mock planner and fake clock (ticks not started)."""
    return DailyPlanEngine(repository, orchestrator, sink=inbox, clock=clock)
