"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """BioSync daily plan engine configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: the engine holds personal health logs and has no auth layer.
    biosync_host: str = "127.0.0.1"
    biosync_port: int = 8011
    biosync_log_level: str = "info"
    biosync_allow_insecure_bind: bool = False

    # Planner Service (LLM-backed)
    llm_provider: Literal["anthropic", "openai", "mock"] = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    planner_timeout_seconds: float = 45.0
    planner_locale: str = "en"

    # Storage (key-value life-log store)
    db_path: str = "~/.biosync/engine.db"
    encryption_key: str = ""

    # Notification gatekeeper
    gatekeeper_tick_seconds: float = 10.0
    due_window_minutes: int = 60
    auto_skip_minutes: int = 60

    # Context classifier
    driving_confirm_samples: int = 2

    # Sleep session state machine
    sleep_logic_tick_seconds: float = 5.0
    sleep_sample_tick_seconds: float = 2.0
    stillness_threshold_minutes: int = 15
    reality_check_timeout_minutes: int = 10
    wake_motion_threshold: float = 1.0
    alarm_motion_threshold: float = 1.5
    smart_alarm_window_minutes: int = 30


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
