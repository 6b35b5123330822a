"""LLM provider protocol: the transport behind the Planner Service.

A provider turns one system/user message pair into a single JSON completion.
It does no parsing or retrying; the Planner Service owns both.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

PROVIDER_NAMES = ("anthropic", "openai", "mock")
DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4o",
}


@dataclass
class ProviderResponse:
    """One completion plus the usage figures the planner logs."""

    content: str
    input_tokens: int
    output_tokens: int
    model: str
    latency_ms: float

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@runtime_checkable
class LLMProvider(Protocol):
    """Anything that can produce a JSON plan from a prompt pair."""

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 4096,
        temperature: float = 0.4,
    ) -> ProviderResponse: ...


def create_provider(
    provider_name: str,
    api_key: str = "",
    model: str = "",
) -> LLMProvider:
    """Build the provider named in settings.

    SDK modules are imported lazily so the mock provider works without them.

    Raises:
        ValueError: If ``provider_name`` is not one of ``PROVIDER_NAMES``.
    """
    if provider_name not in PROVIDER_NAMES:
        raise ValueError(f"Unknown LLM provider: {provider_name}")

    if provider_name == "mock":
        from biosync.core.llm.providers.mock import MockPlannerProvider

        return MockPlannerProvider()

    model = model or DEFAULT_MODELS[provider_name]
    if provider_name == "anthropic":
        from biosync.core.llm.providers.anthropic import AnthropicProvider

        return AnthropicProvider(api_key=api_key, model=model)

    from biosync.core.llm.providers.openai import OpenAIProvider

    return OpenAIProvider(api_key=api_key, model=model)
