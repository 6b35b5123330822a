"""LLM provider implementations."""

from biosync.core.llm.providers.anthropic import AnthropicProvider
from biosync.core.llm.providers.mock import MockPlannerProvider
from biosync.core.llm.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "MockPlannerProvider", "OpenAIProvider"]
