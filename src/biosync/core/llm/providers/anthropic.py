"""Anthropic Claude provider."""

from __future__ import annotations

import logging
import time

from biosync.core.llm.provider import ProviderResponse

logger = logging.getLogger(__name__)

JSON_PREFILL = "{"


class AnthropicProvider:
    """Claude provider using the Anthropic SDK.

    Claude has no JSON response mode, so the assistant turn is prefilled
    with ``{`` and the brace is restored on the returned text.
    """

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-5-20250929") -> None:
        import anthropic

        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 4096,
        temperature: float = 0.4,
    ) -> ProviderResponse:
        started = time.monotonic()
        message = await self.client.messages.create(
            model=self.model,
            system=system_message,
            messages=[
                {"role": "user", "content": user_message},
                {"role": "assistant", "content": JSON_PREFILL},
            ],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        latency_ms = (time.monotonic() - started) * 1000

        if getattr(message, "stop_reason", None) == "max_tokens":
            logger.warning("Claude plan truncated at max_tokens=%d", max_tokens)
        text = "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        )
        return ProviderResponse(
            content=JSON_PREFILL + text if text else "",
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
            model=getattr(message, "model", None) or self.model,
            latency_ms=latency_ms,
        )
