"""OpenAI GPT provider."""

from __future__ import annotations

import logging
import time

from biosync.core.llm.provider import ProviderResponse

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """Chat Completions in JSON-object mode.

    JSON mode guarantees a syntactically valid object but not our schema;
    the Planner Service still validates every item.
    """

    def __init__(self, api_key: str, model: str = "gpt-4o") -> None:
        import openai

        self.client = openai.AsyncOpenAI(api_key=api_key)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 4096,
        temperature: float = 0.4,
    ) -> ProviderResponse:
        started = time.monotonic()
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_message},
                {"role": "user", "content": user_message},
            ],
            response_format={"type": "json_object"},
            max_tokens=max_tokens,
            temperature=temperature,
        )
        latency_ms = (time.monotonic() - started) * 1000

        if not completion.choices:
            logger.warning("OpenAI returned no choices for model %s", self.model)
            text = ""
        else:
            first = completion.choices[0]
            if getattr(first, "finish_reason", None) == "length":
                logger.warning("OpenAI plan truncated at max_tokens=%d", max_tokens)
            text = first.message.content or ""

        usage = completion.usage
        return ProviderResponse(
            content=text,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            model=getattr(completion, "model", None) or self.model,
            latency_ms=latency_ms,
        )
