"""Daily-plan prompt loader: reads the YAML prompt shipped with the package."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

PROMPT_DIR = Path(__file__).parent / "prompts"
DAILY_PLAN_PROMPT = PROMPT_DIR / "daily_plan.yaml"

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "ar": "Arabic",
    "fr": "French",
    "es": "Spanish",
    "hi": "Hindi",
    "de": "German",
    "nl": "Dutch",
    "zh": "Simplified Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "tr": "Turkish",
    "sw": "Swahili",
    "pt": "Portuguese",
}


def language_name(code: str | None) -> str:
    """Full language name for a locale code; unknown codes fall back to English."""
    if not code:
        return "English"
    return LANGUAGE_NAMES.get(code.split("-")[0].lower(), "English")


@dataclass(frozen=True)
class PlannerPrompt:
    """Coach persona, planning instructions and response schema."""

    id: str
    version: str
    persona: str
    instructions: str
    response_schema: str
    context_template: str

    def system_message(self, language: str) -> str:
        return "\n\n".join(
            [
                self.persona.strip(),
                self.instructions.format(language=language).strip(),
                self.response_schema.strip(),
            ]
        )

    def user_message(self, fields: dict[str, Any]) -> str:
        return self.context_template.format(**fields).strip()


def load_prompt_file(path: str | Path) -> PlannerPrompt:
    """Parse a YAML prompt definition.

    Raises:
        ValueError: If a required section is missing.
    """
    path = Path(path)
    with open(path) as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    missing = [
        key
        for key in ("persona", "instructions", "response_schema", "context_template")
        if not data.get(key)
    ]
    if missing:
        raise ValueError(f"Prompt {path.name} is missing sections: {', '.join(missing)}")

    prompt = PlannerPrompt(
        id=data.get("id", path.stem),
        version=str(data.get("version", "0")),
        persona=data["persona"],
        instructions=data["instructions"],
        response_schema=data["response_schema"],
        context_template=data["context_template"],
    )
    logger.info("Loaded planner prompt: %s (v%s)", prompt.id, prompt.version)
    return prompt


@functools.lru_cache(maxsize=1)
def default_prompt() -> PlannerPrompt:
    return load_prompt_file(DAILY_PLAN_PROMPT)
