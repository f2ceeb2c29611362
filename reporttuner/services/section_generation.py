"""Section generation: drafts a report section with the current model.

The model is resolved per request from the :class:`ModelRegistry`, so a
fine-tuned model is picked up as soon as the reconciler records it,
without a restart.  Prompting mirrors the training examples: the same
system instruction, and a user prompt naming the section plus the
caller's context as JSON.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from reporttuner.interfaces.llm_provider import ILLMProvider
from reporttuner.services.model_registry import ModelRegistry
from reporttuner.services.training_set_builder import SYSTEM_INSTRUCTION
from reporttuner.utils.logging import get_logger


def generation_prompt(section: str, context: Any) -> str:
    """Return the user prompt for ``section`` with ``context`` serialized as JSON."""
    return (
        f'Generate the "{section}" section for a forensic engineering report '
        f"with the following context: {json.dumps(context, default=str)}"
    )


class SectionGenerationService:
    """Generates report sections through an :class:`ILLMProvider`."""

    def __init__(
        self,
        llm_provider: ILLMProvider,
        model_registry: ModelRegistry,
        system_prompt: str = SYSTEM_INSTRUCTION,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> None:
        self._llm = llm_provider
        self._registry = model_registry
        self._system_prompt = system_prompt
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def generate(self, section: str, context: Any = None) -> tuple[str, str]:
        """Generate ``section`` and return ``(content, model_id)``.

        Raises
        ------
        reporttuner.utils.errors.LLMError
            If the completion call fails.
        """
        model_id = await self._registry.resolve_model_id()
        content = await self._llm.complete(
            system_prompt=self._system_prompt,
            user_prompt=generation_prompt(section, context or {}),
            model=model_id,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        self._logger.info(
            "section_generated",
            section=section,
            model=model_id,
            chars=len(content),
        )
        return content, model_id
