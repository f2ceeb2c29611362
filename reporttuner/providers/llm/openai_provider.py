"""OpenAI-compatible LLM provider adapter for section generation.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
The model is chosen per call because the current model comes from the
model registry (a fine-tuned id once one exists, the base model before).
When ``openai_base_url`` is configured the client points at that
OpenAI-compatible endpoint instead.
"""

from __future__ import annotations

import openai
import structlog

from reporttuner.config.settings import Settings
from reporttuner.interfaces.llm_provider import ILLMProvider
from reporttuner.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        settings: Settings,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        api_key = settings.openai_api_key
        # Without a key the SDK refuses to construct a client; stay
        # unavailable instead so the app still starts and reports "degraded".
        if client is None and api_key:
            client_kwargs: dict = {
                "api_key": api_key,
                "timeout": openai.Timeout(settings.openai_timeout_seconds, connect=5.0),
            }
            if settings.openai_base_url:
                client_kwargs["base_url"] = settings.openai_base_url
            client = openai.AsyncOpenAI(**client_kwargs)
        self._client: openai.AsyncOpenAI | None = client
        self._provider_label = (
            "openai-compatible" if settings.openai_base_url else "openai"
        )

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        """Generate a text completion via the chat completions API."""
        if self._client is None:
            raise LLMError(
                message="OPENAI_API_KEY is not configured",
                provider_name=self.get_provider_name(),
            )
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._provider_label} timed out",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content
        if content is None:
            raise LLMError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_completion",
            model=model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content

    def is_available(self) -> bool:
        """Return ``True`` if a client exists (the key itself is not verified)."""
        return self._client is not None

    def get_provider_name(self) -> str:
        return self._provider_label
