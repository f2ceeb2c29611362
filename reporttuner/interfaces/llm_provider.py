"""Abstract base class for the section-generation LLM backend.

Generation always names the model explicitly because the current model
is resolved per request from the model registry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ILLMProvider(ABC):
    """Contract for chat-completion services used to draft report sections."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        """Generate a text completion from ``model``.

        Raises
        ------
        reporttuner.utils.errors.LLMError
            If the API call fails or returns an empty response.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this LLM provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are configured (no network call)."""
