"""Abstract base class for generative model providers.

Defines the contract for the model that writes the grounded answer at
chat time.  Implementations wrap OpenAI, Anthropic (Claude) and Google
Gemini; every call-site stays provider-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: OpenAILLMProvider, AnthropicLLMProvider, GeminiLLMProvider
# Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for generative models used by the chat service."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> str:
        """Generate a reply to *user_prompt* under *system_prompt*.

        Parameters
        ----------
        system_prompt:
            The instruction that sets the model's behaviour; for chat this
            embeds the retrieved context.
        user_prompt:
            The live user turn (the question).
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        src.utils.errors.GenerationError
            If the API call fails or returns no text.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"anthropic"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are configured (does not call the API)."""
