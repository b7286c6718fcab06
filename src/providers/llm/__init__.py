"""LLM provider adapters.

Three concrete implementations of ILLMProvider (src/interfaces/llm_provider.py):
    - OpenAILLMProvider - gpt-4o-mini (also supports OpenAI-compatible APIs)
    - AnthropicLLMProvider - Claude Sonnet
    - GeminiLLMProvider - Gemini chat sessions

At startup, main.py creates the provider named by LLM_PROVIDER (or the first
one with an API key) and injects it into the chat service.
"""

from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.gemini_provider import GeminiLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["AnthropicLLMProvider", "GeminiLLMProvider", "OpenAILLMProvider"]
