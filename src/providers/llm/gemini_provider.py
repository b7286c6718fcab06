"""Google Gemini LLM provider adapter.

Wraps ``google.generativeai`` to implement :class:`ILLMProvider`.

Gemini is driven as a conversation: the grounding instruction is seeded
as the first turn of the chat history (acknowledged by a short model
turn so roles alternate) and the question is sent as the live user turn.
"""

from __future__ import annotations

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import generation_types

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.utils.errors import GenerationError

logger = structlog.get_logger(logger_name=__name__)

_ACKNOWLEDGEMENT = "Understood. I will answer only from that context."


class GeminiLLMProvider(ILLMProvider):
    """LLM provider backed by Google Gemini chat sessions."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.google_api_key
        self._model_name = settings.gemini_model
        self._timeout_seconds = settings.llm_timeout_seconds
        genai.configure(api_key=self._api_key)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> str:
        model = genai.GenerativeModel(model_name=self._model_name)
        chat = model.start_chat(
            history=[
                {"role": "user", "parts": [system_prompt]},
                {"role": "model", "parts": [_ACKNOWLEDGEMENT]},
            ]
        )
        try:
            response = await chat.send_message_async(
                user_prompt,
                generation_config={
                    "temperature": temperature,
                    "max_output_tokens": max_tokens,
                },
                request_options={"timeout": self._timeout_seconds},
            )
            text = response.text
        except google_exceptions.GoogleAPIError as exc:
            raise GenerationError(
                message=f"Gemini API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except (
            generation_types.StopCandidateException,
            generation_types.BlockedPromptException,
        ) as exc:
            raise GenerationError(
                message=f"Gemini stopped without an answer: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except ValueError as exc:
            # response.text raises ValueError when the candidate was blocked.
            raise GenerationError(
                message=f"Gemini returned no text: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not text:
            raise GenerationError(
                message="Gemini returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info("gemini_completion", model=self._model_name, chars=len(text))
        return text

    def is_available(self) -> bool:
        return bool(self._api_key)

    def get_provider_name(self) -> str:
        return "gemini"
