"""Retrieval-augmented chat over a single ingested collection.

Answers a question in four steps:

  1. EMBED     -- the question goes through the same embedding gateway
                  that ingestion used, so both vectors share one space.
  2. RETRIEVE  -- the top-k nearest segments of the caller's collection.
  3. GROUND    -- retrieved passages are numbered and packed into the
                  system instruction, capped at a character budget.
  4. GENERATE  -- the model answers the question from that context.

Failures before generation raise :class:`RetrievalError` and the model is
never called.  Generation failures raise :class:`GenerationError`; there
is no retry and no fallback answer.
"""

from __future__ import annotations

import asyncio

import structlog

from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.chat import ChatRole, ChatTurn
from src.models.rag import RetrievalResult, RetrievedSegment
from src.services.embedding_gateway import EmbeddingGateway
from src.utils.errors import (
    DocChatError,
    EmbeddingProviderError,
    GenerationError,
    RetrievalError,
    StoreError,
    ValidationError,
)
from src.utils.retry import RetryPolicy, call_with_retry, call_with_timeout

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_SYSTEM_PROMPT = (
    "Answer the user's question using only the context below. If the "
    "context does not contain the answer, say so.\n\nCONTEXT:\n{context}"
)
_TRUNCATION_MARK = " ..."


class ChatService:
    """Grounded question answering for one collection per request.

    Parameters
    ----------
    embeddings:
        Shared embedding gateway.
    vector_store:
        Collection store to retrieve from.
    llm:
        Generative model provider.
    top_k:
        Number of passages retrieved per question.
    max_context_chars:
        Upper bound on the size of the serialized context block.
    system_prompt:
        Instruction template; ``{context}`` is replaced with the passages.
    temperature, max_tokens:
        Generation parameters.
    llm_timeout:
        Seconds allowed for one model call.
    store_policy:
        Timeout/retry budget for the store query.
    """

    def __init__(
        self,
        embeddings: EmbeddingGateway,
        vector_store: IVectorStoreProvider,
        llm: ILLMProvider,
        top_k: int = 2,
        max_context_chars: int = 12000,
        system_prompt: str = _DEFAULT_SYSTEM_PROMPT,
        temperature: float = 0.3,
        max_tokens: int = 1024,
        llm_timeout: float = 60.0,
        store_policy: RetryPolicy | None = None,
    ) -> None:
        if top_k < 1:
            raise ValueError("top_k must be at least 1")
        self._embeddings = embeddings
        self._vector_store = vector_store
        self._llm = llm
        self._top_k = top_k
        self._max_context_chars = max_context_chars
        self._system_prompt = system_prompt
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._llm_timeout = llm_timeout
        self._store_policy = store_policy or RetryPolicy()

    async def answer(self, question: str, collection_id: str) -> ChatTurn:
        """Answer *question* from the passages stored under *collection_id*.

        Raises
        ------
        ValidationError
            If the question or collection id is blank.
        RetrievalError
            If embedding the question or querying the store fails,
            including when the collection does not exist.
        GenerationError
            If the model call fails, times out or returns nothing.
        """
        question = (question or "").strip()
        if not question:
            raise ValidationError(message="question must not be empty")

        passages = await self.retrieve(question, collection_id)
        context = self.build_context(passages)
        system_prompt = self._system_prompt.replace("{context}", context)

        try:
            reply = await call_with_timeout(
                lambda: self._llm.complete(
                    system_prompt=system_prompt,
                    user_prompt=question,
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                ),
                self._llm_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise GenerationError(
                message=f"Model did not answer within {self._llm_timeout:g}s",
                provider_name=self._llm.get_provider_name(),
            ) from exc
        except DocChatError:
            raise
        except Exception as exc:
            # SDK failures the adapter did not classify, e.g. a safety stop.
            logger.error(
                "generation_unexpected_error",
                collection_id=collection_id,
                error_type=type(exc).__name__,
                llm=self._llm.get_provider_name(),
            )
            raise GenerationError(
                message=f"Model call failed: {exc or type(exc).__name__}",
                provider_name=self._llm.get_provider_name(),
            ) from exc

        if not reply or not reply.strip():
            raise GenerationError(
                message="Model returned an empty answer",
                provider_name=self._llm.get_provider_name(),
            )

        logger.info(
            "chat_answered",
            collection_id=collection_id,
            passages=len(passages),
            context_chars=len(context),
            answer_chars=len(reply),
            llm=self._llm.get_provider_name(),
        )
        return ChatTurn(role=ChatRole.ASSISTANT, content=reply.strip())

    async def retrieve(self, question: str, collection_id: str) -> RetrievalResult:
        """Return up to ``top_k`` passages for *question*, best first."""
        if not collection_id or not collection_id.strip():
            raise ValidationError(message="collection id must not be empty")

        try:
            query_vector = await self._embeddings.embed(question)
        except EmbeddingProviderError as exc:
            raise RetrievalError(
                message=f"Could not embed the question: {exc}",
                provider_name=exc.provider_name,
            ) from exc
        except DocChatError:
            raise
        except Exception as exc:
            raise RetrievalError(
                message=f"Could not embed the question: {exc or type(exc).__name__}",
                provider_name=self._embeddings.provider_name,
            ) from exc

        try:
            passages = await call_with_retry(
                lambda: self._vector_store.query(collection_id, query_vector, self._top_k),
                self._store_policy,
                op_name="vector_store.query",
            )
        except StoreError as exc:
            raise RetrievalError(
                message=f"Could not retrieve passages for '{collection_id}': {exc.message}",
                provider_name=exc.provider_name,
            ) from exc
        except asyncio.TimeoutError as exc:
            raise RetrievalError(
                message=f"Vector store query timed out for '{collection_id}'",
                provider_name=self._vector_store.get_provider_name(),
            ) from exc
        except Exception as exc:
            raise RetrievalError(
                message=f"Could not retrieve passages for '{collection_id}': {exc or type(exc).__name__}",
                provider_name=self._vector_store.get_provider_name(),
            ) from exc

        if not passages:
            raise RetrievalError(
                message=f"No passages found in collection '{collection_id}'",
                provider_name=self._vector_store.get_provider_name(),
            )

        logger.debug(
            "passages_retrieved",
            collection_id=collection_id,
            count=len(passages),
            scores=[round(p.relevance_score, 3) for p in passages],
        )
        return passages

    def build_context(self, passages: list[RetrievedSegment]) -> str:
        """Serialize *passages* into a numbered block within the size cap.

        Passages that would push the block past ``max_context_chars`` are
        dropped.  The first passage is always kept, truncated if it alone
        is over the cap.
        """
        blocks: list[str] = []
        used = 0
        for number, passage in enumerate(passages, start=1):
            block = f"[{number}]{_location(passage)} {passage.segment.content}"
            separator = 2 if blocks else 0
            if used + separator + len(block) > self._max_context_chars:
                if not blocks:
                    keep = max(0, self._max_context_chars - len(_TRUNCATION_MARK))
                    blocks.append(block[:keep] + _TRUNCATION_MARK)
                break
            blocks.append(block)
            used += separator + len(block)
        return "\n\n".join(blocks)


def _location(passage: RetrievedSegment) -> str:
    metadata = passage.segment.source_metadata
    if "page_number" in metadata:
        return f" (page {metadata['page_number']})"
    if "start_seconds" in metadata:
        seconds = int(metadata["start_seconds"])
        return f" (at {seconds // 60}:{seconds % 60:02d})"
    return ""
