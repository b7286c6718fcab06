"""Integration tests for the FastAPI endpoints using TestClient.

Every component on ``app.state`` is an in-memory fake or a real service
wired to fakes, so no network, API keys, Redis or Chroma are needed.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.main import create_app
from src.models.ingestion import IngestionJob, JobState, JobStatus, SourceKind
from src.models.rag import TextSegment
from src.services.chat_service import ChatService
from src.services.embedding_gateway import EmbeddingGateway
from src.utils.errors import GenerationError
from src.utils.retry import RetryPolicy

_FAST = RetryPolicy(max_attempts=1, base_delay=0.0, timeout=5.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _components(settings, job_queue, chat_service, verifier, **extra) -> dict:
    components = {
        "settings": settings,
        "config": {"app": {"version": "0.1.0"}, "ingestion": {"upload_suffixes": [".pdf", ".txt", ".md"]}},
        "job_queue": job_queue,
        "chat_service": chat_service,
        "auth_verifier": verifier,
        "provider_registry": {
            "embedding": "bag-of-words",
            "llm": "echo",
            "vector_store": "memory",
            "queue": "memory",
        },
    }
    components.update(extra)
    return components


def _store(embedding_provider, vector_store, collection_id: str, text: str) -> None:
    segment = TextSegment(
        segment_id=f"{collection_id}-0",
        content=text,
        source_metadata={"source_reference": f"/uploads/{collection_id}.pdf", "page_number": 1},
    )
    vectors = asyncio.run(embedding_provider.embed([text]))
    asyncio.run(vector_store.add_documents(collection_id, [segment], vectors))


def _set_state(job_queue, collection_id: str, state: JobState, error: str | None = None) -> None:
    job = IngestionJob(
        source_kind=SourceKind.FILE,
        source_reference=f"/uploads/{collection_id}.pdf",
        owner_id="alice",
        collection_id=collection_id,
    )
    asyncio.run(job_queue.set_status(JobStatus.for_job(job, state, error=error)))


@pytest.fixture
def chat_service(embedding_provider, vector_store, echo_llm) -> ChatService:
    return ChatService(
        EmbeddingGateway(embedding_provider, policy=_FAST),
        vector_store,
        echo_llm,
        store_policy=_FAST,
    )


@pytest.fixture
def client(test_settings, memory_queue, chat_service, token_verifier):
    app = create_app(
        test_settings,
        components=_components(test_settings, memory_queue, chat_service, token_verifier),
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth(token_verifier) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_verifier.issue('alice')}"}


def _pdf_upload(name: str = "sky.pdf", content: bytes = b"%PDF-1.4 test") -> dict:
    return {"file": (name, content, "application/pdf")}


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_healthy(self, client) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["version"] == "0.1.0"
        assert body["providers"]["llm"] == "echo"

    def test_degraded_without_providers(self, test_settings, memory_queue, chat_service, token_verifier) -> None:
        app = create_app(
            test_settings,
            components=_components(
                test_settings, memory_queue, chat_service, token_verifier, provider_registry={}
            ),
        )
        with TestClient(app) as test_client:
            assert test_client.get("/health").json()["status"] == "degraded"


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class TestAuth:
    def test_missing_header(self, client) -> None:
        response = client.post("/upload", files=_pdf_upload(), data={"id": "abc-1"})
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["error"] == "AuthError"

    def test_not_a_bearer_header(self, client) -> None:
        response = client.get("/jobs/abc-1", headers={"Authorization": "Basic YWxpY2U6cHc="})
        assert response.status_code == 401

    def test_forged_token(self, client) -> None:
        response = client.post(
            "/chat",
            json={"question": "Hi?", "userId": "alice", "id": "abc-1"},
            headers={"Authorization": "Bearer alice:1700000000:deadbeef"},
        )
        assert response.status_code == 401
        assert "signature" in response.json()["detail"]


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class TestUpload:
    def test_accepts_and_enqueues(self, client, auth, memory_queue, test_settings) -> None:
        response = client.post("/upload", files=_pdf_upload(), data={"id": "abc-1"}, headers=auth)

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == "abc-1"
        assert body["state"] == "queued"
        assert body["job_id"]
        assert "processing" in body["message"]

        saved = Path(test_settings.upload_dir).resolve() / "abc-1" / "sky.pdf"
        assert saved.read_bytes() == b"%PDF-1.4 test"
        assert memory_queue.pending_count() == 1

    def test_missing_id(self, client, auth) -> None:
        response = client.post("/upload", files=_pdf_upload(), headers=auth)
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"
        assert "'id'" in response.json()["detail"]

    def test_missing_file(self, client, auth) -> None:
        response = client.post("/upload", data={"id": "abc-1"}, headers=auth)
        assert response.status_code == 400
        assert "'file'" in response.json()["detail"]

    @pytest.mark.parametrize("collection_id", ["../etc", "has space", "-leading"])
    def test_unsafe_id(self, client, auth, collection_id: str) -> None:
        response = client.post("/upload", files=_pdf_upload(), data={"id": collection_id}, headers=auth)
        assert response.status_code == 400

    def test_unsupported_type(self, client, auth) -> None:
        response = client.post(
            "/upload",
            files={"file": ("tool.exe", b"MZ", "application/octet-stream")},
            data={"id": "abc-1"},
            headers=auth,
        )
        assert response.status_code == 400
        assert "Unsupported file type" in response.json()["detail"]

    def test_empty_file(self, client, auth) -> None:
        response = client.post("/upload", files=_pdf_upload(content=b""), data={"id": "abc-1"}, headers=auth)
        assert response.status_code == 400
        assert "empty" in response.json()["detail"]

    def test_too_large(self, client, auth, memory_queue) -> None:
        oversized = b"x" * (1024 * 1024 + 1)
        response = client.post(
            "/upload", files=_pdf_upload(content=oversized), data={"id": "abc-1"}, headers=auth
        )
        assert response.status_code == 413
        assert response.json()["error"] == "PayloadTooLarge"
        assert memory_queue.pending_count() == 0

    def test_conflict_while_job_active(self, client, auth, memory_queue) -> None:
        first = client.post("/upload", files=_pdf_upload(), data={"id": "abc-1"}, headers=auth)
        second = client.post("/upload", files=_pdf_upload(), data={"id": "abc-1"}, headers=auth)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["job_state"] == "queued"
        assert memory_queue.pending_count() == 1

    def test_reupload_after_completion(self, client, auth, memory_queue) -> None:
        _set_state(memory_queue, "abc-1", JobState.DONE)
        response = client.post("/upload", files=_pdf_upload(), data={"id": "abc-1"}, headers=auth)
        assert response.status_code == 200

    def test_text_upload(self, client, auth) -> None:
        response = client.post(
            "/upload",
            files={"file": ("notes.md", b"# Notes\n\nHello.", "text/markdown")},
            data={"id": "notes-1"},
            headers=auth,
        )
        assert response.status_code == 200


class TestYouTubeUpload:
    def test_accepts_video_url(self, client, auth, memory_queue) -> None:
        response = client.post(
            "/youtube-upload",
            json={"url": "https://youtu.be/dQw4w9WgXcQ", "id": "talk-1"},
            headers=auth,
        )
        assert response.status_code == 200
        assert response.json()["id"] == "talk-1"

        job = asyncio.run(memory_queue.reserve(0.1))
        assert job.source_kind == SourceKind.URL
        assert job.source_reference == "https://youtu.be/dQw4w9WgXcQ"
        assert job.owner_id == "alice"

    def test_missing_url(self, client, auth) -> None:
        response = client.post("/youtube-upload", json={"id": "talk-1"}, headers=auth)
        assert response.status_code == 400
        assert "'url'" in response.json()["detail"]

    def test_non_http_url(self, client, auth) -> None:
        response = client.post(
            "/youtube-upload", json={"url": "file:///etc/passwd", "id": "talk-1"}, headers=auth
        )
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class TestChat:
    def test_answers_from_collection(self, client, auth, embedding_provider, vector_store, echo_llm) -> None:
        _store(embedding_provider, vector_store, "abc-1", "The sky is blue.")

        response = client.post(
            "/chat",
            json={"question": "What colour is the sky?", "userId": "alice", "id": "abc-1"},
            headers=auth,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["role"] == "assistant"
        assert "The sky is blue." in body["content"]
        assert len(echo_llm.calls) == 1

    def test_youtube_chat_uses_same_path(self, client, auth, embedding_provider, vector_store) -> None:
        _store(embedding_provider, vector_store, "talk-1", "Welcome to the talk about retrieval.")

        response = client.post(
            "/youtube-chat",
            json={"question": "What is the talk about?", "userId": "alice", "id": "talk-1"},
            headers=auth,
        )
        assert response.status_code == 200
        assert "retrieval" in response.json()["content"]

    @pytest.mark.parametrize(
        ("payload", "field"),
        [
            ({"userId": "alice", "id": "abc-1"}, "question"),
            ({"question": "  ", "userId": "alice", "id": "abc-1"}, "question"),
            ({"question": "Hi?", "id": "abc-1"}, "userId"),
            ({"question": "Hi?", "userId": "alice"}, "id"),
        ],
    )
    def test_missing_fields(self, client, auth, payload: dict, field: str) -> None:
        response = client.post("/chat", json=payload, headers=auth)
        assert response.status_code == 400
        assert f"'{field}'" in response.json()["detail"]

    def test_user_id_must_match_token(self, client, auth) -> None:
        response = client.post(
            "/chat", json={"question": "Hi?", "userId": "mallory", "id": "abc-1"}, headers=auth
        )
        assert response.status_code == 401

    def test_unknown_collection(self, client, auth, echo_llm) -> None:
        response = client.post(
            "/chat", json={"question": "Hi?", "userId": "alice", "id": "unknown-99"}, headers=auth
        )

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "RetrievalError"
        assert body["job_state"] is None
        assert echo_llm.calls == []

    def test_failed_ingestion_state_is_reported(self, client, auth, memory_queue) -> None:
        _set_state(memory_queue, "bad-1", JobState.FAILED, error="No extractable text")

        response = client.post(
            "/chat", json={"question": "Hi?", "userId": "alice", "id": "bad-1"}, headers=auth
        )
        assert response.status_code == 500
        assert response.json()["job_state"] == "failed"

    def test_still_ingesting_state_is_reported(self, client, auth, memory_queue) -> None:
        _set_state(memory_queue, "slow-1", JobState.EMBEDDING)

        response = client.post(
            "/chat", json={"question": "Hi?", "userId": "alice", "id": "slow-1"}, headers=auth
        )
        assert response.status_code == 500
        assert response.json()["job_state"] == "embedding"

    def test_generation_failure(
        self, test_settings, memory_queue, token_verifier, auth, embedding_provider, vector_store, mock_llm_provider
    ) -> None:
        _store(embedding_provider, vector_store, "abc-1", "The sky is blue.")
        mock_llm_provider.complete = AsyncMock(side_effect=GenerationError("overloaded", provider_name="mock-llm"))
        chat_service = ChatService(
            EmbeddingGateway(embedding_provider, policy=_FAST),
            vector_store,
            mock_llm_provider,
            store_policy=_FAST,
        )
        app = create_app(
            test_settings,
            components=_components(test_settings, memory_queue, chat_service, token_verifier),
        )

        with TestClient(app) as test_client:
            response = test_client.post(
                "/chat",
                json={"question": "What colour is the sky?", "userId": "alice", "id": "abc-1"},
                headers=auth,
            )

        assert response.status_code == 500
        assert response.json()["error"] == "GenerationError"
        assert response.json()["detail"] == "overloaded"

    def test_unclassified_model_failure_is_structured_500(
        self, test_settings, memory_queue, token_verifier, auth, embedding_provider, vector_store, mock_llm_provider
    ) -> None:
        _store(embedding_provider, vector_store, "abc-1", "The sky is blue.")
        mock_llm_provider.complete = AsyncMock(side_effect=RuntimeError("candidate stopped: SAFETY"))
        chat_service = ChatService(
            EmbeddingGateway(embedding_provider, policy=_FAST),
            vector_store,
            mock_llm_provider,
            store_policy=_FAST,
        )
        app = create_app(
            test_settings,
            components=_components(test_settings, memory_queue, chat_service, token_verifier),
        )
        _set_state(memory_queue, "abc-1", JobState.DONE)

        with TestClient(app) as test_client:
            response = test_client.post(
                "/chat",
                json={"question": "What colour is the sky?", "userId": "alice", "id": "abc-1"},
                headers=auth,
            )

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "GenerationError"
        assert "SAFETY" in body["detail"]
        assert body["job_state"] == "done"


# ---------------------------------------------------------------------------
# Job status
# ---------------------------------------------------------------------------


class TestJobStatus:
    def test_unknown(self, client, auth) -> None:
        response = client.get("/jobs/never-seen", headers=auth)
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_after_upload(self, client, auth) -> None:
        upload = client.post("/upload", files=_pdf_upload(), data={"id": "abc-1"}, headers=auth)
        response = client.get("/jobs/abc-1", headers=auth)

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == "abc-1"
        assert body["job_id"] == upload.json()["job_id"]
        assert body["state"] == "queued"
        assert body["attempts"] == 0
        assert body["dead_lettered"] is False

    def test_requires_auth(self, client) -> None:
        assert client.get("/jobs/abc-1").status_code == 401
