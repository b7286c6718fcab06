"""Unit tests for the operator CLI (src.cli.ingest)."""

from __future__ import annotations

import pytest

from src.cli import ingest
from src.providers.auth import HMACTokenVerifier


@pytest.fixture(autouse=True)
def _cli_settings(monkeypatch, test_settings):
    monkeypatch.setattr(ingest, "Settings", lambda: test_settings)


def test_no_command_prints_help(capsys) -> None:
    assert ingest.main([]) == 1
    assert "enqueue" in capsys.readouterr().out


def test_token_is_verifiable(capsys, test_settings) -> None:
    assert ingest.main(["token", "--user", "alice"]) == 0
    token = capsys.readouterr().out.strip()
    assert HMACTokenVerifier(test_settings.auth_secret).verify(token) == "alice"


def test_token_without_secret(monkeypatch, capsys, test_settings) -> None:
    monkeypatch.setattr(
        ingest, "Settings", lambda: test_settings.model_copy(update={"auth_secret": ""})
    )
    assert ingest.main(["token", "--user", "alice"]) == 1
    assert "AUTH_SECRET" in capsys.readouterr().err


def test_enqueue_file(tmp_path, capsys) -> None:
    path = tmp_path / "notes.txt"
    path.write_text("hello", encoding="utf-8")

    assert ingest.main(["enqueue", "--file", str(path), "--id", "notes-1"]) == 0
    out = capsys.readouterr().out
    assert "Enqueued file job" in out
    assert "notes-1" in out


def test_enqueue_missing_file(tmp_path, capsys) -> None:
    assert ingest.main(["enqueue", "--file", str(tmp_path / "absent.pdf"), "--id", "x"]) == 1
    assert "file not found" in capsys.readouterr().err


def test_enqueue_needs_exactly_one_source() -> None:
    with pytest.raises(SystemExit):
        ingest.main(["enqueue", "--id", "x"])


def test_status_unknown_collection(capsys) -> None:
    assert ingest.main(["status", "--id", "never-seen"]) == 1
    assert "No ingestion job" in capsys.readouterr().err


def test_dead_letters_empty(capsys) -> None:
    assert ingest.main(["dead-letters"]) == 0
    assert "No dead-lettered jobs." in capsys.readouterr().out


def test_worker_refuses_in_process_queue(monkeypatch, capsys, test_settings) -> None:
    from src.cli import worker

    monkeypatch.setattr(worker, "Settings", lambda: test_settings)
    monkeypatch.setattr(worker, "configure_logging", lambda **_: None)

    assert worker.main([]) == 1
    assert "QUEUE_BACKEND=memory" in capsys.readouterr().err
