"""Unit tests for HMAC bearer tokens."""

from __future__ import annotations

import time

import pytest

from src.providers.auth import HMACTokenVerifier
from src.utils.errors import AuthError


class TestIssueAndVerify:
    def test_round_trip(self, token_verifier) -> None:
        assert token_verifier.verify(token_verifier.issue("alice")) == "alice"

    def test_token_format(self, token_verifier) -> None:
        user_id, issued_at, signature = token_verifier.issue("alice", issued_at=1700000000).split(":")
        assert user_id == "alice"
        assert issued_at == "1700000000"
        assert len(signature) == 64

    @pytest.mark.parametrize("user_id", ["", "a:b"])
    def test_rejects_unusable_user_ids(self, token_verifier, user_id: str) -> None:
        with pytest.raises(ValueError):
            token_verifier.issue(user_id)

    def test_requires_secret(self) -> None:
        with pytest.raises(ValueError):
            HMACTokenVerifier("")


class TestRejections:
    def test_missing(self, token_verifier) -> None:
        with pytest.raises(AuthError, match="Missing"):
            token_verifier.verify("")

    @pytest.mark.parametrize("token", ["garbage", "a:b", "alice::sig", "alice:notanumber:sig"])
    def test_malformed(self, token_verifier, token: str) -> None:
        with pytest.raises(AuthError, match="Malformed"):
            token_verifier.verify(token)

    def test_tampered_user_id(self, token_verifier) -> None:
        _, issued_at, signature = token_verifier.issue("alice").split(":")
        with pytest.raises(AuthError, match="signature"):
            token_verifier.verify(f"mallory:{issued_at}:{signature}")

    def test_other_secret(self, token_verifier) -> None:
        forged = HMACTokenVerifier("another-secret").issue("alice")
        with pytest.raises(AuthError, match="signature"):
            token_verifier.verify(forged)

    def test_expired(self, token_verifier) -> None:
        old = token_verifier.issue("alice", issued_at=int(time.time()) - 2 * 3600)
        with pytest.raises(AuthError, match="expired"):
            token_verifier.verify(old)
