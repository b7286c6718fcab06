"""HMAC-signed bearer tokens.

# ─── TOKEN FORMAT ────────────────────────────────────────────────────
#
#   {user_id}:{issued_at}:{hmac_hex}
#     - user_id:   opaque caller id (must not contain ':')
#     - issued_at: UTC epoch seconds when the token was issued
#     - hmac:      HMAC-SHA256(secret, "{user_id}:{issued_at}")
#
# Validation checks:
#   1. Token splits into exactly three non-empty parts
#   2. issued_at is an integer and within the TTL window
#   3. HMAC signature is valid (constant-time comparison)
#
# Tokens are stateless: no session store, revocation by rotating the
# secret.
# ─────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import hashlib
import hmac
import time

from src.interfaces.auth_verifier import IAuthVerifier
from src.utils.errors import AuthError


class HMACTokenVerifier(IAuthVerifier):
    """Issue and verify HMAC-signed bearer tokens.

    Parameters
    ----------
    secret:
        Shared signing secret (``AUTH_SECRET``).
    ttl_hours:
        Maximum token age in hours.
    """

    def __init__(self, secret: str, ttl_hours: int = 24) -> None:
        if not secret:
            raise ValueError("HMACTokenVerifier requires a non-empty secret")
        self._secret = secret.encode("utf-8")
        self._ttl_seconds = ttl_hours * 3600

    def issue(self, user_id: str, issued_at: int | None = None) -> str:
        """Return a signed token for *user_id*."""
        if not user_id or ":" in user_id:
            raise ValueError("user_id must be non-empty and must not contain ':'")
        timestamp = str(int(time.time()) if issued_at is None else issued_at)
        return f"{user_id}:{timestamp}:{self._sign(user_id, timestamp)}"

    def verify(self, token: str) -> str:
        if not token:
            raise AuthError(message="Missing bearer token")

        parts = token.split(":")
        if len(parts) != 3 or not all(parts):
            raise AuthError(message="Malformed bearer token")
        user_id, timestamp_str, provided = parts

        try:
            issued_at = int(timestamp_str)
        except ValueError as exc:
            raise AuthError(message="Malformed bearer token") from exc

        if not hmac.compare_digest(provided, self._sign(user_id, timestamp_str)):
            raise AuthError(message="Invalid bearer token signature")

        if time.time() - issued_at > self._ttl_seconds:
            raise AuthError(message="Bearer token expired")

        return user_id

    def _sign(self, user_id: str, timestamp: str) -> str:
        return hmac.new(
            self._secret,
            f"{user_id}:{timestamp}".encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
