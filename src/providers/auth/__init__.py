"""Bearer-token verification adapters."""

from src.providers.auth.hmac_token_verifier import HMACTokenVerifier

__all__ = ["HMACTokenVerifier"]
