"""Abstract base class for bearer-token verification.

Identity is an external concern: the API only needs a yes/no gate that
yields the caller's user id.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: HMACTokenVerifier (src/providers/auth/)
class IAuthVerifier(ABC):
    """Contract for turning a bearer token into a user id."""

    @abstractmethod
    def verify(self, token: str) -> str:
        """Return the user id carried by *token*.

        Raises
        ------
        src.utils.errors.AuthError
            If the token is missing, malformed, forged, or expired.
        """
