"""Bearer-token dependency for protected routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Request

from src.interfaces.auth_verifier import IAuthVerifier
from src.utils.errors import AuthError


def _get_auth_verifier(request: Request) -> IAuthVerifier:
    return request.app.state.auth_verifier


async def require_user(
    verifier: Annotated[IAuthVerifier, Depends(_get_auth_verifier)],
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Return the user id from ``Authorization: Bearer <token>``.

    Raises :class:`AuthError` (401) when the header is missing, is not a
    bearer credential, or the token does not verify.
    """
    if not authorization:
        raise AuthError(message="Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError(message="Authorization header must be 'Bearer <token>'")
    return verifier.verify(token.strip())


UserDep = Annotated[str, Depends(require_user)]
