"""
auth/dependencies.py -- FastAPI Depends() helpers for bearer-token authentication.

The token is read from the `Authorization: Bearer <token>` header and handed
to AuthService.validate_request(). Every token failure (malformed, forged,
expired, revoked) becomes the same HTTP 401 body so the client cannot tell
which check rejected it. The specific reason is logged server-side.

get_bearer_token() extracts the raw header value (None when absent).
try_get_current_claims() is the soft variant (returns None on failure).
get_current_claims() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.errors import TokenError
from auth.models import TokenClaims
from auth.service import AuthService

logger = logging.getLogger("tokenward.auth")

_UNAUTHORIZED = {"code": "unauthorized", "message": "Authentication required."}


def get_bearer_token(request: Request) -> str | None:
    """Return the token from `Authorization: Bearer <token>`, or None."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def try_get_current_claims(request: Request) -> TokenClaims | None:
    """Validate the bearer token. Returns claims on success, None on any token failure.

    Store failures (StoreUnavailableError from the revocation lookup) are NOT
    swallowed here -- they propagate to the 503 handler.
    """
    token = get_bearer_token(request)
    if token is None:
        return None
    auth_service: AuthService = request.app.state.auth_service
    try:
        return auth_service.validate_request(token)
    except TokenError as exc:
        logger.info("Bearer token rejected on %s: %s", request.url.path, exc.code)
        return None


def get_current_claims(request: Request) -> TokenClaims:
    """Require authentication. Raises HTTP 401 if the request carries no valid token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: TokenClaims = Depends(get_current_claims)): ...
    """
    claims = try_get_current_claims(request)
    if claims is None:
        raise HTTPException(status_code=401, detail=_UNAUTHORIZED, headers={"WWW-Authenticate": "Bearer"})
    return claims

