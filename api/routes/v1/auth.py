"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create an identity; 409 on duplicate
  POST /api/v1/auth/login      -- password login; returns a bearer token
  POST /api/v1/auth/logout     -- revoke the bearer token; 200 always
  GET  /api/v1/auth/validate   -- 200 with identity/role if the token is valid, 401 otherwise
  POST /api/v1/auth/password   -- change password (requires auth)

Every route is a thin adapter: it unpacks the body, calls one AuthService
method and shapes the response. AuthError subclasses raised by the service are
turned into status codes by the handler in api/main.py.

Security:
  POST /login and POST /register are rate-limited per client IP.
  Login answers 401 invalid_credentials for unknown identity and wrong
  password alike. Token failures all render as the same 401 unauthorized body.
  Cache-Control: no-store on responses that carry a token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    IdentityResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordChangeRequest,
    RegisterRequest,
    ValidateResponse,
)
from auth.dependencies import get_bearer_token, get_current_claims, try_get_current_claims
from auth.errors import TokenError
from auth.models import TokenClaims
from auth.service import AuthService
from core.config import get_settings

logger = logging.getLogger("tokenward.api")

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/register:  public while SELF_REGISTRATION_ENABLED, admin-only otherwise
# - POST /api/v1/auth/login:     public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:    public -- a missing or bad token is simply nothing to revoke
# - GET  /api/v1/auth/validate:  bearer token
# - POST /api/v1/auth/password:  bearer token
router = APIRouter()


@router.post("/auth/register", response_model=IdentityResponse)
@limiter.limit(_settings.register_rate_limit)
def register(request: Request, body: RegisterRequest) -> IdentityResponse:
    """Create a new identity and return its summary. The password is never echoed.

    Self-registration policy comes from app.state.settings: when disabled,
    only an admin bearer token may register new identities. A requested role
    is applied only for admin callers.
    """
    auth_service: AuthService = request.app.state.auth_service
    settings = request.app.state.settings

    caller = try_get_current_claims(request)
    is_admin = caller is not None and caller.role == "admin"
    if not settings.self_registration_enabled and not is_admin:
        if caller is None:
            raise HTTPException(
                status_code=401,
                detail={"code": "unauthorized", "message": "Authentication required."},
                headers={"WWW-Authenticate": "Bearer"},
            )
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Self-registration is disabled."},
        )

    role = body.role if is_admin else None
    try:
        created = auth_service.register(body.identity, body.password, role=role, display_name=body.display_name)
    except ValueError as exc:
        raise HTTPException(
            status_code=422,
            detail={"code": "validation_error", "message": str(exc)},
        ) from exc

    return IdentityResponse(
        identity=created.identity,
        role=created.role,
        display_name=created.display_name,
        created_at=created.created_at or "",
    )


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(_settings.login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with identity and password; return a bearer token.

    InvalidCredentialsError propagates to the AuthError handler, which
    answers 401 with Cache-Control: no-store.
    """
    auth_service: AuthService = request.app.state.auth_service
    session = auth_service.login(body.identity, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=session.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_at=session.expires_at,
            identity=session.identity,
            role=session.role,
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> MessageResponse:
    """Revoke the presented bearer token. Always 200.

    Absent, malformed, forged, expired and already-revoked tokens all produce
    the same response; the first three have nothing trustworthy to revoke.
    """
    token = get_bearer_token(request)
    if token is not None:
        auth_service: AuthService = request.app.state.auth_service
        try:
            auth_service.logout(token)
        except TokenError as exc:
            logger.info("Logout with unusable token ignored: %s", exc.code)
    return MessageResponse(message="Logged out.")


@router.get("/auth/validate", response_model=ValidateResponse)
def validate(claims: TokenClaims = Depends(get_current_claims)) -> ValidateResponse:
    """Return identity and role for the bearer token. 401 on any token failure."""
    return ValidateResponse(
        identity=claims.identity,
        role=claims.role,
        token_id=claims.token_id,
        expires_at=claims.expires_at,
    )


@router.post("/auth/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: PasswordChangeRequest,
    claims: TokenClaims = Depends(get_current_claims),
) -> MessageResponse:
    """Change the caller's password after re-checking the current one."""
    auth_service: AuthService = request.app.state.auth_service
    auth_service.change_password(claims.identity, body.current_password, body.new_password)
    return MessageResponse(message="Password changed.")
