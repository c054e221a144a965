"""
API request and response models for Tokenward REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Passwords are never stripped or echoed: request models leave them byte-for-byte
as sent, and no response model has a password field.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# bcrypt reads at most 72 bytes. The engine enforces the byte limit; this
# character bound rejects oversized bodies at validation time.
_PASSWORD_MAX_CHARS = 72


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    role is honoured only when the caller presents an admin token; everyone
    else is registered with the configured default role.
    """

    identity: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX_CHARS)
    display_name: Optional[str] = Field(default=None, max_length=255)
    role: Optional[str] = Field(default=None, max_length=30)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    identity: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX_CHARS)


class PasswordChangeRequest(BaseModel):
    """Request body for POST /api/v1/auth/password."""

    current_password: str = Field(min_length=1, max_length=_PASSWORD_MAX_CHARS)
    new_password: str = Field(min_length=1, max_length=_PASSWORD_MAX_CHARS)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class IdentityResponse(BaseModel):
    """Created-identity summary returned by POST /register."""

    model_config = ConfigDict(frozen=True)

    identity: str
    role: str
    display_name: Optional[str] = None
    created_at: str


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login."""

    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_at: datetime
    identity: str
    role: str


class ValidateResponse(BaseModel):
    """Response for GET /api/v1/auth/validate -- identity and role for downstream authorization."""

    model_config = ConfigDict(frozen=True)

    identity: str
    role: str
    token_id: str
    expires_at: datetime


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
