"""
auth/errors.py -- Exception taxonomy for the authentication engine.

Every failure the engine can report is an AuthError subclass carrying a stable
machine-readable `code`. The api/ layer maps codes to HTTP status codes in a
single exception handler; auth/ itself knows nothing about HTTP.

Login failures are deliberately collapsed into InvalidCredentialsError: the
caller cannot tell an unknown identity from a wrong password. The token errors
stay distinct internally so logs and tests can see which check failed; the
HTTP boundary renders all of them as the same 401 body.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all authentication engine errors."""

    code = "auth_error"
    message = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class DuplicateIdentityError(AuthError):
    code = "duplicate_identity"
    message = "An account with that identity already exists."


class InvalidCredentialsError(AuthError):
    """Unknown identity or wrong password. Never says which."""

    code = "invalid_credentials"
    message = "Invalid identity or password."


class IdentityNotFoundError(AuthError):
    """Raised by the credential store only. The orchestrator turns it into InvalidCredentialsError on login."""

    code = "not_found"
    message = "Identity not found."


class PasswordPolicyError(AuthError):
    code = "password_policy"
    message = "Password does not meet policy."


class StoreUnavailableError(AuthError):
    """The backing database could not be reached. Distinct from every credential error."""

    code = "store_unavailable"
    message = "Credential store unavailable."


# ---------------------------------------------------------------------------
# Token errors -- raised by TokenValidator in check order
# ---------------------------------------------------------------------------


class TokenError(AuthError):
    code = "invalid_token"
    message = "Invalid token."


class MalformedTokenError(TokenError):
    code = "malformed"
    message = "Token is malformed."


class InvalidSignatureError(TokenError):
    code = "invalid_signature"
    message = "Token signature is invalid."


class TokenExpiredError(TokenError):
    code = "expired"
    message = "Token has expired."


class TokenRevokedError(TokenError):
    code = "revoked"
    message = "Token has been revoked."
