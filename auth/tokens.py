"""
auth/tokens.py -- Session token issuance and validation.

Tokens are HS256 JWTs (python-jose) signed with the process-wide SECRET_KEY.
Claims: sub (identity), role, jti (token id), iat, exp -- all seconds since
the epoch. The key is handed to TokenIssuer / TokenValidator once at startup
and only read afterwards, so signing needs no locking.

TokenValidator.validate() runs its checks in a fixed order and raises the
first failure:

  1. structure   -- three dot-separated segments, JSON header with alg -> MalformedTokenError
  2. signature   -- HMAC over header.payload with our key, HS256 only -> InvalidSignatureError
  3. claims      -- payload is a JSON object with every claim typed   -> MalformedTokenError
  4. expiry      -- now >= exp is expired (fail closed at the boundary) -> TokenExpiredError
  5. revocation  -- jti present in the RevocationRegistry               -> TokenRevokedError

Only the header segment is decoded before the signature check. The payload
and signature segments are decoded by jws.verify, which reports a bad MAC and
an undecodable segment alike, so any change to the signed bytes is a
signature failure rather than a parse error.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import json
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import jws, jwt
from jose.exceptions import JOSEError
from jose.utils import base64url_decode

from auth.errors import InvalidSignatureError, MalformedTokenError, TokenExpiredError, TokenRevokedError
from auth.models import SessionToken, TokenClaims
from auth.revocation import RevocationRegistry

_ALGORITHM = "HS256"

_REQUIRED_CLAIMS: dict[str, type] = {
    "sub": str,
    "role": str,
    "jti": str,
    "iat": int,
    "exp": int,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _from_epoch(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class TokenIssuer:
    """Mints signed, expiring session tokens bound to an identity and role."""

    def __init__(
        self,
        secret_key: str,
        ttl_seconds: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, identity: str, role: str, ttl_seconds: int = 0) -> SessionToken:
        """Encode a signed token for identity/role.

        Args:
            identity:    Normalised identity, stored as the `sub` claim.
            role:        Role tag carried for downstream authorization.
            ttl_seconds: Lifetime override in seconds. 0 (default) uses the
                         issuer's configured TTL.
        """
        duration = ttl_seconds if ttl_seconds > 0 else self.ttl_seconds
        # Whole seconds: iat/exp are integer claims and the returned datetimes
        # must match what a later validate() decodes.
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + timedelta(seconds=duration)
        # 128 random bits -- two issue() calls never share a jti in practice.
        token_id = secrets.token_hex(16)
        payload = {
            "sub": identity,
            "role": role,
            "jti": token_id,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)
        return SessionToken(
            token=token,
            token_id=token_id,
            identity=identity,
            role=role,
            issued_at=issued_at,
            expires_at=expires_at,
        )


class TokenValidator:
    """Verifies structure, signature, expiry and revocation status of a presented token."""

    def __init__(
        self,
        secret_key: str,
        registry: RevocationRegistry,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._secret_key = secret_key
        self._registry = registry
        self._clock = clock

    def validate(self, token: str) -> TokenClaims:
        """Return the claims of a currently valid token or raise the first failing check's error."""
        claims = self.verify_signature(token)
        if self.is_expired(claims):
            raise TokenExpiredError()
        if self._registry.is_revoked(claims.token_id):
            raise TokenRevokedError()
        return claims

    def verify_signature(self, token: str) -> TokenClaims:
        """Run the structure, signature and claim checks only.

        Expiry and revocation are not consulted. Logout uses this to read the
        token id and expiry from a token that may already be expired or revoked.
        """
        _check_structure(token)
        try:
            raw_payload = jws.verify(token, self._secret_key, algorithms=[_ALGORITHM])
        except JOSEError as exc:
            raise InvalidSignatureError() from exc
        return _parse_claims(raw_payload)

    def is_expired(self, claims: TokenClaims) -> bool:
        # >= rather than >: the exact expiry instant is already expired.
        return self._clock() >= claims.expires_at


def _check_structure(token: str) -> None:
    if not isinstance(token, str) or not token:
        raise MalformedTokenError()
    segments = token.split(".")
    if len(segments) != 3 or not all(segments):
        raise MalformedTokenError()
    # Header only; payload and signature segments belong to jws.verify.
    try:
        header = json.loads(base64url_decode(segments[0].encode("ascii")))
    except ValueError as exc:
        raise MalformedTokenError() from exc
    if not isinstance(header, dict) or not header.get("alg"):
        raise MalformedTokenError()


def _parse_claims(raw_payload: bytes) -> TokenClaims:
    try:
        payload = json.loads(raw_payload)
    except (TypeError, ValueError) as exc:
        raise MalformedTokenError() from exc
    if not isinstance(payload, dict):
        raise MalformedTokenError()
    for name, expected in _REQUIRED_CLAIMS.items():
        value = payload.get(name)
        # bool is an int subclass; a boolean exp is still malformed.
        if not isinstance(value, expected) or isinstance(value, bool):
            raise MalformedTokenError(f"Token claim {name!r} is missing or invalid.")
    return TokenClaims(
        identity=payload["sub"],
        role=payload["role"],
        token_id=payload["jti"],
        issued_at=_from_epoch(payload["iat"]),
        expires_at=_from_epoch(payload["exp"]),
    )
