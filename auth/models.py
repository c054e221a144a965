"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the token
issuer/validator and the orchestrator do the work; these only own shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class CredentialRecord:
    """The stored, hashed-password representation of one identity.

    identity is the normalised username/email and is unique across the store.
    salt is the bcrypt salt string ("$2b$<cost>$<22 chars>"); bcrypt also embeds
    it in password_hash, but keeping it separate lets verify_password() recompute
    the candidate hash explicitly and compare in constant time.

    Records are never deleted. A password change supersedes password_hash and
    salt in place and stamps updated_at.
    """

    identity: str
    password_hash: str
    salt: str
    role: str
    display_name: str | None = None
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """Public summary of a principal. Never carries password material."""

    identity: str
    role: str
    display_name: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class SessionToken:
    """A freshly minted token plus the fields it encodes.

    `token` is the opaque value handed to the client. The other fields are
    returned alongside so callers do not need to decode what they just issued.
    """

    token: str
    token_id: str
    identity: str
    role: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    """The verified content of a presented token."""

    identity: str
    role: str
    token_id: str
    issued_at: datetime
    expires_at: datetime
