"""
auth/service.py -- AuthService, the only entry point the HTTP layer calls.

Composes CredentialStore, the password functions, TokenIssuer, TokenValidator
and RevocationRegistry into register / login / logout / validate_request /
change_password. Holds no per-session state: everything a later request needs
is inside the signed token or the revocation table.

Identity enumeration:
  login() raises the same InvalidCredentialsError for an unknown identity and
  for a wrong password, and runs a full bcrypt check in both cases so the two
  paths also take the same time.

Layer rule: no imports from api/. core.config is imported only by
from_settings(), the composition helper.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from auth.errors import IdentityNotFoundError, InvalidCredentialsError
from auth.models import CredentialRecord, Identity, SessionToken, TokenClaims
from auth.passwords import (
    DEFAULT_ROUNDS,
    check_password_policy,
    dummy_credential,
    hash_password,
    verify_against_dummy,
    verify_password,
)
from auth.revocation import RevocationRegistry
from auth.store import CredentialStore
from auth.tokens import TokenIssuer, TokenValidator

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("tokenward.auth")


def normalize_identity(identity: str) -> str:
    """Identities are case-insensitive emails/usernames: strip and lower-case before any lookup."""
    return identity.strip().lower()


class AuthService:
    """Authentication orchestrator.

    Usage:
        service = AuthService.from_settings(get_settings())
        service.register("alice@example.edu", "pw1")
        session = service.login("alice@example.edu", "pw1")
        claims = service.validate_request(session.token)
        service.logout(session.token)
    """

    def __init__(
        self,
        store: CredentialStore,
        registry: RevocationRegistry,
        issuer: TokenIssuer,
        validator: TokenValidator,
        bcrypt_rounds: int = DEFAULT_ROUNDS,
        default_role: str = "student",
        allowed_roles: list[str] | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.issuer = issuer
        self.validator = validator
        self.bcrypt_rounds = bcrypt_rounds
        self.default_role = default_role
        self.allowed_roles = set(allowed_roles or [default_role])
        # Compute the timing-equalization hash now so the first unknown-identity
        # login is not measurably slower than later ones.
        dummy_credential(bcrypt_rounds)

    @classmethod
    def from_settings(cls, settings: Settings, db_url: str | None = None) -> AuthService:
        """Wire every component from configuration. db_url overrides settings.database_url."""
        url = db_url or settings.database_url
        registry = RevocationRegistry(url)
        return cls(
            store=CredentialStore(url),
            registry=registry,
            issuer=TokenIssuer(settings.secret_key, settings.token_expire_seconds),
            validator=TokenValidator(settings.secret_key, registry),
            bcrypt_rounds=settings.bcrypt_rounds,
            default_role=settings.default_role,
            allowed_roles=settings.allowed_roles,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register(
        self,
        identity: str,
        password: str,
        role: str | None = None,
        display_name: str | None = None,
    ) -> Identity:
        """Create a credential record and return the public identity summary.

        Raises DuplicateIdentityError if the identity exists (the first record
        is kept), PasswordPolicyError for an unusable password, and ValueError
        for an empty identity or a role outside allowed_roles.
        """
        normalized = normalize_identity(identity)
        if not normalized:
            raise ValueError("identity must not be empty")
        role = role or self.default_role
        if role not in self.allowed_roles:
            raise ValueError(f"Unknown role {role!r}")
        check_password_policy(password)

        password_hash, salt = hash_password(password, rounds=self.bcrypt_rounds)
        record = self.store.create(
            CredentialRecord(
                identity=normalized,
                password_hash=password_hash,
                salt=salt,
                role=role,
                display_name=display_name,
            )
        )
        logger.info("Registered identity %s (role=%s)", normalized, role)
        return _to_identity(record)

    def login(self, identity: str, password: str) -> SessionToken:
        """Verify credentials and issue a session token.

        Raises InvalidCredentialsError for an unknown identity or a wrong
        password, with the same message either way.
        """
        normalized = normalize_identity(identity)
        try:
            record = self.store.fetch(normalized)
        except IdentityNotFoundError:
            # Equalize timing -- do NOT return before running bcrypt
            verify_against_dummy(password, rounds=self.bcrypt_rounds)
            logger.warning("Login rejected for %s", normalized)
            raise InvalidCredentialsError() from None

        if not verify_password(password, record.password_hash, record.salt):
            logger.warning("Login rejected for %s", normalized)
            raise InvalidCredentialsError()

        session = self.issuer.issue(record.identity, record.role)
        logger.info("Issued token %s for %s", session.token_id, record.identity)
        return session

    def logout(self, token: str) -> bool:
        """Revoke the token. Returns True if a new revocation was recorded.

        Idempotent: an already revoked or already expired token returns False
        without error. A malformed or forged token raises its TokenError, since
        there is no trustworthy token id to revoke.
        """
        claims = self.validator.verify_signature(token)
        if self.validator.is_expired(claims):
            return False
        return self.registry.revoke(claims.token_id, claims.expires_at)

    def validate_request(self, token: str) -> TokenClaims:
        """Return identity and role for a valid token or raise the specific TokenError."""
        return self.validator.validate(token)

    def change_password(self, identity: str, current_password: str, new_password: str) -> None:
        """Supersede the credential record's hash after re-checking the current password.

        Tokens issued before the change stay valid until they expire or are
        logged out; the caller decides whether to revoke the presenting token.
        """
        normalized = normalize_identity(identity)
        try:
            record = self.store.fetch(normalized)
        except IdentityNotFoundError:
            verify_against_dummy(current_password, rounds=self.bcrypt_rounds)
            raise InvalidCredentialsError() from None
        if not verify_password(current_password, record.password_hash, record.salt):
            raise InvalidCredentialsError()
        check_password_policy(new_password)

        password_hash, salt = hash_password(new_password, rounds=self.bcrypt_rounds)
        self.store.update_password(normalized, password_hash, salt)
        logger.info("Password changed for %s", normalized)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_revocations(self) -> int:
        return self.registry.purge_expired()

    def healthy(self) -> bool:
        return self.store.ping()

    def close(self) -> None:
        self.store.close()
        self.registry.close()


def _to_identity(record: CredentialRecord) -> Identity:
    return Identity(
        identity=record.identity,
        role=record.role,
        display_name=record.display_name,
        created_at=record.created_at,
    )
