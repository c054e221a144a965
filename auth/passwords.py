"""
auth/passwords.py -- bcrypt password hashing and constant-time verification.

Using bcrypt directly rather than a passlib wrapper: passlib's wrap-bug
detection feeds bcrypt 4.x a password over 72 bytes, which it rejects.

hash_password() returns (hash, salt) so the credential store can keep the salt
in its own column. verify_password() recomputes the hash with that salt and
compares with hmac.compare_digest, so the comparison time does not depend on
where the first differing byte is.

None of these functions log, raise on a mismatch, or echo plaintext.
"""

from __future__ import annotations

import hmac
from functools import lru_cache

import bcrypt

from auth.errors import PasswordPolicyError

DEFAULT_ROUNDS = 12

# bcrypt only reads the first 72 bytes of its input. Longer passwords are
# refused at registration rather than silently truncated.
MAX_PASSWORD_BYTES = 72


def check_password_policy(plain: str) -> None:
    """Raise PasswordPolicyError if the password is empty or longer than bcrypt can hash."""
    if not plain:
        raise PasswordPolicyError("Password must not be empty.")
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PasswordPolicyError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> tuple[str, str]:
    """Return (bcrypt_hash, salt) for the given plaintext password."""
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(plain.encode("utf-8"), salt)
    return hashed.decode("utf-8"), salt.decode("utf-8")


def verify_password(plain: str, hashed: str, salt: str) -> bool:
    """Return True if the plaintext password hashes to `hashed` under `salt`.

    Passwords over MAX_PASSWORD_BYTES never match: bcrypt 4.x would hash only
    their first 72 bytes and accept any suffix.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        candidate = bcrypt.hashpw(encoded, salt.encode("utf-8"))
    except ValueError:
        # Malformed salt
        return False
    return hmac.compare_digest(candidate, hashed.encode("utf-8"))


@lru_cache(maxsize=8)
def dummy_credential(rounds: int) -> tuple[str, str]:
    """Return a throwaway (hash, salt) pair, computed once per cost factor."""
    return hash_password("tokenward_timing_dummy", rounds=rounds)


def verify_against_dummy(plain: str, rounds: int = DEFAULT_ROUNDS) -> bool:
    """Run one full bcrypt verification against a throwaway hash. Always False.

    Call this when the identity does not exist so the response time matches a
    wrong-password attempt and does not reveal which identities are registered.
    """
    hashed, salt = dummy_credential(rounds)
    verify_password(plain, hashed, salt)
    return False
