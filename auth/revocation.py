"""
auth/revocation.py -- Table of revoked token ids, kept until the token would have expired anyway.

Each entry stores the token's jti and a copy of its `exp` claim. Once that
instant has passed the validator rejects the token as expired before it ever
asks about revocation, so the entry is dead weight. Dead entries are removed:
  - lazily, by is_revoked() when it finds one, and
  - in bulk, by purge_expired(), which the API lifespan runs on an interval
    and the CLI exposes as `purge-revocations`.
This keeps the table bounded by the number of live, logged-out tokens.

Concurrency: token_id is the primary key. revoke() inserts unconditionally and
reads IntegrityError as "already revoked", so concurrent logouts of the same
token are a no-op rather than a lost update or an error. The table lives in
the database, not in process memory, so several API workers share it.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.store import build_engine, now_iso, store_errors

logger = logging.getLogger("tokenward.auth")

_metadata = MetaData()

_revoked_tokens = Table(
    "revoked_tokens",
    _metadata,
    Column("token_id", String(64), primary_key=True),
    Column("expires_at", Integer, nullable=False, index=True),  # epoch seconds, mirrors the token's exp
    Column("revoked_at", String(32), nullable=False),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RevocationRegistry:
    """Repository of revoked token ids.

    Usage:
        registry = RevocationRegistry("sqlite:///:memory:")
        registry.revoke(claims.token_id, claims.expires_at)
        registry.is_revoked(claims.token_id)   # True until claims.expires_at
        registry.purge_expired()
    """

    def __init__(self, db_url: str, clock: Callable[[], datetime] = _utcnow) -> None:
        self.engine: Engine = build_engine(db_url)
        self._clock = clock
        with store_errors():
            _metadata.create_all(self.engine)

    def revoke(self, token_id: str, expires_at: datetime) -> bool:
        """Record token_id as revoked until expires_at.

        Returns True if a new entry was written, False if the id was already
        revoked. Never raises for a repeat revocation.
        """
        with store_errors(), self.engine.connect() as conn:
            try:
                conn.execute(
                    _revoked_tokens.insert().values(
                        token_id=token_id,
                        expires_at=_epoch(expires_at),
                        revoked_at=now_iso(),
                    )
                )
                conn.commit()
            except IntegrityError:
                conn.rollback()
                return False
        logger.info("Token %s revoked", token_id)
        return True

    def is_revoked(self, token_id: str) -> bool:
        """Return True if token_id has a live revocation entry.

        An entry whose expiry hint has passed is deleted on the spot and
        reported as not revoked. The token it covers is already expired.
        """
        with store_errors(), self.engine.connect() as conn:
            row = conn.execute(
                select(_revoked_tokens.c.expires_at).where(_revoked_tokens.c.token_id == token_id)
            ).fetchone()
            if row is None:
                return False
            if row.expires_at <= self._now_epoch():
                conn.execute(delete(_revoked_tokens).where(_revoked_tokens.c.token_id == token_id))
                conn.commit()
                return False
        return True

    def purge_expired(self) -> int:
        """Delete every entry whose expiry hint has passed. Returns number of rows removed."""
        with store_errors(), self.engine.connect() as conn:
            result = conn.execute(delete(_revoked_tokens).where(_revoked_tokens.c.expires_at <= self._now_epoch()))
            conn.commit()
        if result.rowcount:
            logger.info("Purged %d expired revocation entries", result.rowcount)
        return result.rowcount

    def count(self) -> int:
        with store_errors(), self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_revoked_tokens)).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()

    def _now_epoch(self) -> int:
        return int(self._clock().timestamp())


def _epoch(moment: datetime) -> int:
    return int(moment.timestamp())
