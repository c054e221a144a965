"""
auth/store.py -- SQLAlchemy Core persistence for credential records.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_record is the mapper. The orchestrator never touches SQL directly.

Uniqueness: UNIQUE(identity) is enforced by the database. create() inserts
without a prior existence check and treats IntegrityError as "already taken",
so two concurrent registrations for one identity cannot both succeed.

Failure mapping: OperationalError (database missing, locked, unreachable)
becomes StoreUnavailableError so it is never mistaken for a credential error.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError

from auth.errors import DuplicateIdentityError, IdentityNotFoundError, StoreUnavailableError
from auth.models import CredentialRecord

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_credentials = Table(
    "credentials",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("identity", String(255), nullable=False, unique=True),
    Column("password_hash", String(60), nullable=False),  # bcrypt output is always 60 chars
    Column("salt", String(29), nullable=False),  # "$2b$12$" + 22 chars
    Column("role", String(30), nullable=False),
    Column("display_name", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine helpers (shared with auth/revocation.py)
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers proceed while a write is in flight.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def build_engine(db_url: str) -> Engine:
    """Create an engine, applying the SQLite threading and WAL settings when needed."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def store_errors() -> Iterator[None]:
    """Translate connectivity failures into StoreUnavailableError."""
    try:
        yield
    except OperationalError as exc:
        raise StoreUnavailableError(f"Database error: {exc.orig}") from exc


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for CredentialRecord entities.

    Usage:
        store = CredentialStore("sqlite:///:memory:")
        store.create(CredentialRecord(identity="alice", password_hash=h, salt=s, role="student"))
        record = store.fetch("alice")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = build_engine(db_url)
        with store_errors():
            _metadata.create_all(self.engine)

    def create(self, record: CredentialRecord) -> CredentialRecord:
        """Insert a new record and return it with id and timestamps filled in.

        Raises DuplicateIdentityError if the identity is already taken. The
        existing record is left untouched.
        """
        stamp = now_iso()
        with store_errors(), self.engine.connect() as conn:
            try:
                result = conn.execute(
                    _credentials.insert().values(
                        identity=record.identity,
                        password_hash=record.password_hash,
                        salt=record.salt,
                        role=record.role,
                        display_name=record.display_name,
                        created_at=stamp,
                        updated_at=stamp,
                    )
                )
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise DuplicateIdentityError() from exc
        return CredentialRecord(
            id=result.inserted_primary_key[0],
            identity=record.identity,
            password_hash=record.password_hash,
            salt=record.salt,
            role=record.role,
            display_name=record.display_name,
            created_at=stamp,
            updated_at=stamp,
        )

    def fetch(self, identity: str) -> CredentialRecord:
        """Look up a record by exact identity. Raises IdentityNotFoundError if absent."""
        with store_errors(), self.engine.connect() as conn:
            row = conn.execute(_credentials.select().where(_credentials.c.identity == identity)).fetchone()
        if row is None:
            raise IdentityNotFoundError()
        return _row_to_record(row)

    def update_password(self, identity: str, password_hash: str, salt: str) -> None:
        """Supersede the stored hash and salt. Raises IdentityNotFoundError if absent."""
        with store_errors(), self.engine.connect() as conn:
            result = conn.execute(
                _credentials.update()
                .where(_credentials.c.identity == identity)
                .values(password_hash=password_hash, salt=salt, updated_at=now_iso())
            )
            conn.commit()
        if result.rowcount == 0:
            raise IdentityNotFoundError()

    def count(self) -> int:
        with store_errors(), self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_credentials)).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by the health endpoint."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_record(row) -> CredentialRecord:
    return CredentialRecord(
        id=row.id,
        identity=row.identity,
        password_hash=row.password_hash,
        salt=row.salt,
        role=row.role,
        display_name=row.display_name,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
