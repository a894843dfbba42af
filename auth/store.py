"""
auth/store.py -- SQLAlchemy Core schema, engine factory, and CredentialStore.

Pattern: Repository + Data Mapper.
CredentialStore is the repository for users; _row_to_user is the mapper.
SessionStore (auth/sessions.py) shares this module's metadata and engine so
the sessions.user_id foreign key resolves against the same database.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is enforced by the UNIQUE index on users.email. The
  existence query in register() is an optimization only -- two concurrent
  signups can both pass it, and the loser is caught by the IntegrityError on
  insert, which is translated to DuplicateEmail.

Timestamps are stored as fixed-width UTC ISO-8601 strings (microsecond
precision), so string comparison in SQL orders them chronologically.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmail, InvalidCredentials
from auth.models import Role, User
from auth.passwords import PasswordHasher

logger = logging.getLogger("authcore.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # always lowercase
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default=Role.USER.value),
    Column("created_at", String(32), nullable=False),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("refresh_token", Text, nullable=False, unique=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_db_engine(db_url: str) -> Engine:
    """Create an engine for db_url and make sure the auth schema exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User identities and their password hashes.

    Usage:
        engine = create_db_engine("sqlite:///auth.db")
        store = CredentialStore(engine, PasswordHasher())
        user = store.register("a@x.com", "pw123", "A")
        store.verify("A@X.com", "pw123")  # same user
    """

    def __init__(self, engine: Engine, hasher: PasswordHasher) -> None:
        self.engine = engine
        self.hasher = hasher

    def register(self, email: str, raw_password: str, display_name: str, role: Role = Role.USER) -> User:
        """Create a user, or raise DuplicateEmail if the email is taken.

        The pre-check saves a bcrypt round for the common duplicate case. The
        insert runs in its own write transaction so the UNIQUE index decides
        any race between concurrent signups.
        """
        email = normalize_email(email)
        if self.get_by_email(email) is not None:
            raise DuplicateEmail("email already registered (pre-check)")

        user = User(
            email=email,
            name=display_name,
            hashed_password=self.hasher.hash(raw_password),
            role=role,
            created_at=to_iso(utcnow()),
        )
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    users.insert().values(
                        email=user.email,
                        name=user.name,
                        hashed_password=user.hashed_password,
                        role=user.role.value,
                        created_at=user.created_at,
                    )
                )
        except IntegrityError as exc:
            raise DuplicateEmail("email already registered (unique index)") from exc
        user.id = result.inserted_primary_key[0]
        logger.info("Registered user id=%s role=%s", user.id, user.role.value)
        return user

    def verify(self, email: str, raw_password: str) -> User:
        """Return the user for a correct email/password pair.

        Always runs bcrypt whether or not the user exists, so response time
        does not reveal which emails are registered. Both failure causes raise
        the same InvalidCredentials.
        """
        user = self.get_by_email(email)
        if user is None:
            self.hasher.verify_dummy(raw_password)
            raise InvalidCredentials("unknown email")
        if not self.hasher.verify(raw_password, user.hashed_password):
            raise InvalidCredentials(f"password mismatch for user id={user.id}")
        return user

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (normalized before the query)."""
        with self.engine.connect() as conn:
            row = conn.execute(select(users).where(users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(users).where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        created_at=row.created_at,
    )
