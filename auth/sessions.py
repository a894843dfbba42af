"""
auth/sessions.py -- SessionStore: persisted refresh-token sessions.

One row per refresh-token grant. The UNIQUE index on refresh_token guarantees
at most one row per token value; the index on user_id makes logout-all a
single indexed DELETE.

Expiry is lazy. There is no background sweeper: find_live() deletes an
expired row in the same transaction that looks it up, so an expired session
is never returned and is gone after the first touch. Rows that are never
looked up again stay until logout-all or a manual purge.

Each public method is one engine.begin() transaction. find_live() issues the
conditional DELETE before the SELECT so the transaction takes the write lock
up front instead of upgrading a read snapshot.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from auth.models import Session
from auth.store import from_iso, sessions, to_iso, utcnow

logger = logging.getLogger("authcore.sessions")


class SessionStore:
    """Repository for Session rows.

    Usage:
        store = SessionStore(engine)
        store.open(user_id, refresh_token, timedelta(days=7))
        store.find_live(refresh_token)       # Session, or None if absent/expired
        store.close_by_token(refresh_token)  # idempotent
    """

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utcnow) -> None:
        self.engine = engine
        self._clock = clock

    def open(
        self,
        user_id: int,
        refresh_token: str,
        ttl: timedelta | None = None,
        *,
        expires_at: datetime | None = None,
    ) -> Session:
        """Persist a new session that expires ttl from now, or at expires_at.

        Pass expires_at when the row must end exactly when its refresh token
        does. Raises ValueError unless expires_at ends up strictly after
        created_at, and sqlalchemy IntegrityError if the token value is
        already stored.
        """
        created_at = self._clock()
        session = Session(
            refresh_token=refresh_token,
            user_id=user_id,
            expires_at=_expiry(created_at, ttl, expires_at),
            created_at=created_at,
        )
        with self.engine.begin() as conn:
            session.id = self._insert(conn, session)
        logger.info("Opened session id=%s user_id=%s", session.id, user_id)
        return session

    def find_live(self, refresh_token: str) -> Session | None:
        """Return the live session for refresh_token, or None.

        An expired row is deleted as a side effect and reported as None.
        """
        now = to_iso(self._clock())
        with self.engine.begin() as conn:
            purged = conn.execute(
                sessions.delete().where((sessions.c.refresh_token == refresh_token) & (sessions.c.expires_at <= now))
            ).rowcount
            row = conn.execute(select(sessions).where(sessions.c.refresh_token == refresh_token)).fetchone()
        if purged:
            logger.info("Purged expired session on lookup")
        return _row_to_session(row) if row is not None else None

    def close_by_token(self, refresh_token: str) -> int:
        """Delete the session holding refresh_token. Returns rows deleted (0 or 1)."""
        with self.engine.begin() as conn:
            return conn.execute(sessions.delete().where(sessions.c.refresh_token == refresh_token)).rowcount

    def close_all_for_user(self, user_id: int) -> int:
        """Delete every session owned by user_id. Returns rows deleted."""
        with self.engine.begin() as conn:
            deleted = conn.execute(sessions.delete().where(sessions.c.user_id == user_id)).rowcount
        logger.info("Closed %d session(s) for user_id=%s", deleted, user_id)
        return deleted

    def rotate(
        self,
        user_id: int,
        old_token: str,
        new_token: str,
        ttl: timedelta | None = None,
        *,
        expires_at: datetime | None = None,
    ) -> Session | None:
        """Atomically replace old_token's session with a fresh one for new_token.

        The new row's expiry is given the same way as for open(). Returns
        None, inserting nothing, when the old row is already gone -- a
        concurrent rotation or logout won, and the old token must not be
        resurrected.
        """
        created_at = self._clock()
        session = Session(
            refresh_token=new_token,
            user_id=user_id,
            expires_at=_expiry(created_at, ttl, expires_at),
            created_at=created_at,
        )
        with self.engine.begin() as conn:
            deleted = conn.execute(
                sessions.delete().where((sessions.c.refresh_token == old_token) & (sessions.c.user_id == user_id))
            ).rowcount
            if not deleted:
                return None
            session.id = self._insert(conn, session)
        logger.info("Rotated session id=%s user_id=%s", session.id, session.user_id)
        return session

    def count_for_user(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(sessions).where(sessions.c.user_id == user_id)
            ).scalar()
        return result or 0

    @staticmethod
    def _insert(conn, session: Session) -> int:
        result = conn.execute(
            sessions.insert().values(
                refresh_token=session.refresh_token,
                user_id=session.user_id,
                expires_at=to_iso(session.expires_at),
                created_at=to_iso(session.created_at),
            )
        )
        return result.inserted_primary_key[0]


def _expiry(created_at: datetime, ttl: timedelta | None, expires_at: datetime | None) -> datetime:
    if (ttl is None) == (expires_at is None):
        raise ValueError("Give exactly one of ttl or expires_at.")
    if expires_at is None:
        expires_at = created_at + ttl
    if expires_at <= created_at:
        raise ValueError("Session must expire after it is created.")
    return expires_at


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        refresh_token=row.refresh_token,
        user_id=row.user_id,
        expires_at=from_iso(row.expires_at),
        created_at=from_iso(row.created_at),
    )
