"""
auth/sessions.py -- SQLAlchemy Core persistence for refresh-token sessions.

One row per active login (per device). The refresh-token string itself is the
lookup key. The store has no lifecycle logic of its own beyond filtering out
expired rows on read; AuthService decides when rows are created and deleted.

Rotation:
  rotate() deletes the old row and inserts the new one in ONE transaction, and
  the delete is conditional on the old row still being live. Two concurrent
  refreshes presenting the same token therefore cannot both succeed: the
  second conditional delete removes nothing and raises SessionNotFound, and a
  crash mid-rotation rolls back instead of leaving the user without a session.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import PersistenceError, SessionNotFound
from auth.models import Session
from auth.schema import sessions

logger = logging.getLogger("dadmail.auth.sessions")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class SessionStore:
    """Repository for Session rows.

    Usage:
        store = SessionStore(engine)
        session = store.create(user.id, refresh_token, "curl/8.0", "10.0.0.1", expires_at)
        store.get_by_refresh_token(refresh_token)   # SessionNotFound if absent or expired
        store.delete(refresh_token)                 # idempotent
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(
        self,
        user_id: uuid.UUID,
        refresh_token: str,
        user_agent: str,
        ip_address: str,
        expires_at: datetime,
    ) -> Session:
        """Insert a new session. No dedup on user_id -- one row per device."""
        try:
            with self.engine.begin() as conn:
                return self._insert(conn, user_id, refresh_token, user_agent, ip_address, expires_at)
        except SQLAlchemyError as exc:
            logger.error("Session insert failed: %s", type(exc).__name__)
            raise PersistenceError() from exc

    def get_by_refresh_token(self, refresh_token: str) -> Session:
        """Return the live session for refresh_token.

        An expired-but-present row is treated exactly like an absent one.
        """
        query = select(sessions).where(
            (sessions.c.refresh_token == refresh_token) & (sessions.c.expires_at > _now())
        )
        try:
            with self.engine.connect() as conn:
                row = conn.execute(query).fetchone()
        except SQLAlchemyError as exc:
            logger.error("Session lookup failed: %s", type(exc).__name__)
            raise PersistenceError() from exc
        if row is None:
            raise SessionNotFound()
        return _row_to_session(row)

    def list_for_user(self, user_id: uuid.UUID) -> list[Session]:
        """Return the user's live sessions, newest first."""
        query = (
            select(sessions)
            .where((sessions.c.user_id == str(user_id)) & (sessions.c.expires_at > _now()))
            .order_by(sessions.c.created_at.desc())
        )
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(query).fetchall()
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc
        return [_row_to_session(r) for r in rows]

    def rotate(
        self,
        old_token: str,
        new_token: str,
        user_agent: str,
        ip_address: str,
        expires_at: datetime,
    ) -> Session:
        """Atomically replace a live session with a new one.

        Raises SessionNotFound (and writes nothing) if old_token no longer has
        a live row -- revoked, expired, or already rotated by a concurrent call.
        """
        try:
            with self.engine.begin() as conn:
                # The conditional DELETE is the first statement so the write
                # lock is taken before anything is read; a concurrent rotation
                # of the same token waits here and then deletes nothing.
                row = conn.execute(
                    delete(sessions)
                    .where((sessions.c.refresh_token == old_token) & (sessions.c.expires_at > _now()))
                    .returning(sessions.c.user_id)
                ).fetchone()
                if row is None:
                    raise SessionNotFound()
                return self._insert(conn, uuid.UUID(row.user_id), new_token, user_agent, ip_address, expires_at)
        except SQLAlchemyError as exc:
            logger.error("Session rotation failed: %s", type(exc).__name__)
            raise PersistenceError() from exc

    def delete(self, refresh_token: str) -> bool:
        """Remove the session for refresh_token. Deleting a missing token is not an error."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(delete(sessions).where(sessions.c.refresh_token == refresh_token))
        except SQLAlchemyError as exc:
            logger.error("Session delete failed: %s", type(exc).__name__)
            raise PersistenceError() from exc
        return result.rowcount > 0

    def delete_all_for_user(self, user_id: uuid.UUID) -> int:
        """Revoke every session of a user ("log out everywhere")."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(delete(sessions).where(sessions.c.user_id == str(user_id)))
        except SQLAlchemyError as exc:
            logger.error("Bulk session delete failed: %s", type(exc).__name__)
            raise PersistenceError() from exc
        return result.rowcount

    def delete_expired(self) -> int:
        """Purge all rows past expiry. Returns number of rows removed."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(delete(sessions).where(sessions.c.expires_at <= _now()))
        except SQLAlchemyError as exc:
            logger.error("Expired session purge failed: %s", type(exc).__name__)
            raise PersistenceError() from exc
        return result.rowcount

    @staticmethod
    def _insert(
        conn: Connection,
        user_id: uuid.UUID,
        refresh_token: str,
        user_agent: str,
        ip_address: str,
        expires_at: datetime,
    ) -> Session:
        session = Session(
            id=uuid.uuid4(),
            user_id=user_id,
            refresh_token=refresh_token,
            user_agent=user_agent,
            ip_address=ip_address,
            expires_at=expires_at,
            created_at=_now(),
        )
        conn.execute(
            insert(sessions).values(
                id=str(session.id),
                user_id=str(session.user_id),
                refresh_token=session.refresh_token,
                user_agent=session.user_agent,
                ip_address=session.ip_address,
                expires_at=session.expires_at,
                created_at=session.created_at,
            )
        )
        return session


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_session(row) -> Session:
    return Session(
        id=uuid.UUID(row.id),
        user_id=uuid.UUID(row.user_id),
        refresh_token=row.refresh_token,
        user_agent=row.user_agent,
        ip_address=row.ip_address,
        expires_at=_as_utc(row.expires_at),
        created_at=_as_utc(row.created_at),
    )
