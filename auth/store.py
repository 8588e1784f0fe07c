"""
auth/store.py -- SQLAlchemy Core persistence for user accounts.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is the UNIQUE constraint on users.email. AuthService also
  does a lookup before insert for a friendly error, but two concurrent
  registrations can both pass that check -- the IntegrityError from the
  loser is translated to DuplicateAccount here.

Error policy: SQLAlchemyError never escapes this module. It is logged and
re-raised as PersistenceError (chained with `from exc`), which the API layer
renders without SQL text.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateAccount, PersistenceError
from auth.models import User
from auth.schema import users

logger = logging.getLogger("dadmail.auth.store")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore(make_engine("sqlite:///:memory:"))
        user = store.create_user("a@x.com", hasher.hash("password1"), "A", "senior")
        same = store.get_by_email("a@x.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, email: str, password_hash: str, full_name: str, role: str) -> User:
        """Insert a new user and return the stored record.

        Raises DuplicateAccount if the email is already taken (including when
        a concurrent registration won the race).
        """
        now = _now()
        user = User(
            id=uuid.uuid4(),
            email=email,
            password_hash=password_hash,
            full_name=full_name,
            role=role,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    users.insert().values(
                        id=str(user.id),
                        email=user.email,
                        password_hash=user.password_hash,
                        full_name=user.full_name,
                        role=user.role,
                        created_at=user.created_at,
                        updated_at=user.updated_at,
                    )
                )
        except IntegrityError as exc:
            raise DuplicateAccount() from exc
        except SQLAlchemyError as exc:
            logger.error("create_user failed: %s", type(exc).__name__)
            raise PersistenceError() from exc
        return user

    def update_last_login(self, user_id: uuid.UUID) -> None:
        """Stamp the current UTC time as last_login_at."""
        try:
            with self.engine.begin() as conn:
                conn.execute(users.update().where(users.c.id == str(user_id)).values(last_login_at=_now()))
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc

    def update_profile(self, user_id: uuid.UUID, full_name: str) -> bool:
        """Change the display name. Returns False if the user does not exist."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    users.update().where(users.c.id == str(user_id)).values(full_name=full_name, updated_at=_now())
                )
        except SQLAlchemyError as exc:
            logger.error("update_profile failed: %s", type(exc).__name__)
            raise PersistenceError() from exc
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        return self._fetch_one(select(users).where(users.c.email == email))

    def get_by_id(self, user_id: uuid.UUID) -> User | None:
        return self._fetch_one(select(users).where(users.c.id == str(user_id)))

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Database ping failed", exc_info=True)
            return False
        return True

    def _fetch_one(self, query) -> User | None:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(query).fetchone()
        except SQLAlchemyError as exc:
            logger.error("User lookup failed: %s", type(exc).__name__)
            raise PersistenceError() from exc
        return _row_to_user(row) if row is not None else None


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=uuid.UUID(row.id),
        email=row.email,
        password_hash=row.password_hash,
        full_name=row.full_name,
        role=row.role,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
        last_login_at=_as_utc(row.last_login_at),
    )
