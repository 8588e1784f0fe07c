"""
auth/schema.py -- SQLAlchemy Core schema and engine factory for the auth store.

Both UserStore and SessionStore share one Engine (one connection pool) built
by make_engine(). The pool is the only shared mutable resource in the
process; its sizing comes from Settings.

Uniqueness invariants live here, not in application code:
  users.email            UNIQUE -- the real guard against duplicate accounts
  sessions.refresh_token UNIQUE -- one row per refresh grant

Timestamps are stored as timezone-aware DateTime columns and always written in
UTC. SQLite drops the offset on the way back; _as_utc() in the stores restores
it.

Deadlines: STORE_TIMEOUT_SECONDS bounds every store call. For PostgreSQL it is
the pool checkout timeout, the connect timeout and the server-side
statement_timeout. For SQLite it is the busy timeout. A breach surfaces as an
SQLAlchemy OperationalError/TimeoutError, which the stores wrap in
PersistenceError.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import math

from sqlalchemy import Column, DateTime, ForeignKey, Index, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("full_name", String(255), nullable=False),
    Column("role", String(30), nullable=False, server_default="senior"),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("last_login_at", DateTime(timezone=True)),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("refresh_token", Text, nullable=False, unique=True),
    Column("user_agent", Text, nullable=False, server_default=""),
    Column("ip_address", String(45), nullable=False, server_default=""),  # 45 = max IPv6 text length
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("ix_sessions_user_id", "user_id"),
    Index("ix_sessions_expires_at", "expires_at"),
)


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign keys per connection.

    SQLite PRAGMAs are not inherited by new connections from the pool, so this
    runs on every connect.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(
    db_url: str,
    *,
    timeout: float = 5.0,
    pool_size: int = 5,
    max_overflow: int = 20,
    echo: bool = False,
) -> Engine:
    """Create the shared Engine and make sure the schema exists.

    Pool sizing only applies to server databases. SQLite in-memory URLs use
    SingletonThreadPool, which rejects max_overflow.
    """
    if db_url.startswith("sqlite"):
        engine = create_engine(
            db_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )
        event.listen(engine, "connect", _set_sqlite_pragmas)
    else:
        connect_args: dict = {}
        if db_url.startswith("postgresql"):
            connect_args = {
                "connect_timeout": max(1, math.ceil(timeout)),
                "options": f"-c statement_timeout={int(timeout * 1000)}",
            }
        engine = create_engine(
            db_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=timeout,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
    metadata.create_all(engine)
    return engine
