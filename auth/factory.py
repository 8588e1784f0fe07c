"""
auth/factory.py -- Build the auth service objects once at startup.

There are no module-level service singletons. The API lifespan and the CLI
both call build_components() and own the result; request handlers reach the
services through app.state.

Layer rule: auth/ may import core/config for the Settings type only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from auth.dependencies import RequestAuthenticator
from auth.passwords import CredentialHasher
from auth.schema import make_engine
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings

logger = logging.getLogger("dadmail.auth")


@dataclass
class AuthComponents:
    engine: Engine
    users: UserStore
    sessions: SessionStore
    hasher: CredentialHasher
    tokens: TokenService
    service: AuthService
    authenticator: RequestAuthenticator

    def close(self) -> None:
        self.engine.dispose()


def build_components(settings: Settings, db_url: str | None = None) -> AuthComponents:
    """Wire stores, hasher, token service and orchestrator from Settings.

    db_url overrides the configured database (tests pass in-memory URLs).
    """
    url = db_url or settings.resolved_database_url()
    engine = make_engine(
        url,
        timeout=settings.store_timeout_seconds,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )
    users = UserStore(engine)
    sessions = SessionStore(engine)
    hasher = CredentialHasher(min_length=settings.min_password_length, rounds=settings.bcrypt_rounds)
    tokens = TokenService(
        settings.secret_key,
        access_ttl_minutes=settings.access_token_ttl_minutes,
        refresh_ttl_hours=settings.refresh_token_ttl_hours,
        algorithm=settings.jwt_algorithm,
    )
    service = AuthService(users, sessions, hasher, tokens, default_role=settings.default_role)
    logger.info("Auth components ready (backend=%s)", engine.url.get_backend_name())
    return AuthComponents(
        engine=engine,
        users=users,
        sessions=sessions,
        hasher=hasher,
        tokens=tokens,
        service=service,
        authenticator=RequestAuthenticator(tokens),
    )
