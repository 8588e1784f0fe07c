"""
auth/service.py -- AuthService: register, login, refresh and logout flows.

Composes CredentialHasher, TokenService, UserStore and SessionStore. Each flow
either returns a complete result or raises one AuthError subclass; no flow
ever returns a partial token pair.

Security:
  [C1] login() runs bcrypt whether or not the email exists, so response time
       does not reveal registered addresses. Unknown email and wrong password
       raise the same InvalidCredentials.

  Refresh tokens are honoured only when the signature verifies AND a live
  session row exists AND that row belongs to the token's subject. Every
  failure along that path raises the same InvalidOrExpiredToken.

  Rotation is mandatory: each successful refresh() kills the presented token
  and returns a new one (SessionStore.rotate, single transaction).

Recoverable locally: a failed last-login stamp is logged and login continues.
Logout never fails the caller.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid

from auth.errors import (
    CredentialMismatch,
    DuplicateAccount,
    InvalidCredentials,
    InvalidOrExpiredToken,
    InvalidToken,
    PersistenceError,
    SessionNotFound,
    UserNotFound,
    ValidationError,
)
from auth.models import AuthResult, ClientInfo, PublicUser, Role, TokenPair, User
from auth.passwords import CredentialHasher
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import TokenService

logger = logging.getLogger("dadmail.auth")


def _missing(**values: str | None) -> list[str]:
    return [name for name, value in values.items() if not value]


def bearer_value(authorization: str | None) -> str:
    """Strip an optional 'Bearer ' prefix. Lenient -- used only by logout."""
    if not authorization:
        return ""
    value = authorization.strip()
    if value.startswith("Bearer "):
        value = value[len("Bearer ") :]
    return value.strip()


class AuthService:
    """Authentication orchestrator.

    Constructed once at startup (see auth/factory.py) and shared by all
    requests. It holds no mutable state of its own.
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        hasher: CredentialHasher,
        tokens: TokenService,
        default_role: str = Role.SENIOR.value,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.hasher = hasher
        self.tokens = tokens
        self.default_role = Role(default_role).value

    # ------------------------------------------------------------------
    # Register / login
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, full_name: str, client: ClientInfo | None = None) -> AuthResult:
        missing = _missing(email=email, password=password, full_name=full_name)
        if missing:
            raise ValidationError("Email, password, and full name are required.", fields=missing)
        self.hasher.check_policy(password)

        # Friendly early answer. The UNIQUE constraint is the real guard;
        # create_user() raises DuplicateAccount if a concurrent request wins.
        if self.users.get_by_email(email) is not None:
            raise DuplicateAccount()

        password_hash = self.hasher.hash(password)
        user = self.users.create_user(email, password_hash, full_name, self.default_role)
        logger.info("Registered user %s", user.id)
        return AuthResult(tokens=self._start_session(user, client), user=PublicUser.from_user(user))

    def login(self, email: str, password: str, client: ClientInfo | None = None) -> AuthResult:
        missing = _missing(email=email, password=password)
        if missing:
            raise ValidationError("Email and password are required.", fields=missing)

        user = self.users.get_by_email(email)
        if user is None:
            self.hasher.verify_dummy(password)
            logger.info("Login failed: unknown email")
            raise InvalidCredentials()
        try:
            self.hasher.verify(user.password_hash, password)
        except CredentialMismatch as exc:
            logger.info("Login failed for user %s: bad password", user.id)
            raise InvalidCredentials() from exc

        try:
            self.users.update_last_login(user.id)
        except PersistenceError:
            logger.warning("Could not record last login for user %s", user.id, exc_info=True)

        logger.info("User %s logged in", user.id)
        return AuthResult(tokens=self._start_session(user, client), user=PublicUser.from_user(user))

    def _start_session(self, user: User, client: ClientInfo | None) -> TokenPair:
        client = client or ClientInfo()
        access_token = self.tokens.issue_access_token(user.id, user.email, user.role)
        refresh_token, expires_at = self.tokens.issue_refresh_token(user.id)
        self.sessions.create(user.id, refresh_token, client.user_agent, client.ip_address, expires_at)
        return TokenPair(access_token=access_token, refresh_token=refresh_token, refresh_expires_at=expires_at)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str, client: ClientInfo | None = None) -> TokenPair:
        if not refresh_token:
            raise ValidationError("Refresh token is required.", fields=["refresh_token"])
        client = client or ClientInfo()

        try:
            user_id = self.tokens.validate_refresh_token(refresh_token)
        except InvalidToken as exc:
            raise InvalidOrExpiredToken() from exc

        # Catches tokens that verify cryptographically but were revoked.
        try:
            session = self.sessions.get_by_refresh_token(refresh_token)
        except SessionNotFound as exc:
            raise InvalidOrExpiredToken() from exc
        if session.user_id != user_id:
            logger.warning("Refresh token subject does not match session owner (session %s)", session.id)
            raise InvalidOrExpiredToken()

        user = self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFound()

        access_token = self.tokens.issue_access_token(user.id, user.email, user.role)
        new_refresh, expires_at = self.tokens.issue_refresh_token(user.id)
        try:
            self.sessions.rotate(refresh_token, new_refresh, client.user_agent, client.ip_address, expires_at)
        except SessionNotFound as exc:
            # Lost a race with a concurrent refresh or logout of the same token.
            raise InvalidOrExpiredToken() from exc

        logger.info("Rotated refresh token for user %s", user.id)
        return TokenPair(access_token=access_token, refresh_token=new_refresh, refresh_expires_at=expires_at)

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, refresh_token: str | None = None, authorization: str | None = None) -> None:
        """Delete the session for the presented token. Never raises.

        The body token wins; otherwise the bearer value of the Authorization
        header is used. An unknown or already-deleted token is a no-op.
        """
        token = refresh_token or bearer_value(authorization)
        if not token:
            return
        try:
            self.sessions.delete(token)
        except PersistenceError:
            logger.warning("Logout could not delete session", exc_info=True)

    def logout_all(self, user_id: uuid.UUID) -> int:
        """Revoke every refresh session of the user. Returns the number removed."""
        revoked = self.sessions.delete_all_for_user(user_id)
        logger.info("Revoked %d session(s) for user %s", revoked, user_id)
        return revoked

    def purge_expired_sessions(self) -> int:
        removed = self.sessions.delete_expired()
        if removed:
            logger.info("Purged %d expired session(s)", removed)
        return removed

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_user(self, user_id: uuid.UUID) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def update_profile(self, user_id: uuid.UUID, full_name: str) -> User:
        if not full_name or not full_name.strip():
            raise ValidationError("Full name is required.", fields=["full_name"])
        if not self.users.update_profile(user_id, full_name.strip()):
            raise UserNotFound()
        return self.get_user(user_id)
