"""
auth/tokens.py -- Signed access and refresh tokens (python-jose, HMAC).

Security design decisions:
  Access tokens are stateless: sub/user_id/email/role plus iat/nbf/exp/jti.
       Possession of a validly signed, unexpired token is proof of identity
       for the request window. They are never checked against the session
       store.

  Refresh tokens carry only sub and the temporal claims (plus jti). They are
       deliberately useless for impersonation on their own: AuthService only
       honours one that also has a live row in the session store.

  jti is a random per-token id. Two tokens minted for the same user in the
       same second (two devices logging in, or a refresh right after login)
       would otherwise be byte-identical and collide on
       sessions.refresh_token UNIQUE.

  Algorithm confusion: decode() is given exactly the configured HMAC
       algorithm, and the unverified header is checked against it before
       verification. 'none' and asymmetric algorithms never validate.

  Every verification failure raises the same InvalidToken. Callers cannot
       tell an expired token from a forged one.

The service holds its own secret and lifetimes. Nothing here reads settings
at import time -- auth/factory.py constructs one TokenService at startup.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone

from jose import jwt
from jose.exceptions import JOSEError

from auth.errors import InvalidToken, SigningError
from auth.models import AccessClaims, Role

logger = logging.getLogger("dadmail.auth.tokens")

HMAC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})

_REQUIRED_TEMPORAL = {
    "require_exp": True,
    "require_iat": True,
    "require_nbf": True,
    "require_sub": True,
    "leeway": 0,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Issues and validates the two token kinds.

    Usage:
        tokens = TokenService(secret, access_ttl_minutes=15, refresh_ttl_hours=168)
        access = tokens.issue_access_token(user.id, user.email, user.role)
        refresh, expires_at = tokens.issue_refresh_token(user.id)
        claims = tokens.validate_access_token(access)
    """

    def __init__(
        self,
        secret: str,
        access_ttl_minutes: int = 15,
        refresh_ttl_hours: int = 168,
        algorithm: str = "HS256",
    ) -> None:
        if not secret:
            raise SigningError("Signing secret is empty.")
        if algorithm not in HMAC_ALGORITHMS:
            raise SigningError(f"Unsupported signing algorithm {algorithm!r}.")
        self._secret = secret
        self.algorithm = algorithm
        self.access_ttl = timedelta(minutes=access_ttl_minutes)
        self.refresh_ttl = timedelta(hours=refresh_ttl_hours)

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access_token(self, user_id: uuid.UUID, email: str, role: str) -> str:
        now = _utcnow()
        claims = {
            "sub": str(user_id),
            "user_id": str(user_id),
            "email": email,
            "role": str(role.value if isinstance(role, Role) else role),
            "iat": now,
            "nbf": now,
            "exp": now + self.access_ttl,
            "jti": secrets.token_hex(16),
        }
        return self._sign(claims)

    def issue_refresh_token(self, user_id: uuid.UUID) -> tuple[str, datetime]:
        """Return (token, expires_at). expires_at is what the session row stores."""
        now = _utcnow()
        expires_at = now + self.refresh_ttl
        claims = {
            "sub": str(user_id),
            "iat": now,
            "nbf": now,
            "exp": expires_at,
            "jti": secrets.token_hex(16),
        }
        return self._sign(claims), expires_at

    def _sign(self, claims: dict) -> str:
        try:
            return jwt.encode(claims, self._secret, algorithm=self.algorithm)
        except JOSEError as exc:
            logger.error("Token signing failed: %s", type(exc).__name__)
            raise SigningError() from exc

    # ------------------------------------------------------------------
    # Validate
    # ------------------------------------------------------------------

    def validate_access_token(self, token: str) -> AccessClaims:
        payload = self._decode(token)
        try:
            user_id = uuid.UUID(payload["user_id"])
            role = Role(payload["role"])
            email = payload["email"]
        except (KeyError, ValueError, TypeError, AttributeError) as exc:
            raise InvalidToken() from exc
        if not isinstance(email, str) or not email or str(user_id) != payload["sub"]:
            raise InvalidToken()
        return AccessClaims(
            user_id=user_id,
            email=email,
            role=role,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def validate_refresh_token(self, token: str) -> uuid.UUID:
        """Return the subject user ID. InvalidToken if sub is not a UUID."""
        payload = self._decode(token)
        try:
            return uuid.UUID(payload["sub"])
        except (KeyError, ValueError, TypeError, AttributeError) as exc:
            raise InvalidToken() from exc

    def _decode(self, token: str) -> dict:
        if not token or not isinstance(token, str):
            raise InvalidToken()
        try:
            header = jwt.get_unverified_header(token)
            if header.get("alg") != self.algorithm:
                raise InvalidToken()
            return jwt.decode(token, self._secret, algorithms=[self.algorithm], options=_REQUIRED_TEMPORAL)
        except JOSEError as exc:
            raise InvalidToken() from exc
