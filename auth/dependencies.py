"""
auth/dependencies.py -- Per-request bearer guard and role gate.

RequestAuthenticator is the framework-free core: it parses an Authorization
header value, validates the access token with TokenService, and returns a
typed Identity. It never touches the session store -- access tokens are
stateless.

The FastAPI helpers below wrap it for Depends():
  get_current_identity() -- 401 unless a valid Bearer access token is present.
  require_roles(*roles)  -- get_current_identity() plus 403 unless the caller's
                            role is one of `roles`.

Handlers receive the Identity as a parameter; nothing is stashed on the
request under string keys.

Layer rule: no imports from api/ or core/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from fastapi import Depends, Request

from auth.errors import Forbidden, InvalidToken, Unauthorized
from auth.models import Identity, Role
from auth.tokens import TokenService


class RequestAuthenticator:
    """Stateless bearer-token guard.

    Usage:
        guard = RequestAuthenticator(tokens)
        identity = guard.authenticate(request.headers.get("Authorization"))
        guard.authorize(identity, {Role.CAREGIVER})
    """

    def __init__(self, tokens: TokenService) -> None:
        self.tokens = tokens

    def authenticate(self, authorization: str | None) -> Identity:
        if not authorization:
            raise Unauthorized("Missing authorization header.")
        parts = authorization.split(" ")
        if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
            raise Unauthorized("Invalid authorization header format.")
        try:
            claims = self.tokens.validate_access_token(parts[1])
        except InvalidToken as exc:
            raise Unauthorized("Invalid or expired token.") from exc
        return Identity(user_id=claims.user_id, email=claims.email, role=claims.role)

    def authorize(self, identity: Identity, allowed_roles: Iterable[Role | str]) -> Identity:
        allowed = {Role(r) for r in allowed_roles}
        if identity.role not in allowed:
            raise Forbidden()
        return identity


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def get_current_identity(request: Request) -> Identity:
    """Require a valid access token. Raises Unauthorized (HTTP 401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    authenticator: RequestAuthenticator = request.app.state.authenticator
    return authenticator.authenticate(request.headers.get("Authorization"))


def require_roles(*roles: Role | str) -> Callable[..., Identity]:
    """Build a dependency that admits only the given roles (HTTP 403 otherwise).

    Use as a FastAPI dependency:
        @router.get("/caregivers-only")
        def route(identity: Identity = Depends(require_roles(Role.CAREGIVER))): ...
    """
    allowed = frozenset(Role(r) for r in roles)

    def dependency(request: Request, identity: Identity = Depends(get_current_identity)) -> Identity:
        authenticator: RequestAuthenticator = request.app.state.authenticator
        return authenticator.authorize(identity, allowed)

    return dependency
