"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register    -- create account; returns token pair + user
  POST /api/v1/auth/login       -- password login; returns token pair + user
  POST /api/v1/auth/refresh     -- rotate refresh token; returns new pair
  POST /api/v1/auth/logout      -- revoke one refresh session; always 200
  POST /api/v1/auth/logout-all  -- revoke every session of the caller (requires auth)

The handlers are thin: they collect client metadata, call AuthService, and
map domain results to response models. Failures are AuthError subclasses,
rendered into the standard error envelope by api/main.py.

Handlers are plain `def` -- FastAPI runs them in its threadpool, so the
blocking store calls do not stall the event loop. logout is the exception:
it reads the raw body itself (see below) and hands the store call to a
worker thread with asyncio.to_thread.

Security:
  [H2] register and login are rate-limited per IP (REGISTER_RATE_LIMIT,
       LOGIN_RATE_LIMIT).
  [C1] AuthService.login() provides timing equalization -- never inline
       get_by_email() + verify() here.
  [M5] Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

import asyncio
import json
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, Response

from api.limiter import limiter, login_limit, register_limit
from api.models import (
    AuthResponse,
    LoginRequest,
    LogoutAllResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
    UserResponse,
)
from auth.dependencies import get_current_identity
from auth.models import AuthResult, ClientInfo, Identity, PublicUser, TokenPair
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/register:    public
# - POST /api/v1/auth/login:       public
# - POST /api/v1/auth/refresh:     public -- the refresh token is the credential
# - POST /api/v1/auth/logout:      public -- logout must never fail the caller
# - POST /api/v1/auth/logout-all:  requires auth (get_current_identity)
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        user_agent=request.headers.get("User-Agent", ""),
        ip_address=request.client.host if request.client else "",
    )


def _expires_in(request: Request) -> int:
    return int(_service(request).tokens.access_ttl.total_seconds())


def user_to_response(user: PublicUser) -> UserResponse:
    return UserResponse(id=str(user.id), email=user.email, full_name=user.full_name, role=user.role)


def _auth_response(request: Request, result: AuthResult) -> AuthResponse:
    return AuthResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=_expires_in(request),
        user=user_to_response(result.user),
    )


def _token_pair_response(request: Request, pair: TokenPair) -> TokenPairResponse:
    return TokenPairResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=_expires_in(request),
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(register_limit)  # [H2] -- must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> AuthResponse:
    """Create an account with the default role and start a session."""
    result = _service(request).register(body.email, body.password, body.full_name, _client_info(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return _auth_response(request, result)


@limiter.limit(login_limit)  # [H2] brute-force mitigation
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: LoginRequest) -> AuthResponse:
    """Authenticate with email and password.

    Wrong password and unknown email produce the same invalid_credentials
    error to avoid leaking which addresses are registered.
    """
    result = _service(request).login(body.email, body.password, _client_info(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return _auth_response(request, result)


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(request: Request, response: Response, body: RefreshRequest) -> TokenPairResponse:
    """Exchange a live refresh token for a new access + refresh pair.

    The presented refresh token is dead after this call succeeds.
    """
    pair = _service(request).refresh(body.refresh_token, _client_info(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return _token_pair_response(request, pair)


def _body_refresh_token(raw: bytes) -> Optional[str]:
    """Return body["refresh_token"] if the body is a JSON object holding a string.

    Anything else (empty body, invalid JSON, a list, a non-string token) counts
    as "no token in the body" so the Authorization header can still be used.
    """
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except ValueError:
        return None
    token = payload.get("refresh_token") if isinstance(payload, dict) else None
    return token if isinstance(token, str) else None


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request, authorization: Optional[str] = Header(None)) -> MessageResponse:
    """Revoke the refresh session named in the body, or in the Authorization header.

    Always 200: an unknown, expired or already-revoked token is not an error,
    and neither is a body that does not parse. No request model on purpose --
    FastAPI would answer 422 before the header fallback could run.
    """
    refresh_token = _body_refresh_token(await request.body())
    await asyncio.to_thread(_service(request).logout, refresh_token, authorization)
    return MessageResponse(message="Logged out successfully.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout-all", response_model=LogoutAllResponse)
def logout_all(request: Request, identity: Identity = Depends(get_current_identity)) -> LogoutAllResponse:
    """Revoke every refresh session of the caller ("log out everywhere").

    Access tokens already issued stay valid until they expire -- they are
    stateless by design.
    """
    revoked = _service(request).logout_all(identity.user_id)
    return LogoutAllResponse(message="Logged out of all sessions.", revoked=revoked)
