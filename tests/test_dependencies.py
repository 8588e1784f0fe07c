"""Tests for auth/dependencies.py -- RequestAuthenticator and the FastAPI guards.

Covers:
- missing / malformed / expired / forged Authorization headers -> Unauthorized
- a valid bearer token yields an Identity matching the token claims
- role gate: allowed role passes, other role -> Forbidden (HTTP 403)
- the guards never touch the session store (revoked sessions do not matter)
"""

import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from jose import jwt

from auth.dependencies import RequestAuthenticator, get_current_identity, require_roles
from auth.errors import AuthError, Forbidden, Unauthorized
from auth.models import Identity, Role
from auth.tokens import TokenService


@pytest.fixture
def guard(tokens: TokenService) -> RequestAuthenticator:
    return RequestAuthenticator(tokens)


def _bearer(tokens: TokenService, role: str = "senior", user_id: uuid.UUID | None = None) -> str:
    return "Bearer " + tokens.issue_access_token(user_id or uuid.uuid4(), "a@x.com", role)


class TestAuthenticate:
    def test_valid_token(self, guard: RequestAuthenticator, tokens: TokenService) -> None:
        user_id = uuid.uuid4()
        identity = guard.authenticate(_bearer(tokens, "caregiver", user_id))
        assert identity == Identity(user_id=user_id, email="a@x.com", role=Role.CAREGIVER)

    @pytest.mark.parametrize("header", [None, ""])
    def test_missing_header(self, guard: RequestAuthenticator, header) -> None:
        with pytest.raises(Unauthorized, match="Missing authorization header"):
            guard.authenticate(header)

    @pytest.mark.parametrize("header", ["token-only", "Basic abc", "bearer abc", "Bearer", "Bearer ", "Bearer a b"])
    def test_malformed_header(self, guard: RequestAuthenticator, header: str) -> None:
        with pytest.raises(Unauthorized, match="Invalid authorization header format"):
            guard.authenticate(header)

    def test_forged_token(self, guard: RequestAuthenticator) -> None:
        with pytest.raises(Unauthorized, match="Invalid or expired token"):
            guard.authenticate("Bearer not.a.token")

    def test_expired_token(self, guard: RequestAuthenticator, tokens: TokenService) -> None:
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        user_id = str(uuid.uuid4())
        token = jwt.encode(
            {
                "sub": user_id,
                "user_id": user_id,
                "email": "a@x.com",
                "role": "senior",
                "iat": past,
                "nbf": past,
                "exp": past + timedelta(minutes=15),
            },
            os.environ["SECRET_KEY"],
            algorithm="HS256",
        )
        with pytest.raises(Unauthorized, match="Invalid or expired token"):
            guard.authenticate(f"Bearer {token}")

    def test_refresh_token_not_accepted(self, guard: RequestAuthenticator, tokens: TokenService) -> None:
        refresh, _ = tokens.issue_refresh_token(uuid.uuid4())
        with pytest.raises(Unauthorized):
            guard.authenticate(f"Bearer {refresh}")


class TestAuthorize:
    def test_allowed(self, guard: RequestAuthenticator) -> None:
        identity = Identity(uuid.uuid4(), "a@x.com", Role.CAREGIVER)
        assert guard.authorize(identity, {Role.CAREGIVER}) is identity

    def test_allowed_as_string(self, guard: RequestAuthenticator) -> None:
        identity = Identity(uuid.uuid4(), "a@x.com", Role.SENIOR)
        assert guard.authorize(identity, ["senior", "caregiver"]) is identity

    def test_forbidden(self, guard: RequestAuthenticator) -> None:
        identity = Identity(uuid.uuid4(), "a@x.com", Role.SENIOR)
        with pytest.raises(Forbidden):
            guard.authorize(identity, {Role.CAREGIVER})

    def test_empty_allow_list_forbids_everyone(self, guard: RequestAuthenticator) -> None:
        with pytest.raises(Forbidden):
            guard.authorize(Identity(uuid.uuid4(), "a@x.com", Role.CAREGIVER), [])


# ---------------------------------------------------------------------------
# FastAPI wiring
# ---------------------------------------------------------------------------


@pytest.fixture
def guarded_client(tokens: TokenService):
    from api.main import auth_error_handler

    app = FastAPI()
    app.state.authenticator = RequestAuthenticator(tokens)
    app.add_exception_handler(AuthError, auth_error_handler)

    @app.get("/whoami")
    def whoami(identity: Identity = Depends(get_current_identity)):
        return {"user_id": str(identity.user_id), "role": identity.role.value}

    @app.get("/caregivers")
    def caregivers(identity: Identity = Depends(require_roles(Role.CAREGIVER))):
        return {"ok": True}

    with TestClient(app) as client:
        yield client


def test_dependency_returns_identity(guarded_client: TestClient, tokens: TokenService) -> None:
    user_id = uuid.uuid4()
    resp = guarded_client.get("/whoami", headers={"Authorization": _bearer(tokens, user_id=user_id)})
    assert resp.status_code == 200
    assert resp.json() == {"user_id": str(user_id), "role": "senior"}


def test_dependency_rejects_missing_header(guarded_client: TestClient) -> None:
    resp = guarded_client.get("/whoami")
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"
    assert resp.json()["error"]["code"] == "unauthorized"


def test_role_gate_allows(guarded_client: TestClient, tokens: TokenService) -> None:
    resp = guarded_client.get("/caregivers", headers={"Authorization": _bearer(tokens, "caregiver")})
    assert resp.status_code == 200


def test_role_gate_forbids(guarded_client: TestClient, tokens: TokenService) -> None:
    resp = guarded_client.get("/caregivers", headers={"Authorization": _bearer(tokens, "senior")})
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"


def test_role_gate_checks_authentication_first(guarded_client: TestClient) -> None:
    assert guarded_client.get("/caregivers").status_code == 401
