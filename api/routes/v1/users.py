"""
api/routes/v1/users.py -- Profile endpoints for the authenticated caller.

Routes:
  GET   /api/v1/users/me  -- profile of the caller (requires auth)
  PATCH /api/v1/users/me  -- change display name (requires auth)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MeResponse, ProfileUpdate
from auth.dependencies import get_current_identity
from auth.models import Identity, User
from auth.service import AuthService

router = APIRouter()


def _me_response(user: User) -> MeResponse:
    return MeResponse(
        id=str(user.id),
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        created_at=user.created_at.isoformat(),
        last_login_at=user.last_login_at.isoformat() if user.last_login_at else None,
    )


@router.get("/users/me", response_model=MeResponse)
def me(request: Request, identity: Identity = Depends(get_current_identity)) -> MeResponse:
    """Return the stored profile of the authenticated user."""
    service: AuthService = request.app.state.auth_service
    return _me_response(service.get_user(identity.user_id))


@router.patch("/users/me", response_model=MeResponse)
def update_me(
    request: Request,
    body: ProfileUpdate,
    identity: Identity = Depends(get_current_identity),
) -> MeResponse:
    service: AuthService = request.app.state.auth_service
    return _me_response(service.update_profile(identity.user_id, body.full_name))
