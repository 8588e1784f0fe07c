"""
API request and response models for DadMail auth endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
UserResponse is built from auth.models.PublicUser, which has no password hash
field -- there is nothing to suppress.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Emptiness and password length are checked by AuthService so the error
    codes match the Python interface; the limits here only cap input size
    (bcrypt truncates beyond 72 bytes). Passwords are taken verbatim.
    """

    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)
    full_name: str = Field(default="", max_length=255)


class LoginRequest(BaseModel):
    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(default="", max_length=4096)


class ProfileUpdate(BaseModel):
    """Request body for PATCH /api/v1/users/me."""

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str = Field(default="", max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    full_name: str
    role: str


class AuthResponse(BaseModel):
    """Response for register and login: token pair plus the public user view."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class MeResponse(BaseModel):
    id: str
    email: str
    full_name: str
    role: str
    created_at: str
    last_login_at: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class LogoutAllResponse(BaseModel):
    message: str
    revoked: int


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload. `code` is stable; `message` is human-facing."""

    code: str
    message: str
    detail: Optional[str | list[str]] = None


class ErrorResponse(BaseModel):
    """Standard error envelope returned by every exception handler."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
