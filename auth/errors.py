"""
auth/errors.py -- Typed failure taxonomy for the auth core.

Every class carries a stable machine-readable code, the HTTP status the API
layer maps it to, and a client-safe default message. The API layer renders
any AuthError as the standard ErrorResponse envelope; nothing else about the
failure (SQL text, stack traces, which token check failed) crosses the
boundary.

Component-level errors (CredentialMismatch, InvalidToken, SessionNotFound,
SigningError) are raised by the hasher, token service and session store. The
orchestrator converts them into the flow-level errors callers see.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all auth failures mapped to HTTP responses."""

    code: str = "auth_error"
    status_code: int = 400
    default_message: str = "Authentication request failed."

    def __init__(self, message: str | None = None, *, fields: list[str] | None = None) -> None:
        self.message = message or self.default_message
        self.fields = fields or []
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Caller-fixable input errors
# ---------------------------------------------------------------------------


class ValidationError(AuthError):
    """Missing or malformed input. `fields` names the offending fields."""

    code = "validation_error"
    status_code = 400
    default_message = "Request validation failed."


class WeakCredential(AuthError):
    code = "weak_password"
    status_code = 400
    default_message = "Password does not meet the minimum length requirement."


class DuplicateAccount(AuthError):
    code = "duplicate_account"
    status_code = 409
    default_message = "Email already registered."


# ---------------------------------------------------------------------------
# Flow-level authentication failures
# ---------------------------------------------------------------------------


class InvalidCredentials(AuthError):
    """Bad login. Identical for unknown email and wrong password."""

    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid email or password."


class InvalidOrExpiredToken(AuthError):
    """Refresh failure. Identical for forged, expired and revoked tokens."""

    code = "invalid_token"
    status_code = 401
    default_message = "Invalid or expired refresh token."


class UserNotFound(AuthError):
    code = "user_not_found"
    status_code = 401
    default_message = "User not found."


class Unauthorized(AuthError):
    code = "unauthorized"
    status_code = 401
    default_message = "Authentication required."


class Forbidden(AuthError):
    code = "forbidden"
    status_code = 403
    default_message = "Insufficient permissions."


class PersistenceError(AuthError):
    code = "persistence_error"
    status_code = 503
    default_message = "The credential store is unavailable."


# ---------------------------------------------------------------------------
# Component-level errors
# ---------------------------------------------------------------------------


class CredentialMismatch(AuthError):
    code = "credential_mismatch"
    status_code = 401
    default_message = "Invalid email or password."


class InvalidToken(AuthError):
    code = "invalid_token"
    status_code = 401
    default_message = "Invalid or expired token."


class SessionNotFound(AuthError):
    code = "invalid_token"
    status_code = 401
    default_message = "Session not found or expired."


class SigningError(AuthError):
    code = "signing_error"
    status_code = 500
    default_message = "Token signing is misconfigured."
