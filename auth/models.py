"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, close to zero logic) -- dataclasses
own domain shape; stores and services do the work.

Two shapes for a user on purpose:
  User       -- internal record, includes password_hash. Only the hasher,
                the stores and the orchestrator see it.
  PublicUser -- what crosses the API boundary. Built explicitly with
                PublicUser.from_user(); it has no password field to leak.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Closed set of roles accepted at the boundary. Stored as plain strings."""

    SENIOR = "senior"
    CAREGIVER = "caregiver"


@dataclass
class User:
    """A registered account as persisted in the users table."""

    id: uuid.UUID
    email: str
    password_hash: str
    full_name: str
    role: str
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None = None


@dataclass(frozen=True)
class PublicUser:
    id: uuid.UUID
    email: str
    full_name: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> PublicUser:
        return cls(id=user.id, email=user.email, full_name=user.full_name, role=user.role)


@dataclass
class Session:
    """One active refresh-token grant.

    A row is valid only while expires_at > now. user_agent and ip_address are
    captured at creation for audit and never used for authorization.
    """

    id: uuid.UUID
    user_id: uuid.UUID
    refresh_token: str
    user_agent: str
    ip_address: str
    expires_at: datetime
    created_at: datetime


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, produced by RequestAuthenticator per request."""

    user_id: uuid.UUID
    email: str
    role: Role


@dataclass(frozen=True)
class AccessClaims:
    """Decoded, verified access-token claims."""

    user_id: uuid.UUID
    email: str
    role: Role
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class ClientInfo:
    """Client metadata recorded on the session row for audit."""

    user_agent: str = ""
    ip_address: str = ""


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    """Outcome of register/login: a fresh token pair plus the public user view."""

    tokens: TokenPair
    user: PublicUser
