"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the service
do the work; these only own domain shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Closed set of account roles. Authorization code matches on every member."""

    USER = "user"
    ADMIN = "admin"


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class User:
    """An identity record owned by CredentialStore.

    email is always stored lowercase; the UNIQUE index on it is the only
    authoritative duplicate check. hashed_password is a bcrypt hash and never
    leaves the auth package -- use PublicUser for anything outbound.
    """

    email: str
    name: str
    hashed_password: str
    role: Role = Role.USER
    id: int | None = None
    created_at: str | None = None


@dataclass
class Session:
    """One active refresh-token grant.

    A user may hold many sessions at once (one per login/device). The row is
    what makes a refresh token revocable: once it is gone the token is dead,
    whatever its signature and embedded expiry say.
    """

    refresh_token: str
    user_id: int
    expires_at: datetime
    created_at: datetime
    id: int | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Verified claim set decoded from a signed token."""

    subject: str  # email
    user_id: int
    role: Role
    kind: TokenKind
    issued_at: datetime
    expires_at: datetime
    token_id: str


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class Identity:
    """The caller, as proven by a verified access token.

    Derived once at the HTTP boundary and passed explicitly to anything that
    needs to know who is asking.
    """

    user_id: int
    email: str
    role: Role


@dataclass
class PublicUser:
    """Outbound user view. Never carries the password hash.

    profile_complete is only populated by login; other flows leave it None.
    """

    id: int
    email: str
    name: str
    role: Role
    created_at: str
    profile_complete: bool | None = None

    @classmethod
    def from_user(cls, user: User, profile_complete: bool | None = None) -> PublicUser:
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            created_at=user.created_at or "",
            profile_complete=profile_complete,
        )


@dataclass(frozen=True)
class LoginResult:
    access: IssuedToken
    refresh: IssuedToken
    user: PublicUser


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of a refresh.

    refresh is None unless refresh-token rotation is enabled, in which case it
    holds the replacement token the client must store.
    """

    access: IssuedToken
    refresh: IssuedToken | None = None
