"""
auth/service.py -- AuthService: signup, login, refresh, logout orchestration.

The only component the HTTP layer calls for auth state changes. It owns no
state of its own; every cross-request guarantee comes from the stores.

Session lifecycle:
  Active  -- row exists, expires_at in the future.
  Expired -- row exists, expires_at passed. find_live() treats it as absent
             and purges it on the same call.
  Revoked -- row deleted by logout / logout_all / rotation.
Expired and Revoked are terminal and look identical to callers: refresh fails
with InvalidOrExpiredToken.

Refresh-token rotation is opt-in (rotate_refresh_tokens). With it off, refresh
issues a new access token and leaves the refresh token and its row untouched.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.errors import InvalidOrExpiredToken, TokenExpired, TokenInvalid
from auth.models import Identity, LoginResult, PublicUser, RefreshResult, TokenKind, User
from auth.sessions import SessionStore
from auth.store import CredentialStore
from auth.tokens import TokenIssuer

logger = logging.getLogger("authcore.auth")


class ProfileLookup(Protocol):
    """Read-only view of the external profile service, used to enrich login."""

    def is_profile_complete(self, user: User) -> bool: ...


class AuthService:
    def __init__(
        self,
        credentials: CredentialStore,
        tokens: TokenIssuer,
        sessions: SessionStore,
        profiles: ProfileLookup | None = None,
        *,
        rotate_refresh_tokens: bool = False,
    ) -> None:
        self.credentials = credentials
        self.tokens = tokens
        self.sessions = sessions
        self.profiles = profiles
        self.rotate_refresh_tokens = rotate_refresh_tokens

    def signup(self, email: str, password: str, name: str) -> PublicUser:
        """Register a new account. Raises DuplicateEmail."""
        user = self.credentials.register(email, password, name)
        return PublicUser.from_user(user)

    def login(self, email: str, password: str) -> LoginResult:
        """Verify credentials and open a new session.

        Raises InvalidCredentials. Earlier sessions of the same user stay
        active -- each login is a separate device grant.
        """
        user = self.credentials.verify(email, password)
        access = self.tokens.issue_access(user)
        refresh = self.tokens.issue_refresh(user)
        self.sessions.open(user.id, refresh.token, expires_at=refresh.expires_at)
        logger.info("Login succeeded for user_id=%s", user.id)
        return LoginResult(
            access=access,
            refresh=refresh,
            user=PublicUser.from_user(user, profile_complete=self._profile_complete(user)),
        )

    def refresh(self, refresh_token: str) -> RefreshResult:
        """Issue a new access token for a live session.

        Raises InvalidOrExpiredToken when the session is absent, expired, or
        its token no longer verifies. The identity comes from the session's
        user row, not from the token claims.
        """
        session = self.sessions.find_live(refresh_token)
        if session is None:
            raise InvalidOrExpiredToken("no live session")

        try:
            self.tokens.verify(refresh_token, TokenKind.REFRESH)
        except (TokenInvalid, TokenExpired) as exc:
            # A stored token that no longer verifies (e.g. the signing key
            # changed) can never be used again.
            self.sessions.close_by_token(refresh_token)
            raise InvalidOrExpiredToken(f"stored refresh token rejected: {exc.code}") from exc

        user = self.credentials.get_by_id(session.user_id)
        if user is None:
            raise InvalidOrExpiredToken(f"session user_id={session.user_id} has no user row")

        access = self.tokens.issue_access(user)
        if not self.rotate_refresh_tokens:
            return RefreshResult(access=access)

        replacement = self.tokens.issue_refresh(user)
        rotated = self.sessions.rotate(user.id, refresh_token, replacement.token, expires_at=replacement.expires_at)
        if rotated is None:
            raise InvalidOrExpiredToken("session closed during rotation")
        return RefreshResult(access=access, refresh=replacement)

    def logout(self, refresh_token: str) -> None:
        """Revoke the session holding refresh_token. Idempotent."""
        if self.sessions.close_by_token(refresh_token):
            logger.info("Session revoked by logout")

    def logout_all(self, identity: Identity) -> int:
        """Revoke every session of the caller. Returns how many were closed."""
        return self.sessions.close_all_for_user(identity.user_id)

    def _profile_complete(self, user: User) -> bool:
        if self.profiles is None:
            return False
        try:
            return bool(self.profiles.is_profile_complete(user))
        except Exception:
            # Best-effort enrichment; a broken profile service must not block login.
            logger.warning("Profile lookup failed for user_id=%s", user.id, exc_info=True)
            return False
