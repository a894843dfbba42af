"""
auth/tokens.py -- JWT issuance/verification and the refresh-token cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (email), uid, role, kind, iat, exp and a random jti. The jti makes
       every token unique, so two logins in the same second still produce
       distinct refresh tokens for the sessions.refresh_token UNIQUE index.

  Kinds: access and refresh tokens share a signing key, so the kind claim is
       checked on every verification. A refresh token presented as a bearer
       credential is rejected as TokenInvalid.

  Expiry: checked here against an injectable clock rather than by jose, so
       tests control time and the boundary is fixed: a token is expired from
       the exact second in its exp claim onwards (now >= exp).

  Statelessness: TokenIssuer holds only immutable configuration. verify() does
       no I/O and is safe to call from any number of request threads.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import TokenExpired, TokenInvalid
from auth.models import IssuedToken, Role, TokenClaims, TokenKind, User
from core.config import Settings

ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Creates and verifies signed access and refresh tokens.

    Usage:
        issuer = TokenIssuer.from_settings(get_settings())
        issued = issuer.issue_access(user)
        claims = issuer.verify(issued.token, TokenKind.ACCESS)
    """

    def __init__(
        self,
        secret_key: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._secret_key = secret_key
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], datetime] = _utcnow) -> TokenIssuer:
        return cls(
            secret_key=settings.secret_key,
            access_ttl=timedelta(seconds=settings.access_token_expire_seconds),
            refresh_ttl=timedelta(seconds=settings.refresh_token_expire_seconds),
            clock=clock,
        )

    def issue_access(self, user: User) -> IssuedToken:
        return self._issue(user, TokenKind.ACCESS, self.access_ttl)

    def issue_refresh(self, user: User) -> IssuedToken:
        return self._issue(user, TokenKind.REFRESH, self.refresh_ttl)

    def verify(self, token: str, expected_kind: TokenKind) -> TokenClaims:
        """Decode token and return its claims.

        Raises TokenInvalid for a bad signature, malformed token, missing
        claims, or a kind other than expected_kind. Raises TokenExpired when
        the current time has reached the exp claim.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[ALGORITHM], options={"verify_exp": False})
        except JWTError as exc:
            raise TokenInvalid(f"decode failed: {exc}") from exc

        try:
            claims = TokenClaims(
                subject=payload["sub"],
                user_id=int(payload["uid"]),
                role=Role(payload["role"]),
                kind=TokenKind(payload["kind"]),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                token_id=payload["jti"],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenInvalid("missing or malformed claims") from exc

        if claims.kind is not expected_kind:
            raise TokenInvalid(f"expected {expected_kind.value} token, got {claims.kind.value}")
        if self._clock() >= claims.expires_at:
            raise TokenExpired()
        return claims

    def _issue(self, user: User, kind: TokenKind, ttl: timedelta) -> IssuedToken:
        # JWT NumericDate has second precision; truncate so expires_at matches exp.
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + ttl
        payload = {
            "sub": user.email,
            "uid": user.id,
            "role": user.role.value,
            "kind": kind.value,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": secrets.token_urlsafe(16),
        }
        return IssuedToken(token=jwt.encode(payload, self._secret_key, algorithm=ALGORITHM), expires_at=expires_at)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_refresh_cookie(response, token: str, settings: Settings) -> None:
    """Write the refresh token as an httpOnly cookie scoped to the auth path.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for the
        state-changing refresh/logout endpoints.
    path: only the auth routes ever receive the refresh token.
    max_age: matches the refresh token lifetime.
    """
    response.set_cookie(
        settings.refresh_cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        path=settings.refresh_cookie_path,
        max_age=settings.refresh_token_expire_seconds,
    )


def clear_refresh_cookie(response, settings: Settings) -> None:
    """Expire the refresh cookie on the client (max-age 0, same path)."""
    response.delete_cookie(
        settings.refresh_cookie_name,
        path=settings.refresh_cookie_path,
        secure=settings.secure_cookies,
        httponly=True,
        samesite="lax",
    )
