"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Protected routes authenticate with an access token in the
Authorization: Bearer <token> header. Verification is signature + expiry only;
no storage round trip happens for access tokens.

The result is an explicit Identity that route handlers receive as a
parameter and pass down. Nothing below the boundary reads "the current user"
from ambient state.

get_identity() raises the AuthError from verification (401).
require_admin() wraps get_identity() and raises Forbidden (403) for non-admins.

Layer rule: may import from fastapi because this module is part of the
FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import Forbidden, TokenInvalid
from auth.models import Identity, Role, TokenKind
from auth.tokens import TokenIssuer


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_identity(request: Request) -> Identity:
    """Require a valid access token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_identity)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise TokenInvalid("missing bearer token")
    issuer: TokenIssuer = request.app.state.token_issuer
    claims = issuer.verify(token, TokenKind.ACCESS)
    return Identity(user_id=claims.user_id, email=claims.subject, role=claims.role)


def has_admin_rights(role: Role) -> bool:
    """Exhaustive match over Role. A new member must be handled here explicitly."""
    if role is Role.ADMIN:
        return True
    if role is Role.USER:
        return False
    raise ValueError(f"Unhandled role: {role!r}")


def require_admin(request: Request) -> Identity:
    """Require the admin role. 401 if unauthenticated, 403 if not admin."""
    identity = get_identity(request)
    if not has_admin_rights(identity.role):
        raise Forbidden(f"user_id={identity.user_id} is not admin")
    return identity
