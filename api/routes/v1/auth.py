"""
api/routes/v1/auth.py -- Authentication and session REST endpoints.

Routes:
  POST /api/v1/auth/signup       -- create an account; 201 with the public user view
  POST /api/v1/auth/login        -- password login; access token in body, refresh cookie set
  POST /api/v1/auth/refresh      -- new access token from the refresh cookie
  POST /api/v1/auth/logout       -- revoke the cookie's session; clears cookie; always 200
  POST /api/v1/auth/logout-all   -- revoke every session of the caller (requires auth)
  GET  /api/v1/auth/me           -- identity from the access token (requires auth)
  GET  /api/v1/auth/admin/ping   -- admin gate check (requires admin)

Handlers are plain def: FastAPI runs them on its worker threadpool, and the
bcrypt work inside AuthService runs on PasswordHasher's own bounded pool.

AuthError subclasses raised by the service propagate to the exception handler
in api/main.py, which renders the shared error envelope. Handlers never catch
them to build their own error bodies.

Security:
  Cache-Control: no-store on every response that carries a token.
  The refresh token is only ever sent as an httpOnly cookie scoped to the
  auth path; it never appears in a JSON body.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    LoginRequest,
    LoginResponse,
    LogoutAllResponse,
    MeResponse,
    MessageResponse,
    RoleEnum,
    SignupRequest,
    TokenResponse,
    UserResponse,
)
from auth.dependencies import get_identity, require_admin
from auth.errors import InvalidOrExpiredToken
from auth.models import Identity
from auth.service import AuthService
from auth.tokens import clear_refresh_cookie, set_refresh_cookie
from core.config import Settings

# Auth policy:
# - POST /api/v1/auth/signup:      public
# - POST /api/v1/auth/login:       public
# - POST /api/v1/auth/refresh:     refresh cookie
# - POST /api/v1/auth/logout:      refresh cookie, optional -- logout is idempotent
# - POST /api/v1/auth/logout-all:  requires auth (get_identity)
# - GET  /api/v1/auth/me:          requires auth (get_identity)
# - GET  /api/v1/auth/admin/ping:  requires admin (require_admin)
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _expires_in(request: Request) -> int:
    return _settings(request).access_token_expire_seconds


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=UserResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> UserResponse:
    """Create an account with the default user role.

    409 duplicate_email when the (case-insensitive) email is taken.
    """
    user = _service(request).signup(body.email, body.password, body.name)
    return UserResponse.from_public(user)


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email and wrong password produce the same 401 invalid_credentials
    body. On success the access token is returned in the body and the refresh
    token is set as an httpOnly cookie.
    """
    result = _service(request).login(body.email, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=result.access.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_expires_in(request),
            user=UserResponse.from_public(result.user),
        ).model_dump(mode="json"),
    )
    set_refresh_cookie(resp, result.refresh.token, _settings(request))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: Request) -> JSONResponse:
    """Exchange the refresh cookie for a new access token.

    401 invalid_or_expired_token for a missing cookie, an unknown or revoked
    session, or an expired one. With rotation enabled the cookie is replaced.
    """
    settings = _settings(request)
    refresh_token = request.cookies.get(settings.refresh_cookie_name)
    if not refresh_token:
        raise InvalidOrExpiredToken("no refresh cookie")

    result = _service(request).refresh(refresh_token)
    resp = JSONResponse(
        status_code=200,
        content=TokenResponse(
            access_token=result.access.token,
            token_type="bearer",  # noqa: S106 # nosec B106
            expires_in=_expires_in(request),
        ).model_dump(mode="json"),
    )
    if result.refresh is not None:
        set_refresh_cookie(resp, result.refresh.token, settings)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke the session behind the refresh cookie and clear the cookie.

    Always 200: logging out twice, or without a cookie, is not an error.
    """
    settings = _settings(request)
    refresh_token = request.cookies.get(settings.refresh_cookie_name)
    if refresh_token:
        _service(request).logout(refresh_token)
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_refresh_cookie(resp, settings)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout-all", response_model=LogoutAllResponse)
def logout_all(request: Request, identity: Identity = Depends(get_identity)) -> JSONResponse:
    """Revoke every session the caller holds, on every device."""
    closed = _service(request).logout_all(identity)
    resp = JSONResponse(
        content=LogoutAllResponse(message="Logged out everywhere.", sessions_closed=closed).model_dump()
    )
    clear_refresh_cookie(resp, _settings(request))
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(identity: Identity = Depends(get_identity)) -> MeResponse:
    """Return the identity carried by the caller's access token."""
    return MeResponse(user_id=identity.user_id, email=identity.email, role=RoleEnum(identity.role.value))


@router.get("/auth/admin/ping", response_model=MessageResponse)
def admin_ping(identity: Identity = Depends(require_admin)) -> MessageResponse:
    return MessageResponse(message="pong")
