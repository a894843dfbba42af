"""
auth/errors.py -- Exception taxonomy for the auth core.

Every failure the core reports is an AuthError subclass carrying a stable
machine-readable code, the HTTP status the boundary should use, and a fixed
public message. api/main.py renders them with the shared ErrorResponse
envelope; nothing in auth/ knows about HTTP beyond the status number.

InvalidCredentials and InvalidOrExpiredToken deliberately use one message for
every root cause so responses cannot be used to enumerate accounts or guess
which tokens exist.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    code = "auth_error"
    status_code = 400
    message = "Authentication error."

    def __init__(self, detail: str | None = None) -> None:
        # detail is for logs only; it is never rendered to clients.
        super().__init__(detail or self.message)
        self.detail = detail


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    status_code = 409
    message = "An account with that email already exists."


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = 401
    message = "Invalid email or password."


class TokenInvalid(AuthError):
    code = "token_invalid"
    status_code = 401
    message = "Token is invalid."


class TokenExpired(AuthError):
    code = "token_expired"
    status_code = 401
    message = "Token has expired."


class InvalidOrExpiredToken(AuthError):
    code = "invalid_or_expired_token"
    status_code = 401
    message = "Invalid or expired refresh token."


class Forbidden(AuthError):
    code = "forbidden"
    status_code = 403
    message = "Admin access required."


class PasswordTooLong(AuthError):
    code = "password_too_long"
    status_code = 422
    message = "Password must be at most 72 bytes when UTF-8 encoded."
