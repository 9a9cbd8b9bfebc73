"""
auth/errors.py -- Exception taxonomy for the auth core.

Every outcome a caller has to branch on is its own exception class carrying
an HTTP status_code and a stable error_code. api/main.py maps the whole
family to the standard error envelope with one handler, so route code just
lets these propagate.

Messages are user-safe by construction: they never include hash values,
query shapes, or collaborator error text. Internal detail goes to the log,
not into the exception message.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for auth-layer errors mapped to HTTP responses."""

    status_code: int = 400
    error_code: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AuthError):
    """Malformed or missing input (400). Returned to the caller, never logged as a fault."""

    status_code = 400
    error_code = "validation_error"


class TokenInvalidOrExpired(ValidationError):
    """Reset token does not match an outstanding hash or has expired (400)."""

    error_code = "token_invalid"

    def __init__(self, message: str = "Token is invalid or has expired") -> None:
        super().__init__(message)


class AuthenticationError(AuthError):
    """Bad credentials, or a missing/invalid/expired/stale session (401)."""

    status_code = 401
    error_code = "unauthorized"


class Unauthenticated(AuthenticationError):
    """Raised by SessionGuard when a request carries no usable session."""


class InvalidToken(AuthenticationError):
    """Session token failed signature or expiry checks."""

    error_code = "invalid_token"

    def __init__(self, message: str = "Invalid token. Please log in again.") -> None:
        super().__init__(message)


class Forbidden(AuthError):
    """Authenticated, but the principal's role is not allowed (403)."""

    status_code = 403
    error_code = "forbidden"

    def __init__(self, message: str = "You do not have permission to perform this action") -> None:
        super().__init__(message)


class NotFoundError(AuthError):
    status_code = 404
    error_code = "not_found"


class ExternalServiceError(AuthError):
    """The user store or the email collaborator failed (500)."""

    status_code = 500
    error_code = "external_service_error"
