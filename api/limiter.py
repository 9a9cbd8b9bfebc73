"""
api/limiter.py -- Shared slowapi rate limiter and the limits applied to auth routes.

api/main.py mounts the limiter as middleware; api/routes/v1/auth.py applies
login_rate_limit with @limiter.limit() to the credential-guessing surfaces
(login and forgotPassword). All routes share the one in-memory counter store,
keyed by client IP.

Tests switch it off with `limiter.enabled = False`.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Limit string for login and forgotPassword, read from LOGIN_RATE_LIMIT at request time."""
    return get_settings().login_rate_limit
