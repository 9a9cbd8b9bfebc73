"""
auth/tokens.py -- Session token codec, password hashing, and cookie transport.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only the principal id (sub) and
       the issue/expiry times (iat/exp). Role and email are deliberately left
       out: SessionGuard reloads the principal on every request, so a role
       change or account deletion takes effect immediately. jose verifies the
       HMAC signature with hmac.compare_digest, so the comparison does not
       leak how much of a forged signature matched.

  Passwords: bcrypt directly (no passlib wrapper). Bcrypt's cost factor makes
       brute force of low-entropy secrets expensive. The _DUMMY_HASH constant
       lets AccountService.login() run the same bcrypt work whether or not the
       email exists [C1].

  Reset tokens are NOT hashed here -- see auth/reset.py. They are high-entropy
       and short-lived, so a fast SHA-256 digest is enough and lets the store
       look them up by equality.

  SECRET_KEY and lifetimes come from the injected Settings instance. Nothing
       in this module reads the environment.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

import bcrypt
from jose import JWTError, jwt

from auth.errors import InvalidToken
from auth.models import TokenClaims
from core.config import Settings

logger = logging.getLogger("tourgate.auth")

_ALGORITHM = "HS256"

AUTH_COOKIE = "jwt"

# bcrypt only accepts this many bytes of UTF-8 input.
MAX_PASSWORD_BYTES = 72


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


class CredentialVerifier:
    """Slow, salted one-way hashing for account passwords.

    rounds is the bcrypt cost factor. Production code uses the library
    default; tests pass the minimum (4) to keep the suite fast.
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt hash of the given plaintext password.

        bcrypt rejects input longer than MAX_PASSWORD_BYTES with ValueError.
        AccountService refuses such passwords with a ValidationError before
        they reach this method.
        """
        return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plaintext: str, hashed: str | None) -> bool:
        """Return True if plaintext matches hashed. Never raises on mismatch or a malformed hash."""
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = CredentialVerifier().hash("tourgate_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


class TokenCodec:
    """Signs and verifies compact, time-bound bearer tokens.

    clock returns the current aware UTC datetime and only affects the iat/exp
    stamped at issue time. Expiry on verify is checked by jose against the
    real clock.
    """

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = utcnow) -> None:
        self._settings = settings
        self._clock = clock

    @property
    def lifetime_seconds(self) -> int:
        return self._settings.token_expire_seconds

    def issue(self, principal_id: int) -> str:
        """Encode a signed JWT for principal_id, valid for the configured lifetime."""
        # iat keeps sub-second precision (RFC 7519 NumericDate allows it) so
        # SessionGuard can order it exactly against password_changed_at.
        issued_at = round(self._clock().timestamp(), 6)
        payload = {
            "sub": str(principal_id),
            "iat": issued_at,
            "exp": int(issued_at) + self.lifetime_seconds,
        }
        return jwt.encode(payload, self._settings.secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Decode and verify a JWT.

        Raises InvalidToken for a bad signature, an expired token, or missing
        claims. All failure reasons collapse into the same exception so the
        caller cannot tell them apart.
        """
        try:
            payload = jwt.decode(token, self._settings.secret_key, algorithms=[_ALGORITHM])
            return TokenClaims(principal_id=int(payload["sub"]), issued_at=float(payload["iat"]))
        except (JWTError, KeyError, TypeError, ValueError) as exc:
            logger.debug("Session token rejected (%s)", type(exc).__name__)
            raise InvalidToken() from exc


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, settings: Settings) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS when PRODUCTION=true.
    max_age: matches the JWT lifetime so both expire together.
    """
    response.set_cookie(
        AUTH_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.production,
        max_age=settings.token_expire_seconds,
    )


def clear_auth_cookie(response) -> None:
    """Overwrite the session cookie with a dummy value that expires in 10 seconds.

    The browser keeps the cookie name but the value no longer verifies, so the
    next request is treated as logged out.
    """
    response.set_cookie(AUTH_COOKIE, value="loggedout", httponly=True, samesite="lax", max_age=10)
