"""
auth/reset.py -- One-time, time-limited password reset tokens.

Lifecycle of a reset token:
  issue()    -> random plaintext handed to the caller for out-of-band delivery;
                only SHA-256(plaintext) and an expiry are written to the principal.
  consume()  -> plaintext presented back; matched by hash + expiry, then the
                new password is written and both reset fields are cleared in
                one UPDATE guarded by the same hash + expiry match.
  rollback() -> reset fields cleared without touching the password, for when
                the user was never told about the token.

Hashing: unsalted SHA-256, so the store can find the principal by digest
equality. The plaintext is 256 bits of randomness and lives for minutes.

Concurrency: two issue() calls for the same principal race on the same two
columns; the last write wins and the earlier plaintext silently stops
matching. That is accepted behaviour.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta

from auth.errors import ExternalServiceError, TokenInvalidOrExpired
from auth.models import Principal
from auth.store import UserStore
from auth.tokens import utcnow
from core.config import Settings

logger = logging.getLogger("tourgate.reset")


def hash_reset_token(plaintext: str) -> str:
    """Return the hex SHA-256 digest stored in place of a reset token."""
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


class PasswordResetManager:
    def __init__(self, store: UserStore, settings: Settings, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock

    def issue(self, principal: Principal) -> str:
        """Generate a reset token for principal, persist its hash and expiry, return the plaintext.

        Overwrites any outstanding token for the same principal.
        """
        plaintext = secrets.token_hex(32)
        principal.password_reset_token_hash = hash_reset_token(plaintext)
        principal.password_reset_expires_at = self._clock() + timedelta(
            minutes=self._settings.reset_token_expire_minutes
        )
        self._store.save(principal, validate=False)
        logger.info("Password reset token issued for principal %s", principal.id)
        return plaintext

    def consume(self, plaintext: str, set_password: Callable[[Principal], None]) -> Principal:
        """Redeem a reset token and set a new password in one update.

        set_password(principal) must put the new password_hash and
        password_changed_at on the principal in memory; it may raise
        ValidationError to reject the new password. The new credential and the
        cleared reset fields are then written by one conditional UPDATE that
        re-checks the hash and expiry, so a token redeems at most once even
        under concurrent requests.

        Raises TokenInvalidOrExpired if no principal holds a matching,
        unexpired hash. Nothing is written on any failure.
        """
        token_hash = hash_reset_token(plaintext)
        principal = self._store.find_by_reset_token(token_hash, self._clock())
        if principal is None:
            raise TokenInvalidOrExpired()

        set_password(principal)
        # The lookup above is only a pre-check; redeem_reset() re-matches the
        # hash and expiry inside the UPDATE so only one caller can win.
        if not self._store.redeem_reset(principal, token_hash, self._clock()):
            raise TokenInvalidOrExpired()
        principal.password_reset_token_hash = None
        principal.password_reset_expires_at = None
        logger.info("Password reset completed for principal %s", principal.id)
        return principal

    def rollback(self, principal: Principal) -> None:
        """Clear the outstanding reset token without changing the password.

        A failing store is logged and swallowed: the caller is already
        reporting an error, and the token expires on its own.
        """
        principal.password_reset_token_hash = None
        principal.password_reset_expires_at = None
        try:
            self._store.save(principal, validate=False)
        except ExternalServiceError:
            logger.warning(
                "Could not roll back reset token for principal %s; it will expire at its deadline",
                principal.id,
            )
