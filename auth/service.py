"""
auth/service.py -- Account flows: signup, login, password update, forgot/reset.

AccountService composes the lower-level pieces (TokenCodec,
CredentialVerifier, PasswordResetManager, UserStore) and is the only thing
route handlers call for credential changes. Every method either returns a
value or raises one of the auth.errors classes; there is no partial success.

Security notes:
  [C1] login() always runs bcrypt, against a dummy hash when the email is
       unknown, and raises the same AuthenticationError for an unknown email
       and a wrong password. Neither the message nor the timing reveals which.

  update_password() reloads the stored hash and re-checks the current
  password even though the caller is already authenticated. A stolen
  session token alone is not enough to take over the account.

  request_password_reset() compensates a failed delivery by clearing the
  reset token before surfacing the error, so no token is ever live that the
  user was not told about.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from auth.errors import AuthenticationError, ExternalServiceError, NotFoundError, ValidationError
from auth.models import AuthResult, Principal
from auth.reset import PasswordResetManager
from auth.store import UserStore
from auth.tokens import _DUMMY_HASH, MAX_PASSWORD_BYTES, CredentialVerifier, TokenCodec, utcnow
from core.config import Settings

logger = logging.getLogger("tourgate.auth")

_BAD_CREDENTIALS = "Incorrect email or password"

# Delivery collaborator: (principal, plaintext reset token) -> None, raising on failure.
Deliver = Callable[[Principal, str], None]


class AccountService:
    def __init__(
        self,
        store: UserStore,
        settings: Settings,
        *,
        codec: TokenCodec | None = None,
        verifier: CredentialVerifier | None = None,
        resets: PasswordResetManager | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock
        self.codec = codec or TokenCodec(settings, clock=clock)
        self.verifier = verifier or CredentialVerifier()
        self.resets = resets or PasswordResetManager(store, settings, clock=clock)

    # ------------------------------------------------------------------
    # Password policy
    # ------------------------------------------------------------------

    @staticmethod
    def _check_confirmation(password: str | None, password_confirm: str | None) -> None:
        if not password:
            raise ValidationError("Please provide a password")
        if password != password_confirm:
            raise ValidationError("Passwords are not the same!")

    def _check_strength(self, password: str) -> None:
        minimum = self._settings.password_min_length
        if len(password) < minimum:
            raise ValidationError(f"A password must have at least {minimum} characters")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"A password must be at most {MAX_PASSWORD_BYTES} bytes long")

    def _set_password(self, principal: Principal, password: str) -> None:
        """Validate, hash and stamp a new password on principal (in memory only)."""
        self._check_strength(password)
        principal.password_hash = self.verifier.hash(password)
        principal.password_changed_at = self._clock()

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    def signup(self, email: str, password: str, password_confirm: str, name: str | None = None) -> AuthResult:
        """Create a principal with the default role and log it in."""
        self._check_confirmation(password, password_confirm)
        self._check_strength(password)

        principal = self._store.create(
            {"email": email, "name": name, "password_hash": self.verifier.hash(password)}
        )
        logger.info("Principal %s signed up", principal.id)
        return AuthResult(principal=principal, token=self.codec.issue(principal.id))

    def login(self, email: str, password: str) -> AuthResult:
        """Check an email/password pair and issue a session token."""
        if not email or not password:
            raise ValidationError("Please provide email and password!")

        principal = self._store.find_by_email(email, include_secret=True)
        if principal is None:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            self.verifier.verify(password, _DUMMY_HASH)
            raise AuthenticationError(_BAD_CREDENTIALS)
        if not self.verifier.verify(password, principal.password_hash):
            raise AuthenticationError(_BAD_CREDENTIALS)

        return AuthResult(principal=principal, token=self.codec.issue(principal.id))

    def request_password_reset(self, email: str, deliver: Deliver) -> None:
        """Issue a reset token for email and hand it to deliver().

        If deliver() raises, the token is rolled back and ExternalServiceError
        is raised to the caller.
        """
        principal = self._store.find_by_email(email or "")
        if principal is None:
            raise NotFoundError("There is no user with that email address.")

        token = self.resets.issue(principal)
        try:
            deliver(principal, token)
        except Exception as exc:
            logger.error("Reset token delivery failed for principal %s: %s", principal.id, type(exc).__name__)
            self.resets.rollback(principal)
            raise ExternalServiceError("There was an error sending the email. Try again later!") from exc

    def reset_password(self, token: str, new_password: str, new_password_confirm: str) -> AuthResult:
        """Redeem a reset token, set the new password, and log the principal in."""
        self._check_confirmation(new_password, new_password_confirm)
        principal = self.resets.consume(token, lambda p: self._set_password(p, new_password))
        return AuthResult(principal=principal, token=self.codec.issue(principal.id))

    def update_password(
        self,
        principal: Principal,
        current_password: str,
        new_password: str,
        new_password_confirm: str,
    ) -> AuthResult:
        """Change the password of an authenticated principal after re-checking the current one."""
        stored = self._store.find_by_id(principal.id, include_secret=True)
        if stored is None:
            raise AuthenticationError("The user belonging to this token no longer exists.")
        if not self.verifier.verify(current_password or "", stored.password_hash):
            raise AuthenticationError("Your current password is wrong")

        self._check_confirmation(new_password, new_password_confirm)
        self._set_password(stored, new_password)
        self._store.save(stored, validate=True)
        logger.info("Password updated for principal %s", stored.id)
        return AuthResult(principal=stored, token=self.codec.issue(stored.id))
