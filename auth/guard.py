"""
auth/guard.py -- Session authentication and role authorization.

SessionGuard turns request headers into a resolved Principal or raises
Unauthenticated. It is framework-agnostic: it reads from any mapping of
header names to values. auth/dependencies.py adapts it to FastAPI.

Stale-session invalidation: every successful password change stamps
password_changed_at. A token whose iat is earlier than that stamp is
rejected, which retires every session issued before the change without a
revocation list. TokenCodec stamps iat with microsecond precision, the
same precision the store keeps for password_changed_at, so the comparison is
exact: a token issued even a fraction of a second before the change is
rejected, and the fresh token issued right after the change is accepted.

RoleGate is a pure check on an already-resolved Principal.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from auth.errors import Forbidden, InvalidToken, Unauthenticated
from auth.models import Principal, Role
from auth.store import UserStore
from auth.tokens import TokenCodec

_BEARER_PREFIX = "Bearer "


def extract_bearer(headers: Mapping[str, str]) -> str | None:
    """Return the token from an 'Authorization: Bearer <token>' header, or None."""
    value = headers.get("Authorization") or headers.get("authorization") or ""
    if not value.startswith(_BEARER_PREFIX):
        return None
    token = value[len(_BEARER_PREFIX) :].strip()
    return token or None


def changed_password_after(principal: Principal, issued_at: float) -> bool:
    """True if the principal's credential changed after a token issued at issued_at."""
    if principal.password_changed_at is None:
        return False
    return round(principal.password_changed_at.timestamp(), 6) > issued_at


class SessionGuard:
    def __init__(self, codec: TokenCodec, store: UserStore) -> None:
        self._codec = codec
        self._store = store

    def authenticate(self, headers: Mapping[str, str]) -> Principal:
        """Authenticate a request from its headers. Raises Unauthenticated on any failure."""
        token = extract_bearer(headers)
        if token is None:
            raise Unauthenticated("You are not logged in! Please log in to get access.")
        return self.resolve(token)

    def resolve(self, token: str) -> Principal:
        """Verify a raw session token and return the principal it belongs to.

        Checks in order: signature/expiry, principal still exists, token not
        older than the last password change.
        """
        try:
            claims = self._codec.verify(token)
        except InvalidToken as exc:
            raise Unauthenticated(exc.message) from exc

        principal = self._store.find_by_id(claims.principal_id)
        if principal is None:
            raise Unauthenticated("The user belonging to this token no longer exists.")

        if changed_password_after(principal, claims.issued_at):
            raise Unauthenticated("User recently changed password. Please log in again.")

        return principal


def authorize(principal: Principal, allowed_roles: Iterable[str]) -> None:
    """Raise Forbidden unless principal.role is one of allowed_roles."""
    allowed = {r.value if isinstance(r, Role) else r for r in allowed_roles}
    if principal.role not in allowed:
        raise Forbidden()


class RoleGate:
    """A reusable authorize() bound to one role set.

    Usage:
        leads_only = RoleGate(Role.admin, Role.lead)
        leads_only.authorize(principal)
    """

    def __init__(self, *allowed_roles: str | Role) -> None:
        self.allowed_roles = frozenset(r.value if isinstance(r, Role) else r for r in allowed_roles)

    def authorize(self, principal: Principal) -> None:
        authorize(principal, self.allowed_roles)
