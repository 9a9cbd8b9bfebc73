"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
domain shape; the store and services do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    user = "user"
    guide = "guide"
    lead = "lead"
    admin = "admin"


# Fields that must never leave the process in any outward representation.
SECRET_FIELDS = frozenset({"password_hash", "password_reset_token_hash", "password_reset_expires_at"})


@dataclass
class Principal:
    """The identity behind a session (the "user" record).

    password_hash is None whenever the principal was loaded without its
    secret (UserStore.find_by_email(..., include_secret=False) and
    find_by_id()). Code that needs to compare credentials must ask the store
    for the secret explicitly.

    password_changed_at stays None until the first credential change after
    signup. SessionGuard rejects any session token whose iat predates it.

    password_reset_token_hash / password_reset_expires_at describe the single
    outstanding reset token, if any. Issuing a new one overwrites both.
    """

    email: str
    role: str = Role.user.value
    name: str | None = None
    id: int | None = None
    password_hash: str | None = None
    password_changed_at: datetime | None = None
    password_reset_token_hash: str | None = None
    password_reset_expires_at: datetime | None = None
    created_at: datetime | None = None

    def to_public(self) -> dict:
        """Return the outward representation: every field except the secrets."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "password_changed_at": self.password_changed_at.isoformat() if self.password_changed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a session token."""

    principal_id: int
    issued_at: float  # epoch seconds with microseconds, straight from the JWT iat claim


@dataclass
class AuthResult:
    """What a successful signup/login/reset hands back to the transport layer."""

    principal: Principal
    token: str
