"""
auth/store.py -- SQLAlchemy Core persistence layer for principals.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_principal is the mapper. Services and
route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  password_hash is only read when the caller asks for it (include_secret=True).
  save() never writes a None password_hash, so saving a principal that was
  loaded without its secret leaves the stored hash untouched.

Error contract:
  Duplicate email on create -> ValidationError (a caller mistake, 400).
  Any other database failure -> ExternalServiceError (500). The original
  SQLAlchemy exception is chained for the log, never shown to the client.

Timestamps are stored as fixed-width UTC ISO 8601 strings so SQL string
comparison orders them correctly (find_by_reset_token relies on this).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import ExternalServiceError, ValidationError
from auth.models import Principal, Role

logger = logging.getLogger("tourgate.auth")

_DEFAULT_DB_URL = "sqlite:///tourgate_auth.db"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(100)),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("password_hash", Text, nullable=False),
    Column("password_changed_at", String(32)),
    Column("password_reset_token_hash", String(64), index=True),  # SHA-256 hex
    Column("password_reset_expires_at", String(32)),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def validate_principal(principal: Principal) -> None:
    """Field-level checks run by create() and save(validate=True).

    Raises ValidationError with a user-facing message for the first problem found.
    """
    if not principal.email:
        raise ValidationError("Please provide your email")
    if not _EMAIL_RE.match(principal.email):
        raise ValidationError("Please provide a valid email")
    if principal.name is not None and len(principal.name) > 100:
        raise ValidationError("A name must have at most 100 characters")
    if principal.role not in {r.value for r in Role}:
        raise ValidationError(f"Invalid role: {principal.role}")


@contextmanager
def _db_errors(action: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into the auth error taxonomy."""
    try:
        yield
    except IntegrityError as exc:
        logger.info("User store rejected %s: integrity error", action)
        raise ValidationError("Duplicate field value: email. Please use another value!") from exc
    except SQLAlchemyError as exc:
        logger.error("User store failure during %s: %s", action, exc)
        raise ExternalServiceError("The user store is unavailable. Try again later!") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for Principal entities.

    Usage:
        store = UserStore()
        p = store.create({"email": "a@x.com", "password_hash": verifier.hash("secret123")})
        p = store.find_by_email("a@x.com", include_secret=True)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_id(self, principal_id: int, include_secret: bool = False) -> Principal | None:
        """Look up a principal by primary key. Returns None if not found."""
        with _db_errors("find_by_id"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == principal_id)).fetchone()
        return _row_to_principal(row, include_secret) if row is not None else None

    def find_by_email(self, email: str, include_secret: bool = False) -> Principal | None:
        """Look up a principal by email (case-insensitive). Returns None if not found."""
        with _db_errors("find_by_email"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.strip().lower())).fetchone()
        return _row_to_principal(row, include_secret) if row is not None else None

    def find_by_reset_token(self, token_hash: str, now: datetime) -> Principal | None:
        """Return the principal whose outstanding reset hash matches and has not expired."""
        with _db_errors("find_by_reset_token"), self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(
                    (_users.c.password_reset_token_hash == token_hash)
                    & (_users.c.password_reset_expires_at > _to_iso(now))
                )
            ).fetchone()
        return _row_to_principal(row, include_secret=False) if row is not None else None

    def list_principals(self) -> list[Principal]:
        """Return all principals ordered by email, without secrets."""
        with _db_errors("list_principals"), self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_principal(r, include_secret=False) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, fields: dict) -> Principal:
        """Validate and insert a new principal; return it with its assigned id.

        Accepted fields: email, password_hash, name, role. Unknown keys are
        ignored so a caller cannot smuggle reset or timestamp fields in.
        """
        principal = Principal(
            email=(fields.get("email") or "").strip().lower(),
            name=fields.get("name"),
            role=fields.get("role") or Role.user.value,
            password_hash=fields.get("password_hash"),
        )
        validate_principal(principal)
        if not principal.password_hash:
            raise ValidationError("Please provide a password")

        principal.created_at = datetime.now(timezone.utc)
        with _db_errors("create"), self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=principal.email,
                    name=principal.name,
                    role=principal.role,
                    password_hash=principal.password_hash,
                    created_at=_to_iso(principal.created_at),
                )
            )
            conn.commit()
        principal.id = result.inserted_primary_key[0]
        return principal

    def save(self, principal: Principal, validate: bool = True) -> None:
        """Persist every mutable field of an existing principal in one UPDATE.

        validate=False skips field validation; used for reset-token
        bookkeeping, where only the reset fields changed.
        """
        if principal.id is None:
            raise ValueError("save() requires a principal that has been created")
        if validate:
            validate_principal(principal)

        values = {
            "email": principal.email,
            "name": principal.name,
            "role": principal.role,
            "password_changed_at": _to_iso(principal.password_changed_at),
            "password_reset_token_hash": principal.password_reset_token_hash,
            "password_reset_expires_at": _to_iso(principal.password_reset_expires_at),
        }
        if principal.password_hash is not None:
            values["password_hash"] = principal.password_hash

        with _db_errors("save"), self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == principal.id).values(**values))
            conn.commit()

    def redeem_reset(self, principal: Principal, token_hash: str, now: datetime) -> bool:
        """Write the new credential and clear the reset fields, but only while token_hash is still live.

        One conditional UPDATE: the row must still hold token_hash with an
        expiry after now. Returns False when another redemption, a newer
        issue, or expiry got there first; nothing is written in that case.
        """
        if principal.id is None or principal.password_hash is None:
            raise ValueError("redeem_reset() requires a created principal carrying its new password_hash")
        validate_principal(principal)

        with _db_errors("redeem_reset"), self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(
                    (_users.c.id == principal.id)
                    & (_users.c.password_reset_token_hash == token_hash)
                    & (_users.c.password_reset_expires_at > _to_iso(now))
                )
                .values(
                    password_hash=principal.password_hash,
                    password_changed_at=_to_iso(principal.password_changed_at),
                    password_reset_token_hash=None,
                    password_reset_expires_at=None,
                )
            )
            conn.commit()
        return result.rowcount == 1

    def delete(self, principal_id: int) -> bool:
        """Remove a principal. Returns True if a row was deleted.

        Account deletion belongs to the user-management layer; the auth core
        only has to cope with it (SessionGuard rejects tokens for missing ids).
        """
        with _db_errors("delete"), self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == principal_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_principal(row, include_secret: bool) -> Principal:
    return Principal(
        id=row.id,
        email=row.email,
        name=row.name,
        role=row.role,
        password_hash=row.password_hash if include_secret else None,
        password_changed_at=_from_iso(row.password_changed_at),
        password_reset_token_hash=row.password_reset_token_hash,
        password_reset_expires_at=_from_iso(row.password_reset_expires_at),
        created_at=_from_iso(row.created_at),
    )
