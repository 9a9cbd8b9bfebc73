"""
API request and response models for TourGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Field names on request bodies follow the public camelCase contract
(passwordConfirm, passwordCurrent); Python attribute names stay snake_case
via aliases.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Principal

# Character cap only; the 72-byte bcrypt limit is enforced by AccountService.
_PASSWORD_MAX = 64

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _RequestModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)


class SignupRequest(_RequestModel):
    """Request body for POST /api/v1/users/signup.

    There is no role field: every signup gets the default role. Extra keys in
    the body (e.g. "role": "admin") are ignored.
    """

    name: Optional[str] = Field(default=None, max_length=100)
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    password_confirm: str = Field(alias="passwordConfirm", min_length=1, max_length=_PASSWORD_MAX)


class LoginRequest(_RequestModel):
    # Empty strings are allowed through so the service can return its own
    # "Please provide email and password!" message.
    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=_PASSWORD_MAX)


class ForgotPasswordRequest(_RequestModel):
    email: str = Field(min_length=1, max_length=255)


class ResetPasswordRequest(_RequestModel):
    """Request body for PATCH /api/v1/users/resetPassword/{token}."""

    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    password_confirm: str = Field(alias="passwordConfirm", min_length=1, max_length=_PASSWORD_MAX)


class UpdatePasswordRequest(_RequestModel):
    """Request body for PATCH /api/v1/users/updateMyPassword."""

    password_current: str = Field(alias="passwordCurrent", min_length=1, max_length=_PASSWORD_MAX)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    password_confirm: str = Field(alias="passwordConfirm", min_length=1, max_length=_PASSWORD_MAX)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Outward representation of a principal. Never carries hashes or reset fields."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: Optional[str] = None
    role: str
    password_changed_at: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_principal(cls, principal: Principal) -> "UserResponse":
        """Factory Method -- the mapping lives here, next to the output model."""
        return cls(**principal.to_public())


class UserData(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserResponse


class AuthResponse(BaseModel):
    """Body returned by signup, login, reset and password update.

    The same token is also set as the httpOnly "jwt" cookie.
    """

    model_config = ConfigDict(frozen=True)

    status: str = "success"
    token: str
    data: UserData


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "success"
    message: str


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "success"
    results: int
    data: list[UserResponse]


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
