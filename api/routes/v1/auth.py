"""
api/routes/v1/auth.py -- Authentication and account REST endpoints.

Routes:
  POST  /api/v1/users/signup                 -- create account; sets JWT cookie
  POST  /api/v1/users/login                  -- password login; sets JWT cookie
  GET   /api/v1/users/logout                 -- overwrites the cookie
  POST  /api/v1/users/forgotPassword         -- emails a reset link
  PATCH /api/v1/users/resetPassword/{token}  -- redeem reset token; sets JWT cookie
  PATCH /api/v1/users/updateMyPassword       -- change password (requires auth)
  GET   /api/v1/users/me                     -- current user info (requires auth)
  GET   /api/v1/users                        -- list users (admin or lead)

Security:
  [H2] POST /login and POST /forgotPassword are rate-limited per IP.
  [C1] AccountService.login() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries a token.

Errors: handlers let auth.errors exceptions propagate; api/main.py renders
them into the standard error envelope with the right status.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ResetPasswordRequest,
    SignupRequest,
    UpdatePasswordRequest,
    UserData,
    UserListResponse,
    UserResponse,
)
from auth.dependencies import get_current_user, restrict_to
from auth.email import reset_link_sender
from auth.models import AuthResult, Principal, Role
from auth.service import AccountService
from auth.store import UserStore
from auth.tokens import clear_auth_cookie, set_auth_cookie

# Auth policy:
# - POST  /users/signup, /users/login, /users/forgotPassword:  public
# - PATCH /users/resetPassword/{token}:                        public (token is the credential)
# - GET   /users/logout:                                       public -- clearing a cookie needs no prior auth
# - PATCH /users/updateMyPassword, GET /users/me:              requires auth (get_current_user)
# - GET   /users:                                              requires admin or lead (restrict_to)
router = APIRouter()


def _send_token(request: Request, result: AuthResult, status_code: int) -> JSONResponse:
    """Return the token in the body and as the httpOnly session cookie."""
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            token=result.token,
            data=UserData(user=UserResponse.from_principal(result.principal)),
        ).model_dump(),
    )
    set_auth_cookie(resp, result.token, request.app.state.settings)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/users/signup", response_model=AuthResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Create an account with the default role and log it in."""
    service: AccountService = request.app.state.account_service
    result = service.signup(body.email, body.password, body.password_confirm, name=body.name)
    return _send_token(request, result, 201)


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/users/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Wrong email and wrong password produce the same 401 body.
    """
    service: AccountService = request.app.state.account_service
    result = service.login(body.email, body.password)
    return _send_token(request, result, 200)


@router.get("/users/logout", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Replace the session cookie with a short-lived dummy value."""
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_auth_cookie(resp)
    return resp


@limiter.limit(login_rate_limit)  # [H2]
@router.post("/users/forgotPassword", response_model=MessageResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Email a single-use reset link for the account with this address."""
    service: AccountService = request.app.state.account_service
    settings = request.app.state.settings
    deliver = reset_link_sender(
        request.app.state.email_service,
        str(request.base_url),
        settings.reset_token_expire_minutes,
    )
    service.request_password_reset(body.email, deliver)
    return MessageResponse(message="Token sent to email!")


@router.patch("/users/resetPassword/{token}", response_model=AuthResponse)
def reset_password(request: Request, token: str, body: ResetPasswordRequest) -> JSONResponse:
    """Redeem a reset token, set the new password, and log the user in."""
    service: AccountService = request.app.state.account_service
    result = service.reset_password(token, body.password, body.password_confirm)
    return _send_token(request, result, 200)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.patch("/users/updateMyPassword", response_model=AuthResponse)
def update_my_password(
    request: Request,
    body: UpdatePasswordRequest,
    current_user: Principal = Depends(get_current_user),
) -> JSONResponse:
    """Change the password after re-checking the current one.

    Every token issued before this call stops working; the response carries
    a fresh one.
    """
    service: AccountService = request.app.state.account_service
    result = service.update_password(current_user, body.password_current, body.password, body.password_confirm)
    return _send_token(request, result, 200)


@router.get("/users/me", response_model=UserResponse)
async def me(current_user: Principal = Depends(get_current_user)) -> UserResponse:
    """Return the currently authenticated user."""
    return UserResponse.from_principal(current_user)


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    current_user: Principal = Depends(restrict_to(Role.admin, Role.lead)),
) -> UserListResponse:
    """List all accounts. Admin and lead only."""
    user_store: UserStore = request.app.state.user_store
    users = [UserResponse.from_principal(p) for p in user_store.list_principals()]
    return UserListResponse(results=len(users), data=users)
