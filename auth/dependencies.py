"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token sources are checked in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. "jwt" cookie -- set by signup/login/reset for browser clients.

Both converge on SessionGuard.resolve(), so cookie and header tokens get the
same signature, existence and stale-password checks.

get_current_user() raises Unauthenticated (401) on any failure.
restrict_to(*roles) builds a dependency that also runs RoleGate (403).

The resolved Principal is handed to the route as a parameter. Nothing is
attached to the request object.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.errors import Unauthenticated
from auth.guard import RoleGate, SessionGuard, extract_bearer
from auth.models import Principal, Role
from auth.tokens import AUTH_COOKIE


def get_current_user(request: Request) -> Principal:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: Principal = Depends(get_current_user)): ...
    """
    guard: SessionGuard = request.app.state.session_guard

    if extract_bearer(request.headers) is not None:
        return guard.authenticate(request.headers)

    token = request.cookies.get(AUTH_COOKIE)
    if not token:
        raise Unauthenticated("You are not logged in! Please log in to get access.")
    return guard.resolve(token)


def restrict_to(*roles: str | Role) -> Callable[[Principal], Principal]:
    """Require one of roles. Raises 401 if unauthenticated, 403 if the role is not allowed.

    Use as a FastAPI dependency:
        @router.get("/users")
        async def route(user: Principal = Depends(restrict_to(Role.admin, Role.lead))): ...
    """
    gate = RoleGate(*roles)

    def dependency(principal: Principal = Depends(get_current_user)) -> Principal:
        gate.authorize(principal)
        return principal

    return dependency
