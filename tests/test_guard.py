"""
tests/test_guard.py -- Unit tests for SessionGuard and RoleGate.

Covers:
  - bearer extraction: missing, wrong scheme, empty value, lowercase header key
  - valid token resolves to the principal
  - forged/expired token, deleted principal -> Unauthenticated
  - stale-session invalidation: token older than password_changed_at is rejected,
    token issued after the change is accepted
  - RoleGate: allowed role passes, other roles get Forbidden (403)
"""

from __future__ import annotations

import pytest

from auth.errors import Forbidden, Unauthenticated
from auth.guard import RoleGate, authorize, changed_password_after, extract_bearer
from auth.models import Principal, Role


@pytest.fixture
def principal(store, verifier):
    return store.create({"email": "a@x.com", "password_hash": verifier.hash("secret123")})


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestExtractBearer:
    def test_reads_bearer_value(self) -> None:
        assert extract_bearer({"Authorization": "Bearer abc.def"}) == "abc.def"
        assert extract_bearer({"authorization": "Bearer abc.def"}) == "abc.def"

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": ""}, {"Authorization": "Basic Zm9vOmJhcg=="}, {"Authorization": "Bearer "}],
    )
    def test_missing_or_malformed(self, headers: dict) -> None:
        assert extract_bearer(headers) is None


class TestSessionGuard:
    def test_valid_token_resolves_principal(self, guard, service, principal) -> None:
        resolved = guard.authenticate(_bearer(service.codec.issue(principal.id)))
        assert resolved.id == principal.id
        assert resolved.email == "a@x.com"
        assert resolved.password_hash is None

    def test_missing_header(self, guard) -> None:
        with pytest.raises(Unauthenticated, match="not logged in"):
            guard.authenticate({})

    def test_wrong_scheme(self, guard, service, principal) -> None:
        with pytest.raises(Unauthenticated):
            guard.authenticate({"Authorization": f"Token {service.codec.issue(principal.id)}"})

    def test_forged_token(self, guard, service, principal) -> None:
        token = service.codec.issue(principal.id)
        with pytest.raises(Unauthenticated):
            guard.authenticate(_bearer(token[:-2] + ("AA" if token[-2:] != "AA" else "BB")))

    def test_deleted_principal(self, guard, service, store, principal) -> None:
        token = service.codec.issue(principal.id)
        store.delete(principal.id)
        with pytest.raises(Unauthenticated, match="no longer exists"):
            guard.authenticate(_bearer(token))

    def test_token_issued_before_password_change_is_rejected(self, guard, service, store, principal, clock) -> None:
        old_token = service.codec.issue(principal.id)

        clock.advance(minutes=5)
        stored = store.find_by_id(principal.id)
        stored.password_changed_at = clock()
        store.save(stored)

        with pytest.raises(Unauthenticated, match="recently changed password"):
            guard.authenticate(_bearer(old_token))

        new_token = service.codec.issue(principal.id)
        assert guard.authenticate(_bearer(new_token)).id == principal.id

    def test_token_from_earlier_in_the_same_second_is_rejected(self, guard, service, store, principal, clock) -> None:
        clock.now = clock.now.replace(microsecond=200_000)
        old_token = service.codec.issue(principal.id)

        clock.advance(milliseconds=500)
        stored = store.find_by_id(principal.id)
        stored.password_changed_at = clock()
        store.save(stored)

        with pytest.raises(Unauthenticated, match="recently changed password"):
            guard.authenticate(_bearer(old_token))
        assert guard.authenticate(_bearer(service.codec.issue(principal.id))).id == principal.id

    def test_resolve_accepts_raw_token(self, guard, service, principal) -> None:
        assert guard.resolve(service.codec.issue(principal.id)).id == principal.id


class TestChangedPasswordAfter:
    def test_never_changed(self) -> None:
        assert changed_password_after(Principal(email="a@x.com"), 0) is False

    def test_same_instant_is_not_stale(self, clock) -> None:
        p = Principal(email="a@x.com", password_changed_at=clock())
        assert changed_password_after(p, round(clock().timestamp(), 6)) is False

    def test_fraction_of_a_second_earlier_is_stale(self, clock) -> None:
        issued_at = round(clock().timestamp(), 6)
        clock.advance(milliseconds=500)
        p = Principal(email="a@x.com", password_changed_at=clock())
        assert changed_password_after(p, issued_at) is True


class TestRoleGate:
    def test_user_forbidden_for_admin_and_lead(self) -> None:
        gate = RoleGate(Role.admin, Role.lead)
        with pytest.raises(Forbidden) as exc_info:
            gate.authorize(Principal(email="a@x.com", role="user"))
        assert exc_info.value.status_code == 403

    @pytest.mark.parametrize("role", ["admin", "lead"])
    def test_allowed_roles_pass(self, role: str) -> None:
        RoleGate("admin", "lead").authorize(Principal(email="a@x.com", role=role))

    def test_plain_function(self) -> None:
        authorize(Principal(email="a@x.com", role="guide"), [Role.guide])
        with pytest.raises(Forbidden):
            authorize(Principal(email="a@x.com", role="guide"), [])
