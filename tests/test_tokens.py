"""
tests/test_tokens.py -- Unit tests for TokenCodec and CredentialVerifier.

Covers:
  - issue() -> verify() returns the principal id and the clock's iat
  - tampered signature, foreign secret, expiry, and garbage all raise InvalidToken
  - bcrypt hashes are salted and never equal the plaintext
  - verify() returns False (never raises) for wrong, malformed, or missing hashes
  - cookie transport: httpOnly, lifetime, secure only in production
"""

from __future__ import annotations

import pytest
from fastapi.responses import JSONResponse

from auth.errors import AuthenticationError, InvalidToken
from auth.tokens import AUTH_COOKIE, CredentialVerifier, TokenCodec, clear_auth_cookie, set_auth_cookie
from core.config import Settings
from conftest import TEST_SECRET, FakeClock


class TestTokenCodec:
    def test_issue_then_verify_returns_claims(self, settings, clock) -> None:
        codec = TokenCodec(settings, clock=clock)
        claims = codec.verify(codec.issue(42))
        assert claims.principal_id == 42
        assert claims.issued_at == round(clock.now.timestamp(), 6)

    def test_tampered_signature_rejected(self, settings) -> None:
        codec = TokenCodec(settings)
        token = codec.issue(1)
        head, payload, sig = token.split(".")
        forged_sig = ("A" if sig[0] != "A" else "B") + sig[1:]
        with pytest.raises(InvalidToken):
            codec.verify(f"{head}.{payload}.{forged_sig}")

    def test_token_signed_with_other_secret_rejected(self, settings) -> None:
        other = TokenCodec(Settings(secret_key="x" * 64, debug=False, _env_file=None))
        with pytest.raises(InvalidToken):
            TokenCodec(settings).verify(other.issue(1))

    def test_expired_token_rejected(self, settings) -> None:
        past = FakeClock()
        past.advance(seconds=-(settings.token_expire_seconds + 60))
        token = TokenCodec(settings, clock=past).issue(1)
        with pytest.raises(InvalidToken):
            TokenCodec(settings).verify(token)

    @pytest.mark.parametrize("garbage", ["", "not-a-jwt", "a.b.c"])
    def test_garbage_rejected(self, settings, garbage: str) -> None:
        with pytest.raises(InvalidToken):
            TokenCodec(settings).verify(garbage)

    def test_invalid_token_is_an_authentication_error(self) -> None:
        """Callers that only know the 401 family still catch codec failures."""
        assert issubclass(InvalidToken, AuthenticationError)
        assert InvalidToken().status_code == 401

    def test_lifetime_follows_settings(self) -> None:
        s = Settings(secret_key=TEST_SECRET, token_expire_seconds=120, debug=False, _env_file=None)
        codec = TokenCodec(s)
        assert codec.lifetime_seconds == 120


class TestCredentialVerifier:
    def test_hash_is_not_plaintext_and_salted(self, verifier: CredentialVerifier) -> None:
        h1 = verifier.hash("secret123")
        h2 = verifier.hash("secret123")
        assert h1 != "secret123"
        assert h1 != h2
        assert h1.startswith("$2")

    def test_verify_matches(self, verifier: CredentialVerifier) -> None:
        hashed = verifier.hash("secret123")
        assert verifier.verify("secret123", hashed) is True
        assert verifier.verify("secret124", hashed) is False

    def test_verify_never_raises_on_bad_hash(self, verifier: CredentialVerifier) -> None:
        assert verifier.verify("secret123", "not-a-bcrypt-hash") is False
        assert verifier.verify("secret123", None) is False
        assert verifier.verify("secret123", "") is False


class TestCookieTransport:
    def _cookie_header(self, resp: JSONResponse) -> str:
        return next(v.decode() for k, v in resp.raw_headers if k == b"set-cookie")

    def test_cookie_is_http_only_with_token_lifetime(self, settings) -> None:
        resp = JSONResponse({})
        set_auth_cookie(resp, "tok", settings)
        header = self._cookie_header(resp)
        assert header.startswith(f"{AUTH_COOKIE}=tok")
        assert "HttpOnly" in header
        assert f"Max-Age={settings.token_expire_seconds}" in header
        assert "Secure" not in header

    def test_cookie_secure_in_production(self) -> None:
        prod = Settings(secret_key=TEST_SECRET, production=True, debug=False, _env_file=None)
        resp = JSONResponse({})
        set_auth_cookie(resp, "tok", prod)
        assert "Secure" in self._cookie_header(resp)

    def test_clear_cookie_overwrites_value(self) -> None:
        resp = JSONResponse({})
        clear_auth_cookie(resp)
        header = self._cookie_header(resp)
        assert header.startswith(f"{AUTH_COOKIE}=loggedout")
        assert "Max-Age=10" in header
