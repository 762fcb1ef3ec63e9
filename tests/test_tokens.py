"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - bcrypt hash/verify round trip and malformed-hash handling
  - JWT subject round trip, expiry, tampering, and wrong-secret rejection
  - auth cookie attributes
"""

from __future__ import annotations

from fastapi.responses import JSONResponse
from jose import jwt

from auth.tokens import PasswordHasher, TokenIssuer, set_auth_cookie

SECRET = "s" * 32


class TestPasswordHasher:
    def test_verify_round_trip(self, hasher: PasswordHasher) -> None:
        hashed = hasher.hash("correct horse")
        assert hashed != "correct horse"
        assert hasher.verify("correct horse", hashed) is True
        assert hasher.verify("wrong horse", hashed) is False

    def test_hash_uses_configured_rounds(self) -> None:
        hashed = PasswordHasher(rounds=5).hash("pw1234")
        assert hashed.startswith("$2b$05$")

    def test_malformed_hash_is_a_mismatch(self, hasher: PasswordHasher) -> None:
        assert hasher.verify("anything", "not-a-bcrypt-hash") is False

    def test_verify_dummy_returns_nothing(self, hasher: PasswordHasher) -> None:
        assert hasher.verify_dummy("whatever") is None


class TestTokenIssuer:
    def test_subject_round_trip(self) -> None:
        issuer = TokenIssuer(SECRET, 3600)
        token = issuer.issue("acct-1")
        assert issuer.subject(token) == "acct-1"
        payload = issuer.decode(token)
        assert payload["exp"] - payload["iat"] == 3600

    def test_expired_token_rejected(self) -> None:
        issuer = TokenIssuer(SECRET, -10)
        assert issuer.decode(issuer.issue("acct-1")) is None

    def test_wrong_secret_rejected(self) -> None:
        token = TokenIssuer(SECRET, 3600).issue("acct-1")
        assert TokenIssuer("x" * 32, 3600).subject(token) is None

    def test_tampered_token_rejected(self) -> None:
        issuer = TokenIssuer(SECRET, 3600)
        head, _, sig = issuer.issue("acct-1").split(".")
        _, forged_body, _ = issuer.issue("acct-2").split(".")
        assert issuer.decode(".".join([head, forged_body, sig])) is None

    def test_token_without_subject_rejected(self) -> None:
        token = jwt.encode({"foo": "bar"}, SECRET, algorithm="HS256")
        assert TokenIssuer(SECRET, 3600).decode(token) is None

    def test_garbage_rejected(self) -> None:
        assert TokenIssuer(SECRET, 3600).decode("not.a.jwt") is None


def test_auth_cookie_attributes() -> None:
    resp = JSONResponse({})
    set_auth_cookie(resp, "tok", max_age=60, secure=True)
    cookie = resp.headers["set-cookie"].lower()
    assert cookie.startswith("access_token=tok")
    assert "httponly" in cookie
    assert "samesite=lax" in cookie
    assert "secure" in cookie
    assert "max-age=60" in cookie
