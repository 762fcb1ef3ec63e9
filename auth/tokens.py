"""
auth/tokens.py -- Password hashing, JWT issuance, and the auth cookie helper.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY, carry the
       account id as the `sub` claim, and expire after
       Settings.token_expire_seconds (7 days by default). Verification returns
       None on any failure -- the dependency layer turns that into 401.

  Passwords: bcrypt used directly (no passlib wrapper). The work factor comes
       from Settings.bcrypt_rounds. PasswordHasher keeps a dummy hash so a
       login for an unknown email costs the same as a wrong password [C1].

Both classes take their configuration in the constructor; nothing here reads
settings at import time.

Layer rule: no imports from api/, accounts/, or media/. Import from core/
is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from core.config import Settings

logger = logging.getLogger("profilehub.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


class PasswordHasher:
    """bcrypt hashing with a configurable work factor."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Timing equalization dummy hash [C1]. Computed once so the first
        # unknown-email login is not measurably slower than later ones.
        self._dummy_hash = self.hash("profilehub_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the given plaintext password.

        Inputs are capped at 72 bytes by accounts.validation before they get
        here, so bcrypt never truncates silently.
        """
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext password matches the bcrypt hash."""
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            # Malformed stored hash or over-long input.
            logger.warning("bcrypt rejected a password check input")
            return False

    def verify_dummy(self, plain: str) -> None:
        """Burn one bcrypt check against the dummy hash. Always call this when
        there is no real hash to compare against [C1]."""
        self.verify(plain, self._dummy_hash)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Issues and verifies HS256 access tokens whose subject is an account id."""

    def __init__(self, secret_key: str, expire_seconds: int) -> None:
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(settings.secret_key, settings.token_expire_seconds)

    def issue(self, account_id: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": account_id,
            "iat": now,
            "exp": now + timedelta(seconds=self.expire_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def decode(self, token: str) -> dict | None:
        """Decode and verify a JWT. Returns the payload dict or None on any failure.

        Expired, tampered, and malformed tokens all come back as None.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        if not payload.get("sub"):
            return None
        return payload

    def subject(self, token: str) -> str | None:
        payload = self.decode(token)
        return payload["sub"] if payload else None


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, max_age: int, secure: bool) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POSTs (CSRF mitigation).
    max_age matches the JWT expiry so both expire together.
    """
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )
