"""
accounts/validation.py -- The single validation policy for account input.

Signup, profile completion, profile update and password changes all validate
through these helpers so the rules cannot drift between routes. Each helper
returns the normalized value or raises accounts.errors.ValidationError.

Policy:
  email    -- one "@", no whitespace, a dot in the domain; lower-cased.
  name     -- 1..100 characters after stripping.
  age      -- integer in [13, 120].
  gender   -- male | female | other | prefer-not-to-say (case-insensitive).
  password -- at least 6 characters and at most 72 UTF-8 bytes. bcrypt only
              looks at the first 72 bytes; longer secrets are rejected rather
              than silently truncated.
  picture  -- content type image/*, size within the configured limit.
"""

from __future__ import annotations

import re

from accounts.errors import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_AGE = 13
MAX_AGE = 120
GENDERS = ("male", "female", "other", "prefer-not-to-say")
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_BYTES = 72
MAX_NAME_LENGTH = 100


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_email(email: str | None) -> str:
    if not email or not email.strip():
        raise ValidationError("Email is required.")
    normalized = normalize_email(email)
    if len(normalized) > 255 or not EMAIL_RE.match(normalized):
        raise ValidationError("Invalid email format.")
    return normalized


def validate_name(name: str | None) -> str:
    if name is None or not name.strip():
        raise ValidationError("Name is required.")
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} characters.")
    return name


def parse_age(raw: str | int | None) -> int | None:
    """Coerce a form value to an age. Blank means "not provided"."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValidationError("Age must be a whole number.")
    if isinstance(raw, int):
        return raw
    raw = raw.strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError("Age must be a whole number.") from exc


def validate_age(age: int) -> int:
    if not MIN_AGE <= age <= MAX_AGE:
        raise ValidationError(f"Age must be between {MIN_AGE} and {MAX_AGE}.")
    return age


def validate_gender(gender: str) -> str:
    normalized = gender.strip().lower()
    if normalized not in GENDERS:
        raise ValidationError("Invalid gender selection.", detail=f"Expected one of: {', '.join(GENDERS)}")
    return normalized


def validate_password(password: str | None, field: str = "Password") -> str:
    if not password:
        raise ValidationError(f"{field} is required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"{field} must be at least {MIN_PASSWORD_LENGTH} characters long.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"{field} must be at most {MAX_PASSWORD_BYTES} bytes long.")
    return password


def validate_image(content_type: str | None, size: int, max_bytes: int) -> None:
    if not content_type or not content_type.lower().startswith("image/"):
        raise ValidationError("Only image files are allowed.")
    if size == 0:
        raise ValidationError("Uploaded image is empty.")
    if size > max_bytes:
        raise ValidationError(f"Image must be at most {max_bytes // (1024 * 1024)} MB.")
