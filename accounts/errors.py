"""
accounts/errors.py -- Error kinds raised by the account workflows.

Every error carries a machine-readable `code` and the HTTP status the API
layer maps it to. The service raises them; api/main.py turns them into the
shared ErrorResponse envelope. Nothing in accounts/ imports FastAPI.
"""

from __future__ import annotations


class AccountError(Exception):
    """Base class for all account workflow failures."""

    code: str = "account_error"
    status_code: int = 400

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(AccountError):
    """Malformed or out-of-range input. Raised before any mutation."""

    code = "validation_error"
    status_code = 400


class DuplicateEmail(AccountError):
    code = "duplicate_email"
    status_code = 409


class InvalidCredentials(AccountError):
    """Unknown email, missing local password, or wrong secret.

    The message is intentionally identical for all three cases.
    """

    code = "invalid_credentials"
    status_code = 401


class NotFound(AccountError):
    code = "not_found"
    status_code = 404


class Unauthorized(AccountError):
    """Missing, malformed, or expired access token."""

    code = "unauthorized"
    status_code = 401


class NothingToDelete(AccountError):
    code = "nothing_to_delete"
    status_code = 400


class UpstreamFailure(AccountError):
    """The image store or identity provider failed."""

    code = "upstream_failure"
    status_code = 502
