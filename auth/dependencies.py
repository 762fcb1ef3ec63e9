"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token sources are checked in priority order:
  1. Authorization: Bearer <token> header -- API clients and the SPA.
  2. JWT cookie ("access_token") -- set by POST /auth/login.

Both converge on an account id (the token's `sub` claim).

try_get_current_account_id() is the soft variant (returns None on failure).
get_current_account_id() wraps it and raises Unauthorized.
get_current_account() additionally loads the account, so a token for an
account that no longer exists is rejected too.

Collaborators (AccountService, TokenIssuer) are built once in the lifespan
and read from app.state here.

Layer rule: no imports from api/ or media/. This module may import from
fastapi because it is part of the dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request

from accounts.errors import NotFound, Unauthorized
from accounts.models import Account
from accounts.service import AccountService
from auth.tokens import TokenIssuer


def get_account_service(request: Request) -> AccountService:
    return request.app.state.account_service


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.tokens


def _extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get("access_token") or None


def try_get_current_account_id(request: Request) -> str | None:
    """Return the authenticated account id, or None. Never raises."""
    token = _extract_token(request)
    if not token:
        return None
    return get_token_issuer(request).subject(token)


def get_current_account_id(request: Request) -> str:
    """Require a valid access token. Raises Unauthorized (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account_id: str = Depends(get_current_account_id)): ...
    """
    account_id = try_get_current_account_id(request)
    if account_id is None:
        raise Unauthorized("Authentication required.")
    return account_id


def get_current_account(
    account_id: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
) -> Account:
    """Require a valid token whose subject is an existing account."""
    try:
        return service.get_account(account_id)
    except NotFound as exc:
        raise Unauthorized("Authentication required.", detail="Account no longer exists.") from exc
