"""
api/routes/v1/auth.py -- Registration, login and federated login endpoints.

Routes:
  POST /api/v1/auth/signup                -- local signup (multipart, optional picture); sets JWT cookie
  POST /api/v1/auth/login                 -- password login; sets JWT cookie
  POST /api/v1/auth/logout                -- clears cookie; 200
  GET  /api/v1/auth/me                    -- current account (requires auth)
  GET  /api/v1/auth/providers             -- list enabled OAuth providers (public)
  GET  /api/v1/auth/oauth/{provider}      -- redirect to the provider's authorization page
  GET  /api/v1/auth/callback/{provider}   -- OAuth callback; redirects to the frontend with a token
  POST /api/v1/auth/complete-profile      -- set age/gender (and first password) (requires auth)

Security:
  [H2] Every route here except logout/me/providers is under the auth rate limit.
  [C1] AccountService.login() provides timing equalization -- never inline
       the lookup + verify.
  [M5] Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool

from accounts.errors import UpstreamFailure
from accounts.models import Account, ImageUpload, ProfileCompletion, SignupInput
from accounts.service import AccountService
from accounts.validation import parse_age
from api.limiter import auth_limit, limiter
from api.models import AccountResponse, CompleteProfileRequest, LoginRequest, OAuthProviderInfo, TokenResponse
from auth.dependencies import get_account_service, get_current_account, get_current_account_id
from auth.oauth import begin_federated_login, complete_federated_login, get_enabled_providers
from auth.tokens import set_auth_cookie

logger = logging.getLogger("profilehub.api.auth")

# Auth policy:
# - POST /api/v1/auth/signup, /login:     public, rate-limited [H2]
# - POST /api/v1/auth/logout:             public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/providers:          public -- the frontend renders OAuth buttons from it
# - GET  /api/v1/auth/oauth/*, callback/*: public, rate-limited [H2]
# - GET  /api/v1/auth/me:                 requires auth (get_current_account)
# - POST /api/v1/auth/complete-profile:   requires auth (get_current_account_id)
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _token_response(request: Request, account: Account, token: str, status_code: int = 200) -> JSONResponse:
    settings = request.app.state.settings
    resp = JSONResponse(
        status_code=status_code,
        content=TokenResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=settings.token_expire_seconds,
            user=AccountResponse.from_account(account),
        ).model_dump(),
    )
    set_auth_cookie(resp, token, max_age=settings.token_expire_seconds, secure=settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def read_upload(upload: Optional[UploadFile], max_bytes: int) -> ImageUpload | None:
    """Turn an optional multipart file into an ImageUpload. Empty fields count as absent.

    At most max_bytes + 1 bytes are read, enough for the size check to reject
    an oversized file without holding all of it in memory.
    """
    if upload is None or not upload.filename:
        return None
    return ImageUpload(
        content=upload.file.read(max_bytes + 1),
        content_type=upload.content_type,
        filename=upload.filename,
    )


def _frontend_redirect(request: Request, path: str, **params: str) -> RedirectResponse:
    url = request.app.state.settings.frontend_url.rstrip("/") + path
    if params:
        url += "?" + urlencode(params)
    resp = RedirectResponse(url, status_code=302)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Local signup / login
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=TokenResponse, status_code=201)
@limiter.limit(auth_limit)
def signup(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    name: str = Form(...),
    age: Optional[str] = Form(None),
    gender: Optional[str] = Form(None),
    picture: Optional[UploadFile] = File(None),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """Register a local account and log it in.

    The optional picture is uploaded only after every field has passed
    validation and the email is known to be free.
    """
    data = SignupInput(email=email, password=password, name=name, age=parse_age(age), gender=gender or None)
    account = service.signup(data, read_upload(picture, service.max_upload_bytes))
    return _token_response(request, account, service.issue_token(account), status_code=201)


@router.post("/auth/login", response_model=TokenResponse)
@limiter.limit(auth_limit)
def login(
    request: Request,
    body: LoginRequest,
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """Authenticate with email and password; return the token and set the JWT cookie.

    Wrong email and wrong password produce the same invalid_credentials error.
    """
    account, token = service.login(body.email, body.password)
    return _token_response(request, account, token)


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie. Bearer tokens simply expire."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie("access_token")
    return resp


@router.get("/auth/me", response_model=AccountResponse)
def me(account: Account = Depends(get_current_account)) -> AccountResponse:
    """Return the currently authenticated account."""
    return AccountResponse.from_account(account)


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers(request: Request) -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers; empty when none are set up."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers(request.app.state.settings)]


# ---------------------------------------------------------------------------
# Federated login
# ---------------------------------------------------------------------------


@router.get("/auth/oauth/{provider}")
@limiter.limit(auth_limit)
async def oauth_redirect(request: Request, provider: str):
    """Redirect the browser to the OAuth provider's authorization page.

    The provider name is checked against the enabled list first, so a
    spoofed name can never reach Authlib.
    """
    enabled = {p["name"] for p in get_enabled_providers(request.app.state.settings)}
    if provider not in enabled:
        return _frontend_redirect(request, "/signin", error="oauth_failed")
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    return await begin_federated_login(request.app.state.oauth, request, provider, redirect_uri)


@router.get("/auth/callback/{provider}", name="oauth_callback")
@limiter.limit(auth_limit)
async def oauth_callback(request: Request, provider: str) -> RedirectResponse:
    """Finish the OAuth handshake and hand a token to the frontend.

    Flow:
      1. Exchange the code (Authlib verifies `state` from the session cookie).
      2. Extract the verified identity [H1].
      3. Resolve it to an account (create or link).
      4. Redirect to /complete-profile while age/gender are missing,
         otherwise to /profile. Failures redirect to /signin.
    """
    enabled = {p["name"] for p in get_enabled_providers(request.app.state.settings)}
    if provider not in enabled:
        return _frontend_redirect(request, "/signin", error="oauth_failed")

    try:
        identity = await complete_federated_login(request.app.state.oauth, request, provider)
    except UpstreamFailure as exc:
        logger.warning("OAuth login rejected for provider %r: %s", provider, exc.message)
        return _frontend_redirect(request, "/signin", error="oauth_failed")

    service: AccountService = request.app.state.account_service
    account = await run_in_threadpool(service.federated_login, identity)
    token = service.issue_token(account)
    path = "/profile" if account.profile_complete else "/complete-profile"
    resp = _frontend_redirect(request, path, token=token)
    settings = request.app.state.settings
    set_auth_cookie(resp, token, max_age=settings.token_expire_seconds, secure=settings.secure_cookies)
    return resp


@router.post("/auth/complete-profile", response_model=AccountResponse)
@limiter.limit(auth_limit)
def complete_profile(
    request: Request,
    body: CompleteProfileRequest,
    account_id: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    """Set age and gender; federated accounts may also set their first password."""
    account = service.complete_profile(
        account_id,
        ProfileCompletion(age=body.age, gender=body.gender, password=body.password),
    )
    return AccountResponse.from_account(account)
