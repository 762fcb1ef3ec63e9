"""
auth/oauth.py -- Authlib OAuth/OIDC registry and federated identity extraction.

Federated login is a two-step protocol:

  begin_federated_login(request, provider, redirect_uri)
      -> RedirectResponse to the provider's authorization page.
  complete_federated_login(request, provider)
      -> FederatedIdentity (verified email, subject, display name, picture).

The OAuth `state` value (CSRF protection) travels in Starlette's signed
session cookie between the two steps. No server-side session state is kept,
so any worker can serve the callback.

Security notes:
  [H1] Email verification is mandatory. An unverified provider email could
       belong to an attacker who added a victim's address without confirming
       it. Unverified or missing claims raise UpstreamFailure.

Supported providers:
  google -- Authorization code flow; OIDC discovery.

Layer rule: no imports from api/ or media/. Imports from core/ and the
accounts domain types are allowed.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth, OAuthError

from accounts.errors import UpstreamFailure
from accounts.models import FederatedIdentity
from core.config import Settings

logger = logging.getLogger("profilehub.auth.oauth")

_GOOGLE_DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"

# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def build_oauth(settings: Settings) -> OAuth:
    """Create an Authlib registry holding every configured provider.

    Only providers with both client ID and secret configured are registered.
    """
    oauth = OAuth()
    if settings.google_enabled:
        oauth.register(
            name="google",
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url=_GOOGLE_DISCOVERY_URL,
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")
    return oauth


def get_enabled_providers(settings: Settings) -> list[dict]:
    """Return {"name", "label"} for every configured provider.

    Used by GET /api/v1/auth/providers so the frontend only renders buttons
    that will work.
    """
    providers: list[dict] = []
    if settings.google_enabled:
        providers.append({"name": "google", "label": "Google"})
    return providers


# ---------------------------------------------------------------------------
# Two-step flow
# ---------------------------------------------------------------------------


async def begin_federated_login(oauth: OAuth, request, provider: str, redirect_uri: str):
    """Step 1: return the redirect to the provider's authorization endpoint."""
    client = oauth.create_client(provider)
    if client is None:
        raise UpstreamFailure(f"OAuth provider {provider!r} is not configured.")
    return await client.authorize_redirect(request, redirect_uri)


async def complete_federated_login(oauth: OAuth, request, provider: str) -> FederatedIdentity:
    """Step 2: exchange the authorization code and return the verified identity.

    Raises:
        UpstreamFailure: token exchange failed, or the provider did not
            assert a verified email [H1].
    """
    client = oauth.create_client(provider)
    if client is None:
        raise UpstreamFailure(f"OAuth provider {provider!r} is not configured.")
    try:
        token = await client.authorize_access_token(request)
    except OAuthError as exc:
        logger.warning("OAuth token exchange failed for provider %r: %s", provider, exc)
        raise UpstreamFailure("OAuth token exchange failed.", detail=str(exc)) from exc
    return identity_from_token(token, provider)


# ---------------------------------------------------------------------------
# Identity extraction [H1]
# ---------------------------------------------------------------------------


def identity_from_token(token: dict, provider: str) -> FederatedIdentity:
    """Extract a FederatedIdentity from an OIDC token response.

    The id_token claims (parsed by Authlib into token["userinfo"]) must
    include sub and email with email_verified true. Some providers omit
    email_verified entirely -- that is treated as unverified.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise UpstreamFailure(f"{provider} OAuth: no userinfo in token response")

    if not userinfo.get("email_verified", False):
        raise UpstreamFailure(f"{provider} OAuth: email is not verified")

    email = userinfo.get("email")
    subject = userinfo.get("sub")
    if not email or not subject:
        raise UpstreamFailure(f"{provider} OAuth: missing email or sub claim in userinfo")

    display_name = userinfo.get("name") or userinfo.get("given_name") or email.split("@", 1)[0]
    return FederatedIdentity(
        email=email,
        external_id=str(subject),
        display_name=display_name,
        picture_url=userinfo.get("picture") or None,
    )
