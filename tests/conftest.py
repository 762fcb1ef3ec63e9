"""
tests/conftest.py -- Shared test fixtures for ProfileHub.

This module provides:
  - FakeImageStore: in-memory stand-in for the Cloudinary ImageStore
  - store / images / hasher / tokens / service: unit-level fixtures over an
    isolated in-memory database per test
  - _patch_lifespan(): wires test collaborators into app.state, bypassing real startup
  - api: module-scoped TestClient harness for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

Environment variables must be set before get_settings() is first called:
it is cached for the rest of the session.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from unittest.mock import AsyncMock, MagicMock

# CRITICAL: set before any core/ or api/ import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("FRONTEND_URL", "http://localhost:3000")

import pytest
from fastapi.testclient import TestClient
from starlette.responses import RedirectResponse

from accounts.errors import UpstreamFailure
from accounts.service import AccountService
from accounts.store import AccountStore
from api.limiter import limiter
from api.main import create_app
from auth.tokens import PasswordHasher, TokenIssuer
from core.config import get_settings

settings = get_settings()
app = create_app(settings)

TEST_SECRET = "t" * 32

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


@dataclass
class FakeImageStore:
    """Records uploads and deletions instead of calling Cloudinary."""

    cloud_name: str = "test-cloud"
    uploaded: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    fail_upload: bool = False
    fail_delete: bool = False

    def upload(self, content: bytes, filename: str | None = None) -> str:
        if self.fail_upload:
            raise UpstreamFailure("Failed to upload image.")
        url = f"https://res.cloudinary.com/{self.cloud_name}/image/upload/v1/auth-app-profiles/{uuid.uuid4().hex}.jpg"
        self.uploaded.append(url)
        return url

    def owns(self, reference: str) -> bool:
        return f"res.cloudinary.com/{self.cloud_name}/" in reference

    def delete(self, reference: str) -> None:
        if not self.owns(reference):
            return
        if self.fail_delete:
            raise UpstreamFailure("Failed to delete image.")
        self.deleted.append(reference)


def memory_db_url(name: str) -> str:
    return f"sqlite:///file:{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore(memory_db_url("unit"))
    yield s
    s.close()


@pytest.fixture
def images() -> FakeImageStore:
    return FakeImageStore()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def tokens() -> TokenIssuer:
    return TokenIssuer(TEST_SECRET, 3600)


@pytest.fixture
def service(store, hasher, tokens, images) -> AccountService:
    return AccountService(store=store, hasher=hasher, tokens=tokens, images=images, max_upload_bytes=1024)


# ---------------------------------------------------------------------------
# API harness
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccountStore, service: AccountService, oauth: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test collaborators into app.state so routes see an
    isolated database, the fake image store and a mocked OAuth registry.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = store
        app.state.account_service = service
        app.state.oauth = oauth
        yield

    return test_lifespan


@dataclass
class Harness:
    client: TestClient
    store: AccountStore
    images: FakeImageStore
    oauth_client: MagicMock

    def signup(self, email: str, password: str = "secret123", name: str = "Test User", **fields) -> dict:
        """Sign up through the API and return the response body.

        The auth cookie the response sets is cleared so later requests only
        authenticate when a test passes a token explicitly.
        """
        data = {"email": email, "password": password, "name": name, **fields}
        resp = self.client.post("/api/v1/auth/signup", data=data)
        assert resp.status_code == 201, resp.text
        self.client.cookies.clear()
        return resp.json()

    @staticmethod
    def bearer(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="module")
def api() -> Generator[Harness, None, None]:
    """Yield a Harness around the real app with a patched lifespan.

    One harness (and one database) per test module. follow_redirects=False
    so OAuth tests can assert on Location headers.
    """
    store = AccountStore(memory_db_url("api"))
    images = FakeImageStore()
    service = AccountService(
        store=store,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        tokens=TokenIssuer.from_settings(settings),
        images=images,
        max_upload_bytes=settings.max_upload_bytes,
    )

    oauth_client = MagicMock()
    oauth_client.authorize_redirect = AsyncMock(
        return_value=RedirectResponse("https://accounts.google.com/o/oauth2/v2/auth?state=test", status_code=302)
    )
    oauth_client.authorize_access_token = AsyncMock(return_value={})
    oauth = MagicMock()
    oauth.create_client.return_value = oauth_client

    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(store, service, oauth)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield Harness(client=client, store=store, images=images, oauth_client=oauth_client)

    store.close()
