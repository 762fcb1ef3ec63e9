"""
tests/test_api_users.py -- Integration tests for /api/v1/users/* routes.

Covers:
  - every route requires authentication
  - list ordering and lookup by id (404 for unknown ids)
  - PUT /users/profile partial multipart edits, picture replacement
  - picture upload / delete, including nothing_to_delete
  - change-password for local and password-less federated accounts
"""

from __future__ import annotations

import io
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from api.routes.v1.auth import read_upload

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/api/v1/users"),
        ("get", "/api/v1/users/profile"),
        ("put", "/api/v1/users/profile"),
        ("delete", "/api/v1/users/profile/picture"),
        ("get", "/api/v1/users/some-id"),
    ],
)
def test_requires_auth(api, method: str, path: str) -> None:
    api.client.cookies.clear()
    resp = getattr(api.client, method)(path)
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_list_users_newest_first(api) -> None:
    first = api.signup("list-a@example.com")
    second = api.signup("list-b@example.com")
    resp = api.client.get("/api/v1/users", headers=api.bearer(second["access_token"]))
    assert resp.status_code == 200
    ids = [u["id"] for u in resp.json()]
    assert ids.index(second["user"]["id"]) < ids.index(first["user"]["id"])


def test_list_users_paging_bounds(api) -> None:
    token = api.signup("paging@example.com")["access_token"]
    assert len(api.client.get("/api/v1/users?limit=1", headers=api.bearer(token)).json()) == 1
    assert api.client.get("/api/v1/users?limit=0", headers=api.bearer(token)).status_code == 422


def test_get_user_by_id(api) -> None:
    other = api.signup("other@example.com")
    token = api.signup("viewer@example.com")["access_token"]
    resp = api.client.get(f"/api/v1/users/{other['user']['id']}", headers=api.bearer(token))
    assert resp.status_code == 200
    assert resp.json()["email"] == "other@example.com"

    missing = api.client.get("/api/v1/users/does-not-exist", headers=api.bearer(token))
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"


class TestProfile:
    def test_get_profile(self, api) -> None:
        token = api.signup("profile@example.com", name="Profile Owner")["access_token"]
        resp = api.client.get("/api/v1/users/profile", headers=api.bearer(token))
        assert resp.status_code == 200
        assert resp.json()["name"] == "Profile Owner"

    def test_partial_update_completes_profile(self, api) -> None:
        token = api.signup("partial-edit@example.com")["access_token"]
        resp = api.client.put("/api/v1/users/profile", data={"age": "28"}, headers=api.bearer(token))
        assert resp.status_code == 200
        assert resp.json()["user"]["age"] == 28
        assert resp.json()["user"]["profile_complete"] is False

        resp = api.client.put(
            "/api/v1/users/profile", data={"gender": "Female", "name": "Renamed"}, headers=api.bearer(token)
        )
        user = resp.json()["user"]
        assert resp.json()["message"] == "Profile updated successfully."
        assert user["gender"] == "female"
        assert user["name"] == "Renamed"
        assert user["age"] == 28
        assert user["profile_complete"] is True

    def test_update_validation(self, api) -> None:
        token = api.signup("bad-edit@example.com")["access_token"]
        resp = api.client.put("/api/v1/users/profile", data={"age": "200"}, headers=api.bearer(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_update_replaces_picture(self, api) -> None:
        token = api.signup("edit-pic@example.com")["access_token"]
        first = api.client.put(
            "/api/v1/users/profile",
            files={"picture": ("a.png", PNG_BYTES, "image/png")},
            headers=api.bearer(token),
        ).json()["user"]["picture_url"]
        second = api.client.put(
            "/api/v1/users/profile",
            files={"picture": ("b.png", PNG_BYTES, "image/png")},
            headers=api.bearer(token),
        ).json()["user"]["picture_url"]
        assert first != second
        assert first in api.images.deleted


class TestPicture:
    def test_upload_and_delete(self, api) -> None:
        token = api.signup("pic-owner@example.com")["access_token"]
        resp = api.client.post(
            "/api/v1/users/profile/picture",
            files={"picture": ("me.png", PNG_BYTES, "image/png")},
            headers=api.bearer(token),
        )
        assert resp.status_code == 200
        url = resp.json()["user"]["picture_url"]
        assert url == api.images.uploaded[-1]

        resp = api.client.delete("/api/v1/users/profile/picture", headers=api.bearer(token))
        assert resp.status_code == 200
        assert resp.json()["user"]["picture_url"] is None
        assert url in api.images.deleted

    def test_delete_without_picture(self, api) -> None:
        token = api.signup("no-pic@example.com")["access_token"]
        resp = api.client.delete("/api/v1/users/profile/picture", headers=api.bearer(token))
        assert resp.status_code == 400
        assert resp.json()["error"] == {
            "code": "nothing_to_delete",
            "message": "No profile picture to delete.",
            "detail": None,
        }

    def test_upload_rejects_non_image(self, api) -> None:
        token = api.signup("txt-pic@example.com")["access_token"]
        resp = api.client.post(
            "/api/v1/users/profile/picture",
            files={"picture": ("notes.txt", b"hello", "text/plain")},
            headers=api.bearer(token),
        )
        assert resp.status_code == 400

    def test_upload_failure_is_502(self, api) -> None:
        token = api.signup("upstream@example.com")["access_token"]
        api.images.fail_upload = True
        try:
            resp = api.client.post(
                "/api/v1/users/profile/picture",
                files={"picture": ("me.png", PNG_BYTES, "image/png")},
                headers=api.bearer(token),
            )
        finally:
            api.images.fail_upload = False
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "upstream_failure"


class TestChangePassword:
    def test_local_account(self, api) -> None:
        token = api.signup("pw@example.com")["access_token"]
        missing = api.client.post(
            "/api/v1/users/change-password", json={"new_password": "brandnew1"}, headers=api.bearer(token)
        )
        assert missing.status_code == 400

        wrong = api.client.post(
            "/api/v1/users/change-password",
            json={"current_password": "not-it", "new_password": "brandnew1"},
            headers=api.bearer(token),
        )
        assert wrong.status_code == 401
        assert wrong.json()["error"]["code"] == "invalid_credentials"

        ok = api.client.post(
            "/api/v1/users/change-password",
            json={"current_password": "secret123", "new_password": "brandnew1"},
            headers=api.bearer(token),
        )
        assert ok.status_code == 200
        login = api.client.post("/api/v1/auth/login", json={"email": "pw@example.com", "password": "brandnew1"})
        api.client.cookies.clear()
        assert login.status_code == 200

    def test_federated_account_sets_first_password(self, api) -> None:
        api.oauth_client.authorize_access_token.return_value = {
            "userinfo": {"sub": "g-pw", "email": "fedpw@example.com", "email_verified": True, "name": "Fed"}
        }
        location = urlparse(api.client.get("/api/v1/auth/callback/google?code=abc").headers["location"])
        api.client.cookies.clear()
        token = parse_qs(location.query)["token"][0]

        resp = api.client.post(
            "/api/v1/users/change-password", json={"new_password": "firstpw1"}, headers=api.bearer(token)
        )
        assert resp.status_code == 200
        login = api.client.post("/api/v1/auth/login", json={"email": "fedpw@example.com", "password": "firstpw1"})
        api.client.cookies.clear()
        assert login.status_code == 200


class TestReadUpload:
    @staticmethod
    def _upload(content: bytes) -> UploadFile:
        return UploadFile(
            file=io.BytesIO(content), filename="me.png", headers=Headers({"content-type": "image/png"})
        )

    def test_reads_at_most_one_byte_past_limit(self) -> None:
        upload = read_upload(self._upload(b"x" * 5000), max_bytes=100)
        assert len(upload.content) == 101
        assert upload.content_type == "image/png"

    def test_file_at_limit_is_read_whole(self) -> None:
        assert read_upload(self._upload(b"x" * 100), max_bytes=100).content == b"x" * 100

    def test_missing_file_is_none(self) -> None:
        assert read_upload(None, max_bytes=100) is None

    def test_oversized_upload_rejected(self, api) -> None:
        token = api.signup("too-big@example.com")["access_token"]
        uploads_before = len(api.images.uploaded)
        api.client.app.state.account_service.max_upload_bytes = 32
        try:
            resp = api.client.post(
                "/api/v1/users/profile/picture",
                files={"picture": ("me.png", PNG_BYTES, "image/png")},
                headers=api.bearer(token),
            )
        finally:
            api.client.app.state.account_service.max_upload_bytes = api.client.app.state.settings.max_upload_bytes
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"
        assert len(api.images.uploaded) == uploads_before
