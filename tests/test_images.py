"""
tests/test_images.py -- Unit tests for the Cloudinary ImageStore.

The Cloudinary SDK is monkeypatched; no network calls are made.
"""

from __future__ import annotations

import cloudinary.exceptions
import cloudinary.uploader
import pytest

from accounts.errors import UpstreamFailure
from core.config import Settings
from media.images import ImageStore, public_id_from_url

OWN_URL = "https://res.cloudinary.com/demo/image/upload/v1712345678/auth-app-profiles/abc123.jpg"


@pytest.fixture
def image_store() -> ImageStore:
    settings = Settings(
        debug=True,
        secret_key="k" * 32,
        cloudinary_cloud_name="demo",
        cloudinary_api_key="key",
        cloudinary_api_secret="secret",
    )
    return ImageStore(settings)


def test_upload_sends_folder_transformation_and_credentials(monkeypatch, image_store: ImageStore) -> None:
    calls = []

    def fake_upload(file, **options):
        calls.append((file.read(), options))
        return {"secure_url": OWN_URL, "public_id": "auth-app-profiles/abc123"}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)

    assert image_store.upload(b"imagebytes", "me.png") == OWN_URL
    content, options = calls[0]
    assert content == b"imagebytes"
    assert options["folder"] == "auth-app-profiles"
    assert options["transformation"] == [{"width": 400, "height": 400, "crop": "fill"}, {"quality": "auto"}]
    assert options["cloud_name"] == "demo"
    assert options["api_key"] == "key"


def test_upload_wraps_sdk_errors(monkeypatch, image_store: ImageStore) -> None:
    def failing_upload(file, **options):
        raise cloudinary.exceptions.Error("boom")

    monkeypatch.setattr(cloudinary.uploader, "upload", failing_upload)
    with pytest.raises(UpstreamFailure):
        image_store.upload(b"x")


def test_upload_requires_configuration() -> None:
    store = ImageStore(Settings(debug=True, secret_key="k" * 32))
    assert store.enabled is False
    with pytest.raises(UpstreamFailure):
        store.upload(b"x")


def test_delete_destroys_own_asset(monkeypatch, image_store: ImageStore) -> None:
    destroyed = []

    def fake_destroy(public_id, **options):
        destroyed.append(public_id)
        return {"result": "ok"}

    monkeypatch.setattr(cloudinary.uploader, "destroy", fake_destroy)
    image_store.delete(OWN_URL)
    assert destroyed == ["auth-app-profiles/abc123"]


def test_delete_ignores_foreign_reference(monkeypatch, image_store: ImageStore) -> None:
    def unexpected_destroy(public_id, **options):
        raise AssertionError("destroy must not be called")

    monkeypatch.setattr(cloudinary.uploader, "destroy", unexpected_destroy)
    image_store.delete("https://lh3.googleusercontent.com/a/photo.jpg")


def test_delete_reports_failure(monkeypatch, image_store: ImageStore) -> None:
    monkeypatch.setattr(cloudinary.uploader, "destroy", lambda public_id, **options: {"result": "error"})
    with pytest.raises(UpstreamFailure):
        image_store.delete(OWN_URL)


def test_public_id_from_url_with_transformations() -> None:
    url = "https://res.cloudinary.com/demo/image/upload/c_fill,h_400,w_400/q_auto/v1712/auth-app-profiles/x.png"
    assert public_id_from_url(url) == "auth-app-profiles/x"


def test_public_id_from_url_rejects_unrelated() -> None:
    assert public_id_from_url("https://example.com/picture.png") is None
