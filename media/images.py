"""
media/images.py -- Cloudinary-backed storage for profile pictures.

ImageStore.upload() pushes bytes to Cloudinary (square 400x400 fill crop,
automatic quality) and returns the public secure URL, which is what the
account stores as its picture reference. ImageStore.delete() takes that same
URL, recovers the Cloudinary public id from it and destroys the asset.

Credentials are passed per call rather than through cloudinary.config(), so
two stores with different settings never share SDK-global state.

References this store did not create (e.g. a Google profile photo URL) are
never sent to Cloudinary: owns() returns False and delete() is a no-op.

Errors from the SDK are wrapped in accounts.errors.UpstreamFailure. Whether a
failure aborts the operation is the caller's decision.
"""

from __future__ import annotations

import io
import logging
import re

import cloudinary.exceptions
import cloudinary.uploader

from accounts.errors import UpstreamFailure
from core.config import Settings

logger = logging.getLogger("profilehub.media")

# .../image/upload/[transformations/]v<version>/<public_id>.<ext>
_PUBLIC_ID_RE = re.compile(r"/image/upload/(?:.*?/)?v\d+/(?P<public_id>.+?)(?:\.[A-Za-z0-9]+)?$")

_TRANSFORMATION = [
    {"width": 400, "height": 400, "crop": "fill"},
    {"quality": "auto"},
]


class ImageStore:
    def __init__(self, settings: Settings) -> None:
        self.cloud_name = settings.cloudinary_cloud_name
        self.folder = settings.cloudinary_folder
        self.enabled = settings.cloudinary_enabled
        self._credentials = {
            "cloud_name": settings.cloudinary_cloud_name,
            "api_key": settings.cloudinary_api_key,
            "api_secret": settings.cloudinary_api_secret,
        }

    def upload(self, content: bytes, filename: str | None = None) -> str:
        """Upload an image and return its public https URL."""
        if not self.enabled:
            raise UpstreamFailure("Image storage is not configured.")
        try:
            result = cloudinary.uploader.upload(
                io.BytesIO(content),
                folder=self.folder,
                transformation=_TRANSFORMATION,
                resource_type="image",
                secure=True,
                **self._credentials,
            )
        except cloudinary.exceptions.Error as exc:
            logger.warning("Cloudinary upload failed for %r: %s", filename, exc)
            raise UpstreamFailure("Failed to upload image.", detail=str(exc)) from exc
        url = result.get("secure_url")
        if not url:
            raise UpstreamFailure("Image storage returned no URL.")
        logger.info("Uploaded profile picture %s", result.get("public_id"))
        return url

    def owns(self, reference: str) -> bool:
        """True if the reference points at an asset in this store's cloud."""
        return bool(self.cloud_name) and f"res.cloudinary.com/{self.cloud_name}/" in reference

    def delete(self, reference: str) -> None:
        """Destroy the asset behind a URL previously returned by upload()."""
        if not self.owns(reference):
            logger.debug("Not deleting foreign picture reference %s", reference)
            return
        public_id = public_id_from_url(reference)
        if public_id is None:
            raise UpstreamFailure("Unrecognized image reference.", detail=reference)
        try:
            result = cloudinary.uploader.destroy(public_id, invalidate=True, **self._credentials)
        except cloudinary.exceptions.Error as exc:
            raise UpstreamFailure("Failed to delete image.", detail=str(exc)) from exc
        outcome = result.get("result")
        if outcome not in ("ok", "not found"):
            raise UpstreamFailure("Failed to delete image.", detail=str(outcome))
        logger.info("Deleted profile picture %s (%s)", public_id, outcome)


def public_id_from_url(url: str) -> str | None:
    """Recover the Cloudinary public id (folder/name, no extension) from a delivery URL.

    >>> public_id_from_url("https://res.cloudinary.com/demo/image/upload/v1712/auth-app-profiles/abc.jpg")
    'auth-app-profiles/abc'
    """
    match = _PUBLIC_ID_RE.search(url)
    return match.group("public_id") if match else None
