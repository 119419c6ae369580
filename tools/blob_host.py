"""Image hosting abstractions: unsigned Cloudinary uploads and an offline mock."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

import requests
from pydantic import BaseModel, ValidationError

LOGGER = logging.getLogger(__name__)

CLOUDINARY_API_BASE = "https://api.cloudinary.com/v1_1"


class BlobUploadError(RuntimeError):
    """Raised when the hosting endpoint rejects or cannot receive an upload."""


class _UploadResponse(BaseModel):
    secure_url: Optional[str] = None
    url: Optional[str] = None
    public_id: str


@dataclass(frozen=True)
class BlobAsset:
    """Permanent URL plus the opaque asset identifier returned by the host."""

    url: str
    asset_id: str


class BlobHost(ABC):
    """Abstract "upload blob, get URL" service. Clients cannot delete assets."""

    @abstractmethod
    async def upload(self, data: bytes, filename: str, content_type: str, folder: str) -> BlobAsset:
        """Store ``data`` under ``folder`` and return its asset."""


class CloudinaryBlobHost(BlobHost):
    """Unsigned upload through a Cloudinary upload preset.

    ``requests`` is blocking, so the call runs in a worker thread to keep the
    event loop free. No timeout is applied unless one is configured.
    """

    def __init__(
        self,
        cloud_name: str,
        upload_preset: str,
        timeout_seconds: float | None = None,
        api_base: str = CLOUDINARY_API_BASE,
    ) -> None:
        if not cloud_name or not upload_preset:
            raise ValueError("cloud_name and upload_preset are required for Cloudinary uploads")
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.timeout_seconds = timeout_seconds
        self.api_base = api_base.rstrip("/")

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/{self.cloud_name}/upload"

    def _post(self, data: bytes, filename: str, content_type: str, folder: str) -> BlobAsset:
        LOGGER.info("Uploading image", extra={"folder": folder, "size": len(data)})
        try:
            response = requests.post(
                self.endpoint,
                data={"upload_preset": self.upload_preset, "folder": folder},
                files={"file": (filename, data, content_type)},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            LOGGER.error("Image host unreachable", exc_info=exc)
            raise BlobUploadError(f"Network error uploading {filename}: {exc}") from exc

        if not 200 <= response.status_code < 300:
            LOGGER.warning("Image upload rejected", extra={"status_code": response.status_code})
            raise BlobUploadError(f"Upload of {filename} failed: HTTP {response.status_code}")

        try:
            parsed = _UploadResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            LOGGER.error("Image host returned an unexpected payload", exc_info=exc)
            raise BlobUploadError("Upload response did not include an asset") from exc

        url = parsed.secure_url or parsed.url
        if not url:
            raise BlobUploadError("Upload response did not include a URL")
        return BlobAsset(url=url, asset_id=parsed.public_id)

    async def upload(self, data: bytes, filename: str, content_type: str, folder: str) -> BlobAsset:
        return await asyncio.to_thread(self._post, data, filename, content_type, folder)


@dataclass
class MockBlobHost(BlobHost):
    """Offline deterministic host for tests and the local demo."""

    base_url: str = "https://blobs.stylesphere.test"
    fail_uploads: bool = False
    uploads: List[dict] = field(default_factory=list)

    async def upload(self, data: bytes, filename: str, content_type: str, folder: str) -> BlobAsset:
        if self.fail_uploads:
            raise BlobUploadError(f"Mock upload of {filename} refused")
        asset_id = f"{folder}/asset-{len(self.uploads) + 1}"
        asset = BlobAsset(url=f"{self.base_url}/{asset_id}/{filename}", asset_id=asset_id)
        self.uploads.append(
            {"filename": filename, "content_type": content_type, "folder": folder, "size": len(data), "asset": asset}
        )
        LOGGER.info("Stored mock upload", extra={"folder": folder})
        return asset


__all__ = ["BlobAsset", "BlobHost", "BlobUploadError", "CloudinaryBlobHost", "MockBlobHost"]
