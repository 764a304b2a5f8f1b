"""Blob storage for generated and signed order documents.

Two backends share one small interface: a local directory (development and
tests) and Cloudinary private raw uploads. Both return a stable URL on upload
and can mint short-lived download URLs later.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from urllib.parse import quote

import cloudinary
import cloudinary.uploader
import cloudinary.utils

from revas.config import settings
from revas.core.errors import ExternalDependencyError, NotFoundError

logger = logging.getLogger("revas.storage")


@dataclass(frozen=True)
class StoredBlob:
    key: str
    url: str
    sha256: str
    size_bytes: int


def storage_root() -> Path:
    """Return the absolute storage root for this backend instance."""

    root = Path(settings.storage_dir)
    if root.is_absolute():
        return root

    # backend/revas/services/... -> backend/
    backend_root = Path(__file__).resolve().parents[2]
    return (backend_root / root).resolve()


def _sign(key: str, expires: int) -> str:
    message = f"{key}:{expires}".encode("utf-8")
    return hmac.new(settings.secret_key.encode("utf-8"), message, hashlib.sha256).hexdigest()


class LocalBlobStore:
    name = "local"

    def __init__(self, root: Path | None = None) -> None:
        self.root = root or storage_root()

    def _path_for(self, key: str) -> Path:
        target = (self.root / key).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise ValueError("Invalid blob key")
        return target

    def put(self, key: str, content: bytes, content_type: str = "application/pdf") -> StoredBlob:
        target_path = self._path_for(key)
        tmp_path = target_path.with_suffix(target_path.suffix + ".tmp")
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(content)
            tmp_path.replace(target_path)
        except OSError as exc:
            raise ExternalDependencyError(f"Could not store document: {exc}") from exc

        return StoredBlob(
            key=key,
            url=f"file://{target_path.as_posix()}",
            sha256=hashlib.sha256(content).hexdigest(),
            size_bytes=len(content),
        )

    def signed_url(self, key: str, ttl_seconds: int | None = None) -> str:
        ttl = int(ttl_seconds or settings.signed_url_ttl_seconds)
        expires = int(time.time()) + ttl
        prefix = settings.api_prefix.rstrip("/")
        return (
            f"{prefix}/documents/files/{quote(key)}"
            f"?expires={expires}&signature={_sign(key, expires)}"
        )

    def open_signed(self, key: str, *, expires: int, signature: str) -> Path:
        """Resolve a signed download back to a file, checking signature and expiry."""

        expected = _sign(key, int(expires))
        if not hmac.compare_digest(expected, str(signature)):
            raise NotFoundError("Document link is invalid")
        if int(expires) < int(time.time()):
            raise NotFoundError("Document link has expired")
        path = self._path_for(key)
        if not path.is_file():
            raise NotFoundError("Document file not found")
        return path


class CloudinaryBlobStore:
    name = "cloudinary"

    def __init__(self) -> None:
        if not all(
            [
                settings.cloudinary_cloud_name,
                settings.cloudinary_api_key,
                settings.cloudinary_api_secret,
            ]
        ):
            raise ValueError(
                "CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET must be set"
            )
        cloudinary.config(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            secure=True,
        )

    @staticmethod
    def _public_id(key: str) -> str:
        return key[:-4] if key.endswith(".pdf") else key

    def put(self, key: str, content: bytes, content_type: str = "application/pdf") -> StoredBlob:
        try:
            result = cloudinary.uploader.upload(
                content,
                public_id=self._public_id(key),
                resource_type="raw",
                format="pdf",
                type="private",
                overwrite=True,
                invalidate=True,
                timeout=settings.external_timeout_seconds,
            )
        except Exception as exc:
            logger.error("blob_upload_failed", extra={"key": key, "error": str(exc)})
            raise ExternalDependencyError("Document storage is unavailable") from exc

        return StoredBlob(
            key=key,
            url=str(result.get("secure_url") or result.get("url")),
            sha256=hashlib.sha256(content).hexdigest(),
            size_bytes=len(content),
        )

    def signed_url(self, key: str, ttl_seconds: int | None = None) -> str:
        ttl = int(ttl_seconds or settings.signed_url_ttl_seconds)
        return cloudinary.utils.private_download_url(
            self._public_id(key),
            "pdf",
            resource_type="raw",
            type="private",
            expires_at=int(time.time()) + ttl,
        )


BlobStore = LocalBlobStore | CloudinaryBlobStore


@lru_cache(maxsize=1)
def get_blob_store() -> BlobStore:
    if settings.storage_backend == "cloudinary":
        return CloudinaryBlobStore()
    return LocalBlobStore()
