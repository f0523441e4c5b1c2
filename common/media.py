"""Cloudinary-backed storage for room images."""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Union
from urllib.parse import urlparse

import cloudinary.uploader
from circuitbreaker import CircuitBreaker, CircuitBreakerError
from cloudinary.exceptions import Error as CloudinaryError

from .config import Settings
from .errors import RemoteStorageError

logger = logging.getLogger(__name__)

CLOUDINARY_HOST = "res.cloudinary.com"
ALLOWED_FORMATS = ["jpg", "jpeg", "png", "webp"]
ROOM_TRANSFORMATION = [
    {"width": 1920, "height": 1080, "crop": "limit"},
    {"quality": "auto:good"},
    {"fetch_format": "auto"},
]


@dataclass(frozen=True)
class FileUpload:
    """An image file received from a client, already read into memory."""

    filename: str
    content_type: str
    data: bytes


@dataclass(frozen=True)
class DirectUrl:
    """An image hosted elsewhere and referenced by URL."""

    url: str
    storage_key: Optional[str] = None
    alt: Optional[str] = None
    is_primary: bool = False


ImageSource = Union[FileUpload, DirectUrl]


@dataclass(frozen=True)
class UploadedImage:
    url: str
    storage_key: str


@dataclass
class DeletionReport:
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_dict(self) -> dict:
        return {"succeeded": list(self.succeeded), "failed": dict(self.failed)}


class MediaStore(Protocol):
    def upload(self, file: FileUpload) -> UploadedImage:
        ...

    def delete(self, key_or_url: str) -> dict:
        ...

    def storage_key_for(self, url: str) -> Optional[str]:
        ...


def storage_key_from_url(url: str) -> str:
    """Return the asset name of a hosted image URL.

    ``https://res.cloudinary.com/demo/image/upload/v1/grand-hotel/rooms/room-1.jpg``
    gives ``room-1``.
    """
    filename = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    return filename.split(".")[0]


def new_public_id() -> str:
    return f"room-{int(time.time() * 1000)}-{random.randint(0, 10**9)}"


class CloudinaryMediaStore:
    """Uploads to and deletes from one Cloudinary folder.

    Credentials travel with each call instead of through the SDK's global
    configuration, so several stores (or a fake) can coexist in a process.
    """

    def __init__(self, settings: Settings) -> None:
        self.folder = settings.cloudinary_folder.strip("/")
        self.timeout = settings.media_timeout_seconds
        self.delete_attempts = 1 + settings.media_delete_retries
        self._credentials = {
            "cloud_name": settings.cloudinary_cloud_name,
            "api_key": settings.cloudinary_api_key,
            "api_secret": settings.cloudinary_api_secret,
        }
        breaker = CircuitBreaker(
            failure_threshold=settings.media_failure_threshold,
            recovery_timeout=settings.media_recovery_timeout,
            expected_exception=CloudinaryError,
        )
        self._upload = breaker(self._call_upload)
        self._destroy = breaker(self._call_destroy)

    @property
    def configured(self) -> bool:
        return all(self._credentials.values())

    def _call_upload(self, data: bytes, public_id: str) -> dict:
        return cloudinary.uploader.upload(
            data,
            folder=self.folder,
            public_id=public_id,
            resource_type="image",
            allowed_formats=ALLOWED_FORMATS,
            transformation=ROOM_TRANSFORMATION,
            timeout=self.timeout,
            **self._credentials,
        )

    def _call_destroy(self, public_id: str) -> dict:
        result = cloudinary.uploader.destroy(public_id, invalidate=True, timeout=self.timeout, **self._credentials)
        # "not found" means the asset is already gone
        if result.get("result") not in ("ok", "not found"):
            raise CloudinaryError(f"Unexpected destroy result: {result.get('result')!r}")
        return result

    def storage_key_for(self, url: str) -> Optional[str]:
        """Storage key of a URL served from this store's folder, else None.

        Images hosted anywhere else are never deleted remotely.
        """
        parsed = urlparse(url)
        if parsed.hostname != CLOUDINARY_HOST:
            return None
        segments = [segment for segment in parsed.path.split("/") if segment]
        cloud_name = self._credentials["cloud_name"]
        if cloud_name and (not segments or segments[0] != cloud_name):
            return None
        folder = [part for part in self.folder.split("/") if part]
        if len(segments) <= len(folder) or segments[-len(folder) - 1 : -1] != folder:
            return None
        return storage_key_from_url(url) or None

    def public_id_for(self, key_or_url: str) -> str:
        value = key_or_url.strip()
        if "://" in value:
            value = storage_key_from_url(value)
        elif value.startswith(f"{self.folder}/"):
            value = value[len(self.folder) + 1 :]
        if not value:
            raise RemoteStorageError("Identifiant d'image introuvable", error=key_or_url)
        return f"{self.folder}/{value}"

    def upload(self, file: FileUpload) -> UploadedImage:
        try:
            response = self._upload(file.data, new_public_id())
        except (CloudinaryError, CircuitBreakerError, OSError) as exc:
            logger.warning("Cloudinary upload of %s failed: %s", file.filename, exc)
            raise RemoteStorageError("Échec de l'envoi de l'image", error=str(exc)) from exc
        url = response.get("secure_url") or response.get("url")
        public_id = response.get("public_id", "")
        if not url or not public_id:
            raise RemoteStorageError("Réponse Cloudinary incomplète", error=str(response))
        logger.info("Uploaded %s to Cloudinary as %s", file.filename, public_id)
        return UploadedImage(url=url, storage_key=public_id.rsplit("/", 1)[-1])

    def delete(self, key_or_url: str) -> dict:
        public_id = self.public_id_for(key_or_url)
        last_error: Exception | None = None
        for attempt in range(1, self.delete_attempts + 1):
            try:
                result = self._destroy(public_id)
            except CircuitBreakerError as exc:
                raise RemoteStorageError("Service Cloudinary indisponible", error=str(exc)) from exc
            except (CloudinaryError, OSError) as exc:
                last_error = exc
                logger.warning("Cloudinary destroy of %s failed (attempt %d/%d): %s",
                               public_id, attempt, self.delete_attempts, exc)
                continue
            logger.info("Deleted %s from Cloudinary: %s", public_id, result.get("result"))
            return result
        raise RemoteStorageError("Échec de la suppression Cloudinary", error=str(last_error))
