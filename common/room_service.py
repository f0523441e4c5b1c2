"""Room lifecycle orchestration: creation, updates, soft deletion and image cleanup."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from .errors import ConflictError, RemoteStorageError, ServiceError
from .media import DeletionReport, DirectUrl, FileUpload, ImageSource, MediaStore, UploadedImage
from .models import Room
from .repository import DUPLICATE_NUMBER_MESSAGE, RoomRepository
from .schemas import ImageIn, RoomCreate, RoomUpdate

logger = logging.getLogger(__name__)


def direct_sources(images: Sequence[ImageIn]) -> List[DirectUrl]:
    return [
        DirectUrl(url=image.url, storage_key=image.cloudinary_id, alt=image.alt, is_primary=image.is_primary)
        for image in images
    ]


def build_images(
    name: Optional[str],
    sources: Sequence[ImageSource],
    media: MediaStore,
    uploaded: Optional[List[str]] = None,
) -> List[Dict[str, Any]]:
    """Resolve uploads and direct URLs into ordered image records.

    Files are sent to ``media``; their storage keys are appended to
    ``uploaded`` as soon as they exist so a caller can clean up on failure.
    """
    label = name or "Chambre"
    images: List[Dict[str, Any]] = []
    for index, source in enumerate(sources):
        if isinstance(source, FileUpload):
            stored = media.upload(source)
            if uploaded is not None:
                uploaded.append(stored.storage_key)
            url, key, alt, flagged = stored.url, stored.storage_key, None, False
        else:
            url = source.url
            key = source.storage_key or media.storage_key_for(source.url)
            alt, flagged = source.alt, source.is_primary
        images.append(
            {
                "url": url,
                "cloudinary_id": key,
                "alt": alt or f"{label} - Image {index + 1}",
                "is_primary": flagged,
                "order": index,
            }
        )
    if images and not any(image["is_primary"] for image in images):
        images[0]["is_primary"] = True
    return images


def delete_remote(media: MediaStore, keys: Sequence[str]) -> DeletionReport:
    """Delete each key from the media store, collecting failures instead of raising."""
    report = DeletionReport()
    for key in keys:
        try:
            media.delete(key)
        except RemoteStorageError as exc:
            logger.warning("Remote image %s could not be deleted: %s", key, exc.error or exc.message)
            report.failed[key] = exc.error or exc.message
        else:
            report.succeeded.append(key)
    return report


def upload_all(media: MediaStore, files: Sequence[FileUpload]) -> List[UploadedImage]:
    """Upload every file, or none: earlier uploads are removed if a later one fails."""
    stored: List[UploadedImage] = []
    try:
        for file in files:
            stored.append(media.upload(file))
    except RemoteStorageError:
        if stored:
            report = delete_remote(media, [item.storage_key for item in stored])
            logger.info("Rolled back %d uploaded image(s): %s", len(stored), report.as_dict())
        raise
    return stored


class RoomService:
    def __init__(self, repository: RoomRepository, media: MediaStore, currency: str = "XAF") -> None:
        self.repository = repository
        self.media = media
        self.currency = currency

    def create_room(self, data: RoomCreate, uploads: Sequence[FileUpload] = ()) -> Room:
        if self.repository.find_by_number(data.number) is not None:
            raise ConflictError(DUPLICATE_NUMBER_MESSAGE)

        uploaded: List[str] = []
        sources: List[ImageSource] = [*uploads, *direct_sources(data.images)]
        fields = data.model_dump(exclude={"images"})
        fields["currency"] = self.currency
        try:
            images = build_images(data.name, sources, self.media, uploaded)
            room = self.repository.create(fields, images)
        except ServiceError:
            if uploaded:
                report = delete_remote(self.media, uploaded)
                logger.info("Rolled back %d uploaded image(s) for room %s: %s",
                            len(uploaded), data.number, report.as_dict())
            raise
        logger.info("Room %s created (id=%s, images=%d)", room.number, room.id, len(room.images))
        return room

    def get_all_rooms(self) -> List[Room]:
        return self.repository.list_active()

    def get_room(self, room_id: int) -> Room:
        return self.repository.find_by_id(room_id)

    def update_room(self, room_id: int, data: RoomUpdate) -> Room:
        room = self.repository.find_by_id(room_id)
        changes = data.model_dump(exclude_unset=True, exclude={"images"})
        for field, value in changes.items():
            setattr(room, field, value)
        if data.images is not None:
            images = build_images(room.name, direct_sources(data.images), self.media)
            self.repository.replace_images(room, images)
        room = self.repository.save(room)
        logger.info("Room %s updated: %s", room.id, sorted(data.model_fields_set))
        return room

    def delete_room(self, room_id: int) -> DeletionReport:
        """Soft-delete a room after a best-effort purge of its remote images.

        Deleting an already inactive room does nothing.
        """
        room = self.repository.find_by_id(room_id)
        if not room.is_active:
            logger.info("Room %s is already inactive", room.id)
            return DeletionReport()

        # images without a key live on another host and stay untouched
        keys = [image.cloudinary_id for image in room.images if image.cloudinary_id]
        report = delete_remote(self.media, keys)
        room.is_active = False
        self.repository.save(room)
        logger.info("Room %s deactivated; image cleanup %s", room.id, report.as_dict())
        return report

    def remove_image(self, storage_key: str) -> tuple[int, DeletionReport]:
        report = delete_remote(self.media, [storage_key])
        pulled = self.repository.pull_image_by_key(storage_key)
        logger.info("Image %s pulled from %d room(s)", storage_key, pulled)
        return pulled, report
