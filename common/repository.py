"""Persistence boundary for rooms and their embedded images."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from .models import Room, RoomImage

logger = logging.getLogger(__name__)

DUPLICATE_NUMBER_MESSAGE = "Une chambre avec ce numéro existe déjà"
ROOM_NOT_FOUND_MESSAGE = "Chambre non trouvée"


def _is_duplicate_number(exc: IntegrityError) -> bool:
    """True when the violated constraint is the unique index on ``rooms.number``."""
    detail = str(exc.orig).lower()
    return "unique" in detail and ("rooms.number" in detail or "ix_rooms_number" in detail)


def ensure_single_primary(images: Sequence[RoomImage]) -> None:
    """Keep exactly one primary image: the first flagged one, else the first by order."""
    if not images:
        return
    ordered = sorted(images, key=lambda image: image.order or 0)
    primary = next((image for image in ordered if image.is_primary), ordered[0])
    for image in ordered:
        image.is_primary = image is primary


class RoomRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if _is_duplicate_number(exc):
                raise ConflictError(DUPLICATE_NUMBER_MESSAGE, error=str(exc.orig)) from exc
            logger.warning("Integrity error while trying to %s: %s", action, exc.orig)
            raise ValidationError("Données de chambre invalides", error=str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Database error while trying to %s: %s", action, exc)
            raise PersistenceError(f"Erreur lors de {action}", error=str(exc)) from exc

    def find_by_number(self, number: str) -> Optional[Room]:
        return self.db.query(Room).filter(Room.number == number).first()

    def find_by_id(self, room_id: int) -> Room:
        room = (
            self.db.query(Room)
            .options(selectinload(Room.images))
            .filter(Room.id == room_id)
            .first()
        )
        if room is None:
            raise NotFoundError(ROOM_NOT_FOUND_MESSAGE)
        return room

    def create(self, fields: Dict[str, Any], images: Iterable[Dict[str, Any]] = ()) -> Room:
        room = Room(**fields)
        room.images = [RoomImage(**image) for image in images]
        ensure_single_primary(room.images)
        self.db.add(room)
        self._commit("la création de la chambre")
        self.db.refresh(room)
        return room

    def replace_images(self, room: Room, images: Iterable[Dict[str, Any]]) -> None:
        room.images = [RoomImage(**image) for image in images]

    def save(self, room: Room) -> Room:
        ensure_single_primary(room.images)
        self._commit("l'enregistrement de la chambre")
        self.db.refresh(room)
        return room

    def list_active(self) -> List[Room]:
        return (
            self.db.query(Room)
            .options(selectinload(Room.images))
            .filter(Room.is_active.is_(True))
            .order_by(Room.number.asc())
            .all()
        )

    def pull_image_by_key(self, storage_key: str) -> int:
        """Remove every image stored under ``storage_key`` from every room.

        Returns the number of rooms that referenced it.
        """
        matches = self.db.query(RoomImage).filter(RoomImage.cloudinary_id == storage_key).all()
        rooms = {image.room_id: image.room for image in matches}
        for image in matches:
            image.room.images.remove(image)
        for room in rooms.values():
            ensure_single_primary(room.images)
        self._commit("la suppression de l'image")
        return len(rooms)
