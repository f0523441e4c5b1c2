#!/usr/bin/env python3
"""Script to add the room lookup indexes to an existing database."""
from sqlalchemy import create_engine, text

from common.config import get_settings

INDEXES = [
    # Active room listing, ordered by number
    "CREATE INDEX IF NOT EXISTS idx_rooms_active_number ON rooms (is_active, number);",
    # Image removal by storage key
    "CREATE INDEX IF NOT EXISTS idx_room_images_cloudinary_id ON room_images (cloudinary_id);",
    'CREATE INDEX IF NOT EXISTS idx_room_images_room_order ON room_images (room_id, "order");',
]


def add_indexes(database_url: str) -> None:
    engine = create_engine(database_url)
    with engine.begin() as conn:
        for statement in INDEXES:
            conn.execute(text(statement))
    print(f"{len(INDEXES)} indexes ensured.")


if __name__ == "__main__":
    add_indexes(get_settings().database_url)
