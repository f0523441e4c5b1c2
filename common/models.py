"""SQLAlchemy models shared across all services."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Enum as SqlEnum, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class RoleEnum(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    CLIENT = "client"


class RoomStatus(str, Enum):
    AVAILABLE = "disponible"
    OCCUPIED = "occupee"
    RESERVED = "reservee"
    CLEANING = "nettoyage"
    MAINTENANCE = "maintenance"
    OUT_OF_SERVICE = "hors_service"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    surname: Mapped[Optional[str]] = mapped_column(String(100), default=None)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(40), default=None)
    hashed_password: Mapped[str] = mapped_column(String(255))
    role: Mapped[RoleEnum] = mapped_column(SqlEnum(RoleEnum), default=RoleEnum.CLIENT)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    number: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), default=None)
    type: Mapped[Optional[str]] = mapped_column(String(50), default=None)
    category: Mapped[Optional[str]] = mapped_column(String(50), default=None)
    capacity: Mapped[int] = mapped_column(Integer)
    price: Mapped[float] = mapped_column(Float)
    currency: Mapped[str] = mapped_column(String(3), default="XAF")
    size: Mapped[Optional[str]] = mapped_column(String(50), default=None)
    bed_type: Mapped[Optional[str]] = mapped_column(String(50), default=None)
    status: Mapped[RoomStatus] = mapped_column(SqlEnum(RoomStatus), default=RoomStatus.AVAILABLE)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    amenities: Mapped[list[str]] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    images: Mapped[List["RoomImage"]] = relationship(
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="RoomImage.order",
    )


class RoomImage(Base):
    __tablename__ = "room_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    url: Mapped[str] = mapped_column(String(500))
    cloudinary_id: Mapped[Optional[str]] = mapped_column(String(255), default=None, index=True)
    alt: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    order: Mapped[int] = mapped_column(Integer, default=0)

    room: Mapped[Room] = relationship(back_populates="images")
