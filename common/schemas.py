"""Pydantic schemas shared across the services.

Room payloads travel in camelCase (``bedType``, ``isActive``,
``cloudinaryId``); both spellings are accepted on input.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import RoleEnum, RoomStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    username: str
    role: RoleEnum


class UserBase(BaseModel):
    name: str = Field(..., max_length=100)
    surname: Optional[str] = Field(None, max_length=100)
    username: str = Field(..., max_length=50)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=40)
    role: RoleEnum = RoleEnum.CLIENT


class UserCreate(UserBase):
    password: str = Field(..., min_length=6)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    surname: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=40)
    role: Optional[RoleEnum] = None
    is_active: Optional[bool] = None


class PasswordChange(CamelModel):
    current_password: str
    new_password: str


class UserRead(UserBase):
    id: int
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


def _as_list(value: Any) -> Any:
    """Wrap a scalar in a list; ``None`` and empty strings become ``[]``."""
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


class ImageIn(CamelModel):
    url: str = Field(..., min_length=1)
    cloudinary_id: Optional[str] = None
    alt: Optional[str] = None
    is_primary: bool = False


class ImageRead(CamelModel):
    url: str
    cloudinary_id: Optional[str] = None
    alt: Optional[str] = None
    is_primary: bool
    order: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _as_image_inputs(value: Any) -> Any:
    """Accept bare URL strings next to full image objects."""
    return [{"url": item} if isinstance(item, str) else item for item in _as_list(value)]


class RoomBase(CamelModel):
    name: Optional[str] = Field(None, max_length=100)
    type: Optional[str] = Field(None, max_length=50)
    category: Optional[str] = Field(None, max_length=50)
    size: Optional[str] = Field(None, max_length=50)
    bed_type: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None


class RoomCreate(RoomBase):
    number: str = Field(..., min_length=1, max_length=20)
    capacity: int = Field(..., gt=0)
    price: float = Field(..., ge=0)
    status: RoomStatus = RoomStatus.AVAILABLE
    amenities: List[str] = Field(default_factory=list)
    images: List[ImageIn] = Field(default_factory=list)

    @field_validator("number", mode="before")
    @classmethod
    def _strip_number(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        return value or RoomStatus.AVAILABLE

    @field_validator("amenities", mode="before")
    @classmethod
    def _normalize_amenities(cls, value: Any) -> Any:
        return _as_list(value)

    @field_validator("images", mode="before")
    @classmethod
    def _normalize_images(cls, value: Any) -> Any:
        return _as_image_inputs(value)


# Columns a partial update may change but never clear.
REQUIRED_ROOM_FIELDS = ("number", "capacity", "price", "status", "amenities")


class RoomUpdate(RoomBase):
    number: Optional[str] = Field(None, min_length=1, max_length=20)
    capacity: Optional[int] = Field(None, gt=0)
    price: Optional[float] = Field(None, ge=0)
    status: Optional[RoomStatus] = None
    amenities: Optional[List[str]] = None
    images: Optional[List[ImageIn]] = None

    @field_validator("number", mode="before")
    @classmethod
    def _strip_number(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("amenities", mode="before")
    @classmethod
    def _normalize_amenities(cls, value: Any) -> Any:
        return None if value is None else _as_list(value)

    @field_validator("images", mode="before")
    @classmethod
    def _normalize_images(cls, value: Any) -> Any:
        return None if value is None else _as_image_inputs(value)

    @model_validator(mode="after")
    def _reject_cleared_fields(self) -> "RoomUpdate":
        cleared = [
            field for field in REQUIRED_ROOM_FIELDS
            if field in self.model_fields_set and getattr(self, field) is None
        ]
        if cleared:
            raise ValueError(f"champs obligatoires, null interdit: {', '.join(cleared)}")
        return self


class RoomRead(RoomBase):
    id: int
    number: str
    capacity: int
    price: float
    currency: str
    status: RoomStatus
    amenities: List[str]
    images: List[ImageRead]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UploadedImageRead(CamelModel):
    url: str
    cloudinary_id: str


class CleanupReport(BaseModel):
    succeeded: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)


class Envelope(BaseModel):
    success: bool = True
    message: Optional[str] = None


class RoomEnvelope(Envelope):
    room: RoomRead


class RoomListEnvelope(Envelope):
    count: int
    rooms: List[RoomRead]


class RoomDeletedEnvelope(Envelope):
    cleanup: CleanupReport


class ImageUploadEnvelope(Envelope):
    image: UploadedImageRead


class ImagesUploadEnvelope(Envelope):
    images: List[UploadedImageRead]


class ImageRemovedEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    removed_from: int
    cleanup: CleanupReport


class UserEnvelope(Envelope):
    user: UserRead


class ErrorEnvelope(BaseModel):
    success: bool = False
    message: str
    error: Optional[Union[str, List[Any]]] = None
