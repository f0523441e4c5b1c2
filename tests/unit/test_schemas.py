"""Unit tests for schema validation."""
from datetime import datetime

import pytest
from pydantic import ValidationError

from common.models import RoleEnum, Room, RoomImage, RoomStatus
from common.schemas import ImageIn, PasswordChange, RoomCreate, RoomRead, RoomUpdate, UserCreate


class TestUserSchemas:
    def test_user_create_default_role(self):
        user = UserCreate(
            name="Jane Doe",
            username="janedoe",
            email="jane@example.com",
            password="SecurePass123!",
        )

        assert user.role == RoleEnum.CLIENT

    def test_user_create_invalid_email(self):
        with pytest.raises(ValidationError):
            UserCreate(name="Test", username="test", email="invalid-email", password="Password123")

    def test_user_create_short_password(self):
        with pytest.raises(ValidationError):
            UserCreate(name="Test", username="test", email="test@example.com", password="abc")

    def test_password_change_accepts_camel_case(self):
        change = PasswordChange.model_validate({"currentPassword": "old-secret", "newPassword": "new-secret"})

        assert change.current_password == "old-secret"
        assert change.new_password == "new-secret"


class TestRoomCreate:
    def test_numeric_strings_are_coerced(self):
        room = RoomCreate.model_validate({"number": "101", "capacity": "2", "price": "45000"})

        assert room.capacity == 2
        assert isinstance(room.price, float)
        assert room.price == 45000.0
        assert room.status == RoomStatus.AVAILABLE

    def test_empty_status_falls_back_to_available(self):
        room = RoomCreate.model_validate({"number": "101", "capacity": 2, "price": 1, "status": ""})

        assert room.status == RoomStatus.AVAILABLE

    @pytest.mark.parametrize(
        "amenities, expected",
        [
            ("wifi", ["wifi"]),
            (["wifi", "tv"], ["wifi", "tv"]),
            (None, []),
            ("", []),
        ],
    )
    def test_amenities_are_normalized(self, amenities, expected):
        room = RoomCreate.model_validate({"number": "101", "capacity": 2, "price": 1, "amenities": amenities})

        assert room.amenities == expected

    def test_images_accept_urls_and_objects(self):
        room = RoomCreate.model_validate(
            {
                "number": "101",
                "capacity": 2,
                "price": 1,
                "images": ["https://cdn.example.com/a.jpg", {"url": "https://cdn.example.com/b.jpg", "cloudinaryId": "b"}],
            }
        )

        assert room.images == [
            ImageIn(url="https://cdn.example.com/a.jpg"),
            ImageIn(url="https://cdn.example.com/b.jpg", cloudinary_id="b"),
        ]

    def test_camel_and_snake_case_input(self):
        camel = RoomCreate.model_validate({"number": "1", "capacity": 1, "price": 1, "bedType": "queen"})
        snake = RoomCreate.model_validate({"number": "1", "capacity": 1, "price": 1, "bed_type": "queen"})

        assert camel.bed_type == snake.bed_type == "queen"

    @pytest.mark.parametrize(
        "payload",
        [
            {"capacity": 2, "price": 1},
            {"number": "101", "capacity": 0, "price": 1},
            {"number": "101", "capacity": 2, "price": -5},
            {"number": "101", "capacity": "deux", "price": 1},
            {"number": "101", "capacity": 2, "price": 1, "status": "fermee"},
        ],
    )
    def test_invalid_rooms_rejected(self, payload):
        with pytest.raises(ValidationError):
            RoomCreate.model_validate(payload)


class TestRoomUpdate:
    def test_only_supplied_fields_are_set(self):
        update = RoomUpdate.model_validate({"price": "50000", "bedType": "twin"})

        assert update.model_dump(exclude_unset=True) == {"price": 50000.0, "bed_type": "twin"}

    def test_active_flag_and_currency_are_ignored(self):
        update = RoomUpdate.model_validate({"isActive": True, "currency": "EUR", "name": "Suite"})

        assert update.model_dump(exclude_unset=True) == {"name": "Suite"}

    @pytest.mark.parametrize("field", ["number", "capacity", "price", "status", "amenities"])
    def test_required_fields_cannot_be_cleared(self, field):
        with pytest.raises(ValidationError):
            RoomUpdate.model_validate({field: None})

    def test_optional_fields_can_be_cleared(self):
        update = RoomUpdate.model_validate({"description": None, "images": None})

        assert update.model_dump(exclude_unset=True) == {"description": None, "images": None}

    def test_number_is_stripped(self):
        assert RoomUpdate(number=" 101 ").number == "101"


class TestRoomRead:
    def test_serializes_with_camel_case_aliases(self):
        now = datetime.utcnow()
        room = Room(
            id=1,
            number="101",
            capacity=2,
            price=45000.0,
            currency="XAF",
            status=RoomStatus.AVAILABLE,
            amenities=["wifi"],
            bed_type="king",
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        room.images = [RoomImage(url="https://cdn.example.com/a.jpg", cloudinary_id="a", is_primary=True, order=0)]

        data = RoomRead.model_validate(room).model_dump(mode="json", by_alias=True)

        assert data["bedType"] == "king"
        assert data["isActive"] is True
        assert data["status"] == "disponible"
        assert data["images"][0] == {
            "url": "https://cdn.example.com/a.jpg",
            "cloudinaryId": "a",
            "alt": None,
            "isPrimary": True,
            "order": 0,
        }
