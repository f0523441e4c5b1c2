import os
from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")

from common.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from common.database import Base, SessionLocal, engine  # noqa: E402
from common.errors import RemoteStorageError  # noqa: E402
from common.media import FileUpload, UploadedImage, storage_key_from_url  # noqa: E402
from common.models import RoleEnum  # noqa: E402
from services.rooms.app import app as rooms_app  # noqa: E402
from services.rooms.app import get_media_store, room_list_cache  # noqa: E402
from services.users.app import app as users_app  # noqa: E402

ADMIN_PAYLOAD = {
    "name": "Admin",
    "username": "admin",
    "email": "admin@example.com",
    "password": "Passw0rd!",
    "role": RoleEnum.ADMIN.value,
}
CLIENT_PAYLOAD = {
    "name": "Jean",
    "surname": "Dupont",
    "username": "jean",
    "email": "jean.dupont@example.com",
    "password": "Passw0rd!",
}
CLOUD_URL = "https://res.cloudinary.com/demo/image/upload/v1700000000/grand-hotel/rooms"


class FakeMediaStore:
    """In-memory stand-in for the Cloudinary store."""

    def __init__(self) -> None:
        self.uploaded: list[str] = []
        self.deleted: list[str] = []
        self.fail_deletes = False
        self.fail_uploads = False
        self.fail_uploads_after: Optional[int] = None

    def upload(self, file: FileUpload) -> UploadedImage:
        limit_reached = self.fail_uploads_after is not None and len(self.uploaded) >= self.fail_uploads_after
        if self.fail_uploads or limit_reached:
            raise RemoteStorageError("Échec de l'envoi de l'image", error="upload refused")
        key = f"room-test-{len(self.uploaded) + 1}"
        self.uploaded.append(key)
        return UploadedImage(url=f"{CLOUD_URL}/{key}.jpg", storage_key=key)

    def delete(self, key_or_url: str) -> dict:
        if self.fail_deletes:
            raise RemoteStorageError("Échec de la suppression Cloudinary", error="timeout")
        self.deleted.append(key_or_url)
        return {"result": "ok"}

    def storage_key_for(self, url: str) -> Optional[str]:
        if not url.startswith(f"{CLOUD_URL}/"):
            return None
        return storage_key_from_url(url)


def auth_header(users_client: TestClient, username: str, password: str) -> dict[str, str]:
    response = users_client.post(
        "/auth/login",
        data={"username": username, "password": password},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    room_list_cache.clear()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def media_store() -> FakeMediaStore:
    return FakeMediaStore()


@pytest.fixture(autouse=True)
def _install_media_store(media_store: FakeMediaStore) -> Generator[None, None, None]:
    rooms_app.dependency_overrides[get_media_store] = lambda: media_store
    yield
    rooms_app.dependency_overrides.pop(get_media_store, None)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def users_client() -> Generator[TestClient, None, None]:
    with TestClient(users_app) as client:
        yield client


@pytest.fixture()
def rooms_client() -> Generator[TestClient, None, None]:
    with TestClient(rooms_app) as client:
        yield client


@pytest.fixture()
def admin_headers(users_client: TestClient) -> dict[str, str]:
    users_client.post("/auth/register", json=ADMIN_PAYLOAD)
    return auth_header(users_client, ADMIN_PAYLOAD["username"], ADMIN_PAYLOAD["password"])


@pytest.fixture()
def client_headers(users_client: TestClient, admin_headers: dict[str, str]) -> dict[str, str]:
    users_client.post("/auth/register", json=CLIENT_PAYLOAD)
    return auth_header(users_client, CLIENT_PAYLOAD["username"], CLIENT_PAYLOAD["password"])
