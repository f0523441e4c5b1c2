from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile as FormFile

from common.cache import SimpleTTLCache
from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import require_admin
from common.errors import ValidationError, format_validation_errors, install_error_handlers
from common.logging_middleware import add_audit_middleware, configure_logging
from common.media import CloudinaryMediaStore, FileUpload, MediaStore
from common.models import User
from common.rate_limit import apply_rate_limiter, limiter
from common.repository import RoomRepository
from common.room_service import RoomService, upload_all
from common.schemas import (
    CleanupReport,
    ImageRemovedEnvelope,
    ImagesUploadEnvelope,
    ImageUploadEnvelope,
    RoomCreate,
    RoomDeletedEnvelope,
    RoomEnvelope,
    RoomListEnvelope,
    RoomRead,
    RoomUpdate,
    UploadedImageRead,
)
from common.uploads import NO_FILE_MESSAGE, check_file_count, read_upload, read_uploads

settings = get_settings()
ROOM_LIST_KEY = "rooms:active"
room_list_cache: SimpleTTLCache[list[dict[str, Any]]] = SimpleTTLCache(ttl=settings.room_cache_ttl)
LIST_FIELDS = {"amenities", "amenities[]", "images", "images[]"}


@lru_cache
def get_media_store() -> MediaStore:
    return CloudinaryMediaStore(settings)


def get_room_service(db: Session = Depends(get_db), media: MediaStore = Depends(get_media_store)) -> RoomService:
    return RoomService(RoomRepository(db), media, currency=settings.room_currency)


def _invalidate_room_list() -> None:
    room_list_cache.clear()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    configure_logging(settings.log_level)
    fastapi_app = FastAPI(title="Rooms Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(fastapi_app)
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "rooms")
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


async def _read_room_form(request: Request) -> tuple[dict[str, Any], list[FileUpload]]:
    form = await request.form()
    payload: dict[str, Any] = {}
    files: list[FormFile] = []
    for key in form.keys():
        values = form.getlist(key)
        if key not in LIST_FIELDS:
            payload[key] = values[-1]
            continue
        field = key.removesuffix("[]")
        for value in values:
            if isinstance(value, FormFile):
                files.append(value)
            elif value != "":
                payload.setdefault(field, []).append(value)
    if files:
        check_file_count(files, settings)
    return payload, [await read_upload(file, settings) for file in files]


async def _read_room_payload(request: Request) -> tuple[RoomCreate, list[FileUpload]]:
    """Parse a room from either a JSON body or a multipart form with image files."""
    content_type = request.headers.get("content-type", "")
    uploads: list[FileUpload] = []
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        payload, uploads = await _read_room_form(request)
    else:
        try:
            payload = await request.json()
        except ValueError as exc:
            raise ValidationError("Corps de requête JSON invalide", error=str(exc)) from exc
    try:
        return RoomCreate.model_validate(payload), uploads
    except SchemaValidationError as exc:
        raise ValidationError("Données invalides", error=format_validation_errors(exc.errors())) from exc


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "rooms"}


@app.get("/rooms", response_model=RoomListEnvelope, tags=["rooms"])
@limiter.limit("120/minute")
def list_rooms(request: Request, service: RoomService = Depends(get_room_service)) -> dict[str, Any]:
    rooms = room_list_cache.get_or_load(
        ROOM_LIST_KEY,
        lambda: [
            RoomRead.model_validate(room).model_dump(mode="json", by_alias=True)
            for room in service.get_all_rooms()
        ],
    )
    return {"success": True, "count": len(rooms), "rooms": rooms}


@app.get("/rooms/{room_id}", response_model=RoomEnvelope, tags=["rooms"])
@limiter.limit("120/minute")
def get_room(request: Request, room_id: int, service: RoomService = Depends(get_room_service)) -> RoomEnvelope:
    return RoomEnvelope(room=RoomRead.model_validate(service.get_room(room_id)))


@app.post("/rooms", response_model=RoomEnvelope, status_code=status.HTTP_201_CREATED, tags=["rooms"])
@limiter.limit("20/minute")
async def create_room(
    request: Request,
    _: User = Depends(require_admin),
    service: RoomService = Depends(get_room_service),
) -> RoomEnvelope:
    data, uploads = await _read_room_payload(request)
    room = await run_in_threadpool(service.create_room, data, uploads)
    _invalidate_room_list()
    return RoomEnvelope(message="Chambre créée avec succès", room=RoomRead.model_validate(room))


@app.put("/rooms/{room_id}", response_model=RoomEnvelope, tags=["rooms"])
@limiter.limit("30/minute")
def update_room(
    request: Request,
    room_id: int,
    room_update: RoomUpdate,
    _: User = Depends(require_admin),
    service: RoomService = Depends(get_room_service),
) -> RoomEnvelope:
    room = service.update_room(room_id, room_update)
    _invalidate_room_list()
    return RoomEnvelope(message="Chambre mise à jour avec succès", room=RoomRead.model_validate(room))


@app.delete("/rooms/{room_id}", response_model=RoomDeletedEnvelope, tags=["rooms"])
@limiter.limit("30/minute")
def delete_room(
    request: Request,
    room_id: int,
    _: User = Depends(require_admin),
    service: RoomService = Depends(get_room_service),
) -> RoomDeletedEnvelope:
    report = service.delete_room(room_id)
    _invalidate_room_list()
    return RoomDeletedEnvelope(message="Chambre supprimée avec succès", cleanup=CleanupReport(**report.as_dict()))


@app.post("/rooms/upload/image", response_model=ImageUploadEnvelope, tags=["images"])
@limiter.limit("30/minute")
async def upload_image(
    request: Request,
    image: Optional[UploadFile] = File(None),
    _: User = Depends(require_admin),
    media: MediaStore = Depends(get_media_store),
) -> ImageUploadEnvelope:
    if image is None:
        raise ValidationError(NO_FILE_MESSAGE)
    upload = await read_upload(image, settings)
    stored = await run_in_threadpool(media.upload, upload)
    return ImageUploadEnvelope(
        message="Image uploadée avec succès",
        image=UploadedImageRead(url=stored.url, cloudinary_id=stored.storage_key),
    )


@app.post("/rooms/upload/images", response_model=ImagesUploadEnvelope, tags=["images"])
@limiter.limit("30/minute")
async def upload_images(
    request: Request,
    images: Optional[List[UploadFile]] = File(None),
    _: User = Depends(require_admin),
    media: MediaStore = Depends(get_media_store),
) -> ImagesUploadEnvelope:
    files = await read_uploads(images or [], settings)
    stored = await run_in_threadpool(upload_all, media, files)
    return ImagesUploadEnvelope(
        message=f"{len(stored)} image(s) uploadée(s) avec succès",
        images=[UploadedImageRead(url=item.url, cloudinary_id=item.storage_key) for item in stored],
    )


@app.delete("/rooms/images/{filename}", response_model=ImageRemovedEnvelope, tags=["images"])
@limiter.limit("30/minute")
def delete_image(
    request: Request,
    filename: str,
    _: User = Depends(require_admin),
    service: RoomService = Depends(get_room_service),
) -> ImageRemovedEnvelope:
    pulled, report = service.remove_image(filename)
    _invalidate_room_list()
    return ImageRemovedEnvelope(
        message="Image supprimée avec succès",
        removed_from=pulled,
        cleanup=CleanupReport(**report.as_dict()),
    )
