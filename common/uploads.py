"""Upload policy for room images: accepted types, size and count limits."""
from typing import Sequence

from starlette.datastructures import UploadFile

from .config import Settings
from .errors import ValidationError
from .media import FileUpload

NO_FILE_MESSAGE = "Aucun fichier uploadé"


def _max_megabytes(settings: Settings) -> int:
    return settings.upload_max_bytes // (1024 * 1024)


def check_file_count(files: Sequence[UploadFile], settings: Settings) -> None:
    if not files:
        raise ValidationError(NO_FILE_MESSAGE)
    if len(files) > settings.upload_max_files:
        raise ValidationError(f"Trop de fichiers. Maximum {settings.upload_max_files} images autorisées.")


async def read_upload(file: UploadFile, settings: Settings) -> FileUpload:
    """Validate an incoming file and load it for the media store."""
    content_type = (file.content_type or "").lower()
    if content_type not in settings.upload_allowed_types:
        raise ValidationError(
            "Type de fichier non autorisé. Seuls JPG, JPEG, PNG et WebP sont acceptés.",
            error=content_type or None,
        )
    try:
        data = await file.read(settings.upload_max_bytes + 1)
    finally:
        await file.close()
    if len(data) > settings.upload_max_bytes:
        raise ValidationError(f"Fichier trop volumineux. Maximum {_max_megabytes(settings)}MB autorisé.")
    if not data:
        raise ValidationError("Fichier vide", error=file.filename)
    return FileUpload(filename=file.filename or "image", content_type=content_type, data=data)


async def read_uploads(files: Sequence[UploadFile], settings: Settings) -> list[FileUpload]:
    check_file_count(files, settings)
    return [await read_upload(file, settings) for file in files]
