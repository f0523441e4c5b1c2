import asyncio
from io import BytesIO

import pytest
from starlette.datastructures import Headers, UploadFile

from common.config import Settings
from common.errors import ValidationError
from common.uploads import NO_FILE_MESSAGE, check_file_count, read_upload, read_uploads


def make_file(data: bytes, content_type: str = "image/jpeg", filename: str = "photo.jpg") -> UploadFile:
    return UploadFile(file=BytesIO(data), filename=filename, headers=Headers({"content-type": content_type}))


def test_read_upload_returns_file_payload():
    upload = asyncio.run(read_upload(make_file(b"\xff\xd8\xff"), Settings()))

    assert upload.filename == "photo.jpg"
    assert upload.content_type == "image/jpeg"
    assert upload.data == b"\xff\xd8\xff"


@pytest.mark.parametrize("content_type", ["text/plain", "image/gif", "application/pdf"])
def test_read_upload_rejects_other_types(content_type):
    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(read_upload(make_file(b"data", content_type), Settings()))

    assert exc_info.value.message.startswith("Type de fichier non autorisé")


def test_read_upload_enforces_size_limit():
    settings = Settings(upload_max_bytes=1024 * 1024)

    accepted = asyncio.run(read_upload(make_file(b"0" * settings.upload_max_bytes), settings))
    assert len(accepted.data) == settings.upload_max_bytes

    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(read_upload(make_file(b"0" * (settings.upload_max_bytes + 1)), settings))
    assert exc_info.value.message == "Fichier trop volumineux. Maximum 1MB autorisé."


def test_read_upload_rejects_empty_file():
    with pytest.raises(ValidationError):
        asyncio.run(read_upload(make_file(b""), Settings()))


def test_check_file_count():
    settings = Settings(upload_max_files=2)

    with pytest.raises(ValidationError) as exc_info:
        check_file_count([], settings)
    assert exc_info.value.message == NO_FILE_MESSAGE

    with pytest.raises(ValidationError):
        check_file_count([make_file(b"1"), make_file(b"2"), make_file(b"3")], settings)

    check_file_count([make_file(b"1"), make_file(b"2")], settings)


def test_read_uploads_keeps_order():
    files = [make_file(b"a", filename="a.png", content_type="image/png"), make_file(b"b", filename="b.webp", content_type="image/webp")]

    uploads = asyncio.run(read_uploads(files, Settings()))

    assert [upload.filename for upload in uploads] == ["a.png", "b.webp"]
