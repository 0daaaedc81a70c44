from __future__ import annotations

"""
AIM • Audio Upload Gate
=======================

FastAPI dependency in front of the storage service:

- MIME allow-list (`MUSIC_ALLOWED_MIME`) → 415 "Only audio files are allowed"
- size cap (`MUSIC_UPLOAD_MAX_BYTES`, 50 MiB default) → 413, enforced while
  reading so an oversized body is never fully buffered
- empty file → 400

Usage
-----
    @router.post("/music/{asset_id}")
    async def upload(audio: AudioUpload = Depends(audio_upload)): ...
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import File, UploadFile, status

from aim.core.config import settings
from aim.core.exceptions import AppException

CHUNK_SIZE = 1024 * 1024  # 1 MiB


@dataclass(frozen=True)
class AudioUpload:
    data: bytes
    content_type: str
    filename: str

    @property
    def size(self) -> int:
        return len(self.data)


def ensure_allowed_mime(content_type: Optional[str], allowed: Iterable[str]) -> str:
    ct = (content_type or "").split(";", 1)[0].strip().lower()
    if ct not in set(allowed):
        raise AppException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            message="Only audio files are allowed",
            details={"content_type": ct or None},
        )
    return ct


async def read_limited(upload: UploadFile, max_bytes: int) -> bytes:
    """Read `upload` fully, failing with 413 once `max_bytes` is exceeded."""
    buf = bytearray()
    while True:
        chunk = await upload.read(CHUNK_SIZE)
        if not chunk:
            break
        buf.extend(chunk)
        if len(buf) > max_bytes:
            raise AppException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                message="File too large",
                details={"max_bytes": max_bytes},
            )
    return bytes(buf)


async def audio_upload(file: UploadFile = File(...)) -> AudioUpload:
    content_type = ensure_allowed_mime(file.content_type, settings.MUSIC_ALLOWED_MIME)
    if file.size is not None and file.size > settings.MUSIC_UPLOAD_MAX_BYTES:
        raise AppException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            message="File too large",
            details={"max_bytes": settings.MUSIC_UPLOAD_MAX_BYTES},
        )
    data = await read_limited(file, settings.MUSIC_UPLOAD_MAX_BYTES)
    if not data:
        raise AppException(status_code=status.HTTP_400_BAD_REQUEST, message="Empty file")
    return AudioUpload(data=data, content_type=content_type, filename=file.filename or "upload")
