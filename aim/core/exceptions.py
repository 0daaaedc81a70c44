# aim/core/exceptions.py
from __future__ import annotations

"""
AIM — Application Exceptions
============================
Two layers:

- `AppException`: an `HTTPException` carrying structured metadata, rendered by
  `aim.core.exception_handlers` as problem+json. Used by HTTP-only code
  (upload gate, identity guards).
- `MediaStorageError` family: framework-free errors raised by the music
  storage service. The HTTP layer maps them to status codes; the service
  itself never formats responses.

Usage
-----
    raise UploadFailed(192, cause=exc)
    raise AppException(status_code=413, message="File too large")
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException

__all__ = [
    "AppException",
    "MediaStorageError",
    "StorageUnavailable",
    "InvalidMediaRequest",
    "UploadFailed",
    "DeleteFailed",
    "NoVariantsAvailable",
]


# ──────────────────────────────────────────────────────────────
# 📦 HTTP-facing base
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level HTTP exception with optional metadata."""

    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        code: Optional[int] = None,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code: int = int(code or status_code)
        self.message: str = message
        self.details: Optional[Any] = details

    def to_problem(self, *, instance: str = "about:blank") -> Dict[str, Any]:
        """Return the problem+json body for this error."""
        body: Dict[str, Any] = {
            "type": "about:blank",
            "title": self.__class__.__name__,
            "detail": self.message,
            "status": self.status_code,
            "code": self.code,
            "instance": instance,
        }
        if self.details is not None:
            body["details"] = self.details
        return body


# ──────────────────────────────────────────────────────────────
# 🎵 Music storage domain errors
# ──────────────────────────────────────────────────────────────
class MediaStorageError(RuntimeError):
    """Base class for music storage failures."""


class StorageUnavailable(MediaStorageError):
    """Bucket or credentials are not configured; raised before any network call."""

    def __init__(self, message: str = "Cloud storage is not configured") -> None:
        super().__init__(message)


class InvalidMediaRequest(MediaStorageError, ValueError):
    """Bad caller input: empty/non-positive bitrates, unsafe asset id or extension."""


class UploadFailed(MediaStorageError):
    """One variant write failed, so the whole upload failed."""

    def __init__(self, bitrate: int, cause: Optional[BaseException] = None) -> None:
        self.bitrate = int(bitrate)
        self.cause = cause
        super().__init__(f"Upload failed for {self.bitrate}kbps variant")


class DeleteFailed(MediaStorageError):
    """One variant delete failed. Collected in a `DeleteReport`."""

    def __init__(self, bitrate: int, cause: Optional[BaseException] = None) -> None:
        self.bitrate = int(bitrate)
        self.cause = cause
        super().__init__(f"Delete failed for {self.bitrate}kbps variant")


class NoVariantsAvailable(MediaStorageError, LookupError):
    """The variant map is empty; the asset is not playable."""

    def __init__(self, asset_id: Optional[str] = None) -> None:
        self.asset_id = asset_id
        target = f"asset '{asset_id}'" if asset_id else "asset"
        super().__init__(f"No playable variants for {target}")
