"""
Request-scoped access to the objects built once in the app lifespan.

    service: MusicStorageService = Depends(get_music_storage)
    service: MusicStorageService = Depends(require_available_storage)  # 503 first
    registry: MediaAssetRepository = Depends(get_asset_repository)
"""

from __future__ import annotations

from fastapi import Request

from aim.core.exceptions import StorageUnavailable
from aim.repositories.media_assets import MediaAssetRepository
from aim.services.music_storage import MusicStorageService


def get_music_storage(request: Request) -> MusicStorageService:
    return request.app.state.music_storage


def get_asset_repository(request: Request) -> MediaAssetRepository:
    return request.app.state.asset_repository


def require_available_storage(request: Request) -> MusicStorageService:
    """`StorageUnavailable` (503) before the upload gate validates the file."""
    service = get_music_storage(request)
    if not service.is_available():
        raise StorageUnavailable()
    return service
