"""
AIM • Music Storage Routes
==========================

HTTP surface over `MusicStorageService`. The service owns S3/CloudFront; this
module owns auth, request parsing, the asset registry and response caching.

Route Index
-----------
- GET    /music/storage/status               → storage availability (public)
- GET    /music/storage/stats                → object/byte counts (uploaders)
- POST   /music/resolve                      → resolve a caller-supplied variant map
- POST   /music/{asset_id}                   → multipart upload, one object per bitrate
- GET    /music/{asset_id}/stream            → variant URL for the caller's tier
- DELETE /music/{asset_id}                   → delete variants + CDN invalidation
- POST   /music/{asset_id}/presigned-upload  → presigned PUT for one variant

Security & Rate Limits
----------------------
- Bearer identity on everything except `/music/storage/status`.
- Mutations and presigning require an uploader role (artist/manager/admin).
- Responses carrying URLs are **no-store**.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Form, Request, Response, status
from loguru import logger

from aim.core.exceptions import AppException, InvalidMediaRequest
from aim.core.limiter import rate_limit
from aim.core.security import Identity, get_current_identity, require_uploader
from aim.core.storage import DEFAULT_EXTENSION
from aim.dependencies.storage import (
    get_asset_repository,
    get_music_storage,
    require_available_storage,
)
from aim.dependencies.upload_gate import AudioUpload, audio_upload
from aim.repositories.media_assets import MediaAssetRepository
from aim.schemas.media import (
    DeleteReport,
    MediaAsset,
    PresignedUploadIn,
    PresignedUploadOut,
    ResolveStreamIn,
    StorageStats,
    StorageStatus,
    StreamResolution,
)
from aim.security_headers import set_sensitive_cache
from aim.services.music_storage import MusicStorageService

router = APIRouter(prefix="/music", tags=["Music Storage"])
__all__ = ["router"]


def parse_bitrates_csv(raw: Optional[str]) -> Optional[List[int]]:
    """`"128, 320"` → `[128, 320]`; blank → None (use configured bitrates)."""
    if raw is None or not raw.strip():
        return None
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError as e:
        raise InvalidMediaRequest(f"Invalid bitrates field: {raw!r}") from e


async def _get_asset_or_404(registry: MediaAssetRepository, asset_id: str) -> MediaAsset:
    asset = await registry.get(asset_id)
    if asset is None:
        raise AppException(status_code=status.HTTP_404_NOT_FOUND, message="Music asset not found")
    return asset


# ─────────────────────────────────────────────────────────────────────────────
# 📦 Storage info
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/storage/status", response_model=StorageStatus, summary="Is cloud storage configured?")
@rate_limit("60/minute")
async def storage_status(
    request: Request,
    response: Response,
    service: MusicStorageService = Depends(get_music_storage),
) -> StorageStatus:
    return StorageStatus(
        available=service.is_available(),
        cdn_enabled=service.cdn_enabled,
        bitrates=list(service.bitrates),
    )


@router.get("/storage/stats", response_model=StorageStats, summary="Object count and bytes under music/")
@rate_limit("10/minute")
async def storage_stats(
    request: Request,
    response: Response,
    service: MusicStorageService = Depends(require_available_storage),
    identity: Identity = Depends(require_uploader),
) -> StorageStats:
    return await service.get_storage_stats()


# ─────────────────────────────────────────────────────────────────────────────
# ▶️ Stream resolution
# ─────────────────────────────────────────────────────────────────────────────

@router.post("/resolve", response_model=StreamResolution, summary="Resolve a variant map for a tier")
@rate_limit("120/minute")
async def resolve_stream(
    request: Request,
    response: Response,
    payload: ResolveStreamIn,
    identity: Identity = Depends(get_current_identity),
    service: MusicStorageService = Depends(get_music_storage),
) -> StreamResolution:
    # only uploaders may preview another tier's selection
    tier = payload.tier if (payload.tier and identity.can_upload) else identity.tier
    bitrate, url = service.resolve_stream(payload.variants, tier)
    set_sensitive_cache(response)
    return StreamResolution(tier=tier, bitrate=bitrate, url=url)


@router.get("/{asset_id}/stream", response_model=StreamResolution, summary="Variant URL for the caller's tier")
@rate_limit("120/minute")
async def stream_url(
    asset_id: str,
    request: Request,
    response: Response,
    identity: Identity = Depends(get_current_identity),
    service: MusicStorageService = Depends(get_music_storage),
    registry: MediaAssetRepository = Depends(get_asset_repository),
) -> StreamResolution:
    asset = await _get_asset_or_404(registry, asset_id)
    bitrate, url = service.resolve_stream(asset.variants, identity.tier, asset_id=asset_id)
    set_sensitive_cache(response)
    return StreamResolution(asset_id=asset_id, tier=identity.tier, bitrate=bitrate, url=url)


# ─────────────────────────────────────────────────────────────────────────────
# ⬆️ Upload / 🗑️ Delete
# ─────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{asset_id}",
    response_model=MediaAsset,
    status_code=status.HTTP_201_CREATED,
    summary="Upload one audio file as every configured bitrate",
)
@rate_limit("10/minute")
async def upload_music(
    asset_id: str,
    request: Request,
    response: Response,
    identity: Identity = Depends(require_uploader),
    service: MusicStorageService = Depends(require_available_storage),
    registry: MediaAssetRepository = Depends(get_asset_repository),
    audio: AudioUpload = Depends(audio_upload),
    bitrates: Optional[str] = Form(None, description="Comma-separated kbps list, e.g. 128,320"),
) -> MediaAsset:
    existing = await registry.get(asset_id)
    asset = await service.upload_music_file(
        audio.data,
        audio.content_type,
        audio.filename,
        asset_id,
        parse_bitrates_csv(bitrates),
        # never roll back objects that a live record still points at
        cleanup_partial=existing is None,
    )
    await registry.set(asset)
    if existing is not None:
        await service.prune_replaced(existing, asset)
    logger.info("music uploaded | asset_id={} | by={} | bytes={}", asset_id, identity.user_id, audio.size)
    set_sensitive_cache(response)
    return asset


@router.delete("/{asset_id}", response_model=DeleteReport, summary="Delete all variants and invalidate the CDN")
@rate_limit("10/minute")
async def delete_music(
    asset_id: str,
    request: Request,
    response: Response,
    identity: Identity = Depends(require_uploader),
    service: MusicStorageService = Depends(require_available_storage),
    registry: MediaAssetRepository = Depends(get_asset_repository),
) -> DeleteReport:
    asset = await registry.get(asset_id)
    report = await service.delete_music_file(
        asset_id,
        asset.bitrates if asset else None,
        extension=asset.extension if asset else DEFAULT_EXTENSION,
    )

    if report.ok:
        await registry.delete(asset_id)
    else:
        response.status_code = status.HTTP_207_MULTI_STATUS
        if asset is not None:
            gone = set(report.deleted)
            remaining = {b: u for b, u in asset.variants.items() if b not in gone}
            await registry.set(asset.model_copy(update={"variants": remaining}))

    logger.info(
        "music delete | asset_id={} | by={} | deleted={} | failed={}",
        asset_id,
        identity.user_id,
        report.deleted,
        [f.bitrate for f in report.failures],
    )
    return report


# ─────────────────────────────────────────────────────────────────────────────
# 🔐 Presigned direct upload
# ─────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{asset_id}/presigned-upload",
    response_model=PresignedUploadOut,
    summary="Presigned PUT URL for one bitrate variant",
)
@rate_limit("30/minute")
async def presigned_upload(
    asset_id: str,
    payload: PresignedUploadIn,
    request: Request,
    response: Response,
    identity: Identity = Depends(require_uploader),
    service: MusicStorageService = Depends(require_available_storage),
) -> PresignedUploadOut:
    out = await service.presign_upload(asset_id, payload.filename, payload.bitrate)
    set_sensitive_cache(response)
    return out
