from __future__ import annotations

"""
🎧 AIM • Tiered Music Storage Service
=====================================

Owns every interaction with the object store and CDN for audio assets:

- upload one buffer as N bitrate variants (all-or-nothing)
- resolve the variant URL a subscription tier is entitled to
- delete all variants + invalidate the CDN paths
- presigned direct-to-bucket upload URLs and bucket statistics

Construction
------------
Build one instance at startup (`MusicStorageService.from_settings()`) and
hand it to route handlers through `app.state`. Without bucket + credentials
the instance reports `is_available() == False` and every mutating call raises
`StorageUnavailable` before any network I/O.

Concurrency
-----------
boto3 is blocking, so each SDK call runs in a worker thread under an
explicit `fail_after` timeout. Variant writes/deletes for one asset run
concurrently in a task group and are joined before a result is returned.
A timed-out call is abandoned, not killed: its thread may still finish the
PUT later. Upload rollback therefore also deletes the keys of timed-out
variants, but a write landing after that delete survives as an orphan
(logged at the timeout).
"""

from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote
from uuid import uuid4
import time

import anyio
from loguru import logger

from aim.core import metrics
from aim.core.config import Settings, settings as default_settings
from aim.core.exceptions import (
    DeleteFailed,
    InvalidMediaRequest,
    NoVariantsAvailable,
    StorageUnavailable,
    UploadFailed,
)
from aim.core.storage import (
    DEFAULT_EXTENSION,
    MUSIC_PREFIX,
    extension_for_mime,
    extension_of,
    invalidation_path,
    music_key,
    parse_music_key,
    validate_asset_id,
)
from aim.schemas.media import (
    DeleteReport,
    MediaAsset,
    PresignedUploadOut,
    StorageStats,
    VariantFailure,
)
from aim.services.tier_policy import TierPolicy, default_policy
from aim.services.transcoder import Transcoder, build_transcoder
from aim.utils.aws import CloudFrontClient, S3Client


class MusicStorageService:
    """
    Tiered-bitrate storage for music assets.

    Parameters
    ----------
    cfg : Settings
        Resolved once; bucket/region/bitrates/timeouts are read here only.
    s3 : S3Client | None
        Object store wrapper. Built from `cfg` when omitted and configured.
    cdn : CloudFrontClient | None
        CDN wrapper. Built from `cfg` when a distribution id is configured.
    transcoder : Transcoder | None
        Produces each variant's bytes. Defaults to `cfg.MUSIC_TRANSCODER`.
    policy : TierPolicy | None
        Tier → bitrate table. Defaults to free/premium/vip = 128/192/320.
    """

    def __init__(
        self,
        cfg: Optional[Settings] = None,
        *,
        s3: Optional[S3Client] = None,
        cdn: Optional[CloudFrontClient] = None,
        transcoder: Optional[Transcoder] = None,
        policy: Optional[TierPolicy] = None,
    ) -> None:
        cfg = cfg or default_settings
        self.bitrates: Tuple[int, ...] = tuple(cfg.MUSIC_BITRATES)
        self.region = cfg.AWS_REGION
        self.timeout = float(cfg.STORAGE_CALL_TIMEOUT_SECONDS)
        self.presign_ttl = int(cfg.MUSIC_PRESIGN_TTL_SECONDS)
        self.policy = policy or default_policy
        self.transcoder: Transcoder = transcoder or build_transcoder(cfg.MUSIC_TRANSCODER)

        self._s3: Optional[S3Client] = None
        self._cdn: Optional[CloudFrontClient] = None

        if not cfg.storage_configured:
            logger.warning("Music storage unavailable: AWS bucket/credentials not configured")
            return

        self._s3 = s3 or S3Client(cfg)
        if cdn is not None:
            self._cdn = cdn
        elif cfg.cdn_enabled:
            self._cdn = CloudFrontClient(cfg)
        logger.info(
            "Music storage ready | bucket={} | cdn={} | bitrates={}",
            self._s3.bucket,
            self._cdn.distribution_id if self._cdn else "off",
            list(self.bitrates),
        )

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> "MusicStorageService":
        return cls(cfg or default_settings)

    # ────────────────────────────────────────────────────────────────────────
    # 🔎 Availability
    # ────────────────────────────────────────────────────────────────────────

    def is_available(self) -> bool:
        return self._s3 is not None

    @property
    def cdn_enabled(self) -> bool:
        return self._cdn is not None

    def _require_s3(self) -> S3Client:
        if self._s3 is None:
            raise StorageUnavailable("AWS S3 not configured. Please provide AWS credentials.")
        return self._s3

    # ────────────────────────────────────────────────────────────────────────
    # ⬆️ Upload
    # ────────────────────────────────────────────────────────────────────────

    async def upload_music_file(
        self,
        data: bytes,
        mime_type: str,
        original_filename: str,
        asset_id: str,
        bitrates: Optional[Sequence[int]] = None,
        *,
        cleanup_partial: bool = True,
    ) -> MediaAsset:
        """
        Write one variant per requested bitrate and return the full map.

        All-or-nothing: if any variant fails, `UploadFailed` is raised for the
        lowest failing bitrate and no `MediaAsset` is produced. With
        `cleanup_partial` the variants that did land are removed again
        (best-effort); callers re-uploading over a live asset pass False so
        its existing objects are not deleted.
        """
        s3 = self._require_s3()
        targets = self._normalize_bitrates(bitrates)
        asset_id, ext = self._validate_target(asset_id, original_filename, default_ext=extension_for_mime(mime_type))
        started = time.perf_counter()
        log = logger.bind(asset_id=asset_id)

        urls: Dict[int, str] = {}
        written: List[Tuple[int, str]] = []
        timed_out: List[str] = []
        failures: List[UploadFailed] = []
        metadata_base = {"assetId": asset_id, "originalName": quote(original_filename, safe=" ._-()")}

        async def _write_variant(bitrate: int) -> None:
            key = music_key(asset_id, bitrate, ext)
            try:
                payload = await self._run(partial(self.transcoder.transcode, data, bitrate=bitrate, extension=ext))
                await self._run(
                    partial(
                        s3.put_bytes,
                        key,
                        payload,
                        content_type=mime_type,
                        metadata={**metadata_base, "bitrate": bitrate},
                    )
                )
            except Exception as e:
                if isinstance(e, TimeoutError):
                    timed_out.append(key)
                metrics.inc_variant_write(bitrate, "error")
                log.warning("variant write failed | bitrate={} | key={} | err={!r}", bitrate, key, e)
                failures.append(UploadFailed(bitrate, cause=e))
                return
            metrics.inc_variant_write(bitrate, "success")
            written.append((bitrate, key))
            urls[bitrate] = self.public_url(key)

        async with anyio.create_task_group() as tg:
            for bitrate in targets:
                tg.start_soon(_write_variant, bitrate)

        metrics.observe_op_seconds("upload", time.perf_counter() - started)
        if failures:
            metrics.inc_op("upload", "error")
            if cleanup_partial and (written or timed_out):
                await self._discard_keys([k for _, k in written] + timed_out)
            first = min(failures, key=lambda f: f.bitrate)
            log.error(
                "upload failed | failed_bitrates={} | written={}",
                sorted(f.bitrate for f in failures),
                sorted(b for b, _ in written),
            )
            raise first from first.cause

        metrics.inc_op("upload", "success")
        log.info("upload complete | bitrates={} | ext={}", list(targets), ext)
        return MediaAsset(
            asset_id=asset_id,
            extension=ext,
            content_type=mime_type,
            original_filename=original_filename,
            variants=urls,
        )

    async def prune_replaced(self, previous: MediaAsset, current: MediaAsset) -> List[str]:
        """
        Remove objects of `previous` that `current` no longer points at.

        Called after a successful re-upload. Keys are stale when the extension
        or the bitrate set changed. Deletes are best-effort and the CDN is not
        touched, same as upload. Returns the stale keys.
        """
        keep = {music_key(current.asset_id, b, current.extension) for b in current.bitrates}
        stale = [
            key
            for key in (music_key(previous.asset_id, b, previous.extension) for b in previous.bitrates)
            if key not in keep
        ]
        if stale:
            logger.bind(asset_id=current.asset_id).info("pruning replaced variants | keys={}", stale)
            await self._discard_keys(stale)
        return stale

    async def _discard_keys(self, keys: Sequence[str]) -> None:
        s3 = self._require_s3()
        for key in keys:
            try:
                await self._run(partial(s3.delete, key))
            except Exception as e:
                logger.warning("orphaned variant left behind | key={} | err={!r}", key, e)

    # ────────────────────────────────────────────────────────────────────────
    # ▶️ Stream resolution (pure)
    # ────────────────────────────────────────────────────────────────────────

    def resolve_stream(
        self,
        variants: Mapping[int, str],
        tier: Optional[str],
        *,
        asset_id: Optional[str] = None,
    ) -> Tuple[int, str]:
        """Return `(bitrate, url)` the tier should play."""
        try:
            return self.policy.select_variant(variants, tier)
        except NoVariantsAvailable:
            raise NoVariantsAvailable(asset_id) from None

    def get_streaming_url(self, variants: Mapping[int, str], tier: Optional[str]) -> str:
        return self.resolve_stream(variants, tier)[1]

    # ────────────────────────────────────────────────────────────────────────
    # 🗑️ Delete + CDN invalidation
    # ────────────────────────────────────────────────────────────────────────

    async def delete_music_file(
        self,
        asset_id: str,
        bitrates: Optional[Sequence[int]] = None,
        *,
        extension: str = DEFAULT_EXTENSION,
    ) -> DeleteReport:
        """
        Delete every requested variant, then invalidate the CDN once.

        Best-effort: a failed variant delete does not stop the others and
        nothing is rolled back. Failures are collected in the returned
        report; call `report.raise_for_failures()` for exception semantics.
        """
        s3 = self._require_s3()
        targets = self._normalize_bitrates(bitrates)
        asset_id, ext = self._validate_target(asset_id, f"x.{extension}")
        started = time.perf_counter()
        log = logger.bind(asset_id=asset_id)

        deleted: List[int] = []
        failures: List[DeleteFailed] = []

        async def _delete_variant(bitrate: int) -> None:
            key = music_key(asset_id, bitrate, ext)
            try:
                await self._run(partial(s3.delete, key))
            except Exception as e:
                metrics.inc_variant_delete(bitrate, "error")
                log.warning("variant delete failed | bitrate={} | key={} | err={!r}", bitrate, key, e)
                failures.append(DeleteFailed(bitrate, cause=e))
                return
            metrics.inc_variant_delete(bitrate, "success")
            deleted.append(bitrate)

        async with anyio.create_task_group() as tg:
            for bitrate in targets:
                tg.start_soon(_delete_variant, bitrate)

        report = DeleteReport(
            asset_id=asset_id,
            deleted=sorted(deleted),
            failures=[
                VariantFailure(bitrate=f.bitrate, error=str(f.cause or f))
                for f in sorted(failures, key=lambda f: f.bitrate)
            ],
        )

        if self._cdn is not None:
            paths = self.invalidation_paths(asset_id, targets)
            try:
                report.invalidation_id = await self.invalidate_cdn(asset_id, paths)
            except Exception as e:
                metrics.inc_op("invalidate", "error")
                log.error("cdn invalidation failed | err={!r}", e)
                report.invalidation_error = str(e)

        metrics.observe_op_seconds("delete", time.perf_counter() - started)
        metrics.inc_op("delete", "success" if report.ok else "error")
        log.info("delete finished | deleted={} | failed={}", report.deleted, [f.bitrate for f in report.failures])
        return report

    def invalidation_paths(self, asset_id: str, bitrates: Sequence[int] = ()) -> List[str]:
        """Wildcard paths for every configured (and requested) bitrate directory."""
        every = sorted(set(self.bitrates) | {int(b) for b in bitrates})
        return [invalidation_path(asset_id, b) for b in every]

    async def invalidate_cdn(self, asset_id: str, paths: Sequence[str]) -> Optional[str]:
        """Submit one invalidation batch; no-op (None) without a distribution."""
        if self._cdn is None:
            return None
        caller_ref = f"{asset_id}-{int(time.time() * 1000)}-{uuid4().hex[:8]}"
        inv_id = await self._run(partial(self._cdn.create_invalidation, list(paths), caller_reference=caller_ref))
        metrics.inc_op("invalidate", "success")
        return inv_id

    # ────────────────────────────────────────────────────────────────────────
    # 🔐 Presigned direct upload
    # ────────────────────────────────────────────────────────────────────────

    async def presign_upload(self, asset_id: str, filename: str, bitrate: int) -> PresignedUploadOut:
        s3 = self._require_s3()
        (bitrate,) = self._normalize_bitrates([bitrate])
        asset_id, ext = self._validate_target(asset_id, filename)
        key = music_key(asset_id, bitrate, ext)
        try:
            url = await self._run(partial(s3.presigned_put, key, expires_in=self.presign_ttl))
        except Exception:
            metrics.inc_op("presign", "error")
            raise
        metrics.inc_op("presign", "success")
        return PresignedUploadOut(upload_url=url, storage_key=key, expires_in=self.presign_ttl)

    async def get_presigned_upload_url(self, asset_id: str, filename: str, bitrate: int) -> str:
        return (await self.presign_upload(asset_id, filename, bitrate)).upload_url

    # ────────────────────────────────────────────────────────────────────────
    # 📊 Statistics
    # ────────────────────────────────────────────────────────────────────────

    async def get_storage_stats(self) -> StorageStats:
        """Count objects and bytes under `music/` (one paginated listing)."""
        s3 = self._require_s3()

        def _collect() -> StorageStats:
            stats = StorageStats()
            for obj in s3.iter_objects(MUSIC_PREFIX):
                stats.total_files += 1
                stats.total_size += obj["Size"]
                parsed = parse_music_key(obj["Key"])
                if parsed:
                    bitrate = parsed[0]
                    stats.per_bitrate[bitrate] = stats.per_bitrate.get(bitrate, 0) + 1
            return stats

        # listing can span many pages; no per-call timeout here
        stats = await anyio.to_thread.run_sync(_collect)
        metrics.inc_op("stats", "success")
        return stats

    # ────────────────────────────────────────────────────────────────────────
    # 🌐 URLs
    # ────────────────────────────────────────────────────────────────────────

    def public_url(self, key: str) -> str:
        """CDN URL when a distribution is configured, else the bucket URL."""
        if self._cdn is not None:
            return self._cdn.cdn_url(key)
        return self._require_s3().object_url(key)

    # ────────────────────────────────────────────────────────────────────────
    # 🧪 Internals
    # ────────────────────────────────────────────────────────────────────────

    async def _run(self, fn: Callable[[], Any]) -> Any:
        """Run a blocking call in a worker thread; TimeoutError after `self.timeout`."""
        with anyio.fail_after(self.timeout):
            return await anyio.to_thread.run_sync(fn, abandon_on_cancel=True)

    def _normalize_bitrates(self, bitrates: Optional[Sequence[int]]) -> Tuple[int, ...]:
        if bitrates is None:
            return self.bitrates
        try:
            out = sorted({int(b) for b in bitrates})
        except (TypeError, ValueError) as e:
            raise InvalidMediaRequest(f"Invalid bitrate list: {bitrates!r}") from e
        if not out:
            raise InvalidMediaRequest("At least one bitrate is required")
        if out[0] <= 0:
            raise InvalidMediaRequest("Bitrates must be positive (kbps)")
        return tuple(out)

    @staticmethod
    def _validate_target(asset_id: str, filename: str, default_ext: str = DEFAULT_EXTENSION) -> Tuple[str, str]:
        try:
            return validate_asset_id(asset_id), extension_of(filename, default=default_ext)
        except ValueError as e:
            raise InvalidMediaRequest(str(e)) from e
