# aim/utils/aws.py
from __future__ import annotations

"""
🎧 AIM • AWS Utilities
======================

Thin boto3 wrappers used by the music storage service:

- `S3Client`        → variant writes, deletes, presigned PUT, listing, URLs
- `CloudFrontClient`→ cache invalidation and CDN URL building

🎯 Goals
--------
- Explicit timeouts + bounded standard-mode retries (fail fast, retry
  transient errors inside botocore)
- Defensive key normalization (no leading slash, no `..`)
- Credentials taken from settings when present, never logged
- SDK errors surface as `S3StorageError` / `CDNInvalidationError`

Implementation notes
--------------------
All methods are **blocking** (boto3 is synchronous). Async callers offload
them to a worker thread (see `aim.services.music_storage`).
"""

from typing import Any, Dict, Iterator, Mapping, Optional, Sequence
import logging
import re

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from aim.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# 🧱 Exceptions
# ─────────────────────────────────────────────────────────────────────────────

class S3StorageError(RuntimeError):
    """Raised when an S3 operation fails (network, auth, policy, etc.)."""


class CDNInvalidationError(RuntimeError):
    """Raised when CloudFront rejects or fails an invalidation request."""


# ─────────────────────────────────────────────────────────────────────────────
# 🧰 Key validation
# ─────────────────────────────────────────────────────────────────────────────

_KEY_ALLOWED_RE = re.compile(r"[A-Za-z0-9._\-/+=@() ]+")
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _normalize_key(key: str) -> str:
    """
    Normalize and validate S3 object keys.

    Raises
    ------
    S3StorageError
        If key is empty, traverses upwards, or contains unsafe characters.
    """
    k = str(key or "").strip().lstrip("/")
    k = re.sub(r"/{2,}", "/", k)
    if not k:
        raise S3StorageError("Invalid storage key: empty")
    if ".." in k:
        raise S3StorageError("Invalid storage key: path traversal detected")
    if not _KEY_ALLOWED_RE.fullmatch(k):
        raise S3StorageError("Invalid storage key: contains forbidden characters")
    return k


def _boto_config(cfg: Settings) -> BotoConfig:
    return BotoConfig(
        signature_version="s3v4",
        retries={"max_attempts": cfg.STORAGE_MAX_ATTEMPTS, "mode": "standard"},
        connect_timeout=3,
        read_timeout=max(1, int(cfg.STORAGE_CALL_TIMEOUT_SECONDS)),
    )


def _credential_kwargs(cfg: Settings) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"region_name": cfg.AWS_REGION}
    if cfg.AWS_ACCESS_KEY_ID and cfg.aws_secret_access_key:
        kwargs["aws_access_key_id"] = cfg.AWS_ACCESS_KEY_ID
        kwargs["aws_secret_access_key"] = cfg.aws_secret_access_key
    return kwargs


# ─────────────────────────────────────────────────────────────────────────────
# 📦 S3 Client
# ─────────────────────────────────────────────────────────────────────────────

class S3Client:
    """
    High-level S3 wrapper with safe defaults.

    Parameters
    ----------
    cfg : Settings | None
        Source of bucket/region/credentials. Defaults to the global settings.
    client : Any | None
        Pre-built boto3 S3 client (tests inject fakes here).
    """

    def __init__(self, cfg: Optional[Settings] = None, *, client: Any = None) -> None:
        cfg = cfg or default_settings
        self.bucket = cfg.AWS_S3_BUCKET_NAME
        if not self.bucket:
            raise S3StorageError("AWS_S3_BUCKET_NAME not configured")
        self.region = cfg.AWS_REGION or "us-east-1"
        self._endpoint = cfg.AWS_S3_ENDPOINT_URL

        if client is None:
            kwargs = _credential_kwargs(cfg)
            kwargs["config"] = _boto_config(cfg).merge(BotoConfig(s3={"addressing_style": "virtual"}))
            if self._endpoint:
                kwargs["endpoint_url"] = self._endpoint
            try:
                client = boto3.client("s3", **kwargs)
            except Exception as e:  # pragma: no cover
                raise S3StorageError(f"Failed to create S3 client: {e}") from e
        self.client = client

    # ────────────────────────────────────────────────────────────────────────
    # 🚀 Object writes / deletes
    # ────────────────────────────────────────────────────────────────────────

    def put_bytes(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str,
        metadata: Optional[Mapping[str, Any]] = None,
        cache_control: Optional[str] = None,
    ) -> None:
        """
        Upload a payload held in memory.

        `metadata` values are stringified (S3 user metadata is text-only).

        Raises
        ------
        S3StorageError
            On upload failure or invalid key.
        """
        k = _normalize_key(key)
        args: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": k,
            "Body": data,
            "ContentType": content_type,
        }
        if metadata:
            args["Metadata"] = {str(mk): str(mv) for mk, mv in metadata.items()}
        if cache_control:
            args["CacheControl"] = cache_control

        try:
            self.client.put_object(**args)
        except Exception as e:
            raise S3StorageError(f"Failed to upload object {k}: {e}") from e

    def delete(self, key: str) -> None:
        """
        Delete one object.

        A missing object counts as deleted (idempotent). Every other failure
        raises so the caller can record which variant was left behind.
        """
        k = _normalize_key(key)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=k)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in _NOT_FOUND_CODES:
                return
            raise S3StorageError(f"Failed to delete object {k}: {e}") from e
        except Exception as e:
            raise S3StorageError(f"Failed to delete object {k}: {e}") from e

    # ────────────────────────────────────────────────────────────────────────
    # 🔐 Signed URL helpers
    # ────────────────────────────────────────────────────────────────────────

    def presigned_put(
        self,
        key: str,
        *,
        content_type: Optional[str] = None,
        expires_in: int = 3600,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Generate a **presigned PUT** URL for direct-to-S3 uploads.

        When `content_type` or `metadata` are given, the client must send the
        matching headers or S3 rejects the signature.
        """
        k = _normalize_key(key)
        params: Dict[str, Any] = {"Bucket": self.bucket, "Key": k}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = {str(mk): str(mv) for mk, mv in metadata.items()}
        try:
            return self.client.generate_presigned_url(
                ClientMethod="put_object",
                Params=params,
                ExpiresIn=int(expires_in),
                HttpMethod="PUT",
            )
        except Exception as e:
            raise S3StorageError(f"Failed to create presigned PUT: {e}") from e

    # ────────────────────────────────────────────────────────────────────────
    # 🔎 Listing
    # ────────────────────────────────────────────────────────────────────────

    def iter_objects(self, prefix: str) -> Iterator[Dict[str, Any]]:
        """Yield `{"Key", "Size"}` dicts for every object under `prefix`."""
        p = _normalize_key(prefix)
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=p):
                for obj in page.get("Contents", []) or []:
                    yield {"Key": obj.get("Key", ""), "Size": int(obj.get("Size", 0) or 0)}
        except Exception as e:
            raise S3StorageError(f"Failed to list objects under {p}: {e}") from e

    # ────────────────────────────────────────────────────────────────────────
    # 🌐 Public URL helpers
    # ────────────────────────────────────────────────────────────────────────

    def object_url(self, key: str) -> str:
        """
        Direct (unsigned) object URL. Custom endpoints use path-style URLs;
        AWS uses the virtual-hosted form.
        """
        k = _normalize_key(key)
        if self._endpoint:
            return f"{self._endpoint.rstrip('/')}/{self.bucket}/{k}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{k}"

    def __repr__(self) -> str:  # pragma: no cover
        return f"S3Client(bucket={self.bucket}, region={self.region}, endpoint={'yes' if self._endpoint else 'no'})"


# ─────────────────────────────────────────────────────────────────────────────
# ☁️ CloudFront Client
# ─────────────────────────────────────────────────────────────────────────────

class CloudFrontClient:
    """
    Minimal CloudFront wrapper: URL building + invalidations for one
    distribution.
    """

    def __init__(self, cfg: Optional[Settings] = None, *, client: Any = None) -> None:
        cfg = cfg or default_settings
        self.distribution_id = cfg.AWS_CLOUDFRONT_DISTRIBUTION_ID
        if not self.distribution_id:
            raise CDNInvalidationError("AWS_CLOUDFRONT_DISTRIBUTION_ID not configured")
        if client is None:
            kwargs = _credential_kwargs(cfg)
            kwargs["config"] = _boto_config(cfg)
            client = boto3.client("cloudfront", **kwargs)
        self.client = client

    def cdn_url(self, key: str) -> str:
        return f"https://{self.distribution_id}.cloudfront.net/{_normalize_key(key)}"

    def create_invalidation(self, paths: Sequence[str], *, caller_reference: str) -> Optional[str]:
        """
        Submit one invalidation batch and return its id.

        `caller_reference` must be unique per batch; CloudFront treats a
        repeated reference with different paths as a conflict.
        """
        items = list(dict.fromkeys(p if p.startswith("/") else f"/{p}" for p in paths))
        if not items:
            raise CDNInvalidationError("Provide at least one path to invalidate")
        try:
            resp = self.client.create_invalidation(
                DistributionId=self.distribution_id,
                InvalidationBatch={
                    "Paths": {"Quantity": len(items), "Items": items},
                    "CallerReference": caller_reference,
                },
            )
        except Exception as e:
            raise CDNInvalidationError(f"CloudFront invalidation failed: {e}") from e
        inv_id = (resp or {}).get("Invalidation", {}).get("Id")
        logger.info("cloudfront invalidation submitted id=%s paths=%d", inv_id, len(items))
        return inv_id
