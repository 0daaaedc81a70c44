from __future__ import annotations

"""
AIM • Music Media Schemas
=========================

Purpose
-------
- Pydantic shapes shared by the storage service, the asset registry and the
  HTTP layer.
- Variant maps are keyed by integer bitrate (kbps). JSON object keys arrive
  as strings and are coerced back to ints on validation.

Design
------
- `MediaAsset` tracks only the physical bytes (variants + original
  extension), not the logical song row.
- `DeleteReport` makes best-effort deletion observable instead of raising on
  the first failed variant.
"""

from enum import Enum as PyEnum
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from aim.core.exceptions import DeleteFailed


# === Enums ================================================================

class SubscriptionTier(str, PyEnum):
    """Subscription levels known to the identity provider."""
    FREE = "free"
    PREMIUM = "premium"
    VIP = "vip"


# === Helpers ==============================================================

def coerce_variant_map(v) -> Dict[int, str]:
    """Turn `{"128": "url"}` / `{128: "url"}` into `{128: "url"}`."""
    if v is None:
        return {}
    if not isinstance(v, Mapping):
        raise ValueError("variants must be an object of bitrate → URL")
    out: Dict[int, str] = {}
    for k, url in v.items():
        try:
            b = int(k)
        except (TypeError, ValueError):
            raise ValueError(f"bitrate must be an integer, got {k!r}") from None
        if b <= 0:
            raise ValueError(f"bitrate must be positive, got {k!r}")
        if not isinstance(url, str) or not url:
            raise ValueError(f"variant URL for {b} kbps must be a non-empty string")
        out[b] = url
    return out


# === Models ===============================================================

class MediaAsset(BaseModel):
    """Stored variants for one uploaded audio asset."""
    model_config = ConfigDict(frozen=True)

    asset_id: str
    extension: str = Field(..., description="Original file extension without dot (e.g. mp3, flac)")
    content_type: str
    original_filename: str
    variants: Dict[int, str] = Field(default_factory=dict, description="bitrate kbps → URL")

    @field_validator("variants", mode="before")
    @classmethod
    def _coerce_variants(cls, v):
        return coerce_variant_map(v)

    @property
    def bitrates(self) -> List[int]:
        return sorted(self.variants)


class StreamResolution(BaseModel):
    """Outcome of tier → variant resolution."""
    asset_id: Optional[str] = None
    tier: str
    bitrate: int
    url: str


class ResolveStreamIn(BaseModel):
    """Caller-supplied variant map to resolve against the caller's tier."""
    variants: Dict[int, str]
    tier: Optional[str] = Field(None, description="Override tier (defaults to the caller's tier)")

    @field_validator("variants", mode="before")
    @classmethod
    def _coerce_variants(cls, v):
        return coerce_variant_map(v)


class PresignedUploadIn(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    bitrate: int = Field(..., gt=0, le=10_000)


class PresignedUploadOut(BaseModel):
    upload_url: str
    storage_key: str
    expires_in: int


class VariantFailure(BaseModel):
    bitrate: int
    error: str


class DeleteReport(BaseModel):
    """Per-variant outcome of a delete request."""

    asset_id: str
    deleted: List[int] = Field(default_factory=list)
    failures: List[VariantFailure] = Field(default_factory=list)
    invalidation_id: Optional[str] = None
    invalidation_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        """Raise `DeleteFailed` for the first failed variant, if any."""
        if self.failures:
            first = self.failures[0]
            raise DeleteFailed(first.bitrate, cause=RuntimeError(first.error))


class StorageStats(BaseModel):
    total_files: int = 0
    total_size: int = Field(0, description="Bytes")
    per_bitrate: Dict[int, int] = Field(default_factory=dict, description="bitrate → object count")


class StorageStatus(BaseModel):
    available: bool
    cdn_enabled: bool
    bitrates: List[int]
