from __future__ import annotations

"""
AIM • Music Object Layout
=========================

Documented key layout (single bucket, optional CloudFront in front):

    s3://{bucket}/
      music/{bitrate}kbps/{asset_id}.{ext}

CDN invalidation covers every extension of an asset per bitrate directory:

    /music/{bitrate}kbps/{asset_id}.*

This module is the only place that builds these strings. Keys are part of
the public URL contract; do not change the templates once deployed.
"""

import re
from pathlib import PurePosixPath

MUSIC_PREFIX = "music/"
MUSIC_KEY_T = "music/{bitrate}kbps/{asset_id}.{ext}"
INVALIDATION_PATH_T = "/music/{bitrate}kbps/{asset_id}.*"
DEFAULT_EXTENSION = "mp3"

_ASSET_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,127}$")
_EXT_RE = re.compile(r"^[A-Za-z0-9]{1,10}$")
_KEY_RE = re.compile(r"^music/(\d+)kbps/([A-Za-z0-9][A-Za-z0-9_-]*)\.([A-Za-z0-9]+)$")


def validate_asset_id(asset_id: str) -> str:
    """Return the asset id unchanged or raise ValueError for unsafe ids."""
    s = str(asset_id or "")
    if not _ASSET_ID_RE.fullmatch(s):
        raise ValueError(f"Invalid asset id: {asset_id!r}")
    return s


_MIME_EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/flac": "flac",
    "audio/aac": "aac",
    "audio/ogg": "ogg",
}


def extension_for_mime(mime_type: str) -> str:
    return _MIME_EXTENSIONS.get((mime_type or "").lower(), DEFAULT_EXTENSION)


def extension_of(filename: str, default: str = DEFAULT_EXTENSION) -> str:
    """Extension of `filename` without the dot, lower-cased."""
    suffix = PurePosixPath(str(filename or "")).suffix.lstrip(".").lower()
    if not suffix:
        return default
    if not _EXT_RE.fullmatch(suffix):
        raise ValueError(f"Invalid file extension: {suffix!r}")
    return suffix


def music_key(asset_id: str, bitrate: int, extension: str) -> str:
    ext = extension.lstrip(".").lower()
    if not _EXT_RE.fullmatch(ext):
        raise ValueError(f"Invalid file extension: {extension!r}")
    return MUSIC_KEY_T.format(bitrate=int(bitrate), asset_id=validate_asset_id(asset_id), ext=ext)


def invalidation_path(asset_id: str, bitrate: int) -> str:
    return INVALIDATION_PATH_T.format(bitrate=int(bitrate), asset_id=validate_asset_id(asset_id))


def parse_music_key(key: str) -> tuple[int, str, str] | None:
    """Split a music key into (bitrate, asset_id, ext); None for foreign keys."""
    m = _KEY_RE.fullmatch(key or "")
    if not m:
        return None
    return int(m.group(1)), m.group(2), m.group(3)
