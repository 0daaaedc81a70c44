# aim/core/config.py
from __future__ import annotations

"""
# AIM — Centralized Configuration (Pydantic v2)

Single `settings` object with strongly-typed, environment-driven config.

## Goals
- Variable names stay compatible with the original deployment
  (`AWS_S3_BUCKET_NAME`, `AWS_CLOUDFRONT_DISTRIBUTION_ID`, ...).
- Missing AWS credentials never crash imports: the storage service simply
  reports itself unavailable.
- CSV → list helpers for bitrates and MIME allow-lists.

## Usage
    from aim.core.config import settings
"""

from typing import Annotated, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

load_dotenv()  # harmless in prod; convenient in dev


DEFAULT_BITRATES: tuple[int, ...] = (128, 192, 320)
DEFAULT_AUDIO_MIME: tuple[str, ...] = (
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/flac",
    "audio/aac",
    "audio/ogg",
)


# ─────────────────────────────────────────────────────────────
# Small helpers
# ─────────────────────────────────────────────────────────────
def _split_csv(v: str | None) -> list[str]:
    """Split a comma-separated string into a trimmed list (empty-safe)."""
    if not v:
        return []
    return [s.strip() for s in str(v).split(",") if s and s.strip()]


def _secret_or_none(v: Optional[SecretStr]) -> Optional[str]:
    if v is None:
        return None
    return v.get_secret_value() or None


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────
class Settings(BaseSettings):
    """
    Global application settings sourced from environment.

    Storage:
        - `storage_configured` is the availability predicate used by the
          music storage service (bucket + access key + secret).
        - CloudFront is optional; without a distribution id URLs point at
          the bucket directly and invalidation is skipped.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ── App meta ──────────────────────────────────────────────
    PROJECT_NAME: str = "AIM Media API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENV: Literal["development", "staging", "production"] = "development"
    ENABLE_DOCS: bool = True

    # ── Identity (bearer tokens issued by the auth provider) ──
    JWT_SECRET_KEY: SecretStr = SecretStr("change-me")
    JWT_ALGORITHM: Literal["HS256", "HS384", "HS512"] = "HS256"

    # ── AWS / CDN ─────────────────────────────────────────────
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[SecretStr] = None
    AWS_REGION: str = "us-east-1"
    AWS_S3_BUCKET_NAME: Optional[str] = None
    AWS_S3_ENDPOINT_URL: Optional[str] = None
    AWS_CLOUDFRONT_DISTRIBUTION_ID: Optional[str] = None

    STORAGE_CALL_TIMEOUT_SECONDS: float = Field(30.0, gt=0, le=600)
    STORAGE_MAX_ATTEMPTS: int = Field(3, ge=1, le=10)

    # ── Music media policy ────────────────────────────────────
    MUSIC_BITRATES: Annotated[List[int], NoDecode] = Field(default_factory=lambda: list(DEFAULT_BITRATES))
    MUSIC_ALLOWED_MIME: Annotated[List[str], NoDecode] = Field(default_factory=lambda: list(DEFAULT_AUDIO_MIME))
    MUSIC_UPLOAD_MAX_BYTES: int = Field(50 * 1024 * 1024, ge=1)
    MUSIC_PRESIGN_TTL_SECONDS: int = Field(3600, ge=60, le=7 * 24 * 3600)
    MUSIC_TRANSCODER: Literal["passthrough", "ffmpeg"] = "passthrough"

    # ── Validators / normalizers ──────────────────────────────
    @field_validator("MUSIC_BITRATES", mode="before")
    @classmethod
    def _assemble_bitrates(cls, v):
        if isinstance(v, str):
            v = _split_csv(v)
        return sorted({int(b) for b in v})

    @field_validator("MUSIC_BITRATES")
    @classmethod
    def _check_bitrates(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("MUSIC_BITRATES must not be empty")
        if any(b <= 0 for b in v):
            raise ValueError("MUSIC_BITRATES must be positive integers (kbps)")
        return v

    @field_validator("MUSIC_ALLOWED_MIME", mode="before")
    @classmethod
    def _assemble_mime(cls, v):
        if isinstance(v, str):
            v = _split_csv(v)
        return [m.lower() for m in v]

    @field_validator(
        "AWS_S3_BUCKET_NAME",
        "AWS_CLOUDFRONT_DISTRIBUTION_ID",
        "AWS_ACCESS_KEY_ID",
        "AWS_S3_ENDPOINT_URL",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v or None

    # ── Derived / convenience properties ─────────────────────
    @property
    def is_production(self) -> bool:
        return self.ENV == "production"

    @property
    def aws_secret_access_key(self) -> Optional[str]:
        return _secret_or_none(self.AWS_SECRET_ACCESS_KEY)

    @property
    def storage_configured(self) -> bool:
        """True when bucket and both credential halves are present."""
        return bool(
            self.AWS_ACCESS_KEY_ID
            and self.aws_secret_access_key
            and self.AWS_S3_BUCKET_NAME
        )

    @property
    def cdn_enabled(self) -> bool:
        return bool(self.AWS_CLOUDFRONT_DISTRIBUTION_ID)


def get_settings() -> Settings:
    """Return the process-wide settings object."""
    return settings


# Singleton instance
settings = Settings()
