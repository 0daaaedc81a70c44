# tests/test_core/test_config.py

import pytest
from pydantic import ValidationError

from aim.core.config import DEFAULT_AUDIO_MIME, Settings
from tests.fixtures.settings import make_settings


def test_defaults_match_deployment():
    s = Settings(_env_file=None, AWS_REGION="us-east-1")
    assert s.MUSIC_BITRATES == [128, 192, 320]
    assert s.MUSIC_UPLOAD_MAX_BYTES == 50 * 1024 * 1024
    assert s.MUSIC_PRESIGN_TTL_SECONDS == 3600
    assert s.MUSIC_ALLOWED_MIME == list(DEFAULT_AUDIO_MIME)


def test_bitrates_from_env_csv(monkeypatch):
    monkeypatch.setenv("MUSIC_BITRATES", "320, 96,128,128")
    s = Settings(_env_file=None)
    assert s.MUSIC_BITRATES == [96, 128, 320]


def test_mime_allow_list_from_env_csv(monkeypatch):
    monkeypatch.setenv("MUSIC_ALLOWED_MIME", "Audio/MPEG, audio/flac")
    s = Settings(_env_file=None)
    assert s.MUSIC_ALLOWED_MIME == ["audio/mpeg", "audio/flac"]


@pytest.mark.parametrize("raw", ["", "0", "128,-1", "abc"])
def test_invalid_bitrates_rejected(raw):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, MUSIC_BITRATES=raw)


def test_storage_configured_needs_bucket_and_both_keys():
    assert make_settings().storage_configured is True
    assert make_settings(AWS_S3_BUCKET_NAME="  ").storage_configured is False
    assert make_settings(AWS_ACCESS_KEY_ID="").storage_configured is False
    assert make_settings(AWS_SECRET_ACCESS_KEY="").storage_configured is False


def test_cdn_enabled_follows_distribution_id():
    assert make_settings().cdn_enabled is True
    assert make_settings(AWS_CLOUDFRONT_DISTRIBUTION_ID="").cdn_enabled is False


def test_secret_never_in_repr():
    s = make_settings(AWS_SECRET_ACCESS_KEY="super-secret-value")
    assert "super-secret-value" not in repr(s)
    assert s.aws_secret_access_key == "super-secret-value"
