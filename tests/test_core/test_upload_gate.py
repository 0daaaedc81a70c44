# tests/test_core/test_upload_gate.py

import io

import pytest
from starlette.datastructures import Headers, UploadFile

from aim.core.exceptions import AppException
from aim.dependencies import upload_gate
from aim.dependencies.upload_gate import audio_upload, ensure_allowed_mime, read_limited
from tests.fixtures.settings import make_settings


def _upload(data: bytes, content_type: str = "audio/mpeg", filename: str = "a.mp3") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def test_mime_allow_list_strips_parameters():
    assert ensure_allowed_mime("Audio/MPEG; charset=binary", ["audio/mpeg"]) == "audio/mpeg"


@pytest.mark.parametrize("ct", [None, "", "video/mp4", "application/octet-stream"])
def test_non_audio_rejected_with_415(ct):
    with pytest.raises(AppException) as ei:
        ensure_allowed_mime(ct, ["audio/mpeg"])
    assert ei.value.status_code == 415
    assert ei.value.message == "Only audio files are allowed"


@pytest.mark.anyio
async def test_read_limited_stops_past_cap():
    with pytest.raises(AppException) as ei:
        await read_limited(_upload(b"x" * 11), max_bytes=10)
    assert ei.value.status_code == 413


@pytest.mark.anyio
async def test_read_limited_accepts_exact_cap():
    assert await read_limited(_upload(b"x" * 10), max_bytes=10) == b"x" * 10


@pytest.mark.anyio
async def test_audio_upload_happy_path():
    audio = await audio_upload(_upload(b"ID3data", "audio/flac", "song.flac"))
    assert audio.content_type == "audio/flac"
    assert audio.filename == "song.flac"
    assert audio.size == 7


@pytest.mark.anyio
async def test_audio_upload_uses_configured_cap(monkeypatch):
    monkeypatch.setattr(upload_gate, "settings", make_settings(MUSIC_UPLOAD_MAX_BYTES=4))
    with pytest.raises(AppException) as ei:
        await audio_upload(_upload(b"12345"))
    assert ei.value.status_code == 413


@pytest.mark.anyio
async def test_empty_file_rejected():
    with pytest.raises(AppException) as ei:
        await audio_upload(_upload(b""))
    assert ei.value.status_code == 400
