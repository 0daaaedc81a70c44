from __future__ import annotations

"""
AIM • Audio Transcoding
=======================

Sits between "receive original buffer" and "write variant". The storage
service calls `transcode()` once per requested bitrate.

- `PassthroughTranscoder`: every variant gets the original bytes.
- `FfmpegTranscoder`: re-encodes lossy formats through ffmpeg (stdin/stdout
  pipes, no temp files). Lossless containers pass through unchanged since a
  bitrate target is meaningless for them.
"""

from typing import Dict, Protocol

import ffmpeg
from loguru import logger


class TranscodeError(RuntimeError):
    """ffmpeg failed to produce the requested variant."""


class Transcoder(Protocol):
    def transcode(self, data: bytes, *, bitrate: int, extension: str) -> bytes: ...


class PassthroughTranscoder:
    """Returns the input unchanged."""

    def transcode(self, data: bytes, *, bitrate: int, extension: str) -> bytes:
        return data


# extension → (ffmpeg muxer, audio codec)
_LOSSY_FORMATS: Dict[str, tuple[str, str]] = {
    "mp3": ("mp3", "libmp3lame"),
    "ogg": ("ogg", "libvorbis"),
    "aac": ("adts", "aac"),
    "m4a": ("ipod", "aac"),
}
_LOSSLESS = {"wav", "flac"}


class FfmpegTranscoder:
    """Re-encode to the same container at `bitrate` kbps using ffmpeg."""

    def __init__(self, cmd: str = "ffmpeg") -> None:
        self.cmd = cmd

    def transcode(self, data: bytes, *, bitrate: int, extension: str) -> bytes:
        ext = extension.lower().lstrip(".")
        if ext in _LOSSLESS:
            return data
        fmt = _LOSSY_FORMATS.get(ext)
        if fmt is None:
            logger.warning("No transcode profile for .{}; storing original bytes", ext)
            return data
        muxer, codec = fmt
        try:
            stream = ffmpeg.input("pipe:0")
            stream = ffmpeg.output(
                stream,
                "pipe:1",
                format=muxer,
                acodec=codec,
                audio_bitrate=f"{int(bitrate)}k",
                map_metadata=0,
            )
            out, _ = ffmpeg.run(stream, cmd=self.cmd, input=data, capture_stdout=True, capture_stderr=True, quiet=True)
        except ffmpeg.Error as e:
            stderr = (e.stderr or b"").decode("utf-8", errors="replace")[-500:]
            raise TranscodeError(f"ffmpeg failed for {bitrate}kbps .{ext}: {stderr}") from e
        if not out:
            raise TranscodeError(f"ffmpeg produced no output for {bitrate}kbps .{ext}")
        return out


def build_transcoder(name: str) -> Transcoder:
    if name == "ffmpeg":
        return FfmpegTranscoder()
    if name == "passthrough":
        return PassthroughTranscoder()
    raise ValueError(f"Unknown transcoder: {name!r}")
