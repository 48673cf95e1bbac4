"""Shared fakes for framereel tests.

Nothing here touches a real video file, FFmpeg, or the network: the decoding
handle and text tracks are in-memory stand-ins that honour the same protocol
as ``OpenCVMediaHandle`` / ``FfmpegTextTrack``.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import numpy as np
import pytest

from framereel.config import Settings
from framereel.errors import MediaLoadError
from framereel.models import ClipArtifact, Frame, SubtitleCue


class FakeTextTrack:
    """Text track whose cues only become readable after *delay_reads* polls."""

    def __init__(self, cues: list[SubtitleCue], delay_reads: int = 0, language: Optional[str] = "en") -> None:
        self.language = language
        self.mode = "disabled"
        self._cues = list(cues)
        self._delay_reads = delay_reads
        self.reads = 0
        self.released = False

    @property
    def cues(self) -> list[SubtitleCue]:
        if self.mode == "disabled":
            return []
        self.reads += 1
        if self.reads <= self._delay_reads:
            return []
        return list(self._cues)

    def release(self) -> None:
        self.released = True


class FakeHandle:
    """In-memory decoding handle producing a solid-colour picture per seek."""

    def __init__(
        self,
        source: Path,
        duration_s: float = 17.0,
        width: int = 64,
        height: int = 48,
        text_tracks: Optional[list] = None,
        fail_open: bool = False,
    ) -> None:
        self.source = source
        self.duration_s = duration_s
        self.width = width
        self.height = height
        self.text_tracks = text_tracks or []
        self.fail_open = fail_open
        self.seeks: list[float] = []
        self.release_count = 0
        self._picture: Optional[np.ndarray] = None

    async def open(self) -> None:
        await asyncio.sleep(0)
        if self.fail_open:
            raise MediaLoadError(self.source, "decoder rejected the file")

    async def seek(self, timestamp_s: float) -> None:
        self.seeks.append(timestamp_s)
        await asyncio.sleep(0)
        shade = int(timestamp_s * 10) % 256
        self._picture = np.full((self.height, self.width, 3), shade, dtype=np.uint8)

    def picture(self) -> Optional[np.ndarray]:
        return self._picture

    def release(self) -> None:
        self.release_count += 1


class HandleFactory:
    """Records every handle it builds so tests can inspect release counts."""

    def __init__(self, **handle_kwargs) -> None:
        self.handle_kwargs = handle_kwargs
        self.handles: list[FakeHandle] = []

    def __call__(self, source: Path) -> FakeHandle:
        handle = FakeHandle(source, **self.handle_kwargs)
        self.handles.append(handle)
        return handle


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(
        subtitle_poll_interval_s=0.001,
        subtitle_timeout_s=0.05,
        poll_interval_s=0.001,
        jpeg_quality=80,
    )


@pytest.fixture
def video_file(tmp_path: Path) -> Path:
    path = tmp_path / "holiday.mp4"
    path.write_bytes(b"\x00" * 64)
    return path


def make_frame(ts: float) -> Frame:
    return Frame(image=b"\xff\xd8\xff\xe0fake_jpeg", timestamp_s=ts)


def make_clip(tmp_path: Path, name: str) -> ClipArtifact:
    path = tmp_path / name
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return ClipArtifact(path=path, size_bytes=path.stat().st_size)


def two_cues() -> list[SubtitleCue]:
    return [
        SubtitleCue(start_s=1.0, end_s=3.5, text="Hello there."),
        SubtitleCue(start_s=4.25, end_s=6.0, text="General Kenobi!"),
    ]
