"""Video decoding handle backed by OpenCV, with embedded text tracks read through FFmpeg.

The orchestrator only talks to the :class:`MediaHandle` and :class:`TextTrack`
protocols; :class:`OpenCVMediaHandle` is the production implementation.
Blocking decoder calls run in a worker thread so the event loop stays free
for subtitle loading while frames are captured.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import subprocess
from pathlib import Path
from typing import Optional, Protocol

import cv2
import numpy as np
import pysubs2

from framereel.errors import MediaLoadError
from framereel.models import SubtitleCue

logger = logging.getLogger(__name__)

TRACK_MODES = ("disabled", "hidden", "showing")


class TextTrack(Protocol):
    language: Optional[str]
    mode: str

    @property
    def cues(self) -> list[SubtitleCue]: ...

    def release(self) -> None: ...


class MediaHandle(Protocol):
    duration_s: float
    width: int
    height: int
    text_tracks: list[TextTrack]

    async def open(self) -> None: ...

    async def seek(self, timestamp_s: float) -> None: ...

    def picture(self) -> Optional[np.ndarray]: ...

    def release(self) -> None: ...


# ---------------------------------------------------------------------------
# Text tracks
# ---------------------------------------------------------------------------

def probe_subtitle_streams(source: Path) -> list[dict]:
    """Return ffprobe stream entries for every subtitle stream in *source*.

    Subtitles are optional, so a missing ffprobe or unparsable output yields
    an empty list with a warning instead of an error.
    """
    cmd = [
        "ffprobe",
        "-v", "quiet",
        "-print_format", "json",
        "-show_streams",
        "-select_streams", "s",
        str(source),
    ]
    try:
        result = subprocess.run(cmd, check=True, capture_output=True, text=True)
        return list(json.loads(result.stdout).get("streams", []))
    except FileNotFoundError:
        logger.warning("ffprobe not found; embedded subtitles will not be extracted")
    except subprocess.CalledProcessError as exc:
        logger.warning("ffprobe failed on %s: %s", source.name, (exc.stderr or "").strip())
    except json.JSONDecodeError as exc:
        logger.warning("Could not parse ffprobe output for %s: %s", source.name, exc)
    return []


class FfmpegTextTrack:
    """One embedded subtitle stream.

    Cues stay empty while the track is ``disabled``.  Switching the mode to
    ``hidden`` or ``showing`` starts an FFmpeg WebVTT dump in the background;
    :attr:`cues` fills in once it has been parsed.
    """

    def __init__(self, source: Path, stream_index: int, language: Optional[str] = None) -> None:
        self.source = source
        self.stream_index = stream_index
        self.language = language
        self._mode = "disabled"
        self._cues: list[SubtitleCue] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def mode(self) -> str:
        return self._mode

    @mode.setter
    def mode(self, value: str) -> None:
        if value not in TRACK_MODES:
            raise ValueError(f"Unknown text track mode {value!r}")
        self._mode = value
        if value != "disabled" and self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._load())

    @property
    def cues(self) -> list[SubtitleCue]:
        return list(self._cues)

    async def _load(self) -> None:
        cmd = [
            "ffmpeg", "-v", "error",
            "-i", str(self.source),
            "-map", f"0:s:{self.stream_index}",
            "-f", "webvtt", "-",
        ]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.warning("ffmpeg not found; subtitle stream %d skipped", self.stream_index)
            return

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
            raise

        if proc.returncode != 0:
            logger.warning(
                "ffmpeg could not dump subtitle stream %d: %s",
                self.stream_index,
                stderr.decode("utf-8", errors="replace").strip(),
            )
            return

        try:
            subs = pysubs2.SSAFile.from_string(stdout.decode("utf-8", errors="replace"), format_="vtt")
        except Exception as exc:
            logger.warning("Could not parse subtitle stream %d: %s", self.stream_index, exc)
            return

        self._cues = [
            SubtitleCue(start_s=event.start / 1000.0, end_s=event.end / 1000.0, text=event.plaintext)
            for event in subs
            if not event.is_comment
        ]
        logger.debug("Subtitle stream %d: %d cues", self.stream_index, len(self._cues))

    def release(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


# ---------------------------------------------------------------------------
# Decoder handle
# ---------------------------------------------------------------------------

class OpenCVMediaHandle:
    """Decoding handle over a local video file.

    Usage::

        handle = OpenCVMediaHandle(Path("clip.mp4"))
        await handle.open()
        await handle.seek(5.0)
        picture = handle.picture()
        handle.release()

    """

    def __init__(self, source: Path) -> None:
        self.source = source
        self.duration_s = 0.0
        self.width = 0
        self.height = 0
        self.text_tracks: list[FfmpegTextTrack] = []
        self._cap: Optional[cv2.VideoCapture] = None
        self._picture: Optional[np.ndarray] = None
        self._seeking = False
        self._release_pending = False
        self._released = False

    async def open(self) -> None:
        """Open the file and read duration, dimensions and subtitle streams.

        Raises
        ------
        MediaLoadError
            If OpenCV cannot open the file or reports no usable duration.
        """
        cap = await asyncio.to_thread(cv2.VideoCapture, str(self.source))
        if not cap.isOpened():
            cap.release()
            raise MediaLoadError(self.source, "the decoder could not open the file")

        fps = cap.get(cv2.CAP_PROP_FPS)
        frame_count = cap.get(cv2.CAP_PROP_FRAME_COUNT)
        duration_s = frame_count / fps if fps > 0 else 0.0
        if not math.isfinite(duration_s) or duration_s <= 0:
            cap.release()
            raise MediaLoadError(self.source, f"no usable duration (fps={fps}, frames={frame_count})")

        if self._released:
            cap.release()
            return

        self._cap = cap
        self.duration_s = duration_s
        self.width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))

        streams = await asyncio.to_thread(probe_subtitle_streams, self.source)
        self.text_tracks = [
            FfmpegTextTrack(self.source, i, (stream.get("tags") or {}).get("language"))
            for i, stream in enumerate(streams)
        ]
        logger.debug(
            "Opened %s: %.2fs %dx%d, %d text track(s)",
            self.source.name, self.duration_s, self.width, self.height, len(self.text_tracks),
        )

    async def seek(self, timestamp_s: float) -> None:
        """Position the decoder at *timestamp_s* and decode the picture there.

        Returns once the seek has completed.  If nothing decodes at that
        position (typically the tail of a stream), the previous picture stays
        current.
        """
        if self._cap is None:
            raise RuntimeError("seek() called on a handle that is not open")
        self._seeking = True
        try:
            ok, picture = await asyncio.to_thread(self._seek_and_read, self._cap, timestamp_s)
        finally:
            self._seeking = False
            if self._release_pending:
                self._close()
        if self._released:
            return
        if ok:
            self._picture = picture
        else:
            logger.debug("No picture decoded at %.3fs; keeping previous picture", timestamp_s)

    @staticmethod
    def _seek_and_read(cap: cv2.VideoCapture, timestamp_s: float) -> tuple[bool, Optional[np.ndarray]]:
        cap.set(cv2.CAP_PROP_POS_MSEC, timestamp_s * 1000.0)
        return cap.read()

    def picture(self) -> Optional[np.ndarray]:
        return self._picture

    def release(self) -> None:
        """Release the decoder and stop any subtitle loading.  Idempotent.

        When a seek is in flight the capture is closed as soon as it returns.
        """
        if self._released:
            return
        self._released = True
        for track in self.text_tracks:
            track.release()
        self._picture = None
        if self._seeking:
            self._release_pending = True
        else:
            self._close()

    def _close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        self._release_pending = False
