"""Write run results to disk: frame JPEGs, the WebVTT file, clips and a frame archive."""

from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path
from typing import Iterable, Sequence

from framereel.models import Frame, GenerationItem, ItemStatus, SubtitlePayload

logger = logging.getLogger(__name__)


def format_clock(timestamp_s: float) -> str:
    """Format seconds as ``MM-SS`` (minutes are not wrapped into hours)."""
    total = int(timestamp_s)
    return f"{total // 60:02d}-{total % 60:02d}"


def frame_filenames(frames: Sequence[Frame]) -> list[str]:
    """Return one file name per frame: ``frame-MM-SS.jpg``.

    Sub-second intervals can map two frames to the same second; those get a
    millisecond suffix (``frame-MM-SS-mmm.jpg``) instead of overwriting, and a
    counter after that if the name is still taken.
    """
    names: list[str] = []
    seen: set[str] = set()
    for frame in frames:
        clock = format_clock(frame.timestamp_s)
        name = f"frame-{clock}.jpg"
        if name in seen:
            # Millis within the same whole second format_clock printed.
            millis = min(999, int(round(frame.timestamp_s * 1000)) - int(frame.timestamp_s) * 1000)
            stem = f"frame-{clock}-{millis:03d}"
            name = f"{stem}.jpg"
            counter = 2
            while name in seen:
                name = f"{stem}-{counter}.jpg"
                counter += 1
        seen.add(name)
        names.append(name)
    return names


def write_frames(frames: Sequence[Frame], out_dir: Path) -> list[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    paths: list[Path] = []
    for frame, name in zip(frames, frame_filenames(frames)):
        path = out_dir / name
        path.write_bytes(frame.image)
        paths.append(path)
    logger.debug("Wrote %d frame(s) to %s", len(paths), out_dir)
    return paths


def write_subtitle(subtitle: SubtitlePayload, out_dir: Path, stem: str) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"{stem}.vtt"
    path.write_text(subtitle.text, encoding="utf-8")
    return path


def write_archive(frames: Sequence[Frame], out_dir: Path, stem: str) -> Path:
    """Pack every frame into ``extracted-frames-<stem>.zip``."""
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"extracted-frames-{stem}.zip"
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for frame, name in zip(frames, frame_filenames(frames)):
            zf.writestr(name, frame.image)
    return path


def write_clips(items: Iterable[GenerationItem], out_dir: Path) -> list[Path]:
    """Copy every completed item's clip to ``clip-NNN.mp4`` (NNN is the item index)."""
    out_dir.mkdir(parents=True, exist_ok=True)
    paths: list[Path] = []
    for index, item in enumerate(items):
        if item.status is not ItemStatus.COMPLETE or item.artifact is None:
            continue
        dest = out_dir / f"clip-{index + 1:03d}.mp4"
        shutil.copyfile(item.artifact.path, dest)
        paths.append(dest)
    return paths


def load_frames(frames_dir: Path) -> list[Frame]:
    """Read ``frame-*.jpg`` files written by :func:`write_frames`, in timestamp order."""
    frames: list[Frame] = []
    for path in frames_dir.glob("frame-*.jpg"):
        parts = path.stem.split("-")
        try:
            minutes, seconds = int(parts[1]), int(parts[2])
            millis = int(parts[3]) if len(parts) > 3 else 0
        except (IndexError, ValueError):
            logger.warning("Skipping %s: name is not frame-MM-SS[-mmm].jpg", path.name)
            continue
        frames.append(Frame(image=path.read_bytes(), timestamp_s=minutes * 60 + seconds + millis / 1000.0))
    frames.sort(key=lambda f: f.timestamp_s)
    return frames
