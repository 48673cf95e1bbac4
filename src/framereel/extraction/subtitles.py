"""Recover embedded subtitle cues and serialize them as WebVTT.

Cue loading is asynchronous and the handle gives no "cues ready" signal, so
the first track's cue list is polled until two consecutive reads report the
same non-zero count, bounded by a timeout.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Sequence

from framereel.extraction.media import TextTrack
from framereel.models import SubtitleCue, SubtitlePayload

logger = logging.getLogger(__name__)

VTT_HEADER = "WEBVTT"


def format_vtt_timestamp(seconds: float) -> str:
    """Format *seconds* as ``HH:MM:SS.mmm``."""
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def serialize_vtt(cues: Sequence[SubtitleCue]) -> str:
    """Render *cues*, in order, as a WebVTT document."""
    blocks = [f"{VTT_HEADER}\n"]
    for cue in cues:
        blocks.append(
            f"{format_vtt_timestamp(cue.start_s)} --> {format_vtt_timestamp(cue.end_s)}\n"
            f"{cue.text}\n"
        )
    return "\n".join(blocks) + "\n"


async def wait_for_cues(
    track: TextTrack,
    poll_interval_s: float = 0.25,
    timeout_s: float = 5.0,
) -> list[SubtitleCue]:
    """Poll *track* until its cue count is stable and non-zero, or time runs out."""
    deadline = time.monotonic() + timeout_s
    last_count = -1
    cues: list[SubtitleCue] = []

    while True:
        cues = track.cues
        if cues and len(cues) == last_count:
            return cues
        last_count = len(cues)
        if time.monotonic() >= deadline:
            return cues
        await asyncio.sleep(poll_interval_s)


async def extract_subtitles(
    text_tracks: Sequence[TextTrack],
    poll_interval_s: float = 0.25,
    timeout_s: float = 5.0,
) -> SubtitlePayload | None:
    """Read the first text track and return it as a WebVTT payload.

    Returns ``None`` when there are no tracks or the first track is still
    empty once the wait ends.  A missing track is not an error.
    """
    if not text_tracks:
        logger.info("No subtitle tracks found")
        return None

    track = text_tracks[0]
    track.mode = "hidden"

    cues = await wait_for_cues(track, poll_interval_s=poll_interval_s, timeout_s=timeout_s)
    if not cues:
        logger.info("Subtitle track has no cues")
        return None

    logger.info("Recovered %d subtitle cues", len(cues))
    return SubtitlePayload(text=serialize_vtt(cues), cue_count=len(cues))
