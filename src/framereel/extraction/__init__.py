"""Extraction package: time grid, decoding handle, frame capture, subtitle recovery."""
from framereel.extraction.capture import capture, check_capture_surface
from framereel.extraction.media import FfmpegTextTrack, MediaHandle, OpenCVMediaHandle, TextTrack
from framereel.extraction.orchestrator import ExtractionOrchestrator
from framereel.extraction.subtitles import extract_subtitles, format_vtt_timestamp, serialize_vtt
from framereel.extraction.timegrid import time_grid

__all__ = [
    "capture",
    "check_capture_surface",
    "FfmpegTextTrack",
    "MediaHandle",
    "OpenCVMediaHandle",
    "TextTrack",
    "ExtractionOrchestrator",
    "extract_subtitles",
    "format_vtt_timestamp",
    "serialize_vtt",
    "time_grid",
]
