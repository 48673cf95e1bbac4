from pathlib import Path


class FrameReelError(Exception):
    """Base class for all framereel errors."""


# ---------------------------------------------------------------------------
# Fatal: abort the owning run
# ---------------------------------------------------------------------------

class InvalidInputError(FrameReelError):
    def __init__(self, detail: str) -> None:
        super().__init__(
            f"Invalid input.\n"
            f"  Cause: {detail}\n"
            f"  Check: Provide an existing video file and an interval greater than 0."
        )
        self.detail = detail


class MediaLoadError(FrameReelError):
    def __init__(self, source: Path, detail: str) -> None:
        super().__init__(
            f"Could not load video metadata from '{source.name}'.\n"
            f"  Cause: {detail}\n"
            f"  Check: Is '{source.name}' a complete, readable video file?\n"
            f"  Tip: Run `ffprobe '{source}' -v quiet -show_streams` to verify the file is readable."
        )
        self.source = source
        self.detail = detail


class CaptureSurfaceError(FrameReelError):
    def __init__(self, detail: str) -> None:
        super().__init__(
            f"Could not acquire a capture surface.\n"
            f"  Cause: {detail}\n"
            f"  Check: Does the video contain a decodable video stream?"
        )
        self.detail = detail


class AuthorizationError(FrameReelError):
    def __init__(self, detail: str) -> None:
        super().__init__(
            f"No usable API key for the generation service.\n"
            f"  Cause: {detail}\n"
            f"  Check: Set FRAMEREEL_API_KEY (or GEMINI_API_KEY) and try again.\n"
            f"  Tip: See https://ai.google.dev/gemini-api/docs/billing for video generation access."
        )
        self.detail = detail


# ---------------------------------------------------------------------------
# Per-item: recorded on the failing generation item, the run continues
# ---------------------------------------------------------------------------

class DescriptionError(FrameReelError):
    def __init__(self, timestamp_s: float, detail: str) -> None:
        super().__init__(f"Failed to describe frame at {timestamp_s:.2f}s: {detail}")
        self.timestamp_s = timestamp_s
        self.detail = detail


class GenerationError(FrameReelError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Video generation failed: {detail}")
        self.detail = detail


class FetchError(FrameReelError):
    def __init__(self, detail: str, not_found: bool = False) -> None:
        if not_found:
            message = (
                f"Generated video not found: {detail}. "
                f"Your API key may be invalid; select it again."
            )
        else:
            message = f"Failed to download generated video: {detail}"
        super().__init__(message)
        self.detail = detail
        self.not_found = not_found
