"""Extraction run: open the video, walk the time grid, capture one frame per step.

One orchestrator owns at most one active run.  The run's decoding handle is
touched only by the run itself, strictly sequentially: seek, wait for the
seek, capture, repeat.  Subtitle recovery runs as a separate task on the same
event loop and its payload is adopted whenever it arrives.

Observers subscribe to :class:`~framereel.models.FrameCaptured`,
:class:`~framereel.models.ProgressChanged`,
:class:`~framereel.models.SubtitleReady` and
:class:`~framereel.models.RunFinished` events instead of reading shared state.
"""

from __future__ import annotations

import asyncio
import logging
import math
from pathlib import Path
from typing import Callable, Optional

from framereel.config import Settings, get_settings
from framereel.errors import FrameReelError, InvalidInputError
from framereel.extraction.capture import capture, check_capture_surface
from framereel.extraction.media import MediaHandle, OpenCVMediaHandle
from framereel.extraction.subtitles import extract_subtitles
from framereel.extraction.timegrid import time_grid
from framereel.models import (
    EventHub,
    ExtractionOutcome,
    Frame,
    FrameCaptured,
    Listener,
    Progress,
    ProgressChanged,
    RunEvent,
    RunFinished,
    RunStatus,
    SubtitlePayload,
    SubtitleReady,
)

logger = logging.getLogger(__name__)

HandleFactory = Callable[[Path], MediaHandle]


class ExtractionState:
    """Authoritative state of one extraction run."""

    def __init__(self) -> None:
        self.status = RunStatus.IDLE
        self.progress = Progress()
        self.frames: list[Frame] = []
        self.subtitle: Optional[SubtitlePayload] = None
        self.error: Optional[str] = None
        self.cancelled = False
        self.handle: Optional[MediaHandle] = None
        self.subtitle_task: Optional[asyncio.Task] = None
        self.finished = asyncio.Event()

    def discard_media(self) -> None:
        """Stop subtitle loading and free the handle and subtitle payload."""
        if self.subtitle_task is not None and not self.subtitle_task.done():
            self.subtitle_task.cancel()
        self.subtitle_task = None
        if self.handle is not None:
            self.handle.release()
            self.handle = None
        if self.subtitle is not None:
            self.subtitle.release()
            self.subtitle = None

    def release(self) -> None:
        """Cancel the run and free everything it holds."""
        self.cancelled = True
        self.discard_media()
        self.frames = []


class ExtractionOrchestrator:
    """Drives interval-based frame extraction over a single decoding handle."""

    def __init__(
        self,
        handle_factory: HandleFactory = OpenCVMediaHandle,
        settings: Optional[Settings] = None,
    ) -> None:
        self._handle_factory = handle_factory
        self._settings = settings or get_settings()
        self._events = EventHub()
        self._state = ExtractionState()
        self._winding_down: list[ExtractionState] = []

    # -- observation --------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    @property
    def status(self) -> RunStatus:
        return self._state.status

    @property
    def is_active(self) -> bool:
        return self._state.status is RunStatus.RUNNING

    @property
    def progress(self) -> float:
        return self._state.progress.value

    @property
    def frames(self) -> list[Frame]:
        return list(self._state.frames)

    @property
    def subtitle(self) -> Optional[SubtitlePayload]:
        return self._state.subtitle

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    # -- control ------------------------------------------------------------

    def reset(self) -> None:
        """Cancel any active run, release its resources and clear all state.

        A seek already in flight is allowed to finish; the run notices the
        cancellation at its next check and stops without capturing.  From
        here on the cancelled run publishes no events, and the next
        :meth:`start` waits for it to wind down before opening a new handle.
        """
        if self._state.status is RunStatus.RUNNING:
            self._winding_down.append(self._state)
        self._state.release()
        self._state = ExtractionState()

    async def start(self, source: Optional[Path], interval_s: float) -> Optional[ExtractionOutcome]:
        """Extract one frame every *interval_s* seconds from *source*.

        Returns
        -------
        ExtractionOutcome | None
            The terminal outcome, or ``None`` if a run was already active.

        Raises
        ------
        InvalidInputError
            If *source* is missing or *interval_s* is not a positive number.
            No run is started in that case.
        """
        if source is None or not Path(source).is_file():
            raise InvalidInputError(f"video file not found: {source}")
        if not math.isfinite(interval_s) or interval_s <= 0:
            raise InvalidInputError(f"interval must be greater than 0, got {interval_s!r}")
        if self.is_active:
            logger.debug("Extraction already running; start() ignored")
            return None
        await self._wait_for_cancelled_runs()
        if self.is_active:
            logger.debug("Extraction already running; start() ignored")
            return None

        self.reset()
        state = self._state
        state.status = RunStatus.RUNNING
        try:
            return await self._run(state, Path(source), interval_s)
        finally:
            state.finished.set()

    # -- internals ----------------------------------------------------------

    async def _run(self, state: ExtractionState, source: Path, interval_s: float) -> ExtractionOutcome:
        captured: list[Frame] = []
        logger.info("Extracting frames from %s every %ss", source.name, interval_s)

        try:
            handle = self._handle_factory(source)
            state.handle = handle
            await handle.open()
            if not state.cancelled:
                state.subtitle_task = asyncio.create_task(self._adopt_subtitles(state, handle))
            check_capture_surface(handle)

            duration_s = handle.duration_s
            for timestamp_s in time_grid(duration_s, interval_s):
                if state.cancelled:
                    break
                await handle.seek(timestamp_s)
                if state.cancelled:
                    break
                frame = Frame(image=capture(handle, self._settings.jpeg_quality), timestamp_s=timestamp_s)
                captured.append(frame)
                state.frames.append(frame)
                self._emit(state, FrameCaptured(frame=frame, index=len(captured) - 1))
                self._set_progress(state, timestamp_s / duration_s * 100.0)

            if not state.cancelled and state.subtitle_task is not None:
                await asyncio.shield(state.subtitle_task)
        except FrameReelError as exc:
            logger.error("Extraction failed: %s", exc)
            state.error = str(exc)
            state.status = RunStatus.FAILED
            state.discard_media()
        except asyncio.CancelledError:
            if not state.cancelled:
                raise

        if state.cancelled:
            status = RunStatus.CANCELLED
        elif state.status is RunStatus.FAILED:
            status = RunStatus.FAILED
        else:
            status = RunStatus.COMPLETED

        if status is not RunStatus.CANCELLED:
            state.status = status
            self._set_progress(state, 100.0)

        logger.info("Extraction %s: %d frame(s)", status.value, len(captured))
        self._emit(state, RunFinished(status=status, error=state.error))
        return ExtractionOutcome(
            status=status,
            frames=captured,
            subtitle=state.subtitle if status is RunStatus.COMPLETED else None,
            error=state.error,
        )

    async def _wait_for_cancelled_runs(self) -> None:
        for previous in list(self._winding_down):
            await previous.finished.wait()
        self._winding_down = [s for s in self._winding_down if not s.finished.is_set()]

    def _emit(self, state: ExtractionState, event: RunEvent) -> None:
        # Only the current run reaches subscribers.
        if state is self._state:
            self._events.emit(event)

    def _set_progress(self, state: ExtractionState, value: float) -> None:
        if state.progress.update(value):
            self._emit(state, ProgressChanged(progress=state.progress.value))

    async def _adopt_subtitles(self, state: ExtractionState, handle: MediaHandle) -> None:
        try:
            payload = await extract_subtitles(
                handle.text_tracks,
                poll_interval_s=self._settings.subtitle_poll_interval_s,
                timeout_s=self._settings.subtitle_timeout_s,
            )
        except Exception:
            # Subtitle failures never fail the run.
            logger.warning("Subtitle extraction failed", exc_info=True)
            return
        if payload is None:
            return
        if state.cancelled or state.status is not RunStatus.RUNNING:
            payload.release()
            return
        payload.materialize()
        state.subtitle = payload
        self._emit(state, SubtitleReady(subtitle=payload))
