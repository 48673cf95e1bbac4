"""Generation run: describe each frame, turn the caption into a clip, in input order.

Items are processed one at a time.  A failure in either step marks only that
item as ``error``; the run moves on to the next item.  Every item mutation
is published as an :class:`~framereel.models.ItemChanged` event.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol, Sequence

from framereel.config import Settings, get_settings
from framereel.errors import AuthorizationError, FrameReelError
from framereel.generation.auth import CredentialProvider, ensure_credential
from framereel.generation.client import get_genai_client
from framereel.generation.describe import Describer
from framereel.generation.video import VideoGenerator
from framereel.models import (
    ClipArtifact,
    EventHub,
    Frame,
    GenerationItem,
    GenerationOutcome,
    ItemChanged,
    ItemStatus,
    Listener,
    Progress,
    ProgressChanged,
    RunEvent,
    RunFinished,
    RunStatus,
)

logger = logging.getLogger(__name__)


class GenerationSteps(Protocol):
    async def describe(self, frame: Frame) -> str: ...

    async def generate(self, caption: str) -> ClipArtifact: ...


class GeminiSteps:
    """Gemini captioning followed by Veo generation, sharing one client."""

    def __init__(self, api_key: str, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        client = get_genai_client(api_key)
        self.describer = Describer(
            client,
            model=settings.describe_model,
            instruction=settings.describe_instruction,
            retries=settings.describe_retries,
            retry_delay_s=settings.retry_delay_s,
        )
        self.generator = VideoGenerator(client, api_key, settings)

    async def describe(self, frame: Frame) -> str:
        return await self.describer.describe(frame)

    async def generate(self, caption: str) -> ClipArtifact:
        return await self.generator.generate(caption)


StepFactory = Callable[[str], GenerationSteps]


class GenerationState:
    """Authoritative state of one generation run."""

    def __init__(self) -> None:
        self.status = RunStatus.IDLE
        self.progress = Progress()
        self.items: list[GenerationItem] = []
        self.error: Optional[str] = None
        self.cancelled = False
        self.finished = asyncio.Event()

    def release(self) -> None:
        self.cancelled = True
        for item in self.items:
            item.release()
        self.items = []


class GenerationOrchestrator:
    """Runs the describe -> generate workflow over a list of frames."""

    def __init__(
        self,
        auth: CredentialProvider,
        step_factory: StepFactory = GeminiSteps,
    ) -> None:
        self._auth = auth
        self._step_factory = step_factory
        self._events = EventHub()
        self._state = GenerationState()
        self._winding_down: list[GenerationState] = []

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
    def items(self) -> list[GenerationItem]:
        return list(self._state.items)

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    def reset(self) -> None:
        """Release every item's clip, clear the items and cancel the active run.

        The cancelled run stops before its next item and publishes no further
        events.  A step already in flight finishes first, so the next
        :meth:`start` waits for it before making any request of its own.
        """
        if self._state.status is RunStatus.RUNNING:
            self._winding_down.append(self._state)
        self._state.release()
        self._state = GenerationState()

    async def start(self, frames: Sequence[Frame]) -> Optional[GenerationOutcome]:
        """Generate one clip per frame.

        Returns ``None`` without doing anything if a run is already active or
        *frames* is empty.  An unavailable API key finishes the run as
        ``failed`` before any item is created.
        """
        if self.is_active or not frames:
            return None
        await self._wait_for_cancelled_runs()
        if self.is_active:
            return None

        self.reset()
        state = self._state
        state.status = RunStatus.RUNNING
        try:
            return await self._run(state, frames)
        finally:
            state.finished.set()

    async def _run(self, state: GenerationState, frames: Sequence[Frame]) -> GenerationOutcome:
        try:
            api_key = await ensure_credential(self._auth)
        except AuthorizationError as exc:
            logger.error("Generation aborted: %s", exc)
            state.error = str(exc)
            return self._finish(state, RunStatus.FAILED, [])
        if state.cancelled:
            return self._finish(state, RunStatus.CANCELLED, [])

        steps = self._step_factory(api_key)
        items = [GenerationItem(original_frame=frame) for frame in frames]
        state.items = list(items)
        total = len(items)
        logger.info("Generating clips for %d frame(s)", total)

        for index, item in enumerate(items):
            if state.cancelled:
                break
            await self._process(state, steps, index, item)
            self._set_progress(state, (index + 1) / total * 100.0)

        status = RunStatus.CANCELLED if state.cancelled else RunStatus.COMPLETED
        return self._finish(state, status, items)

    async def _process(
        self,
        state: GenerationState,
        steps: GenerationSteps,
        index: int,
        item: GenerationItem,
    ) -> None:
        try:
            self._advance(state, index, item, ItemStatus.DESCRIBING)
            description = await steps.describe(item.original_frame)
            self._advance(state, index, item, ItemStatus.GENERATING, description=description)
            artifact = await steps.generate(description)
            if state.cancelled:
                # reset() already released this run's items; don't leak the late clip.
                artifact.release()
            self._advance(state, index, item, ItemStatus.COMPLETE, artifact=artifact)
        except FrameReelError as exc:
            logger.warning("Frame %d (%.2fs) failed: %s", index, item.original_frame.timestamp_s, exc)
            self._advance(state, index, item, ItemStatus.ERROR, error=str(exc) or type(exc).__name__)
        except Exception as exc:
            logger.exception("Unexpected error on frame %d", index)
            self._advance(state, index, item, ItemStatus.ERROR, error=str(exc) or type(exc).__name__)

    async def _wait_for_cancelled_runs(self) -> None:
        for previous in list(self._winding_down):
            await previous.finished.wait()
        self._winding_down = [s for s in self._winding_down if not s.finished.is_set()]

    def _emit(self, state: GenerationState, event: RunEvent) -> None:
        # Only the current run reaches subscribers.
        if state is self._state:
            self._events.emit(event)

    def _advance(
        self,
        state: GenerationState,
        index: int,
        item: GenerationItem,
        status: ItemStatus,
        **changes,
    ) -> None:
        item.advance(status, **changes)
        self._emit(state, ItemChanged(index=index, item=item))

    def _set_progress(self, state: GenerationState, value: float) -> None:
        if state.progress.update(value):
            self._emit(state, ProgressChanged(progress=state.progress.value))

    def _finish(
        self,
        state: GenerationState,
        status: RunStatus,
        items: list[GenerationItem],
    ) -> GenerationOutcome:
        # Progress always reaches 100 so callers never wait on a run that has ended.
        self._set_progress(state, 100.0)
        if not state.cancelled:
            state.status = status
        outcome = GenerationOutcome(status=status, items=items, error=state.error)
        logger.info("Generation %s: %d item(s), %d failed", status.value, len(items), outcome.failed_count)
        self._emit(state, RunFinished(status=status, error=state.error))
        return outcome
