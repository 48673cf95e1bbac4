from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Frame:
    """A single captured still with its source timestamp."""

    image: bytes        # JPEG-encoded picture at native resolution
    timestamp_s: float  # Seconds into the source video


@dataclass(frozen=True)
class SubtitleCue:
    start_s: float
    end_s: float
    text: str


@dataclass
class SubtitlePayload:
    """Serialized WebVTT document recovered from an embedded text track."""

    text: str
    cue_count: int
    path: Optional[Path] = None  # Temp file backing the payload, see materialize()

    def materialize(self) -> Path:
        """Write the document to a temp `.vtt` file and remember its path."""
        if self.path is None:
            fd, tmp_path = tempfile.mkstemp(prefix="framereel-subs-", suffix=".vtt")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(self.text)
            self.path = Path(tmp_path)
        return self.path

    def release(self) -> None:
        """Delete the materialized file, if any. Safe to call repeatedly."""
        if self.path is not None:
            self.path.unlink(missing_ok=True)
            self.path = None


@dataclass
class ClipArtifact:
    """A generated clip downloaded to a local temp file."""

    path: Path
    size_bytes: int
    released: bool = False

    def release(self) -> None:
        if self.released:
            return
        self.path.unlink(missing_ok=True)
        self.released = True


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ItemStatus(str, Enum):
    PENDING = "pending"
    DESCRIBING = "describing"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


# Allowed forward transitions. Terminal states have none.
_TRANSITIONS: dict[ItemStatus, frozenset[ItemStatus]] = {
    ItemStatus.PENDING: frozenset({ItemStatus.DESCRIBING, ItemStatus.ERROR}),
    ItemStatus.DESCRIBING: frozenset({ItemStatus.GENERATING, ItemStatus.ERROR}),
    ItemStatus.GENERATING: frozenset({ItemStatus.COMPLETE, ItemStatus.ERROR}),
    ItemStatus.COMPLETE: frozenset(),
    ItemStatus.ERROR: frozenset(),
}


@dataclass
class GenerationItem:
    """Per-frame unit of work in the generation pipeline."""

    original_frame: Frame
    description: Optional[str] = None
    artifact: Optional[ClipArtifact] = None
    status: ItemStatus = ItemStatus.PENDING
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (ItemStatus.COMPLETE, ItemStatus.ERROR)

    def advance(self, status: ItemStatus, **changes) -> None:
        """Move to *status* and apply *changes*.

        Raises ValueError on any transition not in the forward table, so an
        item can never regress from a terminal state.
        """
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Illegal item transition {self.status.value} -> {status.value}")
        for name, value in changes.items():
            setattr(self, name, value)
        self.status = status

    def release(self) -> None:
        if self.artifact is not None:
            self.artifact.release()


# ---------------------------------------------------------------------------
# Run outcomes
# ---------------------------------------------------------------------------

@dataclass
class ExtractionOutcome:
    status: RunStatus
    frames: list[Frame] = field(default_factory=list)
    subtitle: Optional[SubtitlePayload] = None
    error: Optional[str] = None


@dataclass
class GenerationOutcome:
    status: RunStatus
    items: list[GenerationItem] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed_count(self) -> int:
        return sum(1 for item in self.items if item.status is ItemStatus.ERROR)


# ---------------------------------------------------------------------------
# Observer events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FrameCaptured:
    frame: Frame
    index: int


@dataclass(frozen=True)
class ProgressChanged:
    progress: float


@dataclass(frozen=True)
class SubtitleReady:
    subtitle: SubtitlePayload


@dataclass(frozen=True)
class ItemChanged:
    index: int
    item: GenerationItem


@dataclass(frozen=True)
class RunFinished:
    status: RunStatus
    error: Optional[str] = None


RunEvent = Union[FrameCaptured, ProgressChanged, SubtitleReady, ItemChanged, RunFinished]
Listener = Callable[[RunEvent], None]


class EventHub:
    """Fan-out of run events to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: RunEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # Listener failures are logged, never propagated.
                _logger.exception("Listener %r failed on %s", listener, type(event).__name__)


class Progress:
    """Progress value clamped to 0..100 that never decreases within a run."""

    def __init__(self) -> None:
        self.value = 0.0

    def update(self, value: float) -> bool:
        """Raise progress to *value*; returns True if the value changed."""
        value = min(100.0, max(0.0, value))
        if value <= self.value:
            return False
        self.value = value
        return True
