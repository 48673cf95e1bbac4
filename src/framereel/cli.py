"""framereel CLI entry point.

``framereel extract`` samples frames from a video at a fixed interval, writes
them as JPEGs next to any recovered WebVTT subtitles, and can optionally pack
them into a zip archive or go straight on to clip generation.

``framereel generate`` turns a directory of previously extracted frames into
AI-generated clips (Gemini caption, then Veo video per frame).

Both commands show Rich progress bars and translate every typed pipeline
error into a red panel; tracebacks are never shown.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from framereel.config import get_settings
from framereel.errors import FrameReelError
from framereel.export import load_frames, write_archive, write_clips, write_frames, write_subtitle
from framereel.extraction.orchestrator import ExtractionOrchestrator
from framereel.generation.auth import PromptCredentialProvider
from framereel.generation.orchestrator import GenerationOrchestrator
from framereel.models import (
    Frame,
    FrameCaptured,
    GenerationOutcome,
    ItemChanged,
    ItemStatus,
    ProgressChanged,
    RunEvent,
    SubtitleReady,
)

app = typer.Typer(
    name="framereel",
    help="framereel: extract video frames at a fixed interval and turn them into AI-generated clips.",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

_VALID_VIDEO_EXTS = {".mp4", ".mkv", ".mov", ".avi", ".webm"}

_STATUS_STYLE = {
    ItemStatus.DESCRIBING: "cyan",
    ItemStatus.GENERATING: "magenta",
    ItemStatus.COMPLETE: "green",
    ItemStatus.ERROR: "red",
}


def _setup_logging(debug: bool) -> None:
    logger = logging.getLogger("framereel")
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=err_console, show_path=False, markup=False))
    logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    logger.propagate = False


def _input_error(message: str) -> None:
    err_console.print(Panel(message, title="[red]Input Error[/red]", border_style="red"))
    raise typer.Exit(1)


def _progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    )


def _ask_api_key() -> str:
    return typer.prompt("Gemini API key", hide_input=True, default="", show_default=False)


async def _generate_clips(frames: list[Frame], clips_dir: Path) -> tuple[GenerationOutcome, list[Path]]:
    """Run generation over *frames* and copy finished clips into *clips_dir*."""
    orchestrator = GenerationOrchestrator(PromptCredentialProvider(_ask_api_key))
    try:
        with _progress() as progress:
            task = progress.add_task(f"Generating clips for {len(frames)} frame(s)...", total=100)

            def _on_event(event: RunEvent) -> None:
                if isinstance(event, ProgressChanged):
                    progress.update(task, completed=event.progress)
                elif isinstance(event, ItemChanged):
                    style = _STATUS_STYLE.get(event.item.status, "white")
                    progress.console.print(
                        f"  frame {event.index + 1} "
                        f"([dim]{event.item.original_frame.timestamp_s:.1f}s[/dim]): "
                        f"[{style}]{event.item.status.value}[/{style}]"
                        + (f": {escape(event.item.error)}" if event.item.error else "")
                    )

            orchestrator.subscribe(_on_event)
            outcome = await orchestrator.start(frames)

        if outcome is None:
            raise typer.Exit(1)
        clip_paths = write_clips(outcome.items, clips_dir)
        return outcome, clip_paths
    finally:
        orchestrator.reset()


def _print_generation_summary(outcome: GenerationOutcome, clip_paths: list[Path], clips_dir: Path) -> None:
    if outcome.error:
        err_console.print(Panel(escape(outcome.error), title="[red]Generation Error[/red]", border_style="red"))
        raise typer.Exit(1)
    console.print(Panel(
        f"[bold green]Generation {outcome.status.value}[/bold green]\n\n"
        f"  Clips:   {len(clip_paths)} of {len(outcome.items)}\n"
        f"  Failed:  {outcome.failed_count}\n"
        f"  Output:  [dim]{escape(str(clips_dir))}[/dim]",
        title="[green]Clips Ready[/green]",
        border_style="green",
    ))


@app.command()
def extract(
    video: Annotated[
        Path,
        typer.Argument(
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
            help="Input video file (MP4, MKV, MOV, AVI or WebM).",
        ),
    ],
    interval: Annotated[
        Optional[float],
        typer.Option("--interval", "-i", help="Seconds between extracted frames (default: FRAMEREEL_DEFAULT_INTERVAL_S or 5)."),
    ] = None,
    out: Annotated[
        Optional[Path],
        typer.Option(
            "--out", "-o",
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
            help="Output directory (default: <video stem>_frames/ beside the video).",
        ),
    ] = None,
    archive: Annotated[
        bool,
        typer.Option("--zip", help="Also pack all frames into extracted-frames-<name>.zip."),
    ] = False,
    generate: Annotated[
        bool,
        typer.Option("--generate", help="Generate an AI clip for every extracted frame."),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Verbose logging."),
    ] = False,
) -> None:
    """Extract frames (and embedded subtitles) from VIDEO at a fixed interval."""
    _setup_logging(debug)
    settings = get_settings()

    if video.suffix.lower() not in _VALID_VIDEO_EXTS:
        _input_error(
            f"Unsupported video format: [bold]{escape(video.suffix)}[/bold]\n"
            f"Supported formats: {', '.join(sorted(_VALID_VIDEO_EXTS))}"
        )
    if not video.exists():
        _input_error(
            f"File not found: [bold]{escape(str(video))}[/bold]\n"
            f"Check that the path is correct and the file is accessible."
        )
    interval_s = settings.default_interval_s if interval is None else interval
    if interval_s <= 0:
        _input_error(f"Invalid interval: [bold]{interval_s}[/bold]\nThe interval must be greater than 0 seconds.")

    out_dir = out if out is not None else video.parent / f"{video.stem}_frames"
    console.print(f"\n[bold cyan]framereel[/bold cyan]  [dim]{escape(video.name)}[/dim]  every [bold]{interval_s:g}s[/bold]\n")

    async def _run() -> None:
        orchestrator = ExtractionOrchestrator(settings=settings)
        try:
            with _progress() as progress:
                task = progress.add_task("Extracting frames...", total=100)

                def _on_event(event: RunEvent) -> None:
                    if isinstance(event, ProgressChanged):
                        progress.update(task, completed=event.progress)
                    elif isinstance(event, FrameCaptured):
                        progress.update(task, description=f"Captured {event.index + 1} frame(s)...")
                    elif isinstance(event, SubtitleReady):
                        progress.console.print(f"[green]Subtitles found:[/] {event.subtitle.cue_count} cues")

                orchestrator.subscribe(_on_event)
                outcome = await orchestrator.start(video, interval_s)

            if outcome is None:
                raise typer.Exit(1)
            if outcome.error:
                err_console.print(Panel(escape(outcome.error), title="[red]Extraction Error[/red]", border_style="red"))
                raise typer.Exit(1)

            frame_paths = write_frames(outcome.frames, out_dir)
            lines = [
                f"[bold green]Extraction {outcome.status.value}[/bold green]\n",
                f"  Frames:     {len(frame_paths)}",
            ]
            if outcome.subtitle is not None:
                vtt_path = write_subtitle(outcome.subtitle, out_dir, video.stem)
                lines.append(f"  Subtitles:  [dim]{escape(vtt_path.name)}[/dim] ({outcome.subtitle.cue_count} cues)")
            else:
                lines.append("  Subtitles:  none found")
            if archive and outcome.frames:
                zip_path = write_archive(outcome.frames, out_dir, video.stem)
                lines.append(f"  Archive:    [dim]{escape(zip_path.name)}[/dim]")
            lines.append(f"  Output:     [dim]{escape(str(out_dir))}[/dim]")
            console.print(Panel("\n".join(lines), title="[green]Frames Ready[/green]", border_style="green"))

            if generate and outcome.frames:
                clips_dir = out_dir / "clips"
                gen_outcome, clip_paths = await _generate_clips(outcome.frames, clips_dir)
                _print_generation_summary(gen_outcome, clip_paths, clips_dir)
        finally:
            orchestrator.reset()

    try:
        asyncio.run(_run())
    except FrameReelError as e:
        err_console.print(Panel(escape(str(e)), title="[red]Pipeline Error[/red]", border_style="red"))
        raise typer.Exit(1)


@app.command(name="generate")
def generate_cmd(
    frames_dir: Annotated[
        Path,
        typer.Argument(
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
            help="Directory of frame-MM-SS.jpg files written by `framereel extract`.",
        ),
    ],
    out: Annotated[
        Optional[Path],
        typer.Option(
            "--out", "-o",
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
            help="Output directory for clips (default: <frames dir>/clips).",
        ),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Verbose logging."),
    ] = False,
) -> None:
    """Generate one AI clip per extracted frame in FRAMES_DIR."""
    _setup_logging(debug)

    if not frames_dir.is_dir():
        _input_error(
            f"Directory not found: [bold]{escape(str(frames_dir))}[/bold]\n"
            f"Run `framereel extract` first or check the path."
        )
    frames = load_frames(frames_dir)
    if not frames:
        _input_error(f"No frame-MM-SS.jpg files in [bold]{escape(str(frames_dir))}[/bold]")

    clips_dir = out if out is not None else frames_dir / "clips"
    console.print(f"\n[bold cyan]framereel[/bold cyan]  {len(frames)} frame(s) from [dim]{escape(str(frames_dir))}[/dim]\n")

    try:
        outcome, clip_paths = asyncio.run(_generate_clips(frames, clips_dir))
    except FrameReelError as e:
        err_console.print(Panel(escape(str(e)), title="[red]Pipeline Error[/red]", border_style="red"))
        raise typer.Exit(1)
    _print_generation_summary(outcome, clip_paths, clips_dir)


if __name__ == "__main__":
    app()
