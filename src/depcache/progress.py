"""Render cache event streams with rich progress bars."""

from typing import Dict, Iterable, List, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
    TransferSpeedColumn,
)

from .events import (
    CacheHit,
    DownloadProgress,
    Event,
    FetchCompleted,
    FetchStarted,
    GitProgress,
    Materialized,
)
from .utils import humanize_size


def _label(source: str, width: int = 48) -> str:
    if len(source) <= width:
        return source
    return "…" + source[-(width - 1):]


def render_events(events: Iterable[Event], console: Optional[Console] = None) -> List[Event]:
    """Consume ``events`` while drawing one progress bar per fetch.

    Cache hits and materializations are printed as single lines. A summary
    of downloaded bytes is printed at the end when anything was fetched.

    Args:
        events: Event stream from a cache operation
        console: Rich console for output (stderr if None)

    Returns:
        All events, in order
    """
    console = console or Console(stderr=True)
    collected: List[Event] = []
    task_ids: Dict[str, TaskID] = {}
    downloaded: Dict[str, int] = {}

    progress = Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        console=console,
    )
    with progress:
        for event in events:
            collected.append(event)

            if isinstance(event, FetchStarted):
                task_ids[event.source] = progress.add_task(_label(event.source), total=None)

            elif isinstance(event, DownloadProgress):
                if event.source not in task_ids:
                    task_ids[event.source] = progress.add_task(_label(event.source), total=None)
                downloaded[event.source] = event.bytes_downloaded
                progress.update(
                    task_ids[event.source],
                    completed=event.bytes_downloaded,
                    total=event.total_bytes,
                )

            elif isinstance(event, GitProgress):
                if event.source in task_ids:
                    progress.update(
                        task_ids[event.source],
                        description=f"{_label(event.source)} ({event.stage})",
                    )

            elif isinstance(event, FetchCompleted):
                if event.source in task_ids:
                    done = downloaded.get(event.source, 0) or 1
                    progress.update(task_ids[event.source], total=done, completed=done)

            elif isinstance(event, CacheHit):
                progress.console.print(f"[green]✓ cached[/green] {event.path}")

            elif isinstance(event, Materialized):
                progress.console.print(f"[dim]→ {event.target}[/dim]")

    if downloaded:
        total = sum(downloaded.values())
        console.print(f"Fetched {len(downloaded)} file(s), {humanize_size(total)}")
    return collected


__all__ = ["render_events"]
