"""Event types emitted by cache operations, and helpers to consume them.

Every public cache operation is a generator of ``Event`` objects: it does no
work until iterated, yields progress in order, and finishes by returning (or
raising). A pure cache hit yields a single ``CacheHit`` and no
``ProgressEvent``.

Consumption patterns:
    - ``collect(events)`` blocks until the sequence completes
    - ``collect(events, timeout=...)`` runs it on a worker thread with a deadline
    - ``EventTask(events, on_event=...).start()`` runs it in the background
    - ``events.close()`` (or ``EventTask.cancel()``) cancels it
"""

import logging
import threading
from concurrent.futures import CancelledError, Executor, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Generator, Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """Base class for all cache events."""


@dataclass(frozen=True)
class ProgressEvent(Event):
    """Base class for events that report network/transfer activity."""
    source: str


@dataclass(frozen=True)
class DownloadProgress(ProgressEvent):
    bytes_downloaded: int
    total_bytes: Optional[int] = None  # None when the server sent no Content-Length


@dataclass(frozen=True)
class GitProgress(ProgressEvent):
    stage: str  # "clone" | "checkout"


@dataclass(frozen=True)
class CacheHit(Event):
    path: str


@dataclass(frozen=True)
class FetchStarted(Event):
    source: str
    destination: str


@dataclass(frozen=True)
class FetchCompleted(Event):
    source: str
    destination: str
    digest: Optional[str] = None  # content digest (files) or commit (git)


@dataclass(frozen=True)
class CachePublished(Event):
    path: str


@dataclass(frozen=True)
class Materialized(Event):
    source: str
    target: str


EventStream = Generator[Event, None, object]


def transfer_events(events: Iterable[Event]) -> List[ProgressEvent]:
    """Return only the transfer-progress events from ``events``."""
    return [e for e in events if isinstance(e, ProgressEvent)]


class EventTask:
    """Run an event stream on a worker thread.

    The stream is consumed in the background; each event is passed to
    ``on_event`` (on the worker thread) and collected into the result list.

    Cancellation is cooperative: the flag is checked after every event, and
    the generator is closed so its cleanup runs. Nothing a cancelled
    operation wrote is ever published into the cache.
    """

    def __init__(
        self,
        events: EventStream,
        on_event: Optional[Callable[[Event], None]] = None,
        executor: Optional[Executor] = None,
    ):
        self._events = events
        self._on_event = on_event
        self._executor = executor
        self._cancelled = threading.Event()
        self._future: Optional[Future] = None

    def start(self) -> "EventTask":
        """Submit the stream for execution. Returns ``self`` for chaining."""
        if self._future is not None:
            raise RuntimeError("EventTask already started")
        if self._executor is None:
            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="depcache")
            self._future = executor.submit(self._run)
            # Already-submitted work still runs; this only releases the thread afterwards
            executor.shutdown(wait=False)
        else:
            self._future = self._executor.submit(self._run)
        return self

    def cancel(self) -> None:
        """Request cancellation of the running stream."""
        self._cancelled.set()
        if self._future is not None and self._future.cancel():
            # Never started; release the generator without running it
            self._events.close()

    def done(self) -> bool:
        return self._future is not None and self._future.done()

    def result(self, timeout: Optional[float] = None) -> List[Event]:
        """Block until the stream completes and return its events.

        Raises:
            concurrent.futures.TimeoutError: If ``timeout`` expires first
            concurrent.futures.CancelledError: If the task was cancelled
            Exception: Whatever the stream itself raised
        """
        if self._future is None:
            raise RuntimeError("EventTask not started")
        return self._future.result(timeout)

    def add_done_callback(self, fn: Callable[["EventTask"], None]) -> None:
        """Call ``fn(task)`` when the stream completes, fails or is cancelled."""
        if self._future is None:
            raise RuntimeError("EventTask not started")
        self._future.add_done_callback(lambda _future: fn(self))

    def _run(self) -> List[Event]:
        collected: List[Event] = []
        try:
            for event in self._events:
                if self._cancelled.is_set():
                    logger.debug("Event stream cancelled after %d events", len(collected))
                    raise CancelledError()
                collected.append(event)
                if self._on_event is not None:
                    self._on_event(event)
        finally:
            self._events.close()
        return collected


def collect(events: EventStream, timeout: Optional[float] = None) -> List[Event]:
    """Consume ``events`` to completion and return them as a list.

    Args:
        events: Event stream from a cache operation
        timeout: Optional deadline in seconds; on expiry the stream is
            cancelled and ``concurrent.futures.TimeoutError`` is raised

    Raises:
        Whatever the stream raised (e.g. DownloadFileError, TransferError)
    """
    if timeout is None:
        return list(events)

    task = EventTask(events).start()
    try:
        return task.result(timeout)
    except FutureTimeoutError:
        task.cancel()
        raise


__all__ = [
    "CacheHit",
    "CachePublished",
    "DownloadProgress",
    "Event",
    "EventStream",
    "EventTask",
    "FetchCompleted",
    "FetchStarted",
    "GitProgress",
    "Materialized",
    "ProgressEvent",
    "collect",
    "transfer_events",
]
