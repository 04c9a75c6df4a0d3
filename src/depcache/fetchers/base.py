"""Base protocol for fetcher implementations."""

import contextlib
import os
import tempfile
from pathlib import Path
from typing import Generator, Iterable, Optional, Protocol

from ..events import DownloadProgress, Event
from ..hashing import HashingWriter
from ..models import Artifact


class Fetcher(Protocol):
    """
    Protocol for remote fetchers.

    A fetcher transfers one artifact to ``destination`` and reports progress
    as it goes. Implementations must write to a temporary sibling first and
    only rename onto ``destination`` once the transfer has fully succeeded.
    Digest verification against the expected hash is the caller's
    responsibility, not the fetcher's.
    """

    def fetch(self, artifact: Artifact, destination: Path) -> Generator[Event, None, Optional[str]]:
        """
        Transfer ``artifact`` to ``destination``.

        Args:
            artifact: Descriptor to fetch
            destination: Final path (must not be relied on until completion)

        Yields:
            Progress and lifecycle events

        Returns:
            Digest of the bytes written (file fetchers) or the checked-out
            commit (git), or None if the fetcher does not compute one
        """
        ...


def write_atomically(
    chunks: Iterable[bytes],
    destination: Path,
    source: str,
    total_bytes: Optional[int] = None,
) -> Generator[Event, None, str]:
    """Stream ``chunks`` into ``destination`` via a temp file, hashing on the way.

    Yields a ``DownloadProgress`` per non-empty chunk. The temp file is
    renamed onto ``destination`` only after every chunk was written and
    fsynced; if iteration fails or the generator is closed early, the temp
    file is removed and ``destination`` is untouched.

    Returns:
        Digest ("sha256:...") of the bytes written
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{destination.name}.partial-", dir=destination.parent)
    tmppath = Path(tmp)
    published = False
    try:
        with os.fdopen(fd, "wb") as f:
            writer = HashingWriter(f)
            for chunk in chunks:
                if not chunk:
                    continue
                writer.write(chunk)
                yield DownloadProgress(
                    source=source,
                    bytes_downloaded=writer.bytes_written,
                    total_bytes=total_bytes,
                )
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmppath, destination)
        published = True
    finally:
        if not published:
            with contextlib.suppress(OSError):
                tmppath.unlink()
    return writer.digest
