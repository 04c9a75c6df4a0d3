"""Local filesystem fetcher for file:// URIs (mirrors and tests)."""

import logging
import os
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Generator

from ..constants import DEFAULT_CHUNK_SIZE
from ..errors import DownloadError
from ..events import Event, FetchCompleted, FetchStarted
from ..models import RemoteFile
from .base import write_atomically

logger = logging.getLogger(__name__)


def path_from_uri(uri: str) -> Path:
    """
    Parse a file:// URI (or bare path) to a local path.

    Raises:
        ValueError: If the URI has another scheme or a non-local host
    """
    parsed = urllib.parse.urlparse(uri)
    if parsed.scheme == "":
        return Path(uri)
    if parsed.scheme != "file":
        raise ValueError(f"Expected file:// URI, got {uri}")
    if parsed.netloc not in ("", "localhost"):
        raise ValueError(f"file:// URI must refer to the local host: {uri}")
    return Path(urllib.request.url2pathname(parsed.path))


class FileFetcher:
    """
    Copies a local file as if it were a download.

    Emits the same events as the HTTP fetcher so caches backed by a local
    mirror behave identically to remote ones.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def fetch(self, artifact: RemoteFile, destination: Path) -> Generator[Event, None, str]:
        """
        Copy the file behind ``artifact.uri`` to ``destination``.

        Raises:
            DownloadError: If the source does not exist or cannot be opened
        """
        uri = artifact.uri
        yield FetchStarted(source=uri, destination=str(destination))

        try:
            source = path_from_uri(uri)
            f = source.open("rb")
        except (OSError, ValueError) as e:
            raise DownloadError(uri, str(e)) from e

        with f:
            total = os.fstat(f.fileno()).st_size
            logger.info("Copying %s", source)
            digest = yield from write_atomically(
                iter(lambda: f.read(self.chunk_size), b""),
                destination,
                uri,
                total,
            )

        yield FetchCompleted(source=uri, destination=str(destination), digest=digest)
        return digest
