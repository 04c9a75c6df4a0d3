"""HTTP(S) fetcher built on requests."""

import logging
from pathlib import Path
from typing import Generator, Optional

import requests

from ..constants import DEFAULT_CHUNK_SIZE, DEFAULT_USER_AGENT
from ..errors import DownloadError
from ..events import Event, FetchCompleted, FetchStarted
from ..models import RemoteFile
from .base import write_atomically

logger = logging.getLogger(__name__)


def _content_length(response: requests.Response) -> Optional[int]:
    value = response.headers.get("Content-Length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class HttpFetcher:
    """
    Streams an HTTP GET response body to disk.

    The body is never held in memory: it is written chunk by chunk through a
    hashing writer, and one ``DownloadProgress`` event is emitted per chunk.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float = 60.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        """
        Initialize HTTP fetcher.

        Args:
            session: Session to reuse; a short-lived one is created per fetch if None
            chunk_size: Bytes per streamed chunk
            timeout: Connect/read timeout in seconds (per socket operation)
            user_agent: User-Agent header value
        """
        self.session = session
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.user_agent = user_agent

    def fetch(self, artifact: RemoteFile, destination: Path) -> Generator[Event, None, str]:
        """
        Download ``artifact.uri`` to ``destination``.

        Raises:
            DownloadError: On connection errors, timeouts and non-2xx responses
        """
        uri = artifact.uri
        yield FetchStarted(source=uri, destination=str(destination))
        logger.info("Downloading %s", uri)

        session = self.session or requests.Session()
        try:
            try:
                response = session.get(
                    uri,
                    stream=True,
                    timeout=self.timeout,
                    headers={"User-Agent": self.user_agent},
                )
            except requests.RequestException as e:
                raise DownloadError(uri, str(e)) from e

            try:
                try:
                    response.raise_for_status()
                except requests.HTTPError as e:
                    raise DownloadError(
                        uri, response.reason or str(e), status_code=response.status_code
                    ) from e

                total = _content_length(response)
                try:
                    digest = yield from write_atomically(
                        response.iter_content(chunk_size=self.chunk_size),
                        destination,
                        uri,
                        total,
                    )
                except requests.RequestException as e:
                    raise DownloadError(uri, f"transfer interrupted: {e}") from e
            finally:
                response.close()
        finally:
            if self.session is None:
                session.close()

        logger.debug("Downloaded %s -> %s (%s)", uri, destination, digest)
        yield FetchCompleted(source=uri, destination=str(destination), digest=digest)
        return digest
