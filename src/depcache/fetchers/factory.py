"""Factory for creating fetcher instances."""

import urllib.parse
from typing import Optional

from ..config import CacheSettings
from ..models import Artifact, GitCommit, RemoteFile
from .base import Fetcher
from .fs import FileFetcher
from .git import GitFetcher
from .http import HttpFetcher


def make_fetcher(artifact: Artifact, settings: Optional[CacheSettings] = None) -> Fetcher:
    """
    Create the fetcher that can transfer ``artifact``.

    Args:
        artifact: Descriptor to fetch
        settings: Settings for timeouts, chunk size and executables

    Returns:
        Fetcher instance

    Raises:
        NotImplementedError: If the URI scheme is not supported
        TypeError: If ``artifact`` is not a known descriptor type
    """
    settings = settings or CacheSettings()

    if isinstance(artifact, GitCommit):
        return GitFetcher(git=settings.git_executable)

    if not isinstance(artifact, RemoteFile):
        raise TypeError(f"Unsupported artifact type: {type(artifact).__name__}")

    scheme = urllib.parse.urlparse(artifact.uri).scheme.lower()
    if scheme in ("http", "https"):
        return HttpFetcher(
            chunk_size=settings.chunk_size,
            timeout=settings.http_timeout,
            user_agent=settings.user_agent,
        )
    elif scheme in ("file", ""):
        return FileFetcher(chunk_size=settings.chunk_size)
    else:
        raise NotImplementedError(f"URI scheme {scheme!r} not supported")
