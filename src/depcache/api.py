"""Stable API for depcache operations.

This module provides a minimal, stable function surface for package-manager
code that should not depend on how the cache is assembled internally. Each
call builds ``CacheTasks`` from the given settings, or from
``load_settings()`` (config file + environment) when none are passed.

Example:
    >>> from depcache.api import download_using_cache
    >>> from depcache.events import collect
    >>> collect(download_using_cache(remote_file, Path("vendor/BUCK")))
"""

from pathlib import Path
from typing import Generator, Optional

from .config import CacheSettings, load_settings
from .events import Event
from .models import Artifact, GitCommit, RemoteFile
from .tasks import CacheTasks


def _tasks(settings: Optional[CacheSettings]) -> CacheTasks:
    return CacheTasks.from_settings(settings if settings is not None else load_settings())


def get_cache_path(artifact: Artifact, settings: Optional[CacheSettings] = None) -> Path:
    """Return the cache path ``artifact`` is stored under."""
    return _tasks(settings).get_cache_path(artifact)


def download_to_cache(
    artifact: Artifact,
    settings: Optional[CacheSettings] = None,
) -> Generator[Event, None, Path]:
    """Populate the cache for ``artifact``; returns the cache path."""
    return (yield from _tasks(settings).download_to_cache(artifact))


def download_using_cache(
    remote_file: RemoteFile,
    target: Path,
    settings: Optional[CacheSettings] = None,
) -> Generator[Event, None, Path]:
    """Fetch ``remote_file`` through the cache and place it at ``target``."""
    return (yield from _tasks(settings).download_using_cache(remote_file, target))


def clone_and_checkout_using_cache(
    commit: GitCommit,
    target: Path,
    settings: Optional[CacheSettings] = None,
) -> Generator[Event, None, Path]:
    """Check out ``commit`` through the cache into ``target``."""
    return (yield from _tasks(settings).clone_and_checkout_using_cache(commit, target))
