"""High-level cache operations.

``CacheTasks`` is the only surface callers need: resolve where an artifact
lives in the cache, populate the cache, or place cached content at a target
path. Every operation except ``get_cache_path`` is a lazy event stream.
"""

import functools
import logging
from pathlib import Path
from typing import Generator, Optional

from .config import CacheSettings, LinkMode
from .errors import DownloadFileError, HashMismatchError
from .events import Event, Materialized
from .fetchers import make_fetcher
from .materialize import materialize_file, materialize_tree
from .models import Artifact, GitCommit, RemoteFile
from .store import CacheStore

logger = logging.getLogger(__name__)


class CacheTasks:
    """Cache operations over a single cache root.

    Example:
        >>> tasks = CacheTasks.from_settings(load_settings())
        >>> events = collect(tasks.download_using_cache(remote_file, Path("BUCK")))
    """

    def __init__(self, store: CacheStore, link_mode: LinkMode = "copy"):
        self.store = store
        self.link_mode = link_mode

    @classmethod
    def from_settings(cls, settings: Optional[CacheSettings] = None) -> "CacheTasks":
        """Build tasks whose store and fetchers follow ``settings``."""
        settings = settings or CacheSettings()
        store = CacheStore(
            root=settings.cache_dir,
            fetcher_factory=functools.partial(make_fetcher, settings=settings),
            lock_timeout=settings.lock_timeout,
            git=settings.git_executable,
        )
        return cls(store, link_mode=settings.link_mode)

    def get_cache_path(self, artifact: Artifact) -> Path:
        """Canonical cache path for ``artifact``. No I/O."""
        return self.store.path_for(artifact)

    def download_to_cache(self, artifact: Artifact) -> Generator[Event, None, Path]:
        """Populate the cache for ``artifact``.

        Returns:
            The cache path (generator return value)
        """
        return (yield from self.store.ensure(artifact))

    def download_using_cache(self, remote_file: RemoteFile, target: Path) -> Generator[Event, None, Path]:
        """Ensure ``remote_file`` is cached, then place it at ``target``.

        After successful completion ``target`` holds content whose digest is
        ``remote_file.digest``, whether the cache was hit or not.

        Raises:
            DownloadFileError: If the fetched or cached content does not match
                ``remote_file.digest`` (cause: ``HashMismatchError``)

        Returns:
            ``target`` (generator return value)
        """
        target = Path(target)
        cached = yield from self.store.ensure(remote_file)
        try:
            materialize_file(cached, target, remote_file.digest, mode=self.link_mode)
        except HashMismatchError as e:
            # The entry changed on disk after it was verified
            raise DownloadFileError(remote_file.uri, e) from e
        yield Materialized(source=str(cached), target=str(target))
        return target

    def clone_and_checkout_using_cache(self, commit: GitCommit, target: Path) -> Generator[Event, None, Path]:
        """Ensure ``commit`` is cached as a checkout, then copy it into ``target``.

        Returns:
            ``target`` (generator return value)
        """
        target = Path(target)
        cached = yield from self.store.ensure(commit)
        materialize_tree(cached, target)
        yield Materialized(source=str(cached), target=str(target))
        return target


__all__ = ["CacheTasks"]
