"""Content-addressed download cache.

This module provides the cache store: it checks whether an artifact is
already cached and valid, fetches it otherwise, verifies it, and atomically
publishes it under its content-derived key.

Key Features:
- Lazy validation: every ``ensure`` re-verifies the entry it would serve
- Self-healing: invalid or tampered entries are replaced, never served
- Atomic publish: entries become visible only via rename from a staging dir
- Cross-platform per-key locking via portalocker (one fetch per key at a time)

Directory Structure:
    <cache_root>/objects/sha256/ab/cd/<full_sha256_hex>   verified files
    <cache_root>/git/ef/<key>                              pinned checkouts
    <entry>.lock                                           per-key lock files

Technical Considerations:
- File entries are made read-only (0o444) before the rename that publishes them
- Staging directories live beside the entry so the rename never crosses filesystems
- Lock files persist to avoid inode coordination issues (OS releases locks on crash)
- Correctness does not depend on the locks: a reader can only ever see a
  complete, verified entry because visibility is switched by rename
"""

import contextlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, Iterator, Optional

import portalocker

from .config import default_cache_dir
from .constants import LOCK_SUFFIX, STAGING_PREFIX
from .errors import CheckoutError, DownloadFileError, HashMismatchError, LockTimeoutError
from .events import CacheHit, CachePublished, Event
from .fetchers import Fetcher, make_fetcher
from .hashing import compute_file_digest
from .integrity import is_valid, is_valid_checkout
from .keys import resolve
from .models import Artifact, GitCommit, RemoteFile
from .utils import fsync_dir, fsync_file

logger = logging.getLogger(__name__)

FetcherFactory = Callable[[Artifact], Fetcher]


class CacheStore:
    """Content-addressed cache of remote files and git checkouts.

    Attributes:
        root: Cache root directory
        fetcher_factory: Returns the fetcher to use for an artifact
        lock_timeout: Seconds to wait for another writer of the same key
        git: Git executable used to validate cached checkouts

    Thread Safety:
        All operations are safe for concurrent use from threads and processes
        sharing the same root.

    Paths:
        The root and all target paths are plain OS paths on the local
        filesystem. The root is the only filesystem location the store owns;
        tests substitute a temporary directory.
    """

    def __init__(
        self,
        root: Optional[Path] = None,
        fetcher_factory: Optional[FetcherFactory] = None,
        lock_timeout: float = 300.0,
        git: str = "git",
    ):
        """Initialize the store.

        Args:
            root: Cache root directory. If None, uses platform-appropriate default.
            fetcher_factory: Fetcher selection; defaults to ``make_fetcher``
            lock_timeout: Seconds to wait for a per-key lock
            git: Git executable
        """
        self.root = Path(root) if root else default_cache_dir()
        self.fetcher_factory = fetcher_factory or make_fetcher
        self.lock_timeout = lock_timeout
        self.git = git

    def path_for(self, artifact: Artifact) -> Path:
        """Get cache path for an artifact. Pure; touches no files."""
        return self.root.joinpath(*resolve(artifact).parts)

    def has(self, artifact: Artifact) -> bool:
        """Check if a valid entry for ``artifact`` is present (never fetches)."""
        path = self.path_for(artifact)
        if isinstance(artifact, GitCommit):
            return is_valid_checkout(path, artifact.commit, git=self.git)
        return is_valid(path, artifact.digest)

    def ensure(self, artifact: Artifact) -> Generator[Event, None, Path]:
        """Ensure a valid entry for ``artifact`` exists, fetching if necessary.

        Nothing happens until the returned generator is iterated. A cache hit
        yields a single ``CacheHit``; a miss streams the fetcher's events and
        ends with ``CachePublished``.

        Returns:
            Path to the entry in cache (the generator's return value)

        Raises:
            DownloadFileError: If fetched content fails hash verification
            TransferError: If the transfer itself fails
            LockTimeoutError: If another writer holds the key for too long
            TypeError: If ``artifact`` is not a known descriptor type
        """
        if isinstance(artifact, RemoteFile):
            return (yield from self._ensure_file(artifact))
        if isinstance(artifact, GitCommit):
            return (yield from self._ensure_checkout(artifact))
        raise TypeError(f"Unsupported artifact type: {type(artifact).__name__}")

    def _ensure_file(self, artifact: RemoteFile) -> Generator[Event, None, Path]:
        dst = self.path_for(artifact)

        # Fast path: already in cache and intact
        if is_valid(dst, artifact.digest):
            logger.debug("Cache hit: %s", dst)
            yield CacheHit(path=str(dst))
            return dst

        dst.parent.mkdir(parents=True, exist_ok=True)

        with self._locked(dst):
            # Re-check after acquiring lock (TOCTOU fix)
            if is_valid(dst, artifact.digest):
                logger.debug("Cache hit after lock: %s", dst)
                yield CacheHit(path=str(dst))
                return dst

            if dst.exists() or dst.is_symlink():
                logger.warning("Cache entry %s does not match %s; refetching", dst, artifact.digest)

            staging = self._make_staging(dst)
            try:
                payload = staging / dst.name
                fetcher = self.fetcher_factory(artifact)
                actual = yield from fetcher.fetch(artifact, payload)
                if actual is None:
                    actual = compute_file_digest(payload)

                if actual != artifact.digest:
                    mismatch = HashMismatchError(artifact.uri, artifact.digest, actual)
                    raise DownloadFileError(artifact.uri, mismatch) from mismatch

                # Ensure content is durable BEFORE changing permissions
                fsync_file(payload)
                # Read-only before the rename, so the entry is immutable from
                # the moment it becomes visible
                os.chmod(payload, 0o444)
                # A file cannot replace a directory: move it into staging first
                if dst.is_dir() and not dst.is_symlink():
                    os.replace(dst, staging / "stale")
                os.replace(payload, dst)
                fsync_dir(dst.parent)
            finally:
                shutil.rmtree(staging, ignore_errors=True)

        logger.info("Cached %s at %s", artifact.uri, dst)
        yield CachePublished(path=str(dst))
        return dst

    def _ensure_checkout(self, artifact: GitCommit) -> Generator[Event, None, Path]:
        dst = self.path_for(artifact)

        if is_valid_checkout(dst, artifact.commit, git=self.git):
            logger.debug("Cache hit: %s", dst)
            yield CacheHit(path=str(dst))
            return dst

        dst.parent.mkdir(parents=True, exist_ok=True)

        with self._locked(dst):
            if is_valid_checkout(dst, artifact.commit, git=self.git):
                logger.debug("Cache hit after lock: %s", dst)
                yield CacheHit(path=str(dst))
                return dst

            if dst.exists() or dst.is_symlink():
                logger.warning(
                    "Cached checkout %s is not a clean tree at %s; re-cloning", dst, artifact.commit
                )

            staging = self._make_staging(dst)
            try:
                tree = staging / "tree"
                fetcher = self.fetcher_factory(artifact)
                yield from fetcher.fetch(artifact, tree)

                if not is_valid_checkout(tree, artifact.commit, git=self.git):
                    raise CheckoutError(
                        artifact.url, artifact.commit, "verify",
                        "fetched tree is not a clean checkout of the commit",
                    )

                # A directory cannot be renamed over a non-empty one: move the
                # invalid entry into staging first, where it is deleted below
                if dst.exists() or dst.is_symlink():
                    os.replace(dst, staging / "stale")
                os.replace(tree, dst)
                fsync_dir(dst.parent)
            finally:
                shutil.rmtree(staging, ignore_errors=True)

        logger.info("Cached %s@%s at %s", artifact.url, artifact.commit[:12], dst)
        yield CachePublished(path=str(dst))
        return dst

    def _make_staging(self, dst: Path) -> Path:
        return Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=str(dst.parent)))

    @contextlib.contextmanager
    def _locked(self, dst: Path) -> Iterator[None]:
        """Hold the per-key lock for ``dst``.

        Lock files persist, but the OS releases the lock if the holder crashes.
        """
        lock_path = dst.with_name(dst.name + LOCK_SUFFIX)
        lock = portalocker.Lock(str(lock_path), "w", timeout=self.lock_timeout)
        try:
            lock.acquire()
        except portalocker.LockException as e:
            raise LockTimeoutError(str(lock_path), self.lock_timeout) from e
        try:
            yield
        finally:
            lock.release()


__all__ = ["CacheStore", "FetcherFactory"]
