"""Integrity checks for cache entries.

A missing entry is an ordinary cache miss, so the ``is_valid*`` predicates
never raise for absence; they answer False.
"""

import logging
from pathlib import Path

from .errors import HashMismatchError
from .fetchers.git import run_git
from .hashing import compute_file_digest

logger = logging.getLogger(__name__)


def is_valid(path: Path, expected_digest: str) -> bool:
    """Check that ``path`` is a regular file whose SHA256 is ``expected_digest``.

    Args:
        path: Candidate cache entry
        expected_digest: Digest in format "sha256:xxxx"

    Returns:
        False if the file is absent, not a regular file, unreadable, or its
        content hash differs; True otherwise
    """
    if not path.is_file():
        return False
    try:
        actual = compute_file_digest(path)
    except OSError as e:
        logger.debug("Cannot read cache entry %s: %s", path, e)
        return False
    if actual != expected_digest:
        logger.debug("Cache entry %s has digest %s, expected %s", path, actual, expected_digest)
        return False
    return True


def verify_file(path: Path, expected_digest: str, source: str = "") -> None:
    """Raise unless ``path`` hashes to ``expected_digest``.

    Raises:
        HashMismatchError: If the digests differ
        OSError: If the file cannot be read
    """
    actual = compute_file_digest(path)
    if actual != expected_digest:
        raise HashMismatchError(source or str(path), expected_digest, actual)


def is_valid_checkout(path: Path, commit: str, git: str = "git") -> bool:
    """Check that ``path`` is a clean git working tree at ``commit``.

    Clean means ``git status --porcelain`` reports nothing: no modified,
    deleted or untracked files.
    """
    if not (path / ".git").exists():
        return False
    try:
        head = run_git(["rev-parse", "HEAD"], cwd=path, git=git)
        if head.returncode != 0 or head.stdout.strip() != commit:
            return False
        status = run_git(["status", "--porcelain"], cwd=path, git=git)
    except OSError as e:
        logger.debug("Cannot inspect checkout %s: %s", path, e)
        return False
    if status.returncode != 0:
        return False
    if status.stdout.strip():
        logger.debug("Checkout %s has local modifications", path)
        return False
    return True


__all__ = ["is_valid", "is_valid_checkout", "verify_file"]
