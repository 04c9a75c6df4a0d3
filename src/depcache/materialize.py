"""Materialize cache entries at caller-supplied target paths.

Files can reach their target by reflink, hardlink or copy:
- auto: reflink → hardlink → copy
- reflink: reflink only (fails if not supported)
- hardlink: hardlink only (fails if not possible)
- copy: always copy, re-hashing the bytes as they are written

Technical Note - Hardlink × Read-only Interaction:
    Cache objects are read-only (0o444). A hardlinked target shares the
    cache object's inode, so it is read-only too, and a chmod on the target
    changes the cache object. A later ``ensure`` detects any resulting
    tampering and refetches, but callers that intend to modify targets
    should use copy mode.
"""

import contextlib
import logging
import os
import shutil
import sys
import tempfile
import uuid
from pathlib import Path

from .config import LinkMode
from .errors import HashMismatchError
from .hashing import copy_and_hash
from .utils import fsync_dir, fsync_file

logger = logging.getLogger(__name__)


def _try_reflink(src: Path, dst: Path) -> bool:
    """Attempt to create a reflink (copy-on-write clone).

    Linux-only operation using FICLONE ioctl.

    Returns:
        True if reflink succeeded, False otherwise
    """
    if not sys.platform.startswith("linux"):
        return False

    import fcntl
    FICLONE = 0x40049409  # Linux ioctl value

    try:
        with open(src, "rb") as s, open(dst, "wb") as d:
            fcntl.ioctl(d.fileno(), FICLONE, s.fileno())
        return True
    except OSError:
        return False


def _copy_verified(src: Path, dest: Path, expected_digest: str) -> None:
    fd, tmp = tempfile.mkstemp(prefix=f".{dest.name}.copy-", dir=dest.parent)
    tmppath = Path(tmp)
    try:
        with os.fdopen(fd, "wb") as d, src.open("rb") as s:
            actual = copy_and_hash(s, d)
            d.flush()
            os.fsync(d.fileno())
        if actual != expected_digest:
            raise HashMismatchError(str(src), expected_digest, actual)
        # Reset permissions since cache object is read-only
        os.chmod(tmppath, 0o644)
        os.replace(tmppath, dest)
        fsync_dir(dest.parent)
    finally:
        with contextlib.suppress(OSError):
            tmppath.unlink()


def materialize_file(
    src: Path,
    dest: Path,
    expected_digest: str,
    mode: LinkMode = "copy",
) -> str:
    """Place the cached file ``src`` at ``dest``.

    All strategies go through a temp file + rename, so ``dest`` either holds
    the complete content or is left as it was.

    Args:
        src: Cache entry
        dest: Target path (overwritten if it exists)
        expected_digest: Digest the target must have ("sha256:...")
        mode: Link mode to use

    Returns:
        The strategy that was used ("reflink", "hardlink" or "copy")

    Raises:
        FileNotFoundError: If ``src`` does not exist
        HashMismatchError: If the copied bytes do not match ``expected_digest``
        OSError: If the requested strategy is not possible
    """
    if not src.exists():
        raise FileNotFoundError(f"Object not in cache: {src}")
    if mode not in ("auto", "reflink", "hardlink", "copy"):
        raise ValueError(f"Invalid link mode: {mode}")

    dest.parent.mkdir(parents=True, exist_ok=True)

    if mode in ("reflink", "auto"):
        tmp = dest.with_name(f".{dest.name}.{uuid.uuid4().hex}.reflink")
        try:
            if _try_reflink(src, tmp):
                os.chmod(tmp, 0o644)
                fsync_file(tmp)
                os.replace(tmp, dest)
                fsync_dir(dest.parent)
                logger.debug("Materialized via reflink: %s <- %s", dest, src)
                return "reflink"
            elif mode == "reflink":
                raise OSError("Reflink not supported on this filesystem")
        finally:
            with contextlib.suppress(OSError):
                tmp.unlink()

    if mode in ("hardlink", "auto"):
        # Atomic hardlink via temp + rename
        tmp = dest.with_name(f".{dest.name}.{uuid.uuid4().hex}.hardlink")
        try:
            os.link(src, tmp)
            os.replace(tmp, dest)
            fsync_dir(dest.parent)
            logger.debug("Materialized via hardlink: %s <- %s", dest, src)
            return "hardlink"
        except OSError:
            with contextlib.suppress(OSError):
                tmp.unlink()
            if mode == "hardlink":
                raise

    _copy_verified(src, dest, expected_digest)
    logger.debug("Materialized via copy: %s <- %s", dest, src)
    return "copy"


def materialize_tree(src: Path, dest: Path) -> None:
    """Replace ``dest`` with a copy of the cached working tree ``src``.

    The tree is copied into a temp sibling and swapped into place, so after
    success ``dest`` holds exactly the files of ``src``; anything previously
    at ``dest`` (an empty directory, or an older checkout) is removed.
    Symlinks inside the tree are copied as symlinks.

    Raises:
        FileNotFoundError: If ``src`` does not exist
        NotADirectoryError: If ``dest`` exists and is not a directory
    """
    if not src.is_dir():
        raise FileNotFoundError(f"Checkout not in cache: {src}")
    if dest.exists() and not dest.is_dir():
        raise NotADirectoryError(f"Target exists and is not a directory: {dest}")

    dest.parent.mkdir(parents=True, exist_ok=True)
    token = uuid.uuid4().hex
    tmp = dest.with_name(f".{dest.name}.{token}.tree")
    old = dest.with_name(f".{dest.name}.{token}.old")
    published = False
    try:
        shutil.copytree(src, tmp, symlinks=True)
        if dest.exists() or dest.is_symlink():
            os.replace(dest, old)
        os.replace(tmp, dest)
        published = True
        fsync_dir(dest.parent)
    finally:
        if not published:
            shutil.rmtree(tmp, ignore_errors=True)
            # Put the previous tree back if it was already moved aside
            if (old.exists() or old.is_symlink()) and not dest.exists():
                os.replace(old, dest)
    if old.is_symlink():
        old.unlink()
    elif old.exists():
        shutil.rmtree(old, ignore_errors=True)
    logger.debug("Materialized tree: %s <- %s", dest, src)


__all__ = ["materialize_file", "materialize_tree"]
