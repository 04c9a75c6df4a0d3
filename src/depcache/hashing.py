"""Streaming hash utilities for cache entries and cache keys.

Payloads are never read into memory whole: every helper here works chunk by
chunk, and the digest returned always covers exactly the bytes that were
written.
"""

import hashlib
from pathlib import Path
from typing import BinaryIO, Iterable

from .constants import DEFAULT_CHUNK_SIZE, DIGEST_ALGORITHM


def _format_digest(hex_digest: str) -> str:
    return f"{DIGEST_ALGORITHM}:{hex_digest}"


class HashingWriter:
    """Write-through wrapper that hashes everything written to a binary file.

    Example:
        >>> with open(path, "wb") as f:
        ...     writer = HashingWriter(f)
        ...     for chunk in chunks:
        ...         writer.write(chunk)
        >>> writer.digest
        'sha256:...'
    """

    def __init__(self, fileobj: BinaryIO):
        self._fileobj = fileobj
        self._hash = hashlib.sha256()
        self.bytes_written = 0

    def write(self, data: bytes) -> int:
        """Write a chunk to the wrapped file and fold it into the digest."""
        self._fileobj.write(data)
        self._hash.update(data)
        self.bytes_written += len(data)
        return len(data)

    @property
    def digest(self) -> str:
        """Digest of all bytes written so far, as ``sha256:<hex>``."""
        return _format_digest(self._hash.hexdigest())


def copy_and_hash(
    source: BinaryIO,
    destination: BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> str:
    """Stream ``source`` into ``destination`` and return the digest of the copy.

    Args:
        source: Readable binary stream
        destination: Writable binary stream
        chunk_size: Bytes per read

    Returns:
        SHA256 digest in format "sha256:xxxx" over exactly the bytes written
    """
    writer = HashingWriter(destination)
    for chunk in iter(lambda: source.read(chunk_size), b""):
        writer.write(chunk)
    return writer.digest


def compute_file_digest(path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Compute SHA256 hash of file contents.

    Args:
        path: Path to file to hash

    Returns:
        SHA256 digest in format "sha256:xxxx"
    """
    sha256 = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            sha256.update(chunk)
    return _format_digest(sha256.hexdigest())


def compute_composite_digest(tag: str, parts: Iterable[str]) -> str:
    """Compute a hex digest identifying an ordered tuple of strings.

    Uses null-byte domain separation so that ("AB", "C") and ("A", "BC")
    hash differently, and a leading tag so digests for different kinds of
    keys can never collide with each other.

    Args:
        tag: Key kind, e.g. "GIT"
        parts: Ordered components, e.g. (url, commit)

    Returns:
        64-character hex digest
    """
    h = hashlib.sha256()
    h.update(b"\x00")
    h.update(tag.encode("utf-8"))
    h.update(b"\x00")
    for part in parts:
        h.update(b"\x00")
        h.update(part.encode("utf-8"))
        h.update(b"\x00")
    return h.hexdigest()


__all__ = [
    "HashingWriter",
    "compute_composite_digest",
    "compute_file_digest",
    "copy_and_hash",
]
